"""
Framelens — MCP Tool Server

Registers the Figma tools for tool-calling clients. Each tool returns text in
the configured output format (YAML by default, JSON with OUTPUT_FORMAT=json).
Failures are logged with an error code and raised as ToolError, which the
MCP framework returns to the client as an error result.

Run over stdio with `framelens --stdio`, or over HTTP via the FastAPI app.
"""

from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from framelens.config import generate_error_code, log, settings
from framelens.figma_client import FigmaAPIError, FigmaConfigError, get_service, resolve_file_key
from framelens.figma_context import DesignParseError
from framelens.formatting import format_result, split_design
from framelens.images import download_images
from framelens.models import ImageDownloadNode, SvgOptions, VariableChanges

mcp = FastMCP("Framelens Figma Server")

_HANDLED_ERRORS = (FigmaAPIError, FigmaConfigError, DesignParseError, ValueError, OSError)

FILE_KEY_DESCRIPTION = (
    "The key of the Figma file, often found in a provided URL like "
    "figma.com/(file|design)/<fileKey>/... A full Figma URL is also accepted."
)


def _tool_error(action: str, file_key: str, error: Exception) -> ToolError:
    code = generate_error_code()
    log("ERROR", f"{action} failed", file_key=file_key, error=str(error), error_code=code)
    return ToolError(f"Error {action}: {error} (error code {code})")


@mcp.tool(
    name="get_figma_data",
    description=(
        "When the nodeId cannot be obtained, obtain the layout information about the entire Figma file. "
        "Returns metadata, a simplified node tree, and globalVars holding the style values nodes reference by key."
    ),
)
async def get_figma_data(
    fileKey: Annotated[str, Field(description=FILE_KEY_DESCRIPTION)],
    nodeId: Annotated[
        Optional[str],
        Field(description="The ID of the node to fetch, often found as URL parameter node-id=<nodeId>, always use if provided"),
    ] = None,
    depth: Annotated[
        Optional[int],
        Field(
            description="OPTIONAL. Do NOT use unless explicitly requested by the user. "
            "Controls how many levels deep to traverse the node tree.",
            ge=0,
        ),
    ] = None,
) -> str:
    try:
        file_key, node_id = resolve_file_key(fileKey, nodeId)
        log(
            "INFO",
            "fetching figma data",
            file_key=file_key,
            node_id=node_id or "full file",
            depth=depth if depth is not None else "all",
        )
        service = get_service()
        if node_id:
            design = await service.get_node(file_key, node_id, depth)
        else:
            design = await service.get_file(file_key, depth)
    except _HANDLED_ERRORS as e:
        raise _tool_error("fetching file", fileKey, e) from e

    log("INFO", "figma data fetched", file_name=design.metadata.name, output_format=settings.output_format)
    return format_result(split_design(design), settings.output_format)


@mcp.tool(
    name="download_figma_images",
    description="Download SVG and PNG images used in a Figma file based on the IDs of image or icon nodes",
)
async def download_figma_images(
    fileKey: Annotated[str, Field(description="The key of the Figma file containing the node")],
    nodes: Annotated[list[ImageDownloadNode], Field(description="The nodes to fetch as images", min_length=1)],
    localPath: Annotated[
        str,
        Field(
            description="The absolute path to the directory where images are stored in the project. "
            "If the directory does not exist, it will be created."
        ),
    ],
    pngScale: Annotated[
        float,
        Field(description="Export scale for PNG images. Defaults to 2. Affects PNG images only.", gt=0),
    ] = 2,
    svgOptions: Annotated[Optional[SvgOptions], Field(description="Options for SVG export")] = None,
) -> str:
    try:
        file_key, _ = resolve_file_key(fileKey)
        results = await download_images(get_service(), file_key, nodes, localPath, pngScale, svgOptions)
    except _HANDLED_ERRORS as e:
        raise _tool_error("downloading images", fileKey, e) from e

    saved = [r.path for r in results if r.ok]
    failed = [r for r in results if not r.ok]
    if not failed:
        return f"Success, {len(saved)} images downloaded: {', '.join(saved)}"
    details = "; ".join(f"{r.file_name} ({r.node_id}): {r.error}" for r in failed)
    return f"Downloaded {len(saved)} of {len(results)} images. Failed: {details}"


@mcp.tool(
    name="get_figma_local_variables",
    description="Get all local variables and variable collections from a Figma file",
)
async def get_figma_local_variables(
    fileKey: Annotated[str, Field(description=FILE_KEY_DESCRIPTION)],
) -> str:
    try:
        file_key, _ = resolve_file_key(fileKey)
        result = await get_service().get_local_variables(file_key)
    except _HANDLED_ERRORS as e:
        raise _tool_error("fetching local variables", fileKey, e) from e

    log(
        "INFO",
        "local variables fetched",
        file_key=file_key,
        variables=len(result["variables"]),
        collections=len(result["variableCollections"]),
    )
    return format_result(result, settings.output_format)


@mcp.tool(
    name="get_figma_published_variables",
    description="Get all published variables and variable collections from a Figma file",
)
async def get_figma_published_variables(
    fileKey: Annotated[str, Field(description=FILE_KEY_DESCRIPTION)],
) -> str:
    try:
        file_key, _ = resolve_file_key(fileKey)
        result = await get_service().get_published_variables(file_key)
    except _HANDLED_ERRORS as e:
        raise _tool_error("fetching published variables", fileKey, e) from e

    log(
        "INFO",
        "published variables fetched",
        file_key=file_key,
        variables=len(result["variables"]),
        collections=len(result["variableCollections"]),
    )
    return format_result(result, settings.output_format)


@mcp.tool(
    name="update_figma_variables",
    description="Create, update, or delete variables, variable collections, modes, and mode values in a Figma file",
)
async def update_figma_variables(
    fileKey: Annotated[str, Field(description=FILE_KEY_DESCRIPTION)],
    changes: Annotated[
        VariableChanges,
        Field(description="The changes to make to variables, collections, modes, and values"),
    ],
) -> str:
    try:
        file_key, _ = resolve_file_key(fileKey)
        result = await get_service().update_variables(file_key, changes.to_payload())
    except _HANDLED_ERRORS as e:
        raise _tool_error("updating variables", fileKey, e) from e

    log("INFO", "variables updated", file_key=file_key, status=result["status"])
    return format_result(result, settings.output_format)
