"""
Framelens — Figma REST API

Same operations as the MCP tools, for HTTP callers:
simplified design data, image downloads, and variables (read + write).
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from framelens.config import generate_error_code, log
from framelens.figma_client import (
    FigmaAPIError,
    FigmaConfigError,
    FigmaService,
    get_service,
    resolve_file_key,
)
from framelens.figma_context import DesignParseError
from framelens.formatting import format_result, split_design
from framelens.images import download_images, image_requests_from_design
from framelens.models import (
    DownloadImagesRequest,
    DownloadImagesResponse,
    ImageAssetDownloadRequest,
    VariableChanges,
)

router = APIRouter(prefix="/api/figma", tags=["figma"])

# Upstream statuses that mean the same thing to our caller
PASSTHROUGH_STATUSES = {400, 401, 403, 404, 429}


def get_figma_service() -> FigmaService:
    try:
        return get_service()
    except FigmaConfigError as e:
        code = generate_error_code()
        log("ERROR", "figma service not configured", error=str(e), error_code=code)
        raise HTTPException(
            status_code=503,
            detail={"message": "Figma credentials are not configured on this server.", "error_code": code},
        )


def _raise_http(action: str, file_key: str, error: Exception) -> None:
    """Log with an error code and raise the matching HTTPException."""
    code = generate_error_code()
    log("ERROR", f"figma {action} failed", file_key=file_key, error=str(error), error_code=code)

    if isinstance(error, FigmaAPIError):
        status = error.status_code if error.status_code in PASSTHROUGH_STATUSES else 502
        detail: dict = {"message": str(error), "error_code": code}
        if error.retry_after is not None:
            detail["retry_after_seconds"] = int(error.retry_after)
        raise HTTPException(status_code=status, detail=detail)
    if isinstance(error, DesignParseError):
        raise HTTPException(status_code=422, detail={"message": str(error), "error_code": code})
    if isinstance(error, ValueError):
        raise HTTPException(status_code=400, detail={"message": str(error), "error_code": code})
    raise HTTPException(status_code=500, detail={"message": str(error), "error_code": code})


@router.get("/files/{file_key}")
async def get_design(
    file_key: str,
    node_id: Optional[str] = None,
    depth: Optional[int] = Query(None, ge=0),
    output_format: Optional[Literal["json", "yaml"]] = Query(None, alias="format"),
    service: FigmaService = Depends(get_figma_service),
):
    """
    GET /api/figma/files/{file_key}?node_id=&depth=&format=

    Returns { metadata, nodes, globalVars }. JSON by default; format=yaml
    returns the YAML text the MCP tool would send.
    """
    try:
        key, node = resolve_file_key(file_key, node_id)
        if node:
            design = await service.get_node(key, node, depth)
        else:
            design = await service.get_file(key, depth)
    except (FigmaAPIError, DesignParseError, ValueError) as e:
        _raise_http("design fetch", file_key, e)

    result = split_design(design)
    if output_format == "yaml":
        return PlainTextResponse(format_result(result, "yaml"), media_type="application/yaml")
    return result


@router.post("/images", response_model=DownloadImagesResponse)
async def post_download_images(
    body: DownloadImagesRequest,
    service: FigmaService = Depends(get_figma_service),
) -> DownloadImagesResponse:
    """
    POST /api/figma/images

    Downloads the listed nodes (image fills or rendered exports) into localPath.
    """
    try:
        key, _ = resolve_file_key(body.file_key)
        results = await download_images(
            service, key, body.nodes, body.local_path, body.png_scale, body.svg_options
        )
    except (FigmaAPIError, ValueError, OSError) as e:
        _raise_http("image download", body.file_key, e)

    return DownloadImagesResponse(
        success=all(r.ok for r in results),
        downloaded=sum(1 for r in results if r.ok),
        results=results,
    )


@router.post("/files/{file_key}/image-assets", response_model=DownloadImagesResponse)
async def post_download_image_assets(
    file_key: str,
    body: ImageAssetDownloadRequest,
    service: FigmaService = Depends(get_figma_service),
) -> DownloadImagesResponse:
    """
    POST /api/figma/files/{file_key}/image-assets

    Simplifies the file (or node subtree) and downloads every image fill it references.
    """
    try:
        key, node = resolve_file_key(file_key, body.node_id)
        if node:
            design = await service.get_node(key, node, body.depth)
        else:
            design = await service.get_file(key, body.depth)
        requests = image_requests_from_design(design)
        results = await download_images(service, key, requests, body.local_path) if requests else []
    except (FigmaAPIError, DesignParseError, ValueError, OSError) as e:
        _raise_http("image asset download", file_key, e)

    return DownloadImagesResponse(
        success=all(r.ok for r in results),
        downloaded=sum(1 for r in results if r.ok),
        results=results,
    )


@router.get("/files/{file_key}/variables/local")
async def get_local_variables(file_key: str, service: FigmaService = Depends(get_figma_service)) -> dict:
    """GET /api/figma/files/{file_key}/variables/local → { variables, variableCollections }"""
    try:
        key, _ = resolve_file_key(file_key)
        return await service.get_local_variables(key)
    except (FigmaAPIError, ValueError) as e:
        _raise_http("local variables fetch", file_key, e)


@router.get("/files/{file_key}/variables/published")
async def get_published_variables(file_key: str, service: FigmaService = Depends(get_figma_service)) -> dict:
    """GET /api/figma/files/{file_key}/variables/published → { variables, variableCollections }"""
    try:
        key, _ = resolve_file_key(file_key)
        return await service.get_published_variables(key)
    except (FigmaAPIError, ValueError) as e:
        _raise_http("published variables fetch", file_key, e)


@router.post("/files/{file_key}/variables")
async def post_variables(
    file_key: str,
    body: VariableChanges,
    service: FigmaService = Depends(get_figma_service),
) -> dict:
    """POST /api/figma/files/{file_key}/variables → { status, error, meta }"""
    try:
        key, _ = resolve_file_key(file_key)
        return await service.update_variables(key, body.to_payload())
    except (FigmaAPIError, ValueError) as e:
        _raise_http("variables update", file_key, e)
