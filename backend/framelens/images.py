"""
Framelens — Image Downloads

Resolves image-fill refs and rendered node exports to Figma-hosted URLs, then
streams each file into a local directory. Gated by a semaphore so large
batches don't open dozens of connections at once.

One failed file never fails the batch: every requested node gets a
DownloadResult with either a path or an error.
"""

import asyncio
import re
from pathlib import Path
from typing import Optional

import httpx

from framelens.config import log
from framelens.figma_client import FigmaService
from framelens.models import DownloadResult, ImageDownloadNode, SimplifiedDesign, SvgOptions

MAX_CONCURRENT_DOWNLOADS = 4
DOWNLOAD_TIMEOUT_SECONDS = 60.0


class ImageDownloadError(Exception):
    pass


def _target_path(local_path: Path, file_name: str) -> Path:
    """Reject names that would escape local_path."""
    if not file_name or "/" in file_name or "\\" in file_name or file_name in (".", ".."):
        raise ImageDownloadError(f"Invalid file name: {file_name!r}")
    return local_path / file_name


async def download_image(file_name: str, local_path: Path, url: str) -> str:
    """Stream one URL to local_path/file_name. Returns the written path.

    A download that fails after the file was opened removes the partial file.
    """
    target = _target_path(local_path, file_name)
    opened = False
    try:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(target, "wb") as f:
                    opened = True
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
    except (httpx.HTTPError, OSError) as e:
        if opened:
            target.unlink(missing_ok=True)
        raise ImageDownloadError(str(e)) from e
    return str(target)


async def download_images(
    service: FigmaService,
    file_key: str,
    nodes: list[ImageDownloadNode],
    local_path: str,
    png_scale: float = 2,
    svg_options: Optional[SvgOptions] = None,
) -> list[DownloadResult]:
    """
    Download image fills (nodes with imageRef) and rendered exports (the rest).

    A `.svg` file name selects an SVG render, anything else a PNG at png_scale.
    Results are returned in request order.

    Raises:
        FigmaAPIError: the URL lookup itself failed (nothing was downloaded).
        OSError: local_path could not be created.
    """
    directory = Path(local_path)
    directory.mkdir(parents=True, exist_ok=True)

    fill_nodes = [n for n in nodes if n.image_ref]
    render_nodes = [n for n in nodes if not n.image_ref]
    svg_ids = [n.node_id for n in render_nodes if n.file_name.lower().endswith(".svg")]
    png_ids = [n.node_id for n in render_nodes if not n.file_name.lower().endswith(".svg")]

    async def _none() -> dict:
        return {}

    fill_urls, png_urls, svg_urls = await asyncio.gather(
        service.get_image_fills(file_key) if fill_nodes else _none(),
        service.get_image_urls(file_key, png_ids, "png", png_scale) if png_ids else _none(),
        service.get_image_urls(file_key, svg_ids, "svg", svg_options=svg_options) if svg_ids else _none(),
    )
    log(
        "INFO",
        "image urls resolved",
        file_key=file_key,
        fills=len(fill_nodes),
        png=len(png_ids),
        svg=len(svg_ids),
    )

    semaphore = asyncio.Semaphore(MAX_CONCURRENT_DOWNLOADS)

    async def _one(node: ImageDownloadNode) -> DownloadResult:
        if node.image_ref:
            url = fill_urls.get(node.image_ref)
        elif node.file_name.lower().endswith(".svg"):
            url = svg_urls.get(node.node_id)
        else:
            url = png_urls.get(node.node_id)

        if not url:
            log("WARN", "no image url returned", node_id=node.node_id, image_ref=node.image_ref)
            return DownloadResult(node_id=node.node_id, file_name=node.file_name, error="No image URL returned by Figma")

        async with semaphore:
            try:
                path = await download_image(node.file_name, directory, url)
            except ImageDownloadError as e:
                log("WARN", "image download failed", node_id=node.node_id, file_name=node.file_name, error=str(e))
                return DownloadResult(node_id=node.node_id, file_name=node.file_name, error=str(e))
        return DownloadResult(node_id=node.node_id, file_name=node.file_name, path=path)

    results = await asyncio.gather(*[_one(node) for node in nodes])
    log(
        "INFO",
        "image downloads completed",
        file_key=file_key,
        downloaded=sum(1 for r in results if r.ok),
        failed=sum(1 for r in results if not r.ok),
    )
    return list(results)


def image_requests_from_design(design: SimplifiedDesign) -> list[ImageDownloadNode]:
    """Download requests for every image asset a simplification run collected."""
    requests: list[ImageDownloadNode] = []
    used: dict[str, int] = {}
    for asset in design.image_assets:
        stem = re.sub(r"[^0-9A-Za-z_-]", "-", asset.node_id) or "image"
        used[stem] = used.get(stem, 0) + 1
        suffix = f"-{used[stem]}" if used[stem] > 1 else ""
        requests.append(
            ImageDownloadNode(node_id=asset.node_id, image_ref=asset.image_ref, file_name=f"{stem}{suffix}.png")
        )
    return requests
