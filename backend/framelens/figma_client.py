"""
Framelens — Figma REST Client

Auth header selection (OAuth Bearer or personal access token), retry with
backoff on 429/5xx/transport errors, and the endpoints the tools need.
Responses for file and node requests are simplified before they are returned.
"""

import asyncio
import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qs, unquote, urlparse

import httpx
import yaml

from framelens.config import log, settings
from framelens.figma_context import parse_figma_response
from framelens.formatting import split_design
from framelens.models import SimplifiedDesign, SvgOptions

FIGMA_API_BASE = "https://api.figma.com/v1"
LOGS_DIR = Path("logs")


class FigmaConfigError(Exception):
    """No usable Figma credentials."""


class FigmaAPIError(Exception):
    """Non-2xx response or transport failure after retries."""

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


def normalize_node_id(node_id: str) -> str:
    """'1-2' / '1%3A2' / '1:2' → '1:2'. Comma-separated lists are normalized per id."""
    ids = [unquote(part).strip().replace("-", ":") for part in node_id.split(",")]
    return ",".join(i for i in ids if i)


def parse_figma_url(url: str) -> tuple[str | None, str | None]:
    """
    Extract (file_key, node_id) from a Figma design URL.
    node_id returned in API format (colon, not hyphen).
    Supports: figma.com/design/:key/:name?node-id=X-Y, figma.com/file/:key
    """
    url = url.strip()
    if "figma.com" not in url:
        return None, None
    parsed = urlparse(url)
    path_match = re.match(r"/(?:design|file|proto|board)/([0-9a-zA-Z]{6,128})", parsed.path)
    if not path_match:
        return None, None
    file_key = path_match.group(1)
    node_id_raw = parse_qs(parsed.query).get("node-id", [None])[0]
    node_id = normalize_node_id(node_id_raw) if node_id_raw else None
    return file_key, node_id


def resolve_file_key(file_key: str, node_id: Optional[str] = None) -> tuple[str, Optional[str]]:
    """Accept a bare key or a full Figma URL; a node-id in the URL fills a missing node_id."""
    if "figma.com" in file_key:
        url_key, url_node = parse_figma_url(file_key)
        if not url_key:
            raise ValueError(f"Could not extract a file key from {file_key!r}")
        return url_key, node_id or url_node
    return file_key.strip(), node_id


def _parse_retry_after(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _api_depth(depth: Optional[int]) -> Optional[int]:
    """Figma's `depth` must be positive; depth 0 fetches one level and the walk prunes it."""
    if depth is None:
        return None
    return max(depth, 1)


def _write_logs(name: str, value: Any) -> None:
    """Dump a payload to logs/<name> in development. Never fails the request."""
    if settings.environment != "development":
        return
    try:
        LOGS_DIR.mkdir(exist_ok=True)
        with open(LOGS_DIR / name, "w", encoding="utf-8") as f:
            yaml.safe_dump(value, f, sort_keys=False, allow_unicode=True)
    except (OSError, yaml.YAMLError) as e:
        log("WARN", "failed to write debug logs", file=name, error=str(e))


class FigmaService:
    """Thin async client over the Figma REST API."""

    def __init__(
        self,
        api_key: str = "",
        oauth_token: str = "",
        use_oauth: bool = False,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        max_retry_wait: float = 60.0,
    ):
        self.api_key = api_key or ""
        self.oauth_token = oauth_token or ""
        self.use_oauth = bool(use_oauth) and bool(self.oauth_token)
        if not self.use_oauth and not self.api_key:
            raise FigmaConfigError(
                "Figma credentials missing: set FIGMA_API_KEY (or FIGMA_OAUTH_TOKEN with USE_OAUTH=true)"
            )
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_retry_wait = max_retry_wait

    @classmethod
    def from_settings(cls) -> "FigmaService":
        return cls(
            api_key=settings.figma_api_key,
            oauth_token=settings.figma_oauth_token,
            use_oauth=settings.use_oauth,
            timeout=settings.figma_timeout_seconds,
            max_retries=settings.figma_max_retries,
            max_retry_wait=settings.figma_max_retry_wait_seconds,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.use_oauth:
            headers["Authorization"] = f"Bearer {self.oauth_token}"
        else:
            headers["X-Figma-Token"] = self.api_key
        return headers

    def _backoff(self, attempt: int, retry_after: Optional[float]) -> float:
        wait = retry_after if retry_after else 2 ** attempt
        return min(max(wait, 1.0), self.max_retry_wait)

    async def _request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> Any:
        """
        Call the Figma API and return parsed JSON.

        Retries 429, 5xx and transport errors up to max_retries times, waiting
        Retry-After seconds when given, else 2**attempt. A Retry-After longer
        than max_retry_wait fails immediately (Figma lockouts can last days).

        Raises:
            FigmaAPIError: on a final non-2xx response, transport failure, or bad JSON.
        """
        url = f"{FIGMA_API_BASE}{endpoint}"
        log("INFO", "figma request", method=method, endpoint=endpoint, auth="oauth" if self.use_oauth else "token")

        for attempt in range(self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method,
                        url,
                        params=params,
                        json=body,
                        headers=self._headers(),
                    )
            except httpx.HTTPError as e:
                if attempt >= self.max_retries:
                    log("ERROR", "figma request failed", endpoint=endpoint, error=str(e), attempts=attempt + 1)
                    raise FigmaAPIError(f"Failed to make request to Figma API: {e}") from e
                wait = self._backoff(attempt, None)
                log("WARN", "figma request error, retrying", endpoint=endpoint, error=str(e), wait_seconds=wait)
                await asyncio.sleep(wait)
                continue

            status = response.status_code
            if status == 429 or status >= 500:
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                if retry_after is not None and retry_after > self.max_retry_wait:
                    log("ERROR", "figma rate limit lockout", endpoint=endpoint, retry_after=retry_after)
                    raise FigmaAPIError(
                        f"Figma API rate limit exceeded; retry after {int(retry_after)}s",
                        status_code=status,
                        retry_after=retry_after,
                    )
                if attempt < self.max_retries:
                    wait = self._backoff(attempt, retry_after)
                    log("WARN", "figma request throttled, retrying", endpoint=endpoint, status=status, wait_seconds=wait)
                    await asyncio.sleep(wait)
                    continue
                raise FigmaAPIError(
                    f"Figma API returned {status}: {response.text[:200]}",
                    status_code=status,
                    retry_after=retry_after,
                )

            if status < 200 or status >= 300:
                log("ERROR", "figma request rejected", endpoint=endpoint, status=status, body=response.text[:200])
                raise FigmaAPIError(f"Figma API returned {status}: {response.text[:200]}", status_code=status)

            try:
                return response.json()
            except ValueError as e:
                raise FigmaAPIError("Figma API returned a non-JSON body", status_code=status) from e

        raise FigmaAPIError("Figma API request retries exhausted")

    # ── Design data ─────────────────────────────────────────────────────────

    async def get_file(self, file_key: str, depth: Optional[int] = None) -> SimplifiedDesign:
        """GET /files/:key, simplified. depth bounds both the API response and the walk."""
        log("INFO", "retrieving figma file", file_key=file_key, depth="all" if depth is None else depth)
        api_depth = _api_depth(depth)
        params = {"depth": api_depth} if api_depth is not None else None
        raw = await self._request(f"/files/{file_key}", params=params)
        _write_logs("figma-raw.yml", raw)
        design = parse_figma_response(raw, max_depth=depth)
        _write_logs("figma-simplified.yml", split_design(design))
        return design

    async def get_node(self, file_key: str, node_id: str, depth: Optional[int] = None) -> SimplifiedDesign:
        """GET /files/:key/nodes?ids=..., simplified. Metadata describes the containing file."""
        ids = normalize_node_id(node_id)
        log("INFO", "retrieving figma nodes", file_key=file_key, node_ids=ids, depth="all" if depth is None else depth)
        params: dict[str, Any] = {"ids": ids}
        api_depth = _api_depth(depth)
        if api_depth is not None:
            params["depth"] = api_depth
        raw = await self._request(f"/files/{file_key}/nodes", params=params)
        _write_logs("figma-raw.yml", raw)
        design = parse_figma_response(raw, max_depth=depth)
        _write_logs("figma-simplified.yml", split_design(design))
        return design

    # ── Images ──────────────────────────────────────────────────────────────

    async def get_image_fills(self, file_key: str) -> dict[str, str]:
        """imageRef → download URL for every image fill in the file."""
        data = await self._request(f"/files/{file_key}/images")
        meta = data.get("meta") or {}
        return meta.get("images") or {}

    async def get_image_urls(
        self,
        file_key: str,
        node_ids: list[str],
        fmt: str = "png",
        scale: float = 2,
        svg_options: Optional[SvgOptions] = None,
    ) -> dict[str, Optional[str]]:
        """Render nodes and return nodeId → URL (None when Figma could not render one)."""
        if not node_ids:
            return {}
        params: dict[str, Any] = {"ids": ",".join(node_ids), "format": fmt}
        if fmt == "png":
            params["scale"] = scale
        elif fmt == "svg":
            opts = svg_options or SvgOptions()
            params["svg_outline_text"] = str(opts.outline_text).lower()
            params["svg_include_id"] = str(opts.include_id).lower()
            params["svg_simplify_stroke"] = str(opts.simplify_stroke).lower()
        data = await self._request(f"/images/{file_key}", params=params)
        if data.get("err"):
            raise FigmaAPIError(f"Figma could not render images: {data['err']}")
        return data.get("images") or {}

    # ── Variables ───────────────────────────────────────────────────────────

    async def get_local_variables(self, file_key: str) -> dict[str, Any]:
        log("INFO", "retrieving local variables", file_key=file_key)
        data = await self._request(f"/files/{file_key}/variables/local")
        _write_logs("figma-local-variables.yml", data)
        meta = data.get("meta") or {}
        return {
            "variables": meta.get("variables") or {},
            "variableCollections": meta.get("variableCollections") or {},
        }

    async def get_published_variables(self, file_key: str) -> dict[str, Any]:
        log("INFO", "retrieving published variables", file_key=file_key)
        data = await self._request(f"/files/{file_key}/variables/published")
        _write_logs("figma-published-variables.yml", data)
        meta = data.get("meta") or {}
        return {
            "variables": meta.get("variables") or {},
            "variableCollections": meta.get("variableCollections") or {},
        }

    async def update_variables(self, file_key: str, changes: dict) -> dict[str, Any]:
        """POST /files/:key/variables. The only write path; never touches the simplifier."""
        log("INFO", "updating variables", file_key=file_key, sections=",".join(changes.keys()))
        data = await self._request(f"/files/{file_key}/variables", method="POST", body=changes)
        _write_logs("figma-variables-update-response.yml", data)
        return {
            "status": data.get("status"),
            "error": data.get("error"),
            "meta": data.get("meta") or {},
        }


# ─────────────────────────────────────────────────────────────────────────────
# Shared service (singleton)
# ─────────────────────────────────────────────────────────────────────────────

_service: Optional[FigmaService] = None


def get_service() -> FigmaService:
    """Return the FigmaService singleton. Creates it from settings on first call."""
    global _service
    if _service is None:
        _service = FigmaService.from_settings()
    return _service


def reset_service() -> None:
    """Drop the singleton so changed settings (e.g. CLI overrides) take effect."""
    global _service
    _service = None
