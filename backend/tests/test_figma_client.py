"""
Framelens Backend — Figma REST Client Tests

Auth header selection, retry/backoff on 429 and 5xx, rate-limit lockout,
URL parsing, and simplification of file/node responses.
All HTTP calls are mocked via patch("httpx.AsyncClient").
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from framelens.figma_client import (
    FigmaAPIError,
    FigmaConfigError,
    FigmaService,
    normalize_node_id,
    parse_figma_url,
    resolve_file_key,
)
from tests.conftest import make_response, mock_async_client


def _service(**kwargs) -> FigmaService:
    kwargs.setdefault("api_key", "figd_test")
    return FigmaService(**kwargs)


# -----------------------------------------------------------------------------
# URL / Node ID Parsing
# -----------------------------------------------------------------------------


class TestParseFigmaUrl:
    def test_design_url_with_node_id(self):
        key, node = parse_figma_url("https://www.figma.com/design/AbC123xyz/My-File?node-id=12-34&t=x")
        assert key == "AbC123xyz"
        assert node == "12:34"

    def test_file_url_without_node(self):
        assert parse_figma_url("https://figma.com/file/AbC123xyz/My-File") == ("AbC123xyz", None)

    def test_non_figma_url(self):
        assert parse_figma_url("https://example.com/design/AbC123xyz") == (None, None)

    def test_normalize_node_id(self):
        assert normalize_node_id("1-2") == "1:2"
        assert normalize_node_id("1%3A2") == "1:2"
        assert normalize_node_id("1-2, 3:4") == "1:2,3:4"

    def test_resolve_file_key(self):
        assert resolve_file_key("AbC123xyz") == ("AbC123xyz", None)
        assert resolve_file_key("https://figma.com/design/AbC123xyz/x?node-id=1-2") == ("AbC123xyz", "1:2")
        assert resolve_file_key("https://figma.com/design/AbC123xyz/x?node-id=1-2", "9:9") == ("AbC123xyz", "9:9")

    def test_resolve_bad_url(self):
        with pytest.raises(ValueError):
            resolve_file_key("https://figma.com/community/whatever")


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------


class TestAuth:
    def test_requires_credentials(self):
        with pytest.raises(FigmaConfigError):
            FigmaService(api_key="", oauth_token="")

    def test_personal_token_header(self):
        headers = _service()._headers()
        assert headers["X-Figma-Token"] == "figd_test"
        assert "Authorization" not in headers

    def test_oauth_header(self):
        headers = FigmaService(oauth_token="oauth123", use_oauth=True)._headers()
        assert headers["Authorization"] == "Bearer oauth123"
        assert "X-Figma-Token" not in headers

    def test_use_oauth_without_token_falls_back(self):
        service = FigmaService(api_key="figd_test", use_oauth=True)
        assert service._headers()["X-Figma-Token"] == "figd_test"


# -----------------------------------------------------------------------------
# Request / Retry
# -----------------------------------------------------------------------------


class TestRequest:
    @pytest.mark.asyncio
    async def test_success_returns_json(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(mock_client_class, [make_response(200, {"ok": True})])
            data = await _service()._request("/files/abc")

        assert data == {"ok": True}
        method, url = inner.request.call_args.args
        assert method == "GET"
        assert url == "https://api.figma.com/v1/files/abc"
        assert inner.request.call_args.kwargs["headers"]["X-Figma-Token"] == "figd_test"

    @pytest.mark.asyncio
    async def test_retries_429_then_succeeds(self):
        with patch("httpx.AsyncClient") as mock_client_class, patch(
            "framelens.figma_client.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            inner = mock_async_client(
                mock_client_class,
                [make_response(429, headers={"Retry-After": "3"}), make_response(200, {"ok": True})],
            )
            data = await _service()._request("/files/abc")

        assert data == {"ok": True}
        assert inner.request.call_count == 2
        mock_sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_retries_5xx_with_exponential_backoff(self):
        with patch("httpx.AsyncClient") as mock_client_class, patch(
            "framelens.figma_client.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            mock_async_client(
                mock_client_class,
                [make_response(502), make_response(503), make_response(200, {"ok": True})],
            )
            await _service()._request("/files/abc")

        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        with patch("httpx.AsyncClient") as mock_client_class, patch(
            "framelens.figma_client.asyncio.sleep", new_callable=AsyncMock
        ):
            inner = mock_async_client(mock_client_class, [make_response(500, text="boom")] * 3)
            with pytest.raises(FigmaAPIError) as exc_info:
                await _service(max_retries=2)._request("/files/abc")

        assert exc_info.value.status_code == 500
        assert inner.request.call_count == 3

    @pytest.mark.asyncio
    async def test_long_retry_after_fails_fast(self):
        with patch("httpx.AsyncClient") as mock_client_class, patch(
            "framelens.figma_client.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            inner = mock_async_client(mock_client_class, [make_response(429, headers={"Retry-After": "86400"})])
            with pytest.raises(FigmaAPIError) as exc_info:
                await _service()._request("/files/abc")

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 86400
        assert inner.request.call_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(mock_client_class, [make_response(403, text="Invalid token")])
            with pytest.raises(FigmaAPIError) as exc_info:
                await _service()._request("/files/abc")

        assert exc_info.value.status_code == 403
        assert inner.request.call_count == 1

    @pytest.mark.asyncio
    async def test_transport_error_retried(self):
        with patch("httpx.AsyncClient") as mock_client_class, patch(
            "framelens.figma_client.asyncio.sleep", new_callable=AsyncMock
        ):
            inner = mock_async_client(
                mock_client_class,
                [httpx.ConnectError("refused"), make_response(200, {"ok": True})],
            )
            assert await _service()._request("/files/abc") == {"ok": True}

        assert inner.request.call_count == 2

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_async_client(mock_client_class, [make_response(200, ValueError("not json"))])
            with pytest.raises(FigmaAPIError):
                await _service()._request("/files/abc")


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_get_file_simplifies(self, sample_file_response):
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(mock_client_class, [make_response(200, sample_file_response)])
            design = await _service().get_file("abc", depth=2)

        assert inner.request.call_args.kwargs["params"] == {"depth": 2}
        assert design.metadata.name == "Checkout Flow"
        assert [n.id for n in design.nodes] == ["0:1"]
        # depth 2 from the document: page (1) and its children (2), nothing below
        assert all(child.children == [] for child in design.nodes[0].children)

    @pytest.mark.asyncio
    async def test_zero_depth_fetches_one_level_and_keeps_roots(self, sample_nodes_response):
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(mock_client_class, [make_response(200, sample_nodes_response)])
            design = await _service().get_node("abc", "1:1", depth=0)

        assert inner.request.call_args.kwargs["params"] == {"ids": "1:1", "depth": 1}
        assert [n.id for n in design.nodes] == ["1:1"]
        assert design.nodes[0].children == []

    @pytest.mark.asyncio
    async def test_zero_depth_file_request_is_bounded(self, sample_file_response):
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(mock_client_class, [make_response(200, sample_file_response)])
            design = await _service().get_file("abc", depth=0)

        assert inner.request.call_args.kwargs["params"] == {"depth": 1}
        assert design.nodes == []

    @pytest.mark.asyncio
    async def test_get_node_normalizes_ids(self, sample_nodes_response):
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(mock_client_class, [make_response(200, sample_nodes_response)])
            design = await _service().get_node("abc", "1-1")

        url = inner.request.call_args.args[1]
        assert url.endswith("/files/abc/nodes")
        assert inner.request.call_args.kwargs["params"] == {"ids": "1:1"}
        assert [n.id for n in design.nodes] == ["1:1"]

    @pytest.mark.asyncio
    async def test_get_image_urls_svg_options(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(
                mock_client_class, [make_response(200, {"err": None, "images": {"1:2": "https://cdn/x.svg"}})]
            )
            urls = await _service().get_image_urls("abc", ["1:2"], "svg")

        params = inner.request.call_args.kwargs["params"]
        assert params["format"] == "svg"
        assert params["svg_outline_text"] == "true"
        assert params["svg_include_id"] == "false"
        assert urls == {"1:2": "https://cdn/x.svg"}

    @pytest.mark.asyncio
    async def test_get_image_urls_render_error(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_async_client(mock_client_class, [make_response(200, {"err": "Invalid node", "images": {}})])
            with pytest.raises(FigmaAPIError):
                await _service().get_image_urls("abc", ["1:2"])

    @pytest.mark.asyncio
    async def test_get_local_variables(self):
        payload = {"meta": {"variables": {"VariableID:1": {"name": "primary"}}, "variableCollections": {}}}
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_async_client(mock_client_class, [make_response(200, payload)])
            result = await _service().get_local_variables("abc")

        assert result == {"variables": {"VariableID:1": {"name": "primary"}}, "variableCollections": {}}

    @pytest.mark.asyncio
    async def test_update_variables_posts_body(self):
        changes = {"variables": [{"action": "DELETE", "id": "VariableID:1"}]}
        with patch("httpx.AsyncClient") as mock_client_class:
            inner = mock_async_client(mock_client_class, [make_response(200, {"status": 200, "error": False})])
            result = await _service().update_variables("abc", changes)

        assert inner.request.call_args.args[0] == "POST"
        assert inner.request.call_args.kwargs["json"] == changes
        assert result == {"status": 200, "error": False, "meta": {}}
