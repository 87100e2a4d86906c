"""
Framelens Backend — Shared Test Fixtures

Raw Figma payloads, a fake FigmaService, and an ASGI client for
deterministic, fast unit tests. Nothing here talks to the network.
"""

import os
import sys
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient, ASGITransport

# Ensure framelens package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


# -----------------------------------------------------------------------------
# Environment Setup (before importing framelens modules)
# -----------------------------------------------------------------------------

os.environ.setdefault("FIGMA_API_KEY", "test-figma-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("OUTPUT_FORMAT", "yaml")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:3000")


# -----------------------------------------------------------------------------
# Raw Node Builders
# -----------------------------------------------------------------------------

RED = {"r": 1, "g": 0, "b": 0, "a": 1}
WHITE = {"r": 1, "g": 1, "b": 1, "a": 1}
BLUE = {"r": 0, "g": 0, "b": 1, "a": 1}


def solid(color: dict, **extra) -> dict:
    """A SOLID paint."""
    return {"type": "SOLID", "blendMode": "NORMAL", "color": dict(color), **extra}


def rect(node_id: str, x: float = 0, y: float = 0, w: float = 100, h: float = 50, **extra) -> dict:
    """A raw RECTANGLE node."""
    node = {
        "id": node_id,
        "name": f"Rect {node_id}",
        "type": "RECTANGLE",
        "absoluteBoundingBox": {"x": x, "y": y, "width": w, "height": h},
        "fills": [solid(RED)],
    }
    node.update(extra)
    return node


def frame(node_id: str, children: list, **extra) -> dict:
    """A raw FRAME node at the origin."""
    node = {
        "id": node_id,
        "name": f"Frame {node_id}",
        "type": "FRAME",
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": 400, "height": 300},
        "fills": [solid(WHITE)],
        "children": children,
    }
    node.update(extra)
    return node


def file_response(pages: list, **extra) -> dict:
    """A `GET /files/:key` response with the given pages under the document."""
    raw = {
        "name": "Checkout Flow",
        "lastModified": "2024-05-01T10:00:00Z",
        "thumbnailUrl": "https://example.com/thumb.png",
        "version": "123456",
        "editorType": "figma",
        "document": {"id": "0:0", "name": "Document", "type": "DOCUMENT", "children": pages},
        "components": {
            "10:1": {"key": "abc", "name": "Button", "componentSetId": "10:0"},
        },
        "componentSets": {
            "10:0": {"key": "def", "name": "Button Set", "description": "All buttons"},
        },
    }
    raw.update(extra)
    return raw


def nodes_response(documents: dict, **extra) -> dict:
    """A `GET /files/:key/nodes` response; documents maps node id → raw node (or None)."""
    raw = {
        "name": "Checkout Flow",
        "lastModified": "2024-05-01T10:00:00Z",
        "thumbnailUrl": "https://example.com/thumb.png",
        "version": "123456",
        "nodes": {
            node_id: (
                {
                    "document": doc,
                    "components": {"10:1": {"key": "abc", "name": "Button"}},
                    "componentSets": {},
                }
                if doc is not None
                else None
            )
            for node_id, doc in documents.items()
        },
    }
    raw.update(extra)
    return raw


# -----------------------------------------------------------------------------
# Mock Data Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def three_rects_frame() -> dict:
    """An unfilled frame: two red rectangles and one blue rectangle, in that order."""
    return frame(
        "1:1",
        [
            rect("1:2", x=10, y=10),
            rect("1:3", x=10, y=70),
            rect("1:4", x=10, y=130, fills=[solid(BLUE)]),
        ],
        fills=[],
    )


@pytest.fixture
def sample_file_response(three_rects_frame) -> dict:
    """Whole-file response: one page holding the three-rectangle frame and a text node."""
    page = {
        "id": "0:1",
        "name": "Page 1",
        "type": "CANVAS",
        "backgroundColor": WHITE,
        "children": [
            three_rects_frame,
            {
                "id": "2:1",
                "name": "Title",
                "type": "TEXT",
                "characters": "Pay now",
                "absoluteBoundingBox": {"x": 0, "y": 400, "width": 200, "height": 32},
                "style": {"fontFamily": "Inter", "fontWeight": 700, "fontSize": 24, "lineHeightPx": 32},
                "fills": [solid({"r": 0, "g": 0, "b": 0, "a": 1})],
            },
        ],
    }
    return file_response([page])


@pytest.fixture
def sample_nodes_response(three_rects_frame) -> dict:
    """Node-scoped response for the three-rectangle frame."""
    return nodes_response({"1:1": three_rects_frame})


# -----------------------------------------------------------------------------
# Service Mocking Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_service(monkeypatch):
    """
    Fake FigmaService wired into both the MCP tools and the REST router.

    Async methods are AsyncMocks; tests set return_value / side_effect.
    """
    from framelens.api.figma import get_figma_service
    from framelens.main import app

    service = MagicMock()
    service.get_file = AsyncMock()
    service.get_node = AsyncMock()
    service.get_image_fills = AsyncMock(return_value={})
    service.get_image_urls = AsyncMock(return_value={})
    service.get_local_variables = AsyncMock(return_value={"variables": {}, "variableCollections": {}})
    service.get_published_variables = AsyncMock(return_value={"variables": {}, "variableCollections": {}})
    service.update_variables = AsyncMock(return_value={"status": 200, "error": False, "meta": {}})

    monkeypatch.setattr("framelens.mcp_server.get_service", lambda: service)
    app.dependency_overrides[get_figma_service] = lambda: service
    yield service
    app.dependency_overrides.pop(get_figma_service, None)


@pytest.fixture(autouse=True)
def reset_figma_service():
    """Drop the cached FigmaService before and after each test."""
    from framelens.figma_client import reset_service

    reset_service()
    yield
    reset_service()


# -----------------------------------------------------------------------------
# httpx Mocking Helpers
# -----------------------------------------------------------------------------


def make_response(status_code: int = 200, json_data=None, headers: Optional[dict] = None, text: str = ""):
    """A MagicMock shaped like httpx.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    if isinstance(json_data, Exception):
        response.json = MagicMock(side_effect=json_data)
    else:
        response.json = MagicMock(return_value=json_data if json_data is not None else {})
    return response


def mock_async_client(mock_client_class, responses: list):
    """
    Wire a patched httpx.AsyncClient so successive `client.request` calls
    return `responses` in order (an Exception entry is raised instead).

    Returns the inner client mock for call assertions.
    """
    mock_instance = MagicMock()
    mock_instance.request = AsyncMock(side_effect=responses)
    mock_client_class.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_client_class.return_value.__aexit__ = AsyncMock(return_value=None)
    return mock_instance


# -----------------------------------------------------------------------------
# HTTP Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
async def client():
    """Async HTTP client for testing FastAPI endpoints."""
    from framelens.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
