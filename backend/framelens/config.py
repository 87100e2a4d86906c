"""
Framelens — Central Configuration

All environment variables live here.
Import `settings`, `log`, and `generate_error_code` from this module.
Do not read `os.environ` anywhere else.
"""

import sys
import uuid
from datetime import datetime, timezone

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All environment variables. Loaded from .env or the process environment."""

    # Figma credentials (one of the two is required before any API call)
    figma_api_key: str = ""           # Personal access token → X-Figma-Token
    figma_oauth_token: str = ""       # OAuth token → Authorization: Bearer
    use_oauth: bool = False           # Only effective when figma_oauth_token is set

    # Figma HTTP behaviour
    figma_timeout_seconds: float = 30.0
    figma_max_retries: int = 3
    figma_max_retry_wait_seconds: float = 60.0

    # Tool output
    output_format: str = "yaml"       # "yaml" | "json"

    # App
    environment: str = "production"   # "development" dumps raw/simplified payloads to logs/
    host: str = "127.0.0.1"
    port: int = 3333
    cors_origins: str = "*"           # Comma-separated for multiple origins

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# Singleton — import this everywhere
settings = Settings()


# ──────────────────────────────────────────────────────
# Logging Utilities
# ──────────────────────────────────────────────────────

def generate_error_code() -> str:
    """Generate a short, user-friendly error reference code.

    Format: 'FL-' followed by 6 uppercase hex characters.
    Example: 'FL-3F8A2C'

    The same code is logged on the server AND returned to the caller, so a
    failed tool call can be matched to its log line.
    """
    return f"FL-{uuid.uuid4().hex[:6].upper()}"


def log(level: str, message: str, **context) -> None:
    """Structured print-based logger.

    Every log line follows the format:
        [ISO_TIMESTAMP] [LEVEL] message | key1=value1 key2=value2

    Lines go to stderr: in stdio mode stdout belongs to the MCP transport.

    Args:
        level: One of "DEBUG", "INFO", "WARN", "ERROR".
        message: Human-readable description of what happened.
        **context: Arbitrary key-value pairs. Include file_key when available.

    Usage:
        log("INFO", "figma file fetched", file_key="abc123", depth=2)
        log("ERROR", "figma request failed", file_key="abc123",
            error_code="FL-3F8A2C", error=str(e))
    """
    ts = datetime.now(timezone.utc).isoformat()
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    print(f"[{ts}] [{level}] {message} | {ctx}", file=sys.stderr, flush=True)
