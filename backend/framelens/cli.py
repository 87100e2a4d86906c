"""
Command-line entry point.

Starts the MCP server over stdio (for tool-calling clients that spawn it) or
the HTTP app (REST endpoints plus MCP over SSE). Flags override the matching
environment variables.
"""

from typing import Optional

import click
import uvicorn

from framelens.config import Settings, log, settings
from framelens.figma_client import FigmaConfigError, FigmaService, reset_service


def _apply_overrides(env_file: Optional[str], **overrides) -> None:
    """Reload from env_file (if given), then apply explicit flags onto the settings singleton."""
    if env_file:
        loaded = Settings(_env_file=env_file)
        for field in Settings.model_fields:
            setattr(settings, field, getattr(loaded, field))
    for field, value in overrides.items():
        if value is not None:
            setattr(settings, field, value)
    reset_service()


@click.command()
@click.option("--env-file", type=click.Path(exists=True, dir_okay=False), help="Path to a .env file")
@click.option("--figma-api-key", help="Figma personal access token")
@click.option("--figma-oauth-token", help="Figma OAuth bearer token")
@click.option("--use-oauth", is_flag=True, help="Authenticate with the OAuth token")
@click.option("--json", "use_json", is_flag=True, help="Emit JSON instead of YAML from tools")
@click.option("--port", type=int, help="HTTP port (default 3333)")
@click.option("--host", help="HTTP host (default 127.0.0.1)")
@click.option("--stdio", is_flag=True, help="Serve MCP over stdio instead of HTTP")
def main(
    env_file: Optional[str],
    figma_api_key: Optional[str],
    figma_oauth_token: Optional[str],
    use_oauth: bool,
    use_json: bool,
    port: Optional[int],
    host: Optional[str],
    stdio: bool,
):
    """Serve simplified Figma design data to MCP and HTTP clients."""
    _apply_overrides(
        env_file,
        figma_api_key=figma_api_key,
        figma_oauth_token=figma_oauth_token,
        use_oauth=True if use_oauth else None,
        output_format="json" if use_json else None,
        port=port,
        host=host,
    )

    # Fail at startup, not on the first tool call
    try:
        FigmaService.from_settings()
    except FigmaConfigError as e:
        raise click.ClickException(str(e))

    auth = "oauth" if settings.use_oauth and settings.figma_oauth_token else "token"
    if stdio:
        log("INFO", "starting mcp server", transport="stdio", auth=auth, output_format=settings.output_format)
        from framelens.mcp_server import mcp

        mcp.run()
        return

    log(
        "INFO",
        "starting http server",
        host=settings.host,
        port=settings.port,
        auth=auth,
        output_format=settings.output_format,
    )
    from framelens.main import app

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
