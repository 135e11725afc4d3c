"""interceptor - command-line entry point."""

from pathlib import Path

import click
import uvicorn

from interceptor.backend import create_app
from interceptor.logging_config import configure_logging
from interceptor.settings import Settings


@click.group()
def main() -> None:
    """Serve pre-staged downloads in place of their original URLs."""


@main.command(
    epilog="""\b
Examples:
  # Path-based interception on the default port
  interceptor serve --root-dir /srv/models

  # Explicit-proxy mode: GET /https:/host/file.bin
  interceptor serve --mode proxy --port 8080""",
)
@click.option("--host", default=None, help="Bind address.")
@click.option("--port", default=None, type=int, help="Listen port.")
@click.option("--mode", default=None, type=click.Choice(["intercept", "proxy"]),
              help="Reject unmatched requests (intercept) or forward them (proxy).")
@click.option("--root-dir", default=None, type=click.Path(file_okay=False, path_type=Path),
              help="Directory local targets are confined to.")
@click.option("--data-dir", default=None, type=click.Path(file_okay=False, path_type=Path),
              help="Directory holding config.json and requests.log.json.")
@click.option("--verbose", is_flag=True, default=None, help="Enable debug logging.")
@click.option("--log-json", is_flag=True, default=None, help="Emit JSON log lines.")
def serve(**overrides) -> None:
    """Start the interception server."""
    # unset flags come through as None or False; leave those to env vars / defaults
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None and v is not False})
    configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    app = create_app(settings)
    click.echo(f"Serving on {settings.host}:{settings.port} ({settings.mode} mode)", err=True)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
