"""
Serve command for CLI.

Runs the auto-REST API with uvicorn.
"""

import logging
from pathlib import Path

import click
import uvicorn

from ...api import create_app
from ...config import EngineConfig
from ...core import AutoRestEngine


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option(
    "--manifest",
    "manifest_file",
    type=click.Path(exists=True, path_type=Path),
    help="Catalog manifest loaded at startup (defaults to AUTOREST_MANIFEST)",
)
@click.option("--log-level", default="info", show_default=True)
def serve(host: str, port: int, manifest_file: Path | None, log_level: str) -> None:
    """
    Serve the auto-REST API.

    Examples:
        autorest serve --manifest catalog.json --port 8080
    """
    logging.basicConfig(
        level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    config = EngineConfig(manifest_path=str(manifest_file) if manifest_file else None)
    app = create_app(AutoRestEngine(config))
    uvicorn.run(app, host=host, port=port, log_level=log_level)
