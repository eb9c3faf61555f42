"""
Discover command for CLI.

Lists the tables, views or collections behind a service of a manifest,
marking the ones already exposed.
"""

import json
from pathlib import Path

import click

from ...catalog import InMemoryCatalogStore
from ...catalog.models import Application
from ...config import EngineConfig
from ...core import AutoRestEngine
from ...exceptions import AutoRestError
from ...service import RequestPrincipal
from ..utils import load_manifest_file, run_async


async def _discover(manifest_file: Path, service: str, organization_id: str) -> list[dict]:
    config = EngineConfig(manifest_path=str(manifest_file))
    engine = AutoRestEngine(config, store=InMemoryCatalogStore())
    await engine.initialize()
    try:
        operator = Application(
            organization_id=organization_id, name="autorest-cli", api_key_hash="", can_manage=True
        )
        return await engine.service.discover_tables(RequestPrincipal(operator), service)
    finally:
        await engine.shutdown()


@click.command()
@click.argument("manifest_file", type=click.Path(exists=True, path_type=Path))
@click.argument("service")
@click.option("--org", "organization_id", help="Organization id (defaults to the manifest's)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def discover(manifest_file: Path, service: str, organization_id: str | None, as_json: bool) -> None:
    """
    Discover the tables of SERVICE as defined in MANIFEST_FILE.

    Examples:
        autorest discover catalog.json sales
        autorest discover catalog.json sales --org acme --json
    """
    manifest = load_manifest_file(manifest_file)
    organization_id = organization_id or manifest.get("organization_id")
    if not organization_id:
        raise click.ClickException("No organization: pass --org or set organization_id")

    try:
        objects = run_async(_discover(manifest_file, service, organization_id))
    except AutoRestError as e:
        raise click.ClickException(e.message) from e

    if as_json:
        click.echo(json.dumps(objects, indent=2))
        return
    if not objects:
        click.echo("No tables found")
        return
    for obj in objects:
        name = f"{obj['schema']}.{obj['name']}" if obj["schema"] else obj["name"]
        marker = click.style("exposed", fg="green") if obj["isExposed"] else "-"
        click.echo(f"{obj['type']:<11} {name:<40} {obj['suggestedPathSlug']:<30} {marker}")
