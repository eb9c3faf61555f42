"""
Show command for CLI.

Displays a catalog manifest.
"""

from pathlib import Path

import click

from ...catalog import ManifestValidator
from ..utils import format_manifest_output, load_manifest_file


@click.command()
@click.argument("manifest_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--format",
    "format_type",
    type=click.Choice(["json", "pretty"]),
    default="json",
    show_default=True,
    help="Output format",
)
@click.option("--validate", "run_validation", is_flag=True, help="Validate before showing")
def show(manifest_file: Path, format_type: str, run_validation: bool) -> None:
    """
    Show a catalog manifest.

    Passwords and API keys are never printed.

    Examples:
        autorest show catalog.json
        autorest show catalog.json --format pretty --validate
    """
    manifest = load_manifest_file(manifest_file)

    if run_validation:
        is_valid, error_message, _ = ManifestValidator().validate(manifest)
        if not is_valid:
            raise click.ClickException(f"Manifest is invalid: {error_message}")

    redacted = dict(manifest)
    redacted["connections"] = [
        {k: ("****" if k == "password" and v else v) for k, v in connection.items()}
        for connection in manifest.get("connections", [])
    ]
    redacted["applications"] = [
        {k: v for k, v in application.items() if k != "api_key"}
        for application in manifest.get("applications", [])
    ]
    click.echo(format_manifest_output(redacted, format_type))
