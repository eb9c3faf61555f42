"""
Validate command for CLI.

Checks a catalog manifest against the schema and its cross references, then
summarizes what it would publish and flags policies that are likely to hide
every row.
"""

import json
import re
import sys
from pathlib import Path
from typing import Any

import click

from ...catalog import ManifestValidator
from ..utils import load_manifest_file

_USER_PLACEHOLDER = re.compile(r"\{\{\s*user\.")


def _entity_slug(entity: dict[str, Any]) -> str:
    return entity.get("path_slug") or entity.get("name") or "?"


def catalog_summary(manifest: dict[str, Any]) -> list[str]:
    """One line for the organization, then one per service with its entity slugs."""
    services = manifest.get("services", [])
    entities = manifest.get("entities", [])
    lines = [
        f"Organization {manifest.get('organization_id')}: "
        f"{len(manifest.get('connections', []))} connections, {len(services)} services, "
        f"{len(entities)} entities, {len(manifest.get('applications', []))} applications"
    ]
    for service in services:
        slugs = [_entity_slug(e) for e in entities if e.get("service") == service.get("name")]
        lines.append(
            f"  {service.get('name')} -> {service.get('connection_id')}: "
            f"{', '.join(slugs) if slugs else '(nothing exposed)'}"
        )
    return lines


def catalog_warnings(manifest: dict[str, Any]) -> list[str]:
    """
    Problems the schema accepts but that change what callers see.

    Each warning starts with the manifest path it refers to.
    """
    warnings = []
    entities = manifest.get("entities", [])
    used = {entity.get("service") for entity in entities}
    for index, service in enumerate(manifest.get("services", [])):
        if service.get("name") not in used:
            warnings.append(f"services.{index}: '{service.get('name')}' exposes no entities")

    for index, entity in enumerate(entities):
        slug = _entity_slug(entity)
        for number, policy in enumerate(entity.get("row_policies") or []):
            template = policy.get("filter_template")
            text = template if isinstance(template, str) else json.dumps(template)
            if _USER_PLACEHOLDER.search(text or ""):
                warnings.append(
                    f"entities.{index}.row_policies.{number}: '{slug}' needs an upstream "
                    f"user; callers with only an API key see no rows"
                )
        for number, policy in enumerate(entity.get("field_policies") or []):
            include = policy.get("include_fields") or []
            hidden = set(policy.get("exclude_fields") or [])
            for name in policy.get("masked_fields") or []:
                if (include and name not in include) or name in hidden:
                    warnings.append(
                        f"entities.{index}.field_policies.{number}: masked field "
                        f"'{name}' of '{slug}' is never visible"
                    )
    return warnings


@click.command()
@click.argument("manifest_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed validation errors",
)
@click.option("--strict", is_flag=True, help="Treat warnings as errors")
def validate(manifest_file: Path, verbose: bool, strict: bool) -> None:
    """
    Validate a catalog manifest file.

    MANIFEST_FILE: Path to the manifest JSON file to validate

    Examples:
        autorest validate catalog.json
        autorest validate path/to/catalog.json --verbose --strict
    """
    manifest = load_manifest_file(manifest_file)

    is_valid, error_message, error_paths = ManifestValidator().validate(manifest)
    if not is_valid:
        click.echo(click.style(f"Manifest '{manifest_file}' is invalid!", fg="red"))
        if error_message:
            click.echo(click.style(f"Error: {error_message}", fg="red"))
        if error_paths and verbose:
            click.echo("\nError paths:")
            for path in error_paths:
                click.echo(f"  - {path}")
        sys.exit(1)

    click.echo(click.style(f"Manifest '{manifest_file}' is valid!", fg="green"))
    for line in catalog_summary(manifest):
        click.echo(line)

    warnings = catalog_warnings(manifest)
    if warnings:
        click.echo(click.style(f"\nWarnings ({len(warnings)}):", fg="yellow"))
        for warning in warnings:
            click.echo(f"  - {warning}")
    sys.exit(1 if strict and warnings else 0)
