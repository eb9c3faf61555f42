"""
Utility functions for CLI commands.

This module provides shared utilities for CLI operations.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, TypeVar

import click

from ..catalog import read_manifest_file
from ..exceptions import ManifestValidationError

T = TypeVar("T")


def load_manifest_file(file_path: Path) -> dict[str, Any]:
    """
    Load a catalog manifest JSON file.

    Raises:
        click.ClickException: If the file doesn't exist or is invalid JSON
    """
    try:
        return read_manifest_file(file_path)
    except ManifestValidationError as e:
        raise click.ClickException(e.message) from e


def format_manifest_output(manifest: dict[str, Any], format_type: str) -> str:
    """
    Format a manifest for output.

    Args:
        manifest: Manifest dictionary
        format_type: Output format ('json' or 'pretty')

    Returns:
        Formatted string representation
    """
    if format_type != "pretty":
        return json.dumps(manifest, indent=2, ensure_ascii=False)

    lines = [f"Organization: {manifest.get('organization_id', 'N/A')}"]

    connections = manifest.get("connections", [])
    lines.append(f"Connections ({len(connections)}):")
    for connection in connections:
        target = connection.get("host") or connection.get("database") or "-"
        lines.append(f"  - {connection.get('id')} [{connection.get('type')}] {target}")

    services = manifest.get("services", [])
    lines.append(f"Services ({len(services)}):")
    for service in services:
        lines.append(f"  - {service.get('name')} -> {service.get('connection_id')}")

    entities = manifest.get("entities", [])
    lines.append(f"Entities ({len(entities)}):")
    for entity in entities:
        slug = entity.get("path_slug") or entity.get("name")
        writes = [op for op in ("create", "update", "delete") if entity.get(f"allow_{op}")]
        access = "read" + (f"+{'/'.join(writes)}" if writes else "")
        lines.append(f"  - {entity.get('service')}/{slug} ({entity.get('name')}, {access})")

    applications = manifest.get("applications", [])
    lines.append(f"Applications ({len(applications)}):")
    for application in applications:
        role = application.get("default_role_id") or "-"
        lines.append(f"  - {application.get('name')} (role: {role})")
    return "\n".join(lines)


def run_async(coro: Awaitable[T]) -> T:
    """Run a coroutine from a synchronous click command."""
    return asyncio.run(coro)
