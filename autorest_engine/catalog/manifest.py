"""
Catalog manifests.

A manifest is a JSON document describing connections, services, exposed
entities and applications. It lets a catalog be declared in a file and
loaded at startup (or by the CLI) instead of being written to MongoDB by
hand.

Example:
    {
      "schema_version": "1.0",
      "organization_id": "acme",
      "connections": [{"id": "main", "type": "POSTGRESQL", "host": "db", ...}],
      "services": [{"name": "sales", "connection_id": "main"}],
      "entities": [{"service": "sales", "name": "orders", "path_slug": "orders"}],
      "applications": [{"name": "dashboard", "api_key": "ark_..."}]
    }
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import SchemaError, ValidationError, validate

from ..constants import (CURRENT_MANIFEST_VERSION, SUPPORTED_DATABASE_TYPES,
                         SUPPORTED_ENTITY_TYPES)
from ..exceptions import ManifestValidationError
from ..security import hash_api_key
from .models import (Application, ConnectionConfig, ExposedEntity,
                     FieldPolicy, RowPolicy, Service)
from .store import CatalogStore

logger = logging.getLogger(__name__)

_FIELD_POLICY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "role_id": {"type": ["string", "null"]},
        "include_fields": {"type": "array", "items": {"type": "string"}},
        "exclude_fields": {"type": "array", "items": {"type": "string"}},
        "masked_fields": {"type": "array", "items": {"type": "string"}},
    },
    "additionalProperties": False,
}

_ROW_POLICY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "role_id": {"type": ["string", "null"]},
        "filter_template": {"type": ["object", "string"]},
    },
    "required": ["filter_template"],
    "additionalProperties": False,
}

MANIFEST_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "schema_version": {"type": "string", "pattern": r"^\d+\.\d+$"},
        "organization_id": {"type": "string", "minLength": 1},
        "connections": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "organization_id": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "enum": list(SUPPORTED_DATABASE_TYPES)},
                    "host": {"type": "string"},
                    "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                    "username": {"type": "string"},
                    "password": {"type": "string"},
                    "database": {"type": "string"},
                    "ssl_enabled": {"type": "boolean"},
                    "options": {"type": "object"},
                },
                "required": ["id", "type"],
                "additionalProperties": False,
            },
        },
        "services": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "organization_id": {"type": "string", "minLength": 1},
                    "name": {"type": "string", "pattern": r"^[A-Za-z0-9_-]+$"},
                    "connection_id": {"type": "string", "minLength": 1},
                    "database": {"type": "string"},
                    "is_active": {"type": "boolean"},
                    "description": {"type": "string"},
                },
                "required": ["name", "connection_id"],
                "additionalProperties": False,
            },
        },
        "entities": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "organization_id": {"type": "string", "minLength": 1},
                    "service": {"type": "string", "minLength": 1},
                    "name": {"type": "string", "minLength": 1},
                    "database": {"type": "string"},
                    "schema": {"type": "string"},
                    "type": {"type": "string", "enum": list(SUPPORTED_ENTITY_TYPES)},
                    "primary_key": {"type": "string", "minLength": 1},
                    "default_sort": {"type": "string"},
                    "path_slug": {"type": "string", "pattern": r"^[A-Za-z0-9_-]+$"},
                    "allow_read": {"type": "boolean"},
                    "allow_create": {"type": "boolean"},
                    "allow_update": {"type": "boolean"},
                    "allow_delete": {"type": "boolean"},
                    "field_policies": {"type": "array", "items": _FIELD_POLICY_SCHEMA},
                    "row_policies": {"type": "array", "items": _ROW_POLICY_SCHEMA},
                },
                "required": ["service", "name"],
                "additionalProperties": False,
            },
        },
        "applications": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "organization_id": {"type": "string", "minLength": 1},
                    "name": {"type": "string", "minLength": 1},
                    "api_key": {"type": "string", "minLength": 8},
                    "api_key_hash": {"type": "string", "pattern": r"^[0-9a-f]{64}$"},
                    "default_role_id": {"type": ["string", "null"]},
                    "is_active": {"type": "boolean"},
                    "can_manage": {"type": "boolean"},
                },
                "required": ["name"],
                "oneOf": [{"required": ["api_key"]}, {"required": ["api_key_hash"]}],
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}

_validation_cache: Dict[str, Tuple[bool, Optional[str], Optional[List[str]]]] = {}


def _get_manifest_hash(manifest: Dict[str, Any]) -> str:
    normalized = json.dumps(manifest, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()


def get_schema_version(manifest: Dict[str, Any]) -> str:
    """Return the manifest's schema version, defaulting to the current one."""
    return str(manifest.get("schema_version", CURRENT_MANIFEST_VERSION))


def _error_path(error: ValidationError) -> str:
    parts = list(error.absolute_path)
    return ".".join(str(p) for p in parts) if parts else "root"


def _check_references(
    manifest: Dict[str, Any]
) -> Tuple[bool, Optional[str], Optional[List[str]]]:
    """Cross-record checks jsonschema cannot express."""
    default_org = manifest.get("organization_id")
    messages: List[str] = []
    paths: List[str] = []

    def org_of(record: Dict[str, Any], path: str) -> Optional[str]:
        org = record.get("organization_id", default_org)
        if not org:
            messages.append("organization_id is required (per record or at top level)")
            paths.append(path)
        return org

    connection_ids = set()
    for i, conn in enumerate(manifest.get("connections", [])):
        path = f"connections.{i}"
        org_of(conn, path)
        if conn["id"] in connection_ids:
            messages.append(f"Duplicate connection id '{conn['id']}'")
            paths.append(f"{path}.id")
        connection_ids.add(conn["id"])

    service_names = set()
    for i, service in enumerate(manifest.get("services", [])):
        path = f"services.{i}"
        org = org_of(service, path)
        if service["connection_id"] not in connection_ids:
            messages.append(f"Service '{service['name']}' references unknown connection")
            paths.append(f"{path}.connection_id")
        if (org, service["name"]) in service_names:
            messages.append(f"Duplicate service name '{service['name']}'")
            paths.append(f"{path}.name")
        service_names.add((org, service["name"]))

    slugs = set()
    for i, entity in enumerate(manifest.get("entities", [])):
        path = f"entities.{i}"
        org = org_of(entity, path)
        if (org, entity["service"]) not in service_names:
            messages.append(f"Entity '{entity['name']}' references unknown service")
            paths.append(f"{path}.service")
        slug = (org, entity["service"], entity.get("path_slug") or entity["name"])
        if slug in slugs:
            messages.append(f"Duplicate entity path '{slug[2]}' in service '{slug[1]}'")
            paths.append(path)
        slugs.add(slug)

    for i, app in enumerate(manifest.get("applications", [])):
        org_of(app, f"applications.{i}")

    if messages:
        return False, "; ".join(dict.fromkeys(messages)), paths
    return True, None, None


def validate_manifest(
    manifest: Dict[str, Any], use_cache: bool = True
) -> Tuple[bool, Optional[str], Optional[List[str]]]:
    """
    Validate a manifest against the JSON Schema and its cross references.

    Returns:
        Tuple of (is_valid, error_message, error_paths)
    """
    cache_key = _get_manifest_hash(manifest) if use_cache else None
    if cache_key and cache_key in _validation_cache:
        return _validation_cache[cache_key]

    try:
        validate(instance=manifest, schema=MANIFEST_SCHEMA)
        result = _check_references(manifest)
    except ValidationError as e:
        error_paths = [_error_path(e)]
        error_messages = [e.message]
        for suberror in e.context or []:
            error_paths.append(_error_path(suberror))
            error_messages.append(suberror.message)
        result = (False, "; ".join(dict.fromkeys(error_messages)), error_paths)
    except SchemaError as e:
        result = (False, f"Invalid schema definition: {e.message}", ["schema"])

    if cache_key:
        _validation_cache[cache_key] = result
    return result


def clear_validation_cache() -> None:
    """Clear the validation cache. Useful for testing."""
    _validation_cache.clear()


class ManifestValidator:
    """Class-based entry point for manifest validation."""

    def __init__(self, use_cache: bool = True):
        self.use_cache = use_cache

    def validate(
        self, manifest: Dict[str, Any]
    ) -> Tuple[bool, Optional[str], Optional[List[str]]]:
        return validate_manifest(manifest, use_cache=self.use_cache)

    def validate_or_raise(self, manifest: Dict[str, Any]) -> None:
        """
        Raises:
            ManifestValidationError: If the manifest is invalid
        """
        is_valid, error_message, error_paths = self.validate(manifest)
        if not is_valid:
            raise ManifestValidationError(
                error_message or "Invalid manifest",
                error_paths=error_paths,
                schema_version=get_schema_version(manifest),
            )


def parse_manifest(manifest: Dict[str, Any]) -> Dict[str, list]:
    """
    Turn a validated manifest into catalog records.

    Entities name their service; the service id and connection id are
    resolved here. Plain ``api_key`` values are replaced by their hash.

    Returns:
        Dict with ``connections``, ``services``, ``entities`` and
        ``applications`` record lists
    """
    ManifestValidator().validate_or_raise(manifest)
    default_org = manifest.get("organization_id")

    def with_org(record: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(record)
        data.setdefault("organization_id", default_org)
        return data

    connections = [ConnectionConfig.from_dict(with_org(c)) for c in manifest.get("connections", [])]
    services = [Service.from_dict(with_org(s)) for s in manifest.get("services", [])]
    services_by_name = {(s.organization_id, s.name): s for s in services}

    entities = []
    for raw in manifest.get("entities", []):
        data = with_org(raw)
        service = services_by_name[(data["organization_id"], data.pop("service"))]
        data["service_id"] = service.id
        data["connection_id"] = service.connection_id
        data.setdefault("database", service.database)
        data["field_policies"] = [FieldPolicy.from_dict(p) for p in data.get("field_policies", [])]
        data["row_policies"] = [RowPolicy.from_dict(p) for p in data.get("row_policies", [])]
        entities.append(ExposedEntity.from_dict(data))

    applications = []
    for raw in manifest.get("applications", []):
        data = with_org(raw)
        api_key = data.pop("api_key", None)
        if api_key:
            data["api_key_hash"] = hash_api_key(api_key)
        applications.append(Application.from_dict(data))

    return {
        "connections": connections,
        "services": services,
        "entities": entities,
        "applications": applications,
    }


async def load_manifest(store: CatalogStore, manifest: Dict[str, Any]) -> Dict[str, int]:
    """
    Register every record of a manifest in a catalog store.

    Returns:
        Number of records registered per kind

    Raises:
        ManifestValidationError: If the manifest is invalid
    """
    records = parse_manifest(manifest)
    for connection in records["connections"]:
        await store.add_connection(connection)
    for service in records["services"]:
        await store.add_service(service)
    for entity in records["entities"]:
        await store.add_exposed_entity(entity)
    for application in records["applications"]:
        await store.add_application(application)

    counts = {kind: len(items) for kind, items in records.items()}
    logger.info(f"Loaded catalog manifest: {counts}")
    return counts


def read_manifest_file(path: str | Path) -> Dict[str, Any]:
    """
    Read a manifest JSON file.

    Raises:
        ManifestValidationError: If the file is missing or not valid JSON
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ManifestValidationError(f"Manifest file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ManifestValidationError(f"Invalid JSON in manifest file: {e}") from e
