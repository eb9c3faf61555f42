"""
Catalog of connections, services, exposed entities and applications.
"""

from .manifest import (MANIFEST_SCHEMA, ManifestValidator, load_manifest,
                       parse_manifest, read_manifest_file, validate_manifest)
from .models import (Application, ConnectionConfig, ExposedEntity,
                     FieldPolicy, RowPolicy, Service)
from .store import (CatalogStore, InMemoryCatalogStore, MongoCatalogStore,
                    OrganizationScopedCollection)

__all__ = [
    "Application",
    "ConnectionConfig",
    "ExposedEntity",
    "FieldPolicy",
    "RowPolicy",
    "Service",
    "CatalogStore",
    "InMemoryCatalogStore",
    "MongoCatalogStore",
    "OrganizationScopedCollection",
    "MANIFEST_SCHEMA",
    "ManifestValidator",
    "load_manifest",
    "parse_manifest",
    "read_manifest_file",
    "validate_manifest",
]
