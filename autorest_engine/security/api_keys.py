"""
API key helpers.

Applications authenticate with opaque keys. Only the SHA-256 digest of a
key is stored in the catalog.
"""

import hashlib
import secrets

from ..constants import API_KEY_PREFIX


def generate_api_key() -> str:
    """Generate a new application API key."""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def hash_api_key(api_key: str) -> str:
    """Return the hex SHA-256 digest stored for an API key."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()
