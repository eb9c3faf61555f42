"""
Secrets handling: connection password encryption and API key hashing.
"""

from .api_keys import generate_api_key, hash_api_key
from .encryption import PasswordCipher, is_encrypted

__all__ = [
    "PasswordCipher",
    "is_encrypted",
    "generate_api_key",
    "hash_api_key",
]
