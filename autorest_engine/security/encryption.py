"""
Envelope encryption for stored connection passwords.

Connection documents keep database passwords as
``enc:v1:<b64 encrypted DEK>:<b64 encrypted password>``. Each password
gets its own data encryption key (DEK), which is itself encrypted with
the master key from ``AUTOREST_MASTER_KEY``. Values without the prefix are
treated as plain text, which keeps manifests for local development simple.
"""

import base64
import binascii
import logging
import os
import secrets

import cryptography.exceptions
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..constants import ENCRYPTED_PASSWORD_PREFIX
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MASTER_KEY_ENV_VAR = "AUTOREST_MASTER_KEY"

AES_KEY_SIZE = 32  # 256 bits
AES_NONCE_SIZE = 12  # 96 bits for GCM


def is_encrypted(value: str | None) -> bool:
    """Whether a stored password uses the envelope format."""
    return isinstance(value, str) and value.startswith(ENCRYPTED_PASSWORD_PREFIX)


def decode_master_key(master_key: str) -> bytes:
    """
    Decode a base64 master key.

    Raises:
        ConfigurationError: If the key is not base64 or not 32 bytes long
    """
    try:
        key_bytes = base64.b64decode(master_key.encode(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(
            f"Invalid master key format. Expected base64-encoded {AES_KEY_SIZE}-byte key",
            config_key=MASTER_KEY_ENV_VAR,
        ) from e
    if len(key_bytes) != AES_KEY_SIZE:
        raise ConfigurationError(
            f"Master key must be {AES_KEY_SIZE} bytes (256 bits) when decoded. "
            f"Got {len(key_bytes)} bytes.",
            config_key=MASTER_KEY_ENV_VAR,
        )
    return key_bytes


class PasswordCipher:
    """
    Encrypts and decrypts connection passwords.

    A cipher without a master key can still pass plain passwords through;
    it only fails when it meets an encrypted value.
    """

    def __init__(self, master_key: str | bytes | None = None):
        if master_key is None:
            master_key = os.getenv(MASTER_KEY_ENV_VAR) or None
        if isinstance(master_key, str):
            master_key = decode_master_key(master_key)
        self._master_key: bytes | None = master_key

    @property
    def has_key(self) -> bool:
        return self._master_key is not None

    @staticmethod
    def generate_master_key() -> str:
        """
        Generate a new master key.

        Returns:
            Base64-encoded master key string (suitable for AUTOREST_MASTER_KEY).
        """
        return base64.b64encode(secrets.token_bytes(AES_KEY_SIZE)).decode()

    def _require_key(self) -> bytes:
        if self._master_key is None:
            raise ConfigurationError(
                f"Encrypted password found but {MASTER_KEY_ENV_VAR} is not set",
                config_key=MASTER_KEY_ENV_VAR,
            )
        return self._master_key

    def encrypt(self, password: str) -> str:
        """
        Encrypt a password into its stored form.

        Args:
            password: Plaintext password

        Returns:
            ``enc:v1:...`` string
        """
        master_key = self._require_key()
        dek = secrets.token_bytes(AES_KEY_SIZE)

        nonce_secret = secrets.token_bytes(AES_NONCE_SIZE)
        encrypted_secret = nonce_secret + AESGCM(dek).encrypt(nonce_secret, password.encode(), None)

        nonce_dek = secrets.token_bytes(AES_NONCE_SIZE)
        encrypted_dek = nonce_dek + AESGCM(master_key).encrypt(nonce_dek, dek, None)

        return (
            f"{ENCRYPTED_PASSWORD_PREFIX}"
            f"{base64.b64encode(encrypted_dek).decode()}:"
            f"{base64.b64encode(encrypted_secret).decode()}"
        )

    def decrypt(self, stored: str | None) -> str | None:
        """
        Return the plaintext of a stored password.

        Plain values are returned unchanged.

        Raises:
            ConfigurationError: If the value is encrypted and cannot be decrypted
        """
        if not is_encrypted(stored):
            return stored

        master_key = self._require_key()
        payload = stored[len(ENCRYPTED_PASSWORD_PREFIX):]
        try:
            dek_b64, secret_b64 = payload.split(":", 1)
            encrypted_dek = base64.b64decode(dek_b64)
            encrypted_secret = base64.b64decode(secret_b64)
            if len(encrypted_dek) < AES_NONCE_SIZE or len(encrypted_secret) < AES_NONCE_SIZE:
                raise ValueError("Encrypted payload too short (missing nonce)")

            dek = AESGCM(master_key).decrypt(
                encrypted_dek[:AES_NONCE_SIZE], encrypted_dek[AES_NONCE_SIZE:], None
            )
            secret = AESGCM(dek).decrypt(
                encrypted_secret[:AES_NONCE_SIZE], encrypted_secret[AES_NONCE_SIZE:], None
            )
            return secret.decode()
        except (
            ValueError,
            TypeError,
            binascii.Error,
            UnicodeDecodeError,
            cryptography.exceptions.InvalidTag,
        ) as e:
            logger.warning(f"Password decryption failed: {e}")
            raise ConfigurationError(
                "Failed to decrypt connection password", config_key=MASTER_KEY_ENV_VAR
            ) from e
