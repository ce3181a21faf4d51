"""
Credential encryption at rest.

Uses AES-256-GCM from the ``cryptography`` library. Each encryption draws a
fresh 12-byte nonce; the blob is base64(nonce || ciphertext || tag).

Key handling:
    The caller's key material is UTF-8 encoded and NUL-padded or truncated
    to 32 bytes. This is NOT a key-derivation function: supply at least 32
    bytes of random key material (e.g. ``secrets.token_urlsafe(32)``).

Decryption fails closed: a wrong key, tampered or truncated blob, or
malformed JSON raises ConnectorError(category=config).
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import ValidationError

from .errors import ConnectorError
from .types import ConnectorCredentials, ErrorCategory

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16

_VAULT = "credential_vault"


def _vault_error(message: str, cause: BaseException | None = None) -> ConnectorError:
    return ConnectorError(message, ErrorCategory.CONFIG, _VAULT, retryable=False, cause=cause)


def derive_key(key: str | bytes) -> bytes:
    """Pad or truncate key material to the AES-256 key length."""
    raw = key.encode("utf-8") if isinstance(key, str) else bytes(key)
    if not raw:
        raise _vault_error("Encryption key must not be empty")
    return raw[:KEY_LENGTH].ljust(KEY_LENGTH, b"\0")


def encrypt_credentials(credentials: ConnectorCredentials, key: str | bytes) -> str:
    """
    Encrypt credentials for storage.

    Returns:
        Opaque base64 string safe to hand to any external store
    """
    nonce = os.urandom(NONCE_LENGTH)
    plaintext = credentials.model_dump_json().encode("utf-8")
    ciphertext = AESGCM(derive_key(key)).encrypt(nonce, plaintext, None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt_credentials(blob: str, key: str | bytes) -> ConnectorCredentials:
    """
    Decrypt a blob produced by encrypt_credentials.

    Raises:
        ConnectorError: On malformed input, authentication failure or bad JSON
    """
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as e:
        raise _vault_error("Credential blob is not valid base64", e) from e

    if len(raw) < NONCE_LENGTH + TAG_LENGTH:
        raise _vault_error("Credential blob is truncated")

    nonce, ciphertext = raw[:NONCE_LENGTH], raw[NONCE_LENGTH:]
    try:
        plaintext = AESGCM(derive_key(key)).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise _vault_error("Credential blob failed authentication (wrong key or tampered)", e) from e

    try:
        return ConnectorCredentials.model_validate_json(plaintext)
    except ValidationError as e:
        raise _vault_error("Decrypted credentials are malformed", e) from e


class CredentialVault:
    """
    In-memory store of encrypted credentials keyed by installation id.

    Only ciphertext is held; credentials are decrypted on retrieval.

    Example:
        vault = CredentialVault(key=settings.credential_key.get_secret_value())
        await vault.store("install-1", credentials)
        credentials = await vault.retrieve("install-1")
    """

    def __init__(self, key: str | bytes):
        self._key = derive_key(key)
        self._blobs: dict[str, str] = {}

    async def store(self, integration_id: str, credentials: ConnectorCredentials) -> None:
        self._blobs[integration_id] = encrypt_credentials(credentials, self._key)
        logger.debug(f"Stored credentials for {integration_id}")

    async def retrieve(self, integration_id: str) -> ConnectorCredentials | None:
        blob = self._blobs.get(integration_id)
        if blob is None:
            return None
        return decrypt_credentials(blob, self._key)

    def export_blob(self, integration_id: str) -> str | None:
        """Raw encrypted blob, for handing to an external store."""
        return self._blobs.get(integration_id)

    def remove(self, integration_id: str) -> None:
        self._blobs.pop(integration_id, None)

    def has(self, integration_id: str) -> bool:
        return integration_id in self._blobs

    def list_ids(self) -> list[str]:
        return list(self._blobs)

    def clear(self) -> None:
        self._blobs.clear()


__all__ = [
    "CredentialVault",
    "decrypt_credentials",
    "derive_key",
    "encrypt_credentials",
]
