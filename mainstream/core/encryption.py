"""
Mainstream - Token Encryption
=============================

AES-256-GCM encryption for third-party access tokens stored at rest.

Ciphertexts are stored as ``nonce:tag:ciphertext``, each part hex encoded.
The key comes from ``ENCRYPTION_KEY`` (64 hex characters); when that is
not set a key is derived from ``SECRET_KEY``.
"""

import hashlib
import os

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mainstream.core.config import settings

logger = structlog.get_logger()

NONCE_LENGTH = 12
TAG_LENGTH = 16


class TokenDecryptionError(ValueError):
    """A stored token could not be decrypted with the current key."""


def _key() -> bytes:
    if settings.ENCRYPTION_KEY:
        return bytes.fromhex(settings.ENCRYPTION_KEY)
    return hashlib.sha256(settings.SECRET_KEY.encode()).digest()


def encrypt_token(plaintext: str) -> str:
    nonce = os.urandom(NONCE_LENGTH)
    sealed = AESGCM(_key()).encrypt(nonce, plaintext.encode(), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt_token(stored: str) -> str:
    """
    Decrypt a value produced by :func:`encrypt_token`.

    Values not in the ``nonce:tag:ciphertext`` shape are returned as-is,
    which covers tokens saved before encryption was configured.

    Raises:
        TokenDecryptionError: The value is malformed or was sealed with
            another key.
    """
    parts = stored.split(":")
    if len(parts) != 3:
        return stored

    try:
        nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        return AESGCM(_key()).decrypt(nonce, ciphertext + tag, None).decode()
    except (InvalidTag, ValueError) as e:
        logger.warning("token_decryption_failed", error=type(e).__name__)
        raise TokenDecryptionError("Stored token could not be decrypted") from e


def token_hint(token: str) -> str:
    """Last four characters, shown as ``•••abcd`` in settings."""
    return token[-4:]
