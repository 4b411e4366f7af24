"""Authenticated encryption for credentials stored at rest.

Blobs are ``base64(salt || iv || ciphertext || tag)``. A fresh salt and IV are
drawn for every call, so the same plaintext never encrypts to the same blob.
"""
from __future__ import annotations

import base64
import binascii
import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from geosource.core.errors import ConfigurationError, DecryptionError

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000

logger = logging.getLogger(__name__)


class CredentialCipher:
    """Encrypt and decrypt opaque secrets with a password-derived key."""

    def __init__(self, master_key: str):
        if not master_key:
            raise ConfigurationError("Encryption key is not configured")
        self._master_key = master_key.encode("utf-8")

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=PBKDF2_ITERATIONS,
        )
        return kdf.derive(self._master_key)

    def encrypt(self, plaintext: str) -> str:
        """Return an opaque base64 blob for ``plaintext``."""

        if not plaintext:
            raise ValueError("Text to encrypt is required")

        salt = secrets.token_bytes(SALT_LENGTH)
        iv = secrets.token_bytes(IV_LENGTH)
        # AESGCM appends the 16-byte tag to the ciphertext.
        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        return base64.b64encode(salt + iv + sealed).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Return the plaintext for ``blob`` or raise :class:`DecryptionError`."""

        if not blob:
            raise DecryptionError("Encrypted value is empty")
        try:
            raw = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise DecryptionError("Encrypted value is not valid base64") from exc

        if len(raw) <= SALT_LENGTH + IV_LENGTH + TAG_LENGTH:
            raise DecryptionError("Encrypted value is truncated")

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH : SALT_LENGTH + IV_LENGTH]
        sealed = raw[SALT_LENGTH + IV_LENGTH :]
        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(iv, sealed, None)
        except InvalidTag as exc:
            logger.warning("Credential authentication tag mismatch")
            raise DecryptionError("Encrypted value failed authentication") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:  # pragma: no cover - tag already verified
            raise DecryptionError("Decrypted value is not valid text") from exc


def generate_token(nbytes: int = 32) -> str:
    """Return ``nbytes`` of secure randomness rendered as hex."""

    return secrets.token_hex(nbytes)
