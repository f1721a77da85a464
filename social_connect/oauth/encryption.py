# social_connect/oauth/encryption.py
"""
AES-256-GCM encryption for tokens at rest.

Wire format: ``<ivHex>:<authTagHex>:<ciphertextHex>`` (lowercase hex).
"""
import hashlib
import re
import secrets
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from social_connect.errors import AuthenticationFailed, EncryptionKeyError, InvalidEncryptedFormat

logger = structlog.get_logger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16

_HEX = re.compile(r"[0-9a-f]+")


class TokenCipher:
    def __init__(self, key_hex: Optional[str]):
        if not key_hex or len(key_hex) != KEY_LENGTH * 2:
            raise EncryptionKeyError("ENCRYPTION_KEY must be a 64-character hex string (32 bytes)")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError:
            raise EncryptionKeyError("ENCRYPTION_KEY must be a 64-character hex string (32 bytes)")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        iv = secrets.token_bytes(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encoded: str) -> str:
        parts = encoded.split(":") if isinstance(encoded, str) else []
        if len(parts) != 3:
            raise InvalidEncryptedFormat("encrypted value must have exactly three parts")

        iv_hex, tag_hex, ciphertext_hex = parts
        # empty plaintext encrypts to an empty ciphertext field
        if not _HEX.fullmatch(iv_hex) or not _HEX.fullmatch(tag_hex) or (ciphertext_hex and not _HEX.fullmatch(ciphertext_hex)):
            raise InvalidEncryptedFormat("encrypted value parts must be lowercase hex")
        if len(iv_hex) % 2 or len(tag_hex) % 2 or len(ciphertext_hex) % 2:
            raise InvalidEncryptedFormat("encrypted value parts must be whole bytes")

        iv = bytes.fromhex(iv_hex)
        tag = bytes.fromhex(tag_hex)
        if len(iv) != IV_LENGTH or len(tag) != AUTH_TAG_LENGTH:
            raise InvalidEncryptedFormat("unexpected iv or auth tag length")

        try:
            plaintext = self._aesgcm.decrypt(iv, bytes.fromhex(ciphertext_hex) + tag, None)
        except InvalidTag:
            logger.warning("token_decrypt_auth_failed")
            raise AuthenticationFailed("authentication tag mismatch")
        return plaintext.decode("utf-8")


def hash_data(data: str) -> str:
    """Unsalted SHA-256 hex digest. Fingerprints only, never user passwords."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def generate_token(byte_length: int = 32) -> str:
    return secrets.token_hex(byte_length)
