# Vault - Envelope Cipher
#
# Master secret → entry key (PBKDF2-HMAC-SHA256, per-account salt)
# Entry encryption (AES-256-GCM, random nonce per blob)
#
# Blob layout (base64url text):  version(1) | nonce(12) | ciphertext+tag
#
# GCM authenticates before anything is parsed, so a wrong master secret or a
# tampered blob is rejected as DecryptionFailed rather than decrypting into
# garbage that might happen to parse.

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import DecryptionFailed
from .entries import VaultEntry, deserialize_entry, serialize_entry

# OWASP 2023: 600k iterations for PBKDF2-SHA256
DEFAULT_KDF_ITERATIONS = 600_000


class EnvelopeCipher:
    """
    Encrypts and decrypts vault entries under a key derived from the
    master secret.

    The derived key is computed once per instance, so one cipher per open
    vault session keeps repeated decrypts cheap.
    """

    KEY_LENGTH = 32  # 256 bits for AES-256
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    FORMAT_VERSION = 1
    _AAD = b"pixelvault-entry-v1"
    _HEADER_SIZE = 1 + NONCE_LENGTH

    def __init__(
        self,
        master_secret: str,
        salt: bytes,
        iterations: int = DEFAULT_KDF_ITERATIONS,
    ):
        self._key = self.derive_key(master_secret, salt, iterations)

    @staticmethod
    def derive_key(
        master_secret: str,
        salt: bytes,
        iterations: int = DEFAULT_KDF_ITERATIONS,
    ) -> bytes:
        """
        Derive the entry key from the master secret using PBKDF2.

        Deterministic: the same secret and salt always give the same key.

        Args:
            master_secret: User's master secret
            salt: The account's stored KDF salt
            iterations: PBKDF2 work factor

        Returns:
            256-bit encryption key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=EnvelopeCipher.KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(master_secret.encode("utf-8"))

    # ── bytes ───────────────────────────────────────────────────────

    def encrypt_bytes(self, plaintext: bytes) -> str:
        """Encrypt raw bytes into a text blob."""
        nonce = os.urandom(self.NONCE_LENGTH)
        ciphertext = AESGCM(self._key).encrypt(nonce, plaintext, self._AAD)
        blob = bytes([self.FORMAT_VERSION]) + nonce + ciphertext
        return base64.urlsafe_b64encode(blob).decode("ascii")

    def decrypt_bytes(self, blob: str) -> bytes:
        """
        Decrypt a text blob back into raw bytes.

        Raises:
            DecryptionFailed: Wrong key, tampered or truncated blob, or an
                unknown format version.
        """
        try:
            raw = base64.urlsafe_b64decode(blob.encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError):
            raise DecryptionFailed()
        if len(raw) < self._HEADER_SIZE or raw[0] != self.FORMAT_VERSION:
            raise DecryptionFailed()
        nonce = raw[1:self._HEADER_SIZE]
        try:
            return AESGCM(self._key).decrypt(nonce, raw[self._HEADER_SIZE:], self._AAD)
        except InvalidTag:
            raise DecryptionFailed()

    # ── entries ─────────────────────────────────────────────────────

    def encrypt_entry(self, entry: VaultEntry) -> str:
        return self.encrypt_bytes(serialize_entry(entry))

    def decrypt_entry(self, blob: str, expected_kind: Optional[str] = None) -> VaultEntry:
        """
        Open a blob and validate the entry inside it.

        Raises:
            DecryptionFailed: Authentication failed.
            InvalidPayload: Authentic blob, but not a valid entry (or not of
                ``expected_kind``).
        """
        return deserialize_entry(self.decrypt_bytes(blob), expected_kind)


def encrypt(
    entry: VaultEntry,
    master_secret: str,
    salt: bytes,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> str:
    """One-shot encrypt; derives the key on every call."""
    return EnvelopeCipher(master_secret, salt, iterations).encrypt_entry(entry)


def decrypt(
    blob: str,
    master_secret: str,
    salt: bytes,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> VaultEntry:
    """One-shot decrypt; derives the key on every call."""
    return EnvelopeCipher(master_secret, salt, iterations).decrypt_entry(blob)
