"""Envelope encryption for the owner's backend credential.

The credential a share uses to reach the owner's store is encrypted at
rest with a key derived from the ``ENCRYPTION_KEY`` master secret.

Key derivation:
  PBKDF2-HMAC-SHA256, fixed application salt, 100 000 iterations, 32 bytes.

Blob format (stored as base64 text):
  nonce (12 bytes) || AES-256-GCM ciphertext || tag (16 bytes)

Security invariants:
  - A fresh random 96-bit nonce per encryption.
  - Decryption fails closed: malformed input or a tag mismatch raises
    ``CredentialDecryptionError`` and never returns partial plaintext.
  - Callers surface decryption failures as a generic "share unusable"
    outcome; cipher details stay in server logs.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# ── Constants ─────────────────────────────────────────────────────────

KDF_SALT = b'obsidian-web-shares-v1'
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32  # AES-256.
NONCE_LENGTH = 12  # 96-bit GCM nonce.
TAG_LENGTH = 16


class CredentialDecryptionError(Exception):
    """The blob is malformed or failed authentication."""


# ── Primitives ────────────────────────────────────────────────────────


def derive_key(master_secret: str | bytes) -> bytes:
    """Derive the 256-bit credential key from the master secret."""
    if not master_secret:
        raise ValueError('master secret is required')
    material = (
        master_secret.encode('utf-8')
        if isinstance(master_secret, str) else master_secret
    )
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(material)


def encrypt(plaintext: bytes, key: bytes) -> str:
    """Encrypt ``plaintext``; returns base64(nonce || ciphertext || tag)."""
    nonce = os.urandom(NONCE_LENGTH)
    sealed = AESGCM(key).encrypt(nonce, plaintext, None)
    return base64.b64encode(nonce + sealed).decode('ascii')


def decrypt(blob: str, key: bytes) -> bytes:
    """Decrypt a blob produced by ``encrypt``.

    Raises:
        CredentialDecryptionError: On malformed input or tag mismatch.
    """
    try:
        combined = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise CredentialDecryptionError('malformed ciphertext blob') from exc

    if len(combined) < NONCE_LENGTH + TAG_LENGTH:
        raise CredentialDecryptionError('ciphertext blob too short')

    nonce, sealed = combined[:NONCE_LENGTH], combined[NONCE_LENGTH:]
    try:
        return AESGCM(key).decrypt(nonce, sealed, None)
    except InvalidTag as exc:
        raise CredentialDecryptionError('authentication failed') from exc


# ── Cipher service ────────────────────────────────────────────────────


class CredentialCipher:
    """Holds the derived key and encrypts/decrypts credential strings.

    The ``*_async`` variants run the CPU-bound work in a worker thread so
    an encryption never stalls unrelated requests on the event loop.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f'key must be {KEY_LENGTH} bytes')
        self._key = key

    @classmethod
    def from_secret(cls, master_secret: str) -> CredentialCipher:
        return cls(derive_key(master_secret))

    def __repr__(self) -> str:
        return 'CredentialCipher(key=<redacted>)'

    def encrypt_credential(self, credential: str) -> str:
        return encrypt(credential.encode('utf-8'), self._key)

    def decrypt_credential(self, blob: str) -> str:
        plaintext = decrypt(blob, self._key)
        try:
            return plaintext.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise CredentialDecryptionError('credential is not valid UTF-8') from exc

    async def encrypt_credential_async(self, credential: str) -> str:
        return await asyncio.to_thread(self.encrypt_credential, credential)

    async def decrypt_credential_async(self, blob: str) -> str:
        return await asyncio.to_thread(self.decrypt_credential, blob)
