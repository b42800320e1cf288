"""Authenticated encryption primitives (AES-256-GCM).

A fresh random 96-bit nonce is drawn for every encryption. The ciphertext
returned by :func:`encrypt` already carries the 16-byte GCM tag.
"""
import os
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from quietjournal.core.exceptions import DecryptionFailedError, SessionLockedError

KEY_LENGTH = 32
NONCE_LENGTH = 12


class SessionKey:
    """
    Symmetric key usable for encrypt/decrypt only.

    The raw bytes have no public accessor, are hidden from ``repr`` and
    cannot be pickled. :meth:`destroy` overwrites the buffer (best-effort,
    Python may still hold copies elsewhere) and makes the key unusable.
    """

    __slots__ = ("_material", "_aead")

    def __init__(self, material: bytes):
        if len(material) != KEY_LENGTH:
            raise ValueError(f"key material must be {KEY_LENGTH} bytes")
        self._material = bytearray(material)
        self._aead = AESGCM(bytes(self._material))

    @property
    def destroyed(self) -> bool:
        return self._aead is None

    def _cipher(self) -> AESGCM:
        if self._aead is None:
            raise SessionLockedError("session key has been destroyed")
        return self._aead

    def encrypt(self, plaintext: bytes) -> Tuple[bytes, bytes]:
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = self._cipher().encrypt(nonce, bytes(plaintext), None)
        return ciphertext, nonce

    def decrypt(self, ciphertext: bytes, nonce: bytes) -> bytes:
        aead = self._cipher()
        if len(nonce) != NONCE_LENGTH:
            raise DecryptionFailedError("decryption failed")
        try:
            return aead.decrypt(bytes(nonce), bytes(ciphertext), None)
        except (InvalidTag, ValueError, TypeError) as e:
            raise DecryptionFailedError("decryption failed") from e

    def destroy(self) -> None:
        for i in range(len(self._material)):
            self._material[i] = 0
        self._aead = None

    def __repr__(self) -> str:
        state = "destroyed" if self.destroyed else "active"
        return f"SessionKey(<redacted>, {state})"

    def __reduce__(self):
        raise TypeError("SessionKey cannot be serialized")

    def __eq__(self, other):
        # identity only; comparing key bytes would need to expose them
        return self is other

    def __hash__(self):
        return id(self)


def encrypt(key: SessionKey, plaintext: bytes) -> Tuple[bytes, bytes]:
    """Encrypt and return ``(ciphertext, nonce)``."""
    return key.encrypt(plaintext)


def decrypt(key: SessionKey, ciphertext: bytes, nonce: bytes) -> bytes:
    """Decrypt or raise :class:`DecryptionFailedError` (wrong key or tampering)."""
    return key.decrypt(ciphertext, nonce)
