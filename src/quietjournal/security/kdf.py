"""Passphrase key derivation for Quiet Journal.

Every record carries the ``kdf_version`` that produced the key it was
encrypted under. Parameter sets are never edited in place: a change means a
new version number, so older records stay derivable.
"""
from __future__ import annotations

import os
from typing import Dict

from argon2.exceptions import Argon2Error
from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from quietjournal.core.exceptions import DerivationFailedError
from .crypto import KEY_LENGTH, SessionKey

SALT_LENGTH = 16

KDF_PBKDF2_SHA256 = 1
KDF_ARGON2ID = 2

PBKDF2_ITERATIONS = 600_000

KDF_PARAMS: Dict[int, Dict] = {
    KDF_PBKDF2_SHA256: {
        "algo": "pbkdf2-sha256",
        "iterations": PBKDF2_ITERATIONS,
    },
    KDF_ARGON2ID: {
        "algo": "argon2id",
        "time": 3,
        "memory": 65536,
        "parallelism": 1,
    },
}

CURRENT_KDF_VERSION = KDF_PBKDF2_SHA256


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def _pbkdf2(password: bytes, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password)


def _argon2id(password: bytes, salt: bytes, time_cost: int, memory_cost: int, parallelism: int) -> bytes:
    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=KEY_LENGTH,
        type=Type.ID,
    )


def derive_key_material(
    passphrase: bytes | str,
    salt: bytes,
    kdf_version: int = CURRENT_KDF_VERSION,
) -> bytes:
    """
    Run the parameter set registered for ``kdf_version`` and return raw bytes.

    Application code should call :func:`derive_key`, which wraps the output
    in a non-extractable :class:`SessionKey`.
    """
    params = KDF_PARAMS.get(kdf_version)
    if params is None:
        raise DerivationFailedError(f"unknown kdf version: {kdf_version!r}")
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if not passphrase:
        raise DerivationFailedError("passphrase must not be empty")
    if not salt:
        raise DerivationFailedError("salt must not be empty")

    try:
        if params["algo"] == "pbkdf2-sha256":
            return _pbkdf2(passphrase, bytes(salt), params["iterations"])
        return _argon2id(
            passphrase,
            bytes(salt),
            time_cost=params["time"],
            memory_cost=params["memory"],
            parallelism=params["parallelism"],
        )
    except (Argon2Error, ValueError, TypeError) as e:
        raise DerivationFailedError(f"key derivation failed: {e}") from e


def derive_key(
    passphrase: bytes | str,
    salt: bytes,
    kdf_version: int = CURRENT_KDF_VERSION,
) -> SessionKey:
    """
    Derive the symmetric session key from a passphrase.

    Deterministic in (passphrase, salt, kdf_version). Deliberately slow.
    """
    return SessionKey(derive_key_material(passphrase, salt, kdf_version))


def kdf_params_to_dict(kdf_version: int = CURRENT_KDF_VERSION) -> Dict:
    params = KDF_PARAMS.get(kdf_version)
    if params is None:
        raise DerivationFailedError(f"unknown kdf version: {kdf_version!r}")
    return {"version": kdf_version, **params}
