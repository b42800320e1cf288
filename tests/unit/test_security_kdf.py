"""Unit tests for the Key Derivation Function (KDF) module."""

import pytest

from quietjournal.core.exceptions import DerivationFailedError
from quietjournal.security import kdf
from quietjournal.security.crypto import SessionKey
from quietjournal.security.kdf import (
    CURRENT_KDF_VERSION,
    KDF_ARGON2ID,
    KDF_PBKDF2_SHA256,
    derive_key,
    derive_key_material,
    generate_salt,
    kdf_params_to_dict,
)


def test_generate_salt_defaults():
    """Ensure salt generation returns bytes of the default length (16)."""
    salt = generate_salt()
    assert isinstance(salt, bytes)
    assert len(salt) == 16


def test_generate_salt_custom_length():
    salt = generate_salt(length=32)
    assert len(salt) == 32


def test_generate_salt_is_random():
    assert generate_salt() != generate_salt()


def test_production_parameters_are_slow():
    """The shipped PBKDF2 cost must stay in the hundreds of thousands."""
    assert kdf.PBKDF2_ITERATIONS >= 600_000
    assert CURRENT_KDF_VERSION == KDF_PBKDF2_SHA256


@pytest.mark.parametrize("version", [KDF_PBKDF2_SHA256, KDF_ARGON2ID])
def test_derivation_is_deterministic(version):
    """Same passphrase, salt and version give bit-identical key material."""
    salt = generate_salt()
    first = derive_key_material("correct horse", salt, version)
    second = derive_key_material("correct horse", salt, version)
    assert first == second
    assert len(first) == 32


def test_derived_keys_are_interchangeable():
    salt = generate_salt()
    k1 = derive_key("correct horse", salt)
    k2 = derive_key("correct horse", salt)
    ciphertext, nonce = k1.encrypt(b"hello")
    assert k2.decrypt(ciphertext, nonce) == b"hello"


def test_string_and_bytes_passphrase_match():
    salt = generate_salt()
    assert derive_key_material("päss", salt) == derive_key_material("päss".encode("utf-8"), salt)


def test_inputs_change_output():
    salt = generate_salt()
    base = derive_key_material("correct horse", salt)
    assert derive_key_material("wrong horse", salt) != base
    assert derive_key_material("correct horse", generate_salt()) != base
    assert derive_key_material("correct horse", salt, KDF_ARGON2ID) != base


def test_pbkdf2_matches_reference():
    """Version 1 is plain PBKDF2-HMAC-SHA256 (same as WebCrypto deriveKey)."""
    import hashlib

    salt = b"\x01" * 16
    expected = hashlib.pbkdf2_hmac("sha256", b"correct horse", salt, 1000, dklen=32)
    assert derive_key_material("correct horse", salt, KDF_PBKDF2_SHA256) == expected


def test_derive_key_returns_session_key():
    key = derive_key("pass", generate_salt())
    assert isinstance(key, SessionKey)


@pytest.mark.parametrize(
    "passphrase,salt,version",
    [
        ("", b"s" * 16, KDF_PBKDF2_SHA256),
        (b"", b"s" * 16, KDF_PBKDF2_SHA256),
        ("pass", b"", KDF_PBKDF2_SHA256),
        ("pass", b"s" * 16, 99),
    ],
)
def test_derivation_failures(passphrase, salt, version):
    with pytest.raises(DerivationFailedError):
        derive_key(passphrase, salt, version)


def test_argon2_error_is_wrapped(monkeypatch):
    # memory below the Argon2 minimum makes the primitive itself fail
    monkeypatch.setitem(
        kdf.KDF_PARAMS, KDF_ARGON2ID, {"algo": "argon2id", "time": 1, "memory": 1, "parallelism": 1}
    )
    with pytest.raises(DerivationFailedError):
        derive_key("pass", generate_salt(), KDF_ARGON2ID)


def test_kdf_params_to_dict():
    assert kdf_params_to_dict(KDF_PBKDF2_SHA256) == {
        "version": 1,
        "algo": "pbkdf2-sha256",
        "iterations": 1000,  # patched down by the fast_kdf fixture
    }
    assert kdf_params_to_dict(KDF_ARGON2ID)["algo"] == "argon2id"
    with pytest.raises(DerivationFailedError):
        kdf_params_to_dict(7)
