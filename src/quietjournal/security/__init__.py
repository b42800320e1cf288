"""Security helpers: key derivation, AEAD and the session key for Quiet Journal.

This package provides:
- PBKDF2-SHA256 (current) and Argon2id key derivation, versioned
- AES-256-GCM encryption with a random nonce per call
- JSON envelope helpers and resilient bulk decryption
- the in-memory session manager with cooperative auto-lock
"""

from .kdf import CURRENT_KDF_VERSION, generate_salt, derive_key, kdf_params_to_dict
from .crypto import SessionKey, encrypt, decrypt
from .encryption import (
    EncryptedPayload,
    DecryptResult,
    BulkDecryptResult,
    encrypt_json,
    decrypt_json,
    decrypt_record,
    try_decrypt_record,
    decrypt_all,
)
from .session import SessionManager, get_session, set_session, lock, touch
from .ai_key import AiKeySource, EphemeralKeyStore, ResolvedAiKey, resolve_ai_api_key

__all__ = [
    "CURRENT_KDF_VERSION",
    "generate_salt",
    "derive_key",
    "kdf_params_to_dict",
    "SessionKey",
    "encrypt",
    "decrypt",
    "EncryptedPayload",
    "DecryptResult",
    "BulkDecryptResult",
    "encrypt_json",
    "decrypt_json",
    "decrypt_record",
    "try_decrypt_record",
    "decrypt_all",
    "SessionManager",
    "get_session",
    "set_session",
    "lock",
    "touch",
    "AiKeySource",
    "EphemeralKeyStore",
    "ResolvedAiKey",
    "resolve_ai_api_key",
]
