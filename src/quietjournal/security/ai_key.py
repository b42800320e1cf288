"""Resolution of the AI service API key from its possible sources.

Sources, in precedence order:

1. ``SESSION_REMEMBERED``: stored in Settings (``rememberAiKey`` on),
   encrypted under the session key. A plaintext ``aiApiKey`` left by an
   older settings row is accepted too.
2. ``TAB_EPHEMERAL``: held in process memory only, wiped on lock.
3. ``SERVER_DEFAULT``: an operator-provided key, used only when the user
   opted in with ``useDefaultAiKey``.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from quietjournal.core.exceptions import DecryptionFailedError
from quietjournal.core.models import Settings

from .crypto import SessionKey
from .encryption import decrypt_json, encrypt_json


class AiKeySource(Enum):
    SESSION_REMEMBERED = "session-remembered"
    TAB_EPHEMERAL = "tab-ephemeral"
    SERVER_DEFAULT = "server-default"


@dataclass(frozen=True)
class ResolvedAiKey:
    value: str
    source: AiKeySource

    def __repr__(self) -> str:
        return f"ResolvedAiKey(<redacted>, source={self.source.value!r})"


class EphemeralKeyStore:
    """Non-persisted slot for an AI key that must not reach disk."""

    def __init__(self):
        self._value: Optional[str] = None
        self._lock = threading.Lock()

    def set(self, value: Optional[str]) -> None:
        with self._lock:
            self._value = value.strip() if value and value.strip() else None

    def get(self) -> Optional[str]:
        return self._value

    def clear(self) -> None:
        with self._lock:
            self._value = None


def seal_ai_key(key: SessionKey, api_key: str) -> dict:
    """Encrypt an API key for storage in Settings."""
    return encrypt_json(key, api_key).to_dict()


def open_ai_key(key: SessionKey, sealed: dict) -> str:
    value = decrypt_json(key, sealed["ciphertextB64"], sealed["ivB64"])
    if not isinstance(value, str):
        raise DecryptionFailedError("decryption failed")
    return value


def _remembered(settings: Settings, key: Optional[SessionKey]) -> Optional[str]:
    if not settings.remember_ai_key:
        return None
    sealed = settings.encrypted_ai_api_key
    if sealed and key is not None:
        try:
            return open_ai_key(key, sealed) or None
        except (DecryptionFailedError, KeyError, TypeError):
            # sealed under another passphrase epoch; fall through
            pass
    return settings.ai_api_key or None


def resolve_ai_api_key(
    settings: Settings,
    ephemeral: Optional[EphemeralKeyStore] = None,
    key: Optional[SessionKey] = None,
    default_key: Optional[str] = None,
) -> Optional[ResolvedAiKey]:
    """Return the first available key in precedence order, or None."""
    remembered = _remembered(settings, key)
    if remembered:
        return ResolvedAiKey(remembered, AiKeySource.SESSION_REMEMBERED)

    transient = ephemeral.get() if ephemeral is not None else None
    if transient:
        return ResolvedAiKey(transient, AiKeySource.TAB_EPHEMERAL)

    if settings.use_default_ai_key and default_key:
        return ResolvedAiKey(default_key, AiKeySource.SERVER_DEFAULT)

    return None
