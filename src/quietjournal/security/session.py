"""In-memory session manager holding the derived key, with cooperative auto-lock.

The manager stores a single :class:`SessionKey` and the time of the last
observed user activity. It never persists or logs the key and never stores a
passphrase verifier: whether a passphrase was right only shows when records
decrypt. Lock state is per instance; separate processes each own their own
manager and are not synchronised.

State machine::

    LOCKED --unlock()--> UNLOCKED --lock() | auto-lock--> LOCKED
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from quietjournal.core.exceptions import SessionLockedError
from quietjournal.core.models import DEFAULT_AUTO_LOCK_MINUTES

from .crypto import SessionKey
from .kdf import CURRENT_KDF_VERSION, derive_key

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(
        self,
        salt_provider: Optional[Callable[[], bytes]] = None,
        kdf_version: int = CURRENT_KDF_VERSION,
        auto_lock_minutes: float = DEFAULT_AUTO_LOCK_MINUTES,
        clock: Callable[[], float] = time.time,
    ):
        self._salt_provider = salt_provider
        self.kdf_version = kdf_version
        self.auto_lock_minutes = auto_lock_minutes
        self._clock = clock
        self._key: Optional[SessionKey] = None
        self._last_active_at: float = clock()
        self._lock = threading.Lock()
        self._lock_listeners: List[Callable[[], None]] = []

    @property
    def is_locked(self) -> bool:
        return self._key is None

    @property
    def last_active_at(self) -> float:
        return self._last_active_at

    def unlock(self, passphrase: bytes | str) -> None:
        """Derive a key from ``passphrase`` and the installation salt, then install it.

        Raises :class:`DerivationFailedError` and leaves the state untouched
        if derivation fails. No verification against stored data happens here.
        """
        if self._salt_provider is None:
            raise RuntimeError("SessionManager has no salt provider; use unlock_with_key()")
        salt = self._salt_provider()
        key = derive_key(passphrase, salt, self.kdf_version)
        self.unlock_with_key(key)

    def unlock_with_key(self, key: SessionKey) -> None:
        """Install an already-derived key and reset the activity window."""
        with self._lock:
            previous = self._key
            self._key = key
            self._last_active_at = self._clock()
        if previous is not None and previous is not key:
            previous.destroy()
        logger.info("session unlocked")

    def lock(self) -> None:
        """Discard the key. Idempotent."""
        with self._lock:
            key = self._key
            self._key = None
        if key is None:
            return
        key.destroy()
        logger.info("session locked")
        for listener in list(self._lock_listeners):
            listener()

    def touch(self) -> None:
        """Record user activity; resets the auto-lock window."""
        if self._key is not None:
            self._last_active_at = self._clock()

    def add_lock_listener(self, callback: Callable[[], None]) -> None:
        """Register ``callback`` to run after every transition to LOCKED. Idempotent."""
        if callback not in self._lock_listeners:
            self._lock_listeners.append(callback)

    def remove_lock_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._lock_listeners:
            self._lock_listeners.remove(callback)

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self._key is None:
            return False
        now = self._clock() if now is None else now
        return now - self._last_active_at >= float(self.auto_lock_minutes) * 60.0

    def check_auto_lock(self, now: Optional[float] = None) -> bool:
        """Cooperative poll: lock if the inactivity window has passed.

        Returns True when this call locked the session.
        """
        if self.is_expired(now):
            logger.info("auto-lock after %s minute(s) of inactivity", self.auto_lock_minutes)
            self.lock()
            return True
        return False

    def require_key(self) -> SessionKey:
        """Return the active key or raise :class:`SessionLockedError`."""
        self.check_auto_lock()
        key = self._key
        if key is None:
            raise SessionLockedError("Session is locked")
        return key


# module-level default session manager
_default_session = SessionManager()


def get_session() -> SessionManager:
    return _default_session


def set_session(manager: SessionManager) -> None:
    global _default_session
    _default_session.lock()
    _default_session = manager


def lock() -> None:
    get_session().lock()


def touch() -> None:
    get_session().touch()
