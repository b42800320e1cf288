"""
Unit tests for the Session Manager.
"""

import os
from unittest.mock import MagicMock, patch

import pytest

from quietjournal.core.exceptions import DerivationFailedError, SessionLockedError
from quietjournal.security import session
from quietjournal.security.crypto import SessionKey
from quietjournal.security.session import SessionManager


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_manager(clock):
    """Returns a fresh, locked SessionManager instance with a fixed salt."""
    return SessionManager(salt_provider=lambda: b"salt_16_bytes_xx", auto_lock_minutes=10, clock=clock)


@pytest.fixture
def mock_kdf():
    with patch("quietjournal.security.session.derive_key") as mock:
        mock.return_value = SessionKey(b"k" * 32)
        yield mock


# ==============================================================================
# Tests: Locking & Unlocking
# ==============================================================================

def test_starts_locked(session_manager):
    assert session_manager.is_locked
    with pytest.raises(SessionLockedError, match="Session is locked"):
        session_manager.require_key()


def test_unlock_derives_with_salt_and_version(session_manager, mock_kdf):
    session_manager.unlock("correct horse")

    mock_kdf.assert_called_once_with("correct horse", b"salt_16_bytes_xx", 1)
    assert not session_manager.is_locked
    assert session_manager.require_key() is mock_kdf.return_value


def test_unlock_resets_activity(session_manager, clock, mock_kdf):
    clock.advance(500)
    session_manager.unlock("pass")
    assert session_manager.last_active_at == clock.now


def test_unlock_with_real_kdf_is_deterministic(session_manager):
    session_manager.unlock("correct horse")
    ciphertext, nonce = session_manager.require_key().encrypt(b"hello")
    session_manager.lock()

    session_manager.unlock("correct horse")
    assert session_manager.require_key().decrypt(ciphertext, nonce) == b"hello"


def test_failed_derivation_stays_locked(session_manager):
    with pytest.raises(DerivationFailedError):
        session_manager.unlock("")
    assert session_manager.is_locked


def test_unlock_without_salt_provider():
    with pytest.raises(RuntimeError):
        SessionManager().unlock("pass")


def test_unlock_replaces_and_destroys_previous_key(session_manager):
    first = SessionKey(os.urandom(32))
    second = SessionKey(os.urandom(32))
    session_manager.unlock_with_key(first)
    session_manager.unlock_with_key(second)
    assert first.destroyed
    assert session_manager.require_key() is second


def test_lock_clears_and_destroys(session_manager):
    key = SessionKey(os.urandom(32))
    session_manager.unlock_with_key(key)

    session_manager.lock()

    assert session_manager.is_locked
    assert key.destroyed
    with pytest.raises(SessionLockedError):
        session_manager.require_key()


def test_lock_is_idempotent_and_notifies_once(session_manager):
    listener = MagicMock()
    session_manager.add_lock_listener(listener)
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))

    session_manager.lock()
    session_manager.lock()

    listener.assert_called_once_with()


def test_listener_registration_is_idempotent(session_manager):
    listener = MagicMock()
    session_manager.add_lock_listener(listener)
    session_manager.add_lock_listener(listener)
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))

    session_manager.lock()

    listener.assert_called_once_with()


def test_removed_listener_is_not_called(session_manager):
    listener = MagicMock()
    session_manager.add_lock_listener(listener)
    session_manager.remove_lock_listener(listener)
    session_manager.remove_lock_listener(listener)
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))

    session_manager.lock()

    listener.assert_not_called()


# ==============================================================================
# Tests: Auto-lock
# ==============================================================================

def test_auto_lock_at_deadline(session_manager, clock):
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))

    clock.advance(10 * 60 - 1)
    assert session_manager.require_key() is not None

    # a touch-free window of exactly m minutes locks
    clock.advance(1)
    with pytest.raises(SessionLockedError):
        session_manager.require_key()
    assert session_manager.is_locked


def test_auto_lock_any_time_after_deadline(session_manager, clock):
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))
    clock.advance(3600)
    assert session_manager.check_auto_lock() is True
    assert session_manager.is_locked


def test_touch_resets_window(session_manager, clock):
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))

    clock.advance(9 * 60)
    session_manager.touch()
    clock.advance(9 * 60)

    assert session_manager.check_auto_lock() is False
    assert session_manager.require_key() is not None

    clock.advance(60)
    assert session_manager.check_auto_lock() is True


def test_touch_while_locked_is_noop(session_manager, clock):
    before = session_manager.last_active_at
    clock.advance(100)
    session_manager.touch()
    assert session_manager.last_active_at == before


def test_require_key_does_not_touch(session_manager, clock):
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))
    clock.advance(60)
    session_manager.require_key()
    assert session_manager.last_active_at == 1000.0


def test_is_expired_with_explicit_now(session_manager):
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))
    assert session_manager.is_expired(now=1000.0 + 599) is False
    assert session_manager.is_expired(now=1000.0 + 600) is True


def test_auto_lock_minutes_is_adjustable(session_manager, clock):
    session_manager.unlock_with_key(SessionKey(os.urandom(32)))
    session_manager.auto_lock_minutes = 1
    clock.advance(61)
    assert session_manager.check_auto_lock() is True


def test_locked_session_never_expires(session_manager, clock):
    clock.advance(10_000)
    assert session_manager.is_expired() is False
    assert session_manager.check_auto_lock() is False


# ==============================================================================
# Tests: Independent instances & module helpers
# ==============================================================================

def test_instances_are_independent(clock):
    a = SessionManager(salt_provider=lambda: b"s" * 16, clock=clock)
    b = SessionManager(salt_provider=lambda: b"s" * 16, clock=clock)
    a.unlock_with_key(SessionKey(os.urandom(32)))
    assert not a.is_locked
    assert b.is_locked


def test_global_helpers(clock):
    original = session.get_session()
    try:
        manager = SessionManager(clock=clock)
        session.set_session(manager)
        assert session.get_session() is manager

        manager.unlock_with_key(SessionKey(os.urandom(32)))
        clock.advance(30)
        session.touch()
        assert manager.last_active_at == clock.now

        session.lock()
        assert manager.is_locked
    finally:
        session._default_session = original


def test_set_session_locks_previous(clock):
    original = session.get_session()
    try:
        first = SessionManager(clock=clock)
        session._default_session = first
        first.unlock_with_key(SessionKey(os.urandom(32)))

        session.set_session(SessionManager(clock=clock))
        assert first.is_locked
    finally:
        session._default_session = original
