"""Shared fixtures: cheap KDF parameters and a fresh on-disk store."""

import pytest

from quietjournal.core.storage import RecordStore
from quietjournal.database.connection import DatabaseConnection
from quietjournal.security import kdf
from quietjournal.security.session import SessionManager


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Keep the algorithms, drop the cost. Real parameters are checked separately."""
    monkeypatch.setitem(kdf.KDF_PARAMS, kdf.KDF_PBKDF2_SHA256, {"algo": "pbkdf2-sha256", "iterations": 1000})
    monkeypatch.setitem(
        kdf.KDF_PARAMS,
        kdf.KDF_ARGON2ID,
        {"algo": "argon2id", "time": 1, "memory": 8, "parallelism": 1},
    )


@pytest.fixture
def store(tmp_path):
    """RecordStore backed by a temporary SQLite file."""
    s = RecordStore(DatabaseConnection(str(tmp_path / "journal.db")))
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def session(store):
    """Locked SessionManager reading the store's installation salt."""
    return SessionManager(salt_provider=store.get_or_create_app_salt)
