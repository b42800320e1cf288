"""End-to-end flows over a real SQLite file: unlock, write, lock, reopen, back up."""

import pytest

from quietjournal.core.backup import create_backup, dump_backup, import_backup
from quietjournal.core.exceptions import DecryptionFailedError, SessionLockedError
from quietjournal.core.journal import Journal
from quietjournal.core.models import EntryPayload, EntryStep, Settings
from quietjournal.core.storage import RecordStore
from quietjournal.database.connection import DatabaseConnection
from quietjournal.security.encryption import decrypt_json, encrypt_json
from quietjournal.security.session import SessionManager


def open_journal(path):
    store = RecordStore(DatabaseConnection(str(path)))
    session = SessionManager(salt_provider=store.get_or_create_app_salt)
    return store, session, Journal(store, session)


@pytest.fixture
def device(tmp_path):
    store, session, journal = open_journal(tmp_path / "journal.db")
    yield store, session, journal
    session.lock()
    store.close()


def test_passphrase_round_trip(device):
    store, session, journal = device

    session.unlock("correct horse")
    record = encrypt_json(session.require_key(), {"text": "hello"})
    session.lock()

    session.unlock("correct horse")
    assert decrypt_json(session.require_key(), record.ciphertext_b64, record.iv_b64) == {"text": "hello"}
    session.lock()

    session.unlock("wrong horse")
    with pytest.raises(DecryptionFailedError):
        decrypt_json(session.require_key(), record.ciphertext_b64, record.iv_b64)


def test_reopened_database_reads_old_entries(tmp_path):
    path = tmp_path / "journal.db"
    store, session, journal = open_journal(path)
    session.unlock("correct horse")
    saved = journal.save_entry(EntryPayload(steps=[EntryStep("How are you?", "tired")]))
    salt = store.get_or_create_app_salt_b64()
    session.lock()
    store.close()

    store, session, journal = open_journal(path)
    try:
        assert store.get_or_create_app_salt_b64() == salt
        session.unlock("correct horse")
        entry = journal.open_entry(saved.id)
        assert entry.steps[0].response == "tired"
    finally:
        session.lock()
        store.close()


def test_lock_blocks_reads_and_clears_ephemeral_key(device):
    store, session, journal = device
    session.unlock("correct horse")
    journal.save_settings(Settings(remember_ai_key=False), ai_api_key="sk-tab-only")
    assert journal.resolve_ai_api_key().value == "sk-tab-only"

    session.lock()
    with pytest.raises(SessionLockedError):
        journal.list_entries()
    assert journal.resolve_ai_api_key() is None
    assert "sk-tab-only" not in store.db.fetch_one("SELECT value FROM settings")["value"]


def test_backup_moves_journal_to_new_device(device, tmp_path):
    store, session, journal = device
    session.unlock("correct horse")
    journal.save_entry(EntryPayload(created_at="2024-01-01T00:00:00.000Z", steps=[EntryStep("p", "first")]))
    journal.save_entry(EntryPayload(created_at="2024-01-02T00:00:00.000Z", steps=[EntryStep("p", "second")]))
    journal.add_memory("likes walks")
    text = dump_backup(create_backup(store, session))

    other_store, other_session, other_journal = open_journal(tmp_path / "other.db")
    try:
        report = import_backup(other_store, text, mode="replace")
        assert report.entries.imported == 2

        # the backup carries the old salt on each record but the new device
        # derives from its own installation salt, so nothing reads yet
        other_session.unlock("correct horse")
        assert other_journal.list_entries().skipped == 2

        # adopting the source salt makes the same passphrase work
        other_session.lock()
        other_store.meta.set_app_salt_b64(store.get_or_create_app_salt_b64())
        other_session.unlock("correct horse")
        entries = other_journal.list_entries()
        assert entries.skipped == 0
        assert [e.steps[0].response for e in entries.values] == ["second", "first"]
        assert [m.text for m in other_journal.list_memory().values] == ["likes walks"]
    finally:
        other_session.lock()
        other_store.close()
