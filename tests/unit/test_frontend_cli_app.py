import json

import pytest

from quietjournal.core.models import EntryPayload, EntryStep, Intent
from quietjournal.frontend.cli import app
from quietjournal.frontend.cli.context import ENV_DB_PATH, ENV_PASSPHRASE, build_context


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.delenv(ENV_DB_PATH, raising=False)
    monkeypatch.setenv(ENV_PASSPHRASE, "correct horse")


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "journal.db"
    ctx = build_context(path)
    ctx.session.unlock("correct horse")
    ctx.journal.save_entry(EntryPayload(
        created_at="2024-01-02T00:00:00.000Z",
        intent=Intent.UNLOAD,
        ritual_name="Unload",
        steps=[EntryStep("What happened?", "a long day")],
    ))
    ctx.journal.add_memory("prefers short answers")
    ctx.close()
    return path


def run(*argv):
    return app.main([str(a) for a in argv])


def test_entries_lists_decrypted(db_path, capsys):
    assert run("--db", db_path, "entries") == 0
    out = capsys.readouterr().out
    assert "2024-01-02T00:00:00.000Z" in out
    assert "Unload" in out
    assert "could not be unlocked" not in out


def test_entries_with_wrong_passphrase_reports_skipped(db_path, monkeypatch, capsys):
    monkeypatch.setenv(ENV_PASSPHRASE, "wrong horse")
    assert run("--db", db_path, "entries") == 0
    assert "1 entry could not be unlocked" in capsys.readouterr().out


def test_memory_lists_text(db_path, capsys):
    assert run("--db", db_path, "memory") == 0
    assert "prefers short answers" in capsys.readouterr().out


def test_empty_passphrase_is_an_error(db_path, monkeypatch, capsys):
    monkeypatch.setenv(ENV_PASSPHRASE, "   ")
    assert run("--db", db_path, "entries") == 1
    assert "Enter a passphrase" in capsys.readouterr().err


def test_passphrase_prompt_when_env_missing(db_path, monkeypatch, capsys):
    monkeypatch.delenv(ENV_PASSPHRASE)
    monkeypatch.setattr(app.getpass, "getpass", lambda prompt="": "correct horse")
    assert run("--db", db_path, "memory") == 0
    assert "prefers short answers" in capsys.readouterr().out


def test_export_to_stdout_has_no_key(db_path, capsys):
    assert run("--db", db_path, "export", "-") == 0
    data = json.loads(capsys.readouterr().out)
    assert len(data["entries"]) == 1
    assert len(data["memory"]) == 1
    assert data["settings"]["rememberAiKey"] is False
    assert "aiApiKey" not in data["settings"]


def test_export_preview_import_into_new_device(db_path, tmp_path, capsys):
    backup = tmp_path / "backup.json"
    assert run("--db", db_path, "export", backup) == 0
    assert backup.exists()

    assert run("--db", db_path, "preview", backup) == 0
    out = capsys.readouterr().out
    assert "Entries:      1" in out
    assert "Memory items: 1" in out

    other = tmp_path / "other.db"
    assert run("--db", other, "import", backup) == 0
    assert "Entries: 1 imported, 0 skipped" in capsys.readouterr().out

    assert run("--db", other, "import", backup) == 0
    assert "Entries: 0 imported, 1 skipped" in capsys.readouterr().out


def test_preview_check_counts_readable(db_path, tmp_path, monkeypatch, capsys):
    backup = tmp_path / "backup.json"
    run("--db", db_path, "export", backup)
    capsys.readouterr()

    assert run("--db", db_path, "preview", backup, "--check") == 0
    assert "Readable with this passphrase: 2, locked: 0" in capsys.readouterr().out


def test_preview_rejects_invalid_backup(db_path, tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text('{"version": 1}', encoding="utf-8")
    assert run("--db", db_path, "preview", bad) == 1
    assert "Invalid backup document" in capsys.readouterr().err


def test_replace_import_asks_first(db_path, tmp_path, monkeypatch, capsys):
    backup = tmp_path / "empty.json"
    backup.write_text(json.dumps({
        "version": 1,
        "exportedAt": "2024-02-01T00:00:00.000Z",
        "entries": [],
        "memory": [],
        "settings": {"aiEnabled": True, "autoLockMinutes": 10, "insightsEnabled": True},
    }), encoding="utf-8")

    monkeypatch.setattr("builtins.input", lambda prompt="": "n")
    assert run("--db", db_path, "import", backup, "--mode", "replace") == 1

    assert run("--db", db_path, "import", backup, "--mode", "replace", "--yes") == 0
    capsys.readouterr()
    assert run("--db", db_path, "entries") == 0
    assert capsys.readouterr().out == ""


def test_wipe(db_path, capsys):
    assert run("--db", db_path, "wipe", "--yes") == 0
    assert "Deleted 1 entries and 1 memory items." in capsys.readouterr().out


def test_command_is_required():
    with pytest.raises(SystemExit):
        app.main([])


def test_export_with_bad_stored_settings_is_an_error(db_path, capsys):
    ctx = build_context(db_path)
    ctx.store.db.execute(
        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
        ("settings", json.dumps({"autoLockMinutes": -1})),
    )
    ctx.close()

    assert run("--db", db_path, "export", "-") == 1
    assert "autoLockMinutes" in capsys.readouterr().err


def test_corrupt_settings_row_is_an_error(db_path, capsys):
    ctx = build_context(db_path)
    ctx.store.db.execute(
        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
        ("settings", "{oops"),
    )
    ctx.close()

    assert run("--db", db_path, "memory") == 1
    assert "not valid JSON" in capsys.readouterr().err
