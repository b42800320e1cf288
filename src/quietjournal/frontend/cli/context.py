"""Small helper to build a Quiet Journal app context for the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging
import os

from quietjournal.core.exceptions import InvalidSettingsError
from quietjournal.core.journal import Journal
from quietjournal.core.models import DEFAULT_AUTO_LOCK_MINUTES, check_auto_lock_minutes
from quietjournal.core.storage import RecordStore
from quietjournal.database.connection import DatabaseConnection
from quietjournal.security.ai_key import EphemeralKeyStore
from quietjournal.security.session import SessionManager, set_session

DEFAULT_DB_PATH = Path.home() / ".quietjournal" / "journal.db"

ENV_DB_PATH = "QUIETJOURNAL_DB_PATH"
ENV_PASSPHRASE = "QUIETJOURNAL_PASSPHRASE"
ENV_DEFAULT_AI_KEY = "QUIETJOURNAL_DEFAULT_AI_KEY"

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Container for runtime objects the frontend needs."""

    store: RecordStore
    session: SessionManager
    journal: Journal
    first_run: bool = False

    def close(self) -> None:
        self.session.lock()
        self.journal.close()
        self.store.close()


def resolve_db_path(db_path: Optional[str | Path] = None) -> Path:
    if db_path is not None:
        return Path(db_path).expanduser()
    env = os.getenv(ENV_DB_PATH)
    if env:
        return Path(env).expanduser()
    return DEFAULT_DB_PATH


def build_context(db_path: Optional[str | Path] = None) -> AppContext:
    """
    Open the database and wire store, session manager and journal together.

    Configuration comes from the environment:

    - ``QUIETJOURNAL_DB_PATH``: database file (default ``~/.quietjournal/journal.db``).
    - ``QUIETJOURNAL_DEFAULT_AI_KEY``: operator-provided AI key, used only when
      the user enabled ``useDefaultAiKey``.

    The session starts LOCKED. Its auto-lock window comes from stored
    Settings. The installation salt is created on first unlock, not here.
    """
    path = resolve_db_path(db_path)
    first_run = not path.exists()

    store = RecordStore(DatabaseConnection(str(path)))
    auto_lock_minutes = store.get_settings().auto_lock_minutes
    try:
        check_auto_lock_minutes(auto_lock_minutes)
    except InvalidSettingsError:
        logger.warning("stored autoLockMinutes %r is invalid; using %s", auto_lock_minutes, DEFAULT_AUTO_LOCK_MINUTES)
        auto_lock_minutes = DEFAULT_AUTO_LOCK_MINUTES

    session = SessionManager(
        salt_provider=store.get_or_create_app_salt,
        auto_lock_minutes=auto_lock_minutes,
    )
    set_session(session)

    journal = Journal(
        store,
        session,
        ephemeral=EphemeralKeyStore(),
        default_ai_key=os.getenv(ENV_DEFAULT_AI_KEY) or None,
    )
    return AppContext(store=store, session=session, journal=journal, first_run=first_run)
