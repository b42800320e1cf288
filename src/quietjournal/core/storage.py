"""
Local persistence for encrypted records

Layout of the SQLite file:
==============================
 - entries         Encrypted Records, indexed by created_at
 - memory          Encrypted Records, indexed by created_at
 - settings        single JSON document
 - meta            {"appSaltB64": ...} under key 'appSalt'
 - schema_version
==============================
For reference:
> Nothing here decrypts. Records go in and come out as opaque envelopes.
> created_at / ritual_name / intent are clear text so listing and date
  filtering work while the journal is locked; content never is.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .codec import bytes_from_b64
from .exceptions import RecordNotFoundError
from .models import Collection, EncryptedRecord, Settings
from ..database.connection import DatabaseConnection
from ..database.models import MetaModel, RecordModel, SettingsModel
from ..security.kdf import generate_salt

logger = logging.getLogger(__name__)


class RecordStore:
    """Record collections, settings and installation salt over one database"""

    def __init__(self, db_connection: Optional[DatabaseConnection] = None, db_path: Optional[str] = None):
        if db_connection is None:
            db_connection = DatabaseConnection(str(Path(db_path or "./journal.db").expanduser()))
        self.db = db_connection
        self.db.initialize()
        self.entries = RecordModel(self.db, Collection.ENTRIES)
        self.memory = RecordModel(self.db, Collection.MEMORY)
        self.settings = SettingsModel(self.db)
        self.meta = MetaModel(self.db)

    def collection(self, name) -> RecordModel:
        return self.entries if Collection(name) is Collection.ENTRIES else self.memory

    # ------------------------------------------------------------------
    # Installation salt
    # ------------------------------------------------------------------

    def get_or_create_app_salt_b64(self) -> str:
        return self.meta.get_or_create_app_salt_b64(generate_salt)

    def get_or_create_app_salt(self) -> bytes:
        return bytes_from_b64(self.get_or_create_app_salt_b64())

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_entry(self, record_id: str) -> EncryptedRecord:
        record = self.entries.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Entry '{record_id}' not found.")
        return record

    def get_memory(self, record_id: str) -> EncryptedRecord:
        record = self.memory.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Memory item '{record_id}' not found.")
        return record

    def list_entries(self, start=None, end=None):
        if start is None and end is None:
            return self.entries.list_all()
        return self.entries.list_between(start, end)

    def list_memory(self):
        return self.memory.list_all()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> Settings:
        return self.settings.get()

    def save_settings(self, settings: Settings) -> Settings:
        return self.settings.save(settings)

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self):
        """All writes inside the block commit together or not at all."""
        with self.db.get_transaction_context():
            yield self

    def close(self) -> None:
        self.db.close()
