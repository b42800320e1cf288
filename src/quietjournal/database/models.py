"""ORM-style helpers for database operations."""

import json
import logging

from .connection import DatabaseConnection
from .schema import RECORD_TABLES
from ..core.codec import b64_from_bytes
from ..core.exceptions import StorageError
from ..core.models import Collection, EncryptedRecord, Settings, check_auto_lock_minutes, settings_from_dict

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
APP_SALT_KEY = "appSalt"


class BaseModel:
    """Base class for DB models."""

    __slots__ = ("db",)

    def __init__(self, db: DatabaseConnection):
        """Initialize with a DatabaseConnection."""
        self.db = db

    def _serialize_json(self, data):
        """Serialize Python data to JSON string."""
        return json.dumps(data, ensure_ascii=False) if data is not None else None

    def _deserialize_json(self, data):
        """Deserialize JSON string to Python data."""
        if not data:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise StorageError(f"Stored value is not valid JSON: {e}") from e


def row_to_record(row):
    """Convert a DB row (dict) to an EncryptedRecord."""
    return EncryptedRecord(
        id=row["id"],
        created_at=row["created_at"],
        ritual_name=row["ritual_name"],
        intent=row["intent"],
        ciphertext_b64=row["ciphertext_b64"],
        iv_b64=row["iv_b64"],
        salt_b64=row["salt_b64"],
        kdf_version=row["kdf_version"],
    )


class RecordModel(BaseModel):
    """Keyed store for one collection of encrypted records (entries or memory)."""

    __slots__ = ("table",)

    def __init__(self, db, collection):
        super().__init__(db)
        table = Collection(collection).value
        if table not in RECORD_TABLES:
            raise ValueError(f"unknown collection: {collection!r}")
        self.table = table

    def put(self, record: EncryptedRecord):
        """Insert or overwrite by id (last write wins)."""
        query = f"""
            INSERT OR REPLACE INTO {self.table}
                (id, created_at, ritual_name, intent, ciphertext_b64, iv_b64, salt_b64, kdf_version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            record.id,
            record.created_at,
            record.ritual_name,
            record.intent.value,
            record.ciphertext_b64,
            record.iv_b64,
            record.salt_b64,
            record.kdf_version,
        )
        self.db.execute(query, params)
        return record

    def insert_if_absent(self, record: EncryptedRecord):
        """Insert unless the id already exists. Returns True when written."""
        query = f"""
            INSERT OR IGNORE INTO {self.table}
                (id, created_at, ritual_name, intent, ciphertext_b64, iv_b64, salt_b64, kdf_version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            record.id,
            record.created_at,
            record.ritual_name,
            record.intent.value,
            record.ciphertext_b64,
            record.iv_b64,
            record.salt_b64,
            record.kdf_version,
        )
        return self.db.execute(query, params) == 1

    def get(self, record_id):
        """Get record by id, or None."""
        row = self.db.fetch_one(f"SELECT * FROM {self.table} WHERE id = ?", (record_id,))
        return row_to_record(row) if row else None

    def exists(self, record_id):
        row = self.db.fetch_one(f"SELECT 1 AS hit FROM {self.table} WHERE id = ?", (record_id,))
        return row is not None

    def delete(self, record_id):
        """Delete record by id. Returns True if a row was removed."""
        return self.db.execute(f"DELETE FROM {self.table} WHERE id = ?", (record_id,)) > 0

    def delete_all(self):
        """Delete every record in the collection and return how many went."""
        removed = self.count()
        self.db.execute(f"DELETE FROM {self.table}")
        logger.info("deleted %d record(s) from %s", removed, self.table)
        return removed

    def list_all(self):
        """All records, most recent createdAt first."""
        query = f"SELECT * FROM {self.table} ORDER BY created_at DESC, id DESC"
        return [row_to_record(r) for r in self.db.fetch_all(query)]

    def list_between(self, start=None, end=None):
        """Records whose createdAt falls in [start, end], most recent first.

        Works on the clear-text timestamp; nothing is decrypted.
        """
        clauses = []
        params = []
        if start is not None:
            clauses.append("created_at >= ?")
            params.append(start)
        if end is not None:
            clauses.append("created_at <= ?")
            params.append(end)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM {self.table} {where} ORDER BY created_at DESC, id DESC"
        return [row_to_record(r) for r in self.db.fetch_all(query, tuple(params))]

    def count(self):
        row = self.db.fetch_one(f"SELECT COUNT(*) AS n FROM {self.table}")
        return row["n"] if row else 0


class SettingsModel(BaseModel):
    """Single-slot settings record."""

    def get(self):
        """Stored settings, or defaults when none were saved yet."""
        row = self.db.fetch_one("SELECT value FROM settings WHERE key = ?", (SETTINGS_KEY,))
        if not row:
            return Settings()
        data = self._deserialize_json(row["value"])
        if data is not None and not isinstance(data, dict):
            raise StorageError("Stored settings are malformed")
        return settings_from_dict(data)

    def save(self, settings: Settings):
        """Persist settings. The API key never reaches disk unless remembered."""
        check_auto_lock_minutes(settings.auto_lock_minutes)
        if not settings.remember_ai_key:
            settings = settings.without_ai_key()
        self.db.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (SETTINGS_KEY, self._serialize_json(settings.to_dict())),
        )
        return settings


class MetaModel(BaseModel):
    """Installation metadata (unencrypted)."""

    def get_app_salt_b64(self):
        row = self.db.fetch_one("SELECT value FROM meta WHERE key = ?", (APP_SALT_KEY,))
        if not row:
            return None
        data = self._deserialize_json(row["value"]) or {}
        if not isinstance(data, dict):
            raise StorageError("Stored installation salt is malformed")
        return data.get("appSaltB64")

    def set_app_salt_b64(self, salt_b64):
        """Replace the installation salt, e.g. to adopt the salt of another install."""
        self.db.execute(
            "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
            (APP_SALT_KEY, self._serialize_json({"appSaltB64": salt_b64})),
        )
        logger.info("installation salt replaced")

    def get_or_create_app_salt_b64(self, salt_factory):
        """Return the installation salt, creating it on first access.

        ``INSERT OR IGNORE`` then read back: if two callers race, the first
        write wins and both see the same value.
        """
        existing = self.get_app_salt_b64()
        if existing:
            return existing
        candidate = b64_from_bytes(salt_factory())
        inserted = self.db.execute(
            "INSERT OR IGNORE INTO meta (key, value) VALUES (?, ?)",
            (APP_SALT_KEY, self._serialize_json({"appSaltB64": candidate})),
        )
        if inserted:
            logger.info("created installation salt")
        return self.get_app_salt_b64()
