"""
Journal operations over the record store and the session key.

Every read or write of content goes through ``SessionManager.require_key``;
a locked (or auto-locked) session raises SessionLockedError before anything
is touched. Deletes work on ids only and need no key.
"""

import logging
from typing import Optional

from .codec import now_iso
from .exceptions import RecordNotFoundError, SessionLockedError
from .models import (
    EncryptedRecord,
    EntryPayload,
    Intent,
    MEMORY_RITUAL_NAME,
    MemoryItem,
    Settings,
    check_auto_lock_minutes,
    entry_from_dict,
    memory_from_dict,
    new_record_index,
)
from .storage import RecordStore
from ..security.ai_key import EphemeralKeyStore, ResolvedAiKey, resolve_ai_api_key, seal_ai_key
from ..security.encryption import BulkDecryptResult, decrypt_all, decrypt_record, encrypt_json
from ..security.session import SessionManager

logger = logging.getLogger(__name__)


class Journal:
    """High-level entry, memory and settings operations."""

    def __init__(
        self,
        store: RecordStore,
        session: SessionManager,
        ephemeral: Optional[EphemeralKeyStore] = None,
        default_ai_key: Optional[str] = None,
    ):
        self.store = store
        self.session = session
        self.ephemeral = ephemeral if ephemeral is not None else EphemeralKeyStore()
        self.default_ai_key = default_ai_key
        # the tab-ephemeral key never outlives the session
        self.session.add_lock_listener(self.ephemeral.clear)

    def close(self) -> None:
        """Detach from the session. The ephemeral key is dropped."""
        self.session.remove_lock_listener(self.ephemeral.clear)
        self.ephemeral.clear()

    def _key(self):
        key = self.session.require_key()
        self.session.touch()
        return key

    def _seal(self, key, payload, record_id, created_at, intent, ritual_name) -> EncryptedRecord:
        sealed = encrypt_json(key, payload)
        return EncryptedRecord(
            id=record_id,
            created_at=created_at,
            ritual_name=ritual_name,
            intent=intent,
            ciphertext_b64=sealed.ciphertext_b64,
            iv_b64=sealed.iv_b64,
            salt_b64=self.store.get_or_create_app_salt_b64(),
            kdf_version=self.session.kdf_version,
        )

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def save_entry(self, payload: EntryPayload) -> EncryptedRecord:
        """Encrypt and store a new entry; the record id mirrors ``payload.id``."""
        key = self._key()
        record = self._seal(key, payload, payload.id, payload.created_at, payload.intent, payload.ritual_name)
        self.store.entries.put(record)
        logger.info("saved entry %s", record.id)
        return record

    def update_entry(self, record_id: str, payload: EntryPayload) -> EncryptedRecord:
        """Re-encrypt an existing entry under a fresh nonce, keeping id and createdAt."""
        key = self._key()
        existing = self.store.get_entry(record_id)
        payload.id = existing.id
        payload.created_at = existing.created_at
        record = self._seal(key, payload, existing.id, existing.created_at, payload.intent, payload.ritual_name)
        self.store.entries.put(record)
        logger.info("updated entry %s", record.id)
        return record

    def open_entry(self, record_id: str) -> EntryPayload:
        """Decrypt one entry.

        Raises RecordNotFoundError or DecryptionFailedError directly so the
        caller can offer a recovery action such as deleting the entry.
        """
        key = self._key()
        record = self.store.get_entry(record_id)
        return decrypt_record(key, record, entry_from_dict)

    def list_entries(self, start=None, end=None) -> BulkDecryptResult:
        """Decrypt all entries (optionally within a createdAt range), skipping failures."""
        key = self._key()
        return decrypt_all(key, self.store.list_entries(start, end), entry_from_dict)

    def delete_entry(self, record_id: str) -> None:
        if not self.store.entries.delete(record_id):
            raise RecordNotFoundError(f"Entry '{record_id}' not found.")

    def delete_all_entries(self) -> int:
        return self.store.entries.delete_all()

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    def add_memory(self, text: str) -> EncryptedRecord:
        key = self._key()
        index = new_record_index(Intent.MAKE_SENSE, MEMORY_RITUAL_NAME)
        item = MemoryItem(id=index["id"], created_at=index["createdAt"], text=text.strip())
        record = self._seal(key, item, item.id, item.created_at, Intent.MAKE_SENSE, MEMORY_RITUAL_NAME)
        self.store.memory.put(record)
        return record

    def update_memory(self, record_id: str, text: str) -> EncryptedRecord:
        """Replace the text of a memory item. Same id, fresh createdAt and nonce."""
        key = self._key()
        self.store.get_memory(record_id)
        item = MemoryItem(id=record_id, created_at=now_iso(), text=text.strip())
        record = self._seal(key, item, record_id, item.created_at, Intent.MAKE_SENSE, MEMORY_RITUAL_NAME)
        self.store.memory.put(record)
        return record

    def open_memory(self, record_id: str) -> MemoryItem:
        key = self._key()
        return decrypt_record(key, self.store.get_memory(record_id), memory_from_dict)

    def list_memory(self) -> BulkDecryptResult:
        key = self._key()
        return decrypt_all(key, self.store.list_memory(), memory_from_dict)

    def remove_memory(self, record_id: str) -> None:
        if not self.store.memory.delete(record_id):
            raise RecordNotFoundError(f"Memory item '{record_id}' not found.")

    def delete_all_memory(self) -> int:
        return self.store.memory.delete_all()

    # ------------------------------------------------------------------
    # Settings and AI key
    # ------------------------------------------------------------------

    def get_settings(self) -> Settings:
        return self.store.get_settings()

    def save_settings(self, settings: Settings, ai_api_key: Optional[str] = None) -> Settings:
        """Persist settings and route ``ai_api_key`` to the right place.

        Remembered keys are stored encrypted under the session key; otherwise
        the key only goes to the ephemeral store and nothing reaches disk.
        """
        check_auto_lock_minutes(settings.auto_lock_minutes)
        api_key = ai_api_key.strip() if ai_api_key else ""
        if settings.remember_ai_key:
            if api_key:
                settings.encrypted_ai_api_key = seal_ai_key(self._key(), api_key)
                settings.ai_api_key = None
        else:
            settings = settings.without_ai_key()
            if api_key:
                self.ephemeral.set(api_key)
        saved = self.store.save_settings(settings)
        self.session.auto_lock_minutes = saved.auto_lock_minutes
        return saved

    def resolve_ai_api_key(self) -> Optional[ResolvedAiKey]:
        settings = self.store.get_settings()
        try:
            key = self.session.require_key()
        except SessionLockedError:
            key = None
        return resolve_ai_api_key(settings, self.ephemeral, key=key, default_key=self.default_ai_key)
