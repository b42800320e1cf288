"""
Backup export and import.

A backup carries the encrypted records exactly as stored (ciphertext
untouched) plus a safe projection of Settings, so it can be produced and
restored without the passphrase. The AI API key never appears in a backup
and is never read from one.

Incoming documents are validated once, at the boundary, by the pydantic
models below. Nothing past :func:`validate_backup` looks at raw dicts.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator
from pydantic.alias_generators import to_camel

from .codec import now_iso
from .exceptions import BackupValidationError
from .models import EncryptedRecord, check_auto_lock_minutes, record_from_dict
from .storage import RecordStore
from ..security.crypto import SessionKey
from ..security.encryption import try_decrypt_record
from ..security.session import SessionManager

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


class _Schema(BaseModel):
    model_config = ConfigDict(
        strict=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class BackupRecord(_Schema):
    """Encrypted Record as it appears in a backup."""

    id: StrictStr = Field(min_length=1)
    created_at: StrictStr
    ritual_name: StrictStr
    intent: Literal["unload", "make_sense", "help_write"]
    ciphertext_b64: StrictStr
    iv_b64: StrictStr
    salt_b64: StrictStr
    kdf_version: StrictInt

    @classmethod
    def from_record(cls, record: EncryptedRecord) -> "BackupRecord":
        return cls.model_validate(record.to_dict())

    def to_record(self) -> EncryptedRecord:
        return record_from_dict(self.model_dump(by_alias=True))


class BackupSettings(_Schema):
    """Whitelisted settings. Unknown keys (any API key among them) are dropped on parse."""

    ai_enabled: StrictBool
    auto_lock_minutes: Union[StrictInt, StrictFloat]
    insights_enabled: StrictBool
    remember_ai_key: Optional[StrictBool] = None

    @field_validator("auto_lock_minutes")
    @classmethod
    def _positive_minutes(cls, value):
        if value <= 0:
            raise ValueError("autoLockMinutes must be greater than 0")
        return value


class BackupDocument(_Schema):
    version: Literal[1]
    exported_at: StrictStr
    entries: List[BackupRecord]
    memory: List[BackupRecord]
    settings: BackupSettings

    @field_validator("version", mode="before")
    @classmethod
    def _version_not_bool(cls, value):
        # True == 1 would otherwise satisfy the literal
        if isinstance(value, bool):
            raise ValueError("version must be an integer")
        return value

    @model_validator(mode="after")
    def _unique_ids(self):
        for name in ("entries", "memory"):
            seen = set()
            for record in getattr(self, name):
                if record.id in seen:
                    raise ValueError(f"duplicate id {record.id!r} in {name}")
                seen.add(record.id)
        return self

    def entry_records(self) -> List[EncryptedRecord]:
        return [r.to_record() for r in self.entries]

    def memory_records(self) -> List[EncryptedRecord]:
        return [r.to_record() for r in self.memory]


class ImportMode(Enum):
    MERGE = "merge"
    REPLACE = "replace"


@dataclass
class CollectionReport:
    imported: int = 0
    skipped: int = 0


@dataclass
class ImportReport:
    mode: ImportMode
    entries: CollectionReport = field(default_factory=CollectionReport)
    memory: CollectionReport = field(default_factory=CollectionReport)
    settings_applied: bool = False


@dataclass(frozen=True)
class BackupPreview:
    version: int
    exported_at: str
    entry_count: int
    memory_count: int
    newest_entry_at: Optional[str]
    oldest_entry_at: Optional[str]
    # only filled when a key was supplied; informational, never blocks import
    decryptable: Optional[int] = None
    undecryptable: Optional[int] = None


def _require_unlocked(session: Optional[SessionManager]) -> None:
    if session is not None:
        session.require_key()
        session.touch()


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------

def create_backup(store: RecordStore, session: Optional[SessionManager] = None) -> BackupDocument:
    """Snapshot every entry and memory record plus the safe settings projection.

    Pure read. When ``session`` is given it must be unlocked.
    """
    _require_unlocked(session)
    settings = store.get_settings()
    check_auto_lock_minutes(settings.auto_lock_minutes)
    document = BackupDocument(
        version=BACKUP_VERSION,
        exported_at=now_iso(),
        entries=[BackupRecord.from_record(r) for r in store.entries.list_all()],
        memory=[BackupRecord.from_record(r) for r in store.memory.list_all()],
        settings=BackupSettings(
            ai_enabled=settings.ai_enabled,
            auto_lock_minutes=settings.auto_lock_minutes,
            insights_enabled=settings.insights_enabled,
            # never carried over; the key itself stays on this device
            remember_ai_key=False,
        ),
    )
    logger.info("created backup with %d entries, %d memory items", len(document.entries), len(document.memory))
    return document


def backup_to_dict(document: BackupDocument) -> dict:
    return document.model_dump(mode="json", by_alias=True)


def dump_backup(document: BackupDocument) -> str:
    return json.dumps(backup_to_dict(document), indent=2, ensure_ascii=False)


def backup_filename(document: BackupDocument) -> str:
    return f"quiet-journal-backup-{document.exported_at[:10]}.json"


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------

def _format_errors(exc: PydanticValidationError) -> List[str]:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<document>"
        problems.append(f"{loc}: {err.get('msg')}")
    return problems


def validate_backup(data) -> BackupDocument:
    """Validate a decoded document, aggregating every problem into one error."""
    if isinstance(data, BackupDocument):
        return data
    try:
        return BackupDocument.model_validate(data)
    except PydanticValidationError as e:
        problems = _format_errors(e)
        raise BackupValidationError(
            f"Invalid backup document ({len(problems)} problem(s)): " + "; ".join(problems),
            errors=problems,
        ) from e


def parse_backup_json(text: Union[str, bytes]) -> BackupDocument:
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BackupValidationError(f"Backup is not valid JSON: {e}", errors=[str(e)]) from e
    return validate_backup(raw)


# ----------------------------------------------------------------------
# Preview
# ----------------------------------------------------------------------

def build_preview(document: BackupDocument, key: Optional[SessionKey] = None) -> BackupPreview:
    """Summarize a validated document; optionally count what the current key can read."""
    dates = sorted(r.created_at for r in document.entries)
    decryptable = undecryptable = None
    if key is not None:
        decryptable = undecryptable = 0
        for record in document.entry_records() + document.memory_records():
            if try_decrypt_record(key, record).ok:
                decryptable += 1
            else:
                undecryptable += 1
    return BackupPreview(
        version=document.version,
        exported_at=document.exported_at,
        entry_count=len(document.entries),
        memory_count=len(document.memory),
        newest_entry_at=dates[-1] if dates else None,
        oldest_entry_at=dates[0] if dates else None,
        decryptable=decryptable,
        undecryptable=undecryptable,
    )


# ----------------------------------------------------------------------
# Import
# ----------------------------------------------------------------------

def _apply_settings(store: RecordStore, incoming: BackupSettings) -> None:
    settings = store.get_settings()
    settings.ai_enabled = incoming.ai_enabled
    settings.auto_lock_minutes = incoming.auto_lock_minutes
    settings.insights_enabled = incoming.insights_enabled
    if incoming.remember_ai_key is not None:
        settings.remember_ai_key = incoming.remember_ai_key
    store.save_settings(settings)


def import_backup(
    store: RecordStore,
    document,
    mode: Union[ImportMode, str] = ImportMode.MERGE,
    session: Optional[SessionManager] = None,
) -> ImportReport:
    """Write a backup into ``store``.

    ``document`` may be a BackupDocument, a decoded dict or JSON text; it is
    fully validated before the first write. All writes share one transaction.

    merge:   records whose id already exists in the collection are skipped.
    replace: entries and memory are emptied first, then every record is written.

    Settings are reduced to the whitelist in both modes.
    """
    mode = ImportMode(mode)
    if isinstance(document, (str, bytes)):
        document = parse_backup_json(document)
    else:
        document = validate_backup(document)
    _require_unlocked(session)

    report = ImportReport(mode=mode)
    with store.transaction():
        if mode is ImportMode.REPLACE:
            store.entries.delete_all()
            store.memory.delete_all()

        for model, records, counts in (
            (store.entries, document.entry_records(), report.entries),
            (store.memory, document.memory_records(), report.memory),
        ):
            for record in records:
                if mode is ImportMode.REPLACE:
                    model.put(record)
                    counts.imported += 1
                elif model.insert_if_absent(record):
                    counts.imported += 1
                else:
                    counts.skipped += 1

        _apply_settings(store, document.settings)
        report.settings_applied = True

    if session is not None:
        session.auto_lock_minutes = document.settings.auto_lock_minutes

    logger.info(
        "imported backup (%s): entries %d new / %d skipped, memory %d new / %d skipped",
        mode.value,
        report.entries.imported,
        report.entries.skipped,
        report.memory.imported,
        report.memory.skipped,
    )
    return report
