"""
JSON-level encryption helpers and per-record decryption results.

The byte-level primitives live in :mod:`quietjournal.security.crypto`; this
module adds the string-safe envelope (base64 ciphertext + base64 nonce) used
by stored records, and the result types bulk readers use so one bad record
never aborts a scan.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

from quietjournal.core.codec import b64_from_bytes, bytes_from_b64
from quietjournal.core.exceptions import DecryptionFailedError
from quietjournal.core.models import EncryptedRecord

from .crypto import SessionKey, decrypt, encrypt

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class EncryptedPayload:
    """Ciphertext and nonce, both base64."""

    ciphertext_b64: str
    iv_b64: str

    def to_dict(self) -> dict:
        return {"ciphertextB64": self.ciphertext_b64, "ivB64": self.iv_b64}


def encrypt_json(key: SessionKey, value: Any) -> EncryptedPayload:
    """
    Serialize ``value`` as compact UTF-8 JSON and encrypt it.

    Objects exposing ``to_dict()`` (the core models) are serialized through it.
    """
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    raw = json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    ciphertext, nonce = encrypt(key, raw)
    return EncryptedPayload(ciphertext_b64=b64_from_bytes(ciphertext), iv_b64=b64_from_bytes(nonce))


def decrypt_json(key: SessionKey, ciphertext_b64: str, iv_b64: str) -> Any:
    """
    Decrypt then parse.

    Encoding, authentication and parse failures all surface as
    :class:`DecryptionFailedError`; a wrong key usually looks like all three.
    """
    try:
        ciphertext = bytes_from_b64(ciphertext_b64)
        nonce = bytes_from_b64(iv_b64)
    except ValueError as e:
        raise DecryptionFailedError("decryption failed") from e

    raw = decrypt(key, ciphertext, nonce)
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecryptionFailedError("decryption failed") from e


def decrypt_record(key: SessionKey, record: EncryptedRecord, parse: Optional[Callable[[Any], T]] = None):
    """
    Decrypt one record, optionally converting the JSON with ``parse``.

    A payload that decrypts but does not fit ``parse`` is reported the same
    way as one that does not decrypt.
    """
    value = decrypt_json(key, record.ciphertext_b64, record.iv_b64)
    if parse is None:
        return value
    try:
        return parse(value)
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise DecryptionFailedError("decryption failed") from e


@dataclass(frozen=True)
class DecryptResult(Generic[T]):
    """Outcome of decrypting a single record: either ``value`` or ``error``."""

    record: EncryptedRecord
    value: Optional[T] = None
    error: Optional[DecryptionFailedError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BulkDecryptResult(Generic[T]):
    """Successes in input order plus the number of records that failed."""

    items: List[DecryptResult[T]] = field(default_factory=list)
    skipped: int = 0

    @property
    def values(self) -> List[T]:
        return [r.value for r in self.items]

    @property
    def records(self) -> List[EncryptedRecord]:
        return [r.record for r in self.items]

    def __len__(self) -> int:
        return len(self.items)


def try_decrypt_record(
    key: SessionKey,
    record: EncryptedRecord,
    parse: Optional[Callable[[Any], T]] = None,
) -> DecryptResult[T]:
    """Like :func:`decrypt_record` but returns the failure instead of raising it."""
    try:
        return DecryptResult(record=record, value=decrypt_record(key, record, parse))
    except DecryptionFailedError as e:
        return DecryptResult(record=record, error=e)


def decrypt_all(
    key: SessionKey,
    records: Iterable[EncryptedRecord],
    parse: Optional[Callable[[Any], T]] = None,
) -> BulkDecryptResult[T]:
    """
    Sequentially decrypt ``records``, keeping order and skipping failures.

    Records from another passphrase epoch and corrupted records are both
    counted in ``skipped``; nothing else about them is reported.
    """
    result: BulkDecryptResult[T] = BulkDecryptResult()
    for record in records:
        outcome = try_decrypt_record(key, record, parse)
        if outcome.ok:
            result.items.append(outcome)
        else:
            result.skipped += 1
    if result.skipped:
        logger.info("skipped %d undecryptable record(s)", result.skipped)
    return result
