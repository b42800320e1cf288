""" String-safe conversions used for persistence. """

import base64
import binascii
import uuid
from datetime import datetime, timezone


def b64_from_bytes(data: bytes) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def bytes_from_b64(text: str) -> bytes:
    # strict decoding; stray characters are an error, not silently dropped
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, TypeError) as e:
        raise ValueError(f"invalid base64 data: {e}") from e


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """
    Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Fixed width, so string order matches chronological order.
    """
    return to_iso(datetime.now(timezone.utc))


def to_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
