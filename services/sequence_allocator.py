# services/sequence_allocator.py
"""
Day-scoped complaint numbers: ``{prefix}-{YYYYMMDD}-{seq}``.

One counter document per prefix and day (``_id = "{prefix}_{YYYYMMDD}"``).
Every allocation is a single ``find_one_and_update`` upsert-increment, so
concurrent callers in any number of processes never read the same ``seq``.
Counters expire through a TTL index on ``created_at``.
"""
import os
import logging
from datetime import date, datetime
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from pymongo import ReturnDocument

from Models.complaints_models import COUNTERS_COLLECTION
from utils.date_utils import utcnow, local_day, day_stamp
from utils.errors import InvalidArgument, StorageUnavailable, storage_guard

load_dotenv()

logger = logging.getLogger(__name__)

COMPLAINT_NO_PREFIX = os.getenv("COMPLAINT_NO_PREFIX", "CMP").strip()
COMPLAINT_NO_PAD = int(os.getenv("COMPLAINT_NO_PAD", "4"))
COMPLAINT_NO_UTC_OFFSET_MINUTES = int(os.getenv("COMPLAINT_NO_UTC_OFFSET_MINUTES", "330"))
COUNTER_RETENTION_DAYS = int(os.getenv("COUNTER_RETENTION_DAYS", "30"))


def counter_key(prefix: str, day: date) -> str:
    return f"{prefix}_{day_stamp(day)}"


def format_complaint_no(prefix: str, day: date, seq: int, pad_length: int) -> str:
    return f"{prefix}-{day_stamp(day)}-{str(seq).zfill(pad_length)}"


def _validate_count(count) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidArgument(f"count must be an integer, got {count!r}")
    if count <= 0:
        raise InvalidArgument(f"count must be positive, got {count}")
    return count


def _resolve(day, prefix, pad_length) -> Tuple[date, str, int]:
    if day is None:
        day = local_day(offset_minutes=COMPLAINT_NO_UTC_OFFSET_MINUTES)
    elif isinstance(day, datetime):
        day = day.date()
    elif not isinstance(day, date):
        raise InvalidArgument(f"day must be a date, got {day!r}")

    prefix = COMPLAINT_NO_PREFIX if prefix is None else prefix
    if not isinstance(prefix, str) or not prefix.strip():
        raise InvalidArgument("prefix must be a non-empty string")

    pad_length = COMPLAINT_NO_PAD if pad_length is None else pad_length
    if isinstance(pad_length, bool) or not isinstance(pad_length, int) or pad_length < 1:
        raise InvalidArgument(f"pad_length must be a positive integer, got {pad_length!r}")

    return day, prefix.strip(), pad_length


def _increment(db, key: str, count: int) -> int:
    """Atomically add `count` to the counter (creating it on first use) and return the new seq."""
    with storage_guard("allocate_complaint_no", key):
        doc = db[COUNTERS_COLLECTION].find_one_and_update(
            {"_id": key},
            {"$inc": {"seq": count}, "$setOnInsert": {"created_at": utcnow()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    if doc is None:
        raise StorageUnavailable(f"counter {key} was not returned after upsert",
                                 operation="allocate_complaint_no", key=key)
    return int(doc["seq"])


def allocate_one(db, day: Optional[date] = None, prefix: Optional[str] = None,
                 pad_length: Optional[int] = None) -> str:
    day, prefix, pad_length = _resolve(day, prefix, pad_length)
    key = counter_key(prefix, day)
    seq = _increment(db, key, 1)
    complaint_no = format_complaint_no(prefix, day, seq, pad_length)
    logger.info(f"[allocate_one] {key} -> {complaint_no}")
    return complaint_no


def allocate_block(db, count: int, day: Optional[date] = None, prefix: Optional[str] = None,
                   pad_length: Optional[int] = None) -> List[str]:
    """Reserve `count` contiguous numbers with one increment; the range is derived locally."""
    count = _validate_count(count)
    day, prefix, pad_length = _resolve(day, prefix, pad_length)
    key = counter_key(prefix, day)
    last = _increment(db, key, count)
    first = last - count + 1
    logger.info(f"[allocate_block] {key} -> seq {first}..{last}")
    return [format_complaint_no(prefix, day, seq, pad_length) for seq in range(first, last + 1)]
