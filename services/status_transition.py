# services/status_transition.py
"""
The single place that decides what a status change does to a complaint.

`apply_transition` is pure: given the current document (or ``None`` on
creation) it returns the fields to ``$set`` and the history entry to
``$push``. Creation, generic updates and the status endpoint all build
their writes from it via `to_update_document`.

`change_status` persists a transition with one conditional
``find_one_and_update`` keyed on the document revision (``rev``). A writer
that lost a race re-reads and recomputes, so two concurrent closes can never
both book a ``closed_at``.
"""
import os
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pymongo import ReturnDocument

from Models.complaints_models import (
    COMPLAINTS_COLLECTION,
    STATUS_OPEN, STATUS_CLOSED, STATUS_CANCELLED,
    validate_status,
)
from utils.date_utils import utcnow, coerce_datetime, duration_ms
from utils.errors import InvalidArgument, NotFound, BusinessRuleViolation, Conflict, storage_guard
from utils.mongo_helpers import to_object_id

load_dotenv()

logger = logging.getLogger(__name__)

TRANSITION_MAX_RETRIES = int(os.getenv("TRANSITION_MAX_RETRIES", "3"))
REOPEN_RESETS_CLOCK = os.getenv("COMPLAINT_REOPEN_RESETS_CLOCK", "false").lower() == "true"

# States a reopen counts as a fresh start from, when the clock is reset on reopen.
_RESET_FROM = (STATUS_CLOSED, STATUS_CANCELLED)


@dataclass(frozen=True)
class Transition:
    fields: Dict[str, Any] = field(default_factory=dict)
    history_entry: Dict[str, Any] = field(default_factory=dict)
    status_changed: bool = False


def apply_transition(
        current: Optional[Dict[str, Any]],
        new_status: str,
        *,
        actor_id: Optional[str] = None,
        note: str = "",
        now: Optional[datetime] = None,
        at: Optional[datetime] = None,
        reopen_resets_clock: Optional[bool] = None,
) -> Transition:
    """
    Compute the effect of moving `current` to `new_status`.

    `current` is the stored document; ``None`` or a document whose status is
    ``None`` means the complaint is being created. `at` backdates the event
    (administrative corrections); it defaults to `now`.

    Raises InvalidArgument for an unknown status and BusinessRuleViolation
    when the resulting time to close would be negative.
    """
    new_status = validate_status(new_status)
    now = now or utcnow()
    try:
        event_at = coerce_datetime(at) or now
    except ValueError as e:
        raise InvalidArgument(str(e))
    if reopen_resets_clock is None:
        reopen_resets_clock = REOPEN_RESETS_CLOCK

    current = current or {}
    previous = current.get("status")
    entry = {"status": new_status, "at": event_at, "by": actor_id, "note": note or ""}

    if previous == new_status:
        # re-affirmation: audit only, timing untouched
        return Transition(fields={}, history_entry=entry, status_changed=False)

    opened_at = current.get("opened_at")
    fields: Dict[str, Any] = {"status": new_status}

    if new_status == STATUS_OPEN:
        if opened_at is None or (reopen_resets_clock and previous in _RESET_FROM):
            opened_at = event_at
        fields.update(opened_at=opened_at, closed_at=None, time_to_close_ms=None)

    elif new_status == STATUS_CLOSED:
        if opened_at is None:
            opened_at = current.get("created_at") or event_at
        elapsed = duration_ms(opened_at, event_at)
        if elapsed < 0:
            raise BusinessRuleViolation(
                f"closed_at {event_at.isoformat()} is earlier than opened_at {opened_at.isoformat()}"
            )
        fields.update(opened_at=opened_at, closed_at=event_at, time_to_close_ms=elapsed)

    else:
        # cancelled / pending_parts: closure timing only survives while closed
        fields.update(closed_at=None, time_to_close_ms=None)

    return Transition(fields=fields, history_entry=entry, status_changed=True)


def to_update_document(transition: Optional[Transition], extra_set: Optional[Dict[str, Any]] = None,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    """Mongo update combining plain field changes with a transition; always bumps `rev`."""
    set_fields = dict(extra_set or {})
    update: Dict[str, Any] = {"$inc": {"rev": 1}}
    if transition is not None:
        set_fields.update(transition.fields)
        update["$push"] = {"status_history": transition.history_entry}
    set_fields["updated_at"] = now or utcnow()
    update["$set"] = set_fields
    return update


def revision_filter(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Match `doc` only if nobody has written it since it was read."""
    if "rev" in doc:
        return {"_id": doc["_id"], "rev": doc["rev"]}
    return {"_id": doc["_id"], "rev": {"$exists": False}}


def _actor_id(actor) -> Optional[str]:
    if actor is None:
        return None
    return getattr(actor, "id", None) or str(actor)


def change_status(db, complaint_id, new_status: str, actor=None, note: str = "",
                  at: Optional[datetime] = None) -> Dict[str, Any]:
    """Apply a status change atomically and return the updated complaint document."""
    oid = to_object_id(complaint_id, "complaint id")
    validate_status(new_status)
    coll = db[COMPLAINTS_COLLECTION]
    key = str(oid)

    for attempt in range(1, TRANSITION_MAX_RETRIES + 1):
        with storage_guard("change_status.read", key):
            current = coll.find_one({"_id": oid})
        if current is None:
            raise NotFound(f"Complaint {key} not found")

        now = utcnow()
        transition = apply_transition(current, new_status, actor_id=_actor_id(actor), note=note, now=now, at=at)
        with storage_guard("change_status.write", key):
            updated = coll.find_one_and_update(
                revision_filter(current),
                to_update_document(transition, now=now),
                return_document=ReturnDocument.AFTER,
            )
        if updated is not None:
            if transition.status_changed:
                logger.info(f"[change_status] {key}: {current.get('status')} -> {new_status}")
            else:
                logger.info(f"[change_status] {key}: {new_status} re-affirmed, timing unchanged")
            return updated

        logger.warning(f"[change_status] {key}: concurrent write detected (attempt {attempt})")

    raise Conflict(f"Complaint {key} kept changing; retry the status change",
                   operation="change_status", key=key)
