# services/complaint_service.py
"""
Create, update, read and delete complaints.

Every status effect goes through `services.status_transition`; numbering
through `services.sequence_allocator`. Satellite writes follow the complaint
write, and apply-to-service runs last as a best-effort step.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from Models.complaints_models import (
    COMPLAINTS_COLLECTION,
    STATUS_OPEN, STATUS_CLOSED,
    UPDATABLE_FIELDS, REQUIRED_TEXT_FIELDS, PRICE_FIELDS,
    new_complaint_document, validate_status, validate_complaint_type,
)
from services import catalog, complaint_satellites
from services.price_policy import apply_price_to_service
from services.sequence_allocator import allocate_one, allocate_block
from services.status_transition import (
    TRANSITION_MAX_RETRIES, apply_transition, to_update_document, revision_filter, change_status,
)
from utils.date_utils import utcnow, coerce_datetime, readable_duration, parse_start_timestamp, parse_end_timestamp
from utils.errors import InvalidArgument, NotFound, BusinessRuleViolation, Conflict, storage_guard
from utils.mongo_helpers import to_object_id, serialize_doc

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("customer_name", "phone", "phone2", "address", "pin_code", "problem_description", "remarks")


# ---------- validation helpers ----------
def _coerce_price(name: str, value) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidArgument(f"{name} must be a non-negative number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be a non-negative number")
    if math.isnan(number) or math.isinf(number) or number < 0:
        raise InvalidArgument(f"{name} must be a non-negative number")
    return number


def _coerce_timestamp(name: str, value) -> Optional[datetime]:
    try:
        return coerce_datetime(value)
    except ValueError:
        raise InvalidArgument(f"{name} must be an ISO-8601 timestamp")


def _clean_text(fields: Dict[str, Any]) -> None:
    for name in _TEXT_FIELDS:
        if name in fields:
            value = fields[name]
            if value is None:
                fields[name] = ""
            elif not isinstance(value, str):
                raise InvalidArgument(f"{name} must be a string")
            else:
                fields[name] = value.strip()


def _prepare_create(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a create payload without touching storage."""
    data = dict(payload or {})
    # the original forms sent `service` / `technician` as aliases
    data["service_id"] = data.get("service_id") or data.pop("service", None)
    data["technician_id"] = data.get("technician_id") or data.pop("technician", None)

    _clean_text(data)
    for name in REQUIRED_TEXT_FIELDS:
        if not data.get(name):
            raise InvalidArgument(f"{name} is required")
    if not data.get("service_id"):
        raise InvalidArgument("service_id is required")
    if not data.get("technician_id"):
        raise InvalidArgument("technician_id is required")

    data["service_id"] = to_object_id(data["service_id"], "service_id")
    data["technician_id"] = to_object_id(data["technician_id"], "technician_id")
    data["status"] = validate_status(data.get("status") or STATUS_OPEN)
    data["complaint_type"] = validate_complaint_type(data.get("complaint_type"))
    for name in PRICE_FIELDS:
        if name in data:
            data[name] = _coerce_price(name, data[name])
    data["opened_at"] = _coerce_timestamp("opened_at", data.get("opened_at"))
    if data["opened_at"] is not None and data["status"] not in (STATUS_OPEN, STATUS_CLOSED):
        raise InvalidArgument(f"opened_at cannot be set on a complaint created as {data['status']}")
    data["scheduled_at"] = _coerce_timestamp("scheduled_at", data.get("scheduled_at"))

    complaint_no = data.get("complaint_no")
    if complaint_no is not None and not isinstance(complaint_no, str):
        raise InvalidArgument("complaint_no must be a string")
    data["complaint_no"] = (complaint_no or "").strip()

    data["missing_parts"] = complaint_satellites.normalize_parts(data.get("missing_parts"))
    data["complaint_media"] = complaint_satellites.normalize_media(data.get("complaint_media"))
    return data


def _check_references(db, data: Dict[str, Any]) -> Dict[str, Any]:
    service = catalog.get_service(db, data["service_id"])
    catalog.get_technician(db, data["technician_id"])
    return service


def assemble(complaint: Dict[str, Any], parts: List[Dict[str, Any]], media: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Compose the read view of one complaint with its satellites."""
    view = serialize_doc(complaint)
    view["time_to_close_readable"] = readable_duration(complaint.get("time_to_close_ms"))
    return {
        "complaint": view,
        "missing_parts": serialize_doc(parts),
        "media": serialize_doc(media),
    }


# ---------- create ----------
def _insert_prepared(db, data: Dict[str, Any], service: Dict[str, Any], actor, group_id: str = "") -> Dict[str, Any]:
    complaint_no = data["complaint_no"] or allocate_one(db)
    now = utcnow()
    actor_id = actor.id if actor is not None else None

    # price snapshot so later catalog edits don't rewrite this complaint's billing
    if data.get("service_base_price_charged") is None:
        data["service_base_price_charged"] = service.get("base_price")
    if data.get("technician_price_charged") is None:
        data["technician_price_charged"] = service.get("technician_price")

    doc = new_complaint_document(
        {k: v for k, v in data.items() if k not in ("status", "opened_at", "missing_parts", "complaint_media")},
        now=now,
        created_by=actor_id,
    )
    doc["complaint_no"] = complaint_no
    doc["group_id"] = group_id

    seed = {"status": None, "opened_at": data.get("opened_at"), "created_at": now}
    transition = apply_transition(seed, data["status"], actor_id=actor_id, note=data.get("note") or "", now=now)
    doc.update(transition.fields)
    doc["status_history"] = [transition.history_entry]

    with storage_guard("create_complaint", complaint_no):
        result = db[COMPLAINTS_COLLECTION].insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info(f"[create_complaint] {complaint_no} ({doc['_id']}) status={doc['status']}")

    parts, media = complaint_satellites.insert_all(db, doc["_id"], data["missing_parts"], data["complaint_media"])
    return assemble(doc, parts, media)


def create_complaint(db, payload: Dict[str, Any], actor=None) -> Dict[str, Any]:
    data = _prepare_create(payload)
    service = _check_references(db, data)
    return _insert_prepared(db, data, service, actor)


def create_batch(db, payloads: List[Dict[str, Any]], actor=None) -> Dict[str, Any]:
    """
    Register several complaints for one visit (one per service).

    All payloads are validated and their references checked before anything
    is written; numbers for the whole batch come from one block allocation.
    """
    if not isinstance(payloads, list) or not payloads:
        raise InvalidArgument("No complaints provided")

    prepared = [_prepare_create(p) for p in payloads]
    services = [_check_references(db, data) for data in prepared]

    missing = [data for data in prepared if not data["complaint_no"]]
    if missing:
        for data, number in zip(missing, allocate_block(db, len(missing))):
            data["complaint_no"] = number

    group_id = str(ObjectId())
    created = [_insert_prepared(db, data, service, actor, group_id=group_id)
               for data, service in zip(prepared, services)]
    return {"group_id": group_id, "created": created}


# ---------- read ----------
def _load(db, oid: ObjectId) -> Dict[str, Any]:
    with storage_guard("get_complaint", str(oid)):
        doc = db[COMPLAINTS_COLLECTION].find_one({"_id": oid})
    if doc is None:
        raise NotFound(f"Complaint {oid} not found")
    return doc


def get_complaint(db, complaint_id) -> Dict[str, Any]:
    oid = to_object_id(complaint_id, "complaint id")
    doc = _load(db, oid)
    parts, media = complaint_satellites.find_for_complaint(db, oid)
    return assemble(doc, parts, media)


def list_complaints(db, status: Optional[str] = None, technician_id: Optional[str] = None,
                    start: Optional[str] = None, end: Optional[str] = None,
                    skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if status:
        query["status"] = validate_status(status)
    if technician_id:
        query["technician_id"] = to_object_id(technician_id, "technician_id")
    if start and end:
        try:
            query["created_at"] = {"$gte": parse_start_timestamp(start), "$lte": parse_end_timestamp(end)}
        except ValueError as e:
            raise InvalidArgument(str(e))
    if skip < 0 or limit < 1:
        raise InvalidArgument("skip must be >= 0 and limit >= 1")

    with storage_guard("list_complaints", str(query.get("status", "*"))):
        rows = list(
            db[COMPLAINTS_COLLECTION].find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
        )
    out = []
    for row in rows:
        view = serialize_doc(row)
        view["time_to_close_readable"] = readable_duration(row.get("time_to_close_ms"))
        out.append(view)
    return out


# ---------- update ----------
def _prepare_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in (payload or {}).items() if k in UPDATABLE_FIELDS}
    ignored = sorted(set(payload or {}) - UPDATABLE_FIELDS - {"apply_to_service", "note"})
    if ignored:
        logger.debug(f"[update_complaint] ignoring non-updatable fields {ignored}")

    _clean_text(changes)
    for name in REQUIRED_TEXT_FIELDS:
        if name in changes and not changes[name]:
            raise InvalidArgument(f"{name} cannot be empty")
    for name in PRICE_FIELDS:
        if name in changes:
            changes[name] = _coerce_price(name, changes[name])
    if "status" in changes:
        validate_status(changes["status"])
    if "complaint_type" in changes:
        changes["complaint_type"] = validate_complaint_type(changes["complaint_type"])
    if "scheduled_at" in changes:
        changes["scheduled_at"] = _coerce_timestamp("scheduled_at", changes["scheduled_at"])
    for ref in ("service_id", "technician_id"):
        if ref in changes:
            if not changes[ref]:
                raise InvalidArgument(f"{ref} cannot be cleared")
            changes[ref] = to_object_id(changes[ref], ref)
    if "missing_parts" in changes:
        changes["missing_parts"] = complaint_satellites.normalize_parts(changes["missing_parts"])
    if "complaint_media" in changes:
        changes["complaint_media"] = complaint_satellites.normalize_media(changes["complaint_media"])
    return changes


def update_complaint(db, complaint_id, payload: Dict[str, Any], actor=None) -> Dict[str, Any]:
    """
    Apply a whitelisted partial update.

    Unknown keys are ignored. `technician_price_charged` may only change while
    the stored status is ``open``. A `status` key goes through the transition
    engine. With ``apply_to_service`` set, the charged technician price is
    copied to the service afterwards; the result is reported in
    ``applied_to_service`` and never undoes the complaint update.
    """
    oid = to_object_id(complaint_id, "complaint id")
    payload = dict(payload or {})
    apply_to_service = bool(payload.get("apply_to_service"))
    note = payload.get("note") or ""
    changes = _prepare_update(payload)

    parts = changes.pop("missing_parts", None)
    media = changes.pop("complaint_media", None)
    new_status = changes.pop("status", None)
    actor_id = actor.id if actor is not None else None

    current = _load(db, oid)
    if "service_id" in changes:
        catalog.get_service(db, changes["service_id"])
    if "technician_id" in changes:
        catalog.get_technician(db, changes["technician_id"])

    coll = db[COMPLAINTS_COLLECTION]
    updated = None
    for attempt in range(1, TRANSITION_MAX_RETRIES + 1):
        if "technician_price_charged" in changes and current.get("status") != STATUS_OPEN:
            raise BusinessRuleViolation("Cannot change technician price unless complaint is open")

        now = utcnow()
        transition = None
        if new_status is not None:
            transition = apply_transition(current, new_status, actor_id=actor_id, note=note, now=now)
        with storage_guard("update_complaint", str(oid)):
            updated = coll.find_one_and_update(
                revision_filter(current),
                to_update_document(transition, changes, now=now),
                return_document=ReturnDocument.AFTER,
            )
        if updated is not None:
            break
        logger.warning(f"[update_complaint] {oid}: concurrent write detected (attempt {attempt})")
        current = _load(db, oid)
    else:
        raise Conflict(f"Complaint {oid} kept changing; retry the update", operation="update_complaint", key=str(oid))

    complaint_satellites.replace_all(db, oid, parts=parts, media=media)

    applied = None
    if apply_to_service:
        price = changes.get("technician_price_charged")
        if price is not None and "service_id" in changes:
            applied = apply_price_to_service(db, changes["service_id"], price)
        else:
            applied = False
            logger.info(f"[update_complaint] {oid}: apply_to_service needs technician_price_charged and service_id")

    saved_parts, saved_media = complaint_satellites.find_for_complaint(db, oid)
    out = assemble(updated, saved_parts, saved_media)
    out["applied_to_service"] = applied
    return out


def change_complaint_status(db, complaint_id, new_status: str, actor=None, note: str = "", at=None) -> Dict[str, Any]:
    updated = change_status(db, complaint_id, new_status, actor=actor, note=note, at=at)
    parts, media = complaint_satellites.find_for_complaint(db, updated["_id"])
    return assemble(updated, parts, media)


# ---------- delete ----------
def delete_complaint(db, complaint_id) -> None:
    oid = to_object_id(complaint_id, "complaint id")
    with storage_guard("delete_complaint", str(oid)):
        result = db[COMPLAINTS_COLLECTION].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFound(f"Complaint {oid} not found")
    complaint_satellites.delete_all(db, oid)
    logger.info(f"[delete_complaint] {oid}")
