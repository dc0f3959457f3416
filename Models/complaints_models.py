# Models/complaints_models.py
"""
Mongo document layout for complaints and their satellite collections.

A complaint document::

    {
      _id, complaint_no, customer_name, phone, phone2, address, pin_code,
      service_id, technician_id, problem_description, remarks, complaint_type,
      status, opened_at, closed_at, time_to_close_ms,
      status_history: [{status, at, by, note}],
      technician_price_charged, service_base_price_charged,
      created_by, scheduled_at, group_id, created_at, updated_at, rev
    }

`missing_parts` and `complaint_media` rows point back with `complaint_id`.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from utils.errors import InvalidArgument

COMPLAINTS_COLLECTION = "complaints"
MISSING_PARTS_COLLECTION = "missing_parts"
COMPLAINT_MEDIA_COLLECTION = "complaint_media"
SERVICES_COLLECTION = "services"
TECHNICIANS_COLLECTION = "technicians"
COUNTERS_COLLECTION = "counters"

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"
STATUS_CANCELLED = "cancelled"
STATUS_PENDING_PARTS = "pending_parts"
STATUSES = (STATUS_OPEN, STATUS_CLOSED, STATUS_CANCELLED, STATUS_PENDING_PARTS)

COMPLAINT_TYPES = ("in_warranty", "out_of_warranty")

MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"
MEDIA_OTHER = "other"
MEDIA_TYPES = (MEDIA_IMAGE, MEDIA_VIDEO, MEDIA_OTHER)

REQUIRED_TEXT_FIELDS = ("customer_name", "phone", "address")
PRICE_FIELDS = ("technician_price_charged", "service_base_price_charged")

# Fields a generic update may touch; everything else (timing, history, number) is derived.
UPDATABLE_FIELDS = frozenset({
    "customer_name", "phone", "phone2", "pin_code", "address",
    "service_id", "problem_description", "technician_id", "remarks",
    "status", "missing_parts", "complaint_media",
    "technician_price_charged", "service_base_price_charged",
    "complaint_type", "scheduled_at",
})


def validate_status(value: Any) -> str:
    if value not in STATUSES:
        raise InvalidArgument(f"Invalid status {value!r}; expected one of {list(STATUSES)}")
    return value


def validate_complaint_type(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if value not in COMPLAINT_TYPES:
        raise InvalidArgument(f"Invalid complaint_type {value!r}; expected one of {list(COMPLAINT_TYPES)}")
    return value


def new_complaint_document(fields: Dict[str, Any], *, now: datetime, created_by: Optional[str] = None) -> Dict[str, Any]:
    """Blank complaint with every persisted field present; timing is filled by the transition engine."""
    doc = {
        "complaint_no": "",
        "customer_name": "",
        "phone": "",
        "phone2": "",
        "address": "",
        "pin_code": "",
        "service_id": None,
        "technician_id": None,
        "problem_description": "",
        "remarks": "",
        "complaint_type": None,
        "status": None,
        "opened_at": None,
        "closed_at": None,
        "time_to_close_ms": None,
        "status_history": [],
        "technician_price_charged": None,
        "service_base_price_charged": None,
        "created_by": created_by,
        "scheduled_at": None,
        "group_id": "",
        "created_at": now,
        "updated_at": now,
        "rev": 0,
    }
    for k, v in fields.items():
        if k in doc:
            doc[k] = v
    return doc
