# services/catalog.py
"""Read-only lookups into the service/technician catalog owned by the catalog CRUD screens."""
from Models.complaints_models import SERVICES_COLLECTION, TECHNICIANS_COLLECTION
from utils.errors import InvalidArgument, NotFound, storage_guard
from utils.mongo_helpers import to_object_id

_SERVICE_FIELDS = {"name": 1, "base_price": 1, "technician_price": 1, "is_active": 1}
_TECHNICIAN_FIELDS = {"name": 1, "is_active": 1}


def _get_active(db, collection: str, ref_id, label: str, projection: dict) -> dict:
    oid = to_object_id(ref_id, label)
    with storage_guard(f"catalog.get_{label}", str(oid)):
        doc = db[collection].find_one({"_id": oid}, projection)
    if doc is None:
        raise NotFound(f"{label} {oid} not found")
    if doc.get("is_active") is False:
        raise InvalidArgument(f"{label} {oid} is inactive")
    return doc


def get_service(db, service_id) -> dict:
    return _get_active(db, SERVICES_COLLECTION, service_id, "service", _SERVICE_FIELDS)


def get_technician(db, technician_id) -> dict:
    return _get_active(db, TECHNICIANS_COLLECTION, technician_id, "technician", _TECHNICIAN_FIELDS)
