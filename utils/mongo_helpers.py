from bson import ObjectId
from bson.decimal128 import Decimal128
from datetime import datetime

from utils.errors import InvalidArgument


def to_object_id(value, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise InvalidArgument(f"Invalid {label}: {value!r}")


def serialize_doc(obj):
    """JSON-safe copy of a Mongo document: ObjectId -> str, datetime -> ISO, `_id` -> `id`."""
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal128):
        return float(obj.to_decimal())
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            out["id" if k == "_id" else k] = serialize_doc(v)
        return out
    if isinstance(obj, list):
        return [serialize_doc(v) for v in obj]
    return obj
