# services/complaint_satellites.py
"""
Missing parts and media attached to a complaint.

Both collections are replaced wholesale on every update that carries them:
delete everything for the complaint, then insert the new set.
"""
from typing import Any, Dict, Iterable, List, Optional

from Models.complaints_models import (
    MISSING_PARTS_COLLECTION, COMPLAINT_MEDIA_COLLECTION,
    MEDIA_TYPES, MEDIA_IMAGE, MEDIA_VIDEO, MEDIA_OTHER,
)
from utils.date_utils import utcnow
from utils.errors import InvalidArgument, storage_guard


def _resolve_media_url(item: Dict[str, Any]) -> str:
    url = item.get("media_url")
    if isinstance(url, str) and url.strip():
        return url.strip()
    for nested in ("provider_response", "result"):
        res = item.get(nested)
        if isinstance(res, dict):
            candidate = res.get("secure_url") or res.get("url")
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
    candidate = item.get("secure_url") or item.get("url")
    if isinstance(candidate, str) and candidate.strip():
        return candidate.strip()
    return ""


def normalize_media(items: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    """Keep only entries with a resolvable URL; infer the media type from the URL when missing."""
    out: List[Dict[str, Any]] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        url = _resolve_media_url(item)
        if not url:
            continue
        media_type = item.get("media_type")
        if not media_type:
            media_type = MEDIA_VIDEO if ".mp4" in url.lower() else MEDIA_IMAGE
        elif media_type not in MEDIA_TYPES:
            media_type = MEDIA_OTHER
        out.append({
            "media_type": media_type,
            "media_url": url,
            "provider_response": item.get("provider_response") or item.get("result"),
        })
    return out


def normalize_parts(items: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for item in items or []:
        if not isinstance(item, dict):
            raise InvalidArgument(f"missing part must be an object, got {item!r}")
        qty = item.get("qty", 1)
        if qty is None:
            qty = 1
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
            raise InvalidArgument(f"missing part qty must be a positive integer, got {qty!r}")
        out.append({
            "brand": (item.get("brand") or "").strip(),
            "model": (item.get("model") or "").strip(),
            "part_name": (item.get("part_name") or "").strip(),
            "qty": qty,
        })
    return out


def _insert_rows(db, collection: str, complaint_id, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not rows:
        return []
    now = utcnow()
    docs = [{**row, "complaint_id": complaint_id, "created_at": now} for row in rows]
    with storage_guard(f"{collection}.insert_many", str(complaint_id)):
        db[collection].insert_many(docs)
    return docs


def insert_all(db, complaint_id, parts=None, media=None):
    """Insert already-normalized satellites for a freshly created complaint."""
    return (
        _insert_rows(db, MISSING_PARTS_COLLECTION, complaint_id, parts or []),
        _insert_rows(db, COMPLAINT_MEDIA_COLLECTION, complaint_id, media or []),
    )


def replace_all(db, complaint_id, parts=None, media=None):
    """Replace each satellite set that was supplied (``None`` leaves that collection alone)."""
    for collection, rows in ((MISSING_PARTS_COLLECTION, parts), (COMPLAINT_MEDIA_COLLECTION, media)):
        if rows is None:
            continue
        with storage_guard(f"{collection}.delete_many", str(complaint_id)):
            db[collection].delete_many({"complaint_id": complaint_id})
        _insert_rows(db, collection, complaint_id, rows)


def delete_all(db, complaint_id):
    for collection in (MISSING_PARTS_COLLECTION, COMPLAINT_MEDIA_COLLECTION):
        with storage_guard(f"{collection}.delete_many", str(complaint_id)):
            db[collection].delete_many({"complaint_id": complaint_id})


def find_for_complaint(db, complaint_id):
    with storage_guard("satellites.find", str(complaint_id)):
        parts = list(db[MISSING_PARTS_COLLECTION].find({"complaint_id": complaint_id}).sort("_id", 1))
        media = list(db[COMPLAINT_MEDIA_COLLECTION].find({"complaint_id": complaint_id}).sort("_id", 1))
    return parts, media
