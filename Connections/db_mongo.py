# Connections/db_mongo.py
import os
from dotenv import load_dotenv
from fastapi import Request
from pymongo import ASCENDING, DESCENDING

from Models.complaints_models import (
    COMPLAINTS_COLLECTION, MISSING_PARTS_COLLECTION, COMPLAINT_MEDIA_COLLECTION, COUNTERS_COLLECTION,
)
from services.sequence_allocator import COUNTER_RETENTION_DAYS
from utils.mongo_index import ensure_index

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI")
MONGO_DB = os.getenv("MONGO_DB", "repair_shop").strip()


def get_db(request: Request):
    # handle opened once in main.py lifespan
    return request.app.state.mongo_sync_db


def ensure_indexes(db, drop_if_mismatch: bool = False):
    """Build the indexes the complaint core relies on; idempotent."""
    ensure_index(db[COUNTERS_COLLECTION], [("created_at", ASCENDING)], name="counter_ttl",
                 expire_after_seconds=COUNTER_RETENTION_DAYS * 24 * 60 * 60, drop_if_mismatch=drop_if_mismatch)
    ensure_index(db[COMPLAINTS_COLLECTION], [("complaint_no", ASCENDING)], name="complaint_no_unique",
                 unique=True, drop_if_mismatch=drop_if_mismatch)
    ensure_index(db[COMPLAINTS_COLLECTION], [("status", ASCENDING), ("created_at", DESCENDING)],
                 name="status_created", drop_if_mismatch=drop_if_mismatch)
    ensure_index(db[COMPLAINTS_COLLECTION], [("technician_id", ASCENDING)], name="technician",
                 drop_if_mismatch=drop_if_mismatch)
    ensure_index(db[MISSING_PARTS_COLLECTION], [("complaint_id", ASCENDING)], name="complaint",
                 drop_if_mismatch=drop_if_mismatch)
    ensure_index(db[COMPLAINT_MEDIA_COLLECTION], [("complaint_id", ASCENDING)], name="complaint",
                 drop_if_mismatch=drop_if_mismatch)
