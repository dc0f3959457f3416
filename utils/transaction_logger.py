# utils/transaction_logger.py
from datetime import datetime
from bson import ObjectId

from utils.date_utils import utcnow

TRANSACTION_LOG_COLLECTION = "Transaction_History"


def convert_bson(obj):
    """Helper to safely convert ObjectId/Datetime for JSON storage"""
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


def log_transaction_sync(db, log: dict):
    """Write a log entry into Transaction_History (synchronous client)"""
    db[TRANSACTION_LOG_COLLECTION].insert_one(log)


def build_log(request, response_status, duration_ms: int):
    """Build log document"""
    return {
        "endpoint": request.url.path,
        "method": request.method,
        "query_params": {k: convert_bson(v) for k, v in request.query_params.items()},
        "path_params": dict(request.path_params),
        "response_status": response_status,
        "author": getattr(request.state, "actor_id", None),
        "timestamp": utcnow(),
        "duration_ms": duration_ms,
    }
