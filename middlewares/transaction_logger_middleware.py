import os
import time
import logging
from fastapi import Request
from pymongo.errors import PyMongoError
from starlette.middleware.base import BaseHTTPMiddleware
from utils.transaction_logger import build_log, log_transaction_sync

logger = logging.getLogger(__name__)

TRANSACTION_LOG_ENABLED = os.getenv("TRANSACTION_LOG_ENABLED", "true").lower() == "true"


class TransactionLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)

        if not TRANSACTION_LOG_ENABLED:
            return response

        duration = int((time.time() - start) * 1000)
        log = build_log(request, response.status_code, duration)

        db = getattr(request.app.state, "mongo_sync_db", None)
        if db is None:
            return response
        try:
            # same DB initialized in main.py lifespan
            log_transaction_sync(db, log)
        except PyMongoError as e:
            logger.warning(f"[transaction_logger] could not insert log for {log['method']} {log['endpoint']}: {e}")

        return response
