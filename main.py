# main.py
import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from pymongo import MongoClient

from Connections.db_mongo import MONGO_DB, ensure_indexes
from middlewares.transaction_logger_middleware import TransactionLoggerMiddleware
from utils.errors import ComplaintError

# ── Routers
from routes.complaints import router as complaints_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    mongo_uri = os.getenv("MONGO_URI")
    if not mongo_uri:
        raise RuntimeError("MONGO_URI is not set")

    sm_client = MongoClient(mongo_uri)
    app.state.mongo_sync = sm_client
    mdb = sm_client[MONGO_DB]

    # Verify connection early (fail fast)
    try:
        sm_client.admin.command("ping")
    except Exception as e:
        sm_client.close()
        raise RuntimeError(f"MongoDB ping failed: {e}") from e

    # 👉 expose the DB handle that the routes expect
    app.state.mongo_sync_db = mdb

    # Build indexes once, idempotently
    drop_mismatch = os.getenv("ALLOW_INDEX_DROP", "false").lower() == "true"
    ensure_indexes(mdb, drop_if_mismatch=drop_mismatch)

    try:
        yield
    finally:
        sm_client.close()


app = FastAPI(title="Repair Shop Complaints API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=os.getenv("CORS_CREDENTIALS", "false").lower() == "true",
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TransactionLoggerMiddleware)


@app.exception_handler(ComplaintError)
async def complaint_error_handler(request: Request, exc: ComplaintError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# Register Routers
app.include_router(complaints_router, prefix="/complaints", tags=["Complaints"])


@app.get("/")
async def root():
    return {"message": "Repair shop complaints API is running!"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8080, reload=True)
