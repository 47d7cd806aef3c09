from __future__ import annotations

import datetime as dt
import logging
import os
from contextlib import asynccontextmanager

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .db import ensure_tables, get_engine
from .local_s3 import LocalS3Error
from .middleware import HotlinkRewriteMiddleware
from .routers.access import api_router as access_api_router, page_router as access_page_router
from .routers.smart_route import root_router as smart_route_root_router, router as smart_route_router
from .s3 import object_storage_available

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_tables()
    logger.info(f"{get_settings().app_name} started ({get_settings().environment})")
    yield


app = FastAPI(title="duk.tw smart router", lifespan=lifespan)
app.add_middleware(HotlinkRewriteMiddleware)

app.include_router(smart_route_router)
app.include_router(access_api_router)
app.include_router(access_page_router)


@app.get("/ping")
def ping():
    return {"status": "ok"}


@app.get("/version")
def version():
    """Return build/version information for the server."""
    return {
        "version": os.getenv("GIT_COMMIT", os.getenv("COMMIT", "unknown")),
        "build": os.getenv("BUILD_DATE", "unknown"),
    }


@app.get("/healthz")
def healthz():
    """Run simple checks for the database and object storage."""
    db_status = "skipped"
    s3_status = "skipped"
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError as e:
        db_status = f"error: {type(e).__name__}"
    try:
        if get_settings().s3_enabled:
            s3_status = "ok" if object_storage_available() else "unconfigured"
    except (BotoCoreError, ClientError, LocalS3Error, ValueError) as e:
        s3_status = f"error: {type(e).__name__}"
    server_time = int(dt.datetime.utcnow().timestamp() * 1_000_000)
    ok = db_status == "ok" and s3_status in ("ok", "skipped", "unconfigured")
    return {
        "status": "ok" if ok else "error",
        "ok": ok,
        "db": db_status,
        "s3": s3_status,
        "serverTime": server_time,
    }


# Catch-all /<hash>; must stay the last route registered
app.include_router(smart_route_root_router)
