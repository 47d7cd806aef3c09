from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# Recreated on demand when database_url changes (tests swap it via config.override)
_DB_URL: str | None = None
engine: Engine | None = None
SessionLocal: sessionmaker | None = None


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {"connect_timeout": get_settings().db_connect_timeout}


def _init_engine(url: str) -> None:
    global engine, SessionLocal, _DB_URL
    engine = create_engine(url, connect_args=_connect_args(url), pool_pre_ping=True)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    _DB_URL = url


def get_engine() -> Engine:
    url = get_settings().database_url
    if _DB_URL != url:
        if engine is not None:
            engine.dispose()
        _init_engine(url)
    return engine


def open_session() -> Session:
    get_engine()
    return SessionLocal()


def get_db():
    db = open_session()
    try:
        yield db
    finally:
        db.close()


def ensure_tables(bind: Engine | None = None) -> None:
    # Register the models on Base before create_all
    from . import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=bind or get_engine())
    except SQLAlchemyError as exc:
        logger.error(f"Could not create tables: {exc}")
        raise
