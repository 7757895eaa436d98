# backend/eyesentry/db.py
import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool

from .config import DATABASE_URL

log = logging.getLogger("uvicorn.error")

_engine_kwargs = {}
if DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
    # in-memory SQLite must share one connection or every session sees an empty DB
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        _engine_kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, pool_pre_ping=True, **_engine_kwargs)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def execute_sql(db: Session, sql: str, params: Optional[dict] = None):
    """
    Run a raw SQL statement inside the session transaction and commit.
    Returns the fetched rows as mappings, or the affected row count.
    Rolls back and re-raises on failure so callers never see half-applied SQL.
    """
    try:
        result = db.execute(text(sql), params or {})
        out = result.mappings().all() if result.returns_rows else result.rowcount
        db.commit()
        return out
    except SQLAlchemyError as e:
        db.rollback()
        log.error("execute_sql failed: %s", e)
        raise
