from __future__ import annotations
from typing import Generator
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session

from app.core import config


def make_engine(url: str, *, echo: bool = False):
    connect_args = {}
    if url.startswith("sqlite"):
        # Sessions are used from worker threads (FastAPI sync endpoints)
        connect_args["check_same_thread"] = False
    eng = create_engine(
        url,
        future=True,
        pool_pre_ping=True,
        echo=echo,
        connect_args=connect_args,
    )
    if url.startswith("sqlite"):
        # RESTRICT foreign keys guard BOM and log references
        @event.listens_for(eng, "connect")
        def _fk_on(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()
    return eng


engine = make_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_session_factory() -> sessionmaker:
    """Dependency for services that open their own unit of work."""
    return SessionLocal
