from __future__ import annotations
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from insightpulse.config import get_settings


class Base(DeclarativeBase):
    pass


def _dsn() -> str:
    return get_settings().database_url


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # worker threads share the engine
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(_dsn(), **_engine_kwargs(_dsn()))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def override_engine(e):  # test helper
    global engine, SessionLocal
    engine = e
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session_factory() -> sessionmaker:
    """Return the current factory (resolved late so override_engine takes effect)."""
    return SessionLocal


def healthcheck(session_factory: sessionmaker | None = None) -> bool:
    factory = session_factory or SessionLocal
    with factory() as s:
        s.execute(text("SELECT 1"))
        return True
