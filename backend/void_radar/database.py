"""Database engine, session factory and declarative base.

The URL is read from ``DATABASE_URL`` (SQLite by default). Routes obtain a
session through ``get_db``; the pipeline CLI opens ``SessionLocal`` directly.
"""

from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./void_radar.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables registered on ``Base``."""
    from . import models  # noqa: F401  (registers mappers)

    Base.metadata.create_all(bind=engine)
