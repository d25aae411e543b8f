"""Database engine setup.

PostgreSQL runs every session at SERIALIZABLE isolation so that racing ledger
transactions are aborted by the database and retried by
``followup.db.transaction``. SQLite serialises writers on its own.
"""

import os
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from followup.core.config import settings


def build_engine(url: str) -> Engine:
    if url.startswith("postgresql"):
        return create_engine(
            url,
            future=True,
            pool_size=5,
            max_overflow=10,
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_pre_ping=True,
            isolation_level="SERIALIZABLE",
        )
    if url.startswith("sqlite"):
        if ":memory:" not in url:
            db_path = url.split("///", 1)[-1]
            directory = os.path.dirname(db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
        return create_engine(url, future=True, connect_args={"check_same_thread": False, "timeout": 15})
    return create_engine(url, future=True)


raw_url = settings.DATABASE_URL or "sqlite:///./storage/dev.db"
engine = build_engine(raw_url)
SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
