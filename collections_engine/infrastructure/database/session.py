"""Database session management with connection pooling"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from collections_engine.config import settings


def build_engine(database_url: str) -> Engine:
    """Pooled engine for server databases; SQLite gets thread-sharing instead of a sized pool"""
    if make_url(database_url).get_backend_name() == "sqlite":
        # Request threads and the session live on different threads under FastAPI
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for request-scoped sessions (one ledger snapshot per request)"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
