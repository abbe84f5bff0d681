from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from reimburse_audit.core.config import settings

_url = make_url(settings.database_url)
_is_sqlite = _url.drivername.startswith("sqlite")

engine = create_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=not _is_sqlite,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def db_session() -> Generator[Session, None, None]:
    """Request-scoped session; anything left uncommitted by a failed request is rolled back."""
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
