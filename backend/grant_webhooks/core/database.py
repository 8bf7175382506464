"""Database engine and session factory for the delivery store."""

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from grant_webhooks.core.config import settings


def _engine_options(dsn: str) -> dict[str, Any]:
    if dsn.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(
    settings.APP_DATABASE_DSN,
    echo=settings.DEBUG,
    **_engine_options(settings.APP_DATABASE_DSN),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the webhook tables if they do not exist yet."""
    import grant_webhooks.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
