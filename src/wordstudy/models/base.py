"""Base model configuration."""
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Iterator

from sqlalchemy import Column, DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from wordstudy.config import settings


def _connect_args(url: str) -> dict:
    # Detached evaluation writes run on executor threads
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for the given database URL."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_engine(
            url, echo=echo, connect_args=_connect_args(url), poolclass=StaticPool
        )
    return create_engine(url, echo=echo, connect_args=_connect_args(url))


# Create SQLAlchemy engine
engine = create_db_engine(settings.database.url, echo=settings.database.echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create declarative base class
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """DateTime column that always hands back timezone-aware UTC values.

    SQLite stores datetimes without an offset, so values are normalized to UTC
    on the way in and have the UTC tzinfo re-attached on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class TimestampMixin:
    """Mixin to add timestamp columns to models."""
    created_at = Column(UTCDateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(
        UTCDateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


def create_session_factory(url: str, echo: bool = False) -> sessionmaker:
    """Create a session factory bound to its own engine, with tables created."""
    from wordstudy.models import models  # noqa: F401

    own_engine = create_db_engine(url, echo=echo)
    Base.metadata.create_all(bind=own_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=own_engine)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a block of work as one all-or-nothing unit.

    Commits when the block finishes and rolls back if it raises.
    """
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise


def init_db() -> None:
    """Initialize database."""
    # Register models on the metadata before creating tables
    from wordstudy.models import models  # noqa: F401

    Base.metadata.create_all(bind=engine)  # Create tables if they don't exist
