"""Test configuration."""
import os
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Generator, List

import pytest
from dotenv import load_dotenv
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Load test environment variables
test_env_path = Path(__file__).resolve().parents[3] / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import Session  # noqa: E402

from wordstudy.config import ensure_directories  # noqa: E402
from wordstudy.models.base import create_session_factory  # noqa: E402
from wordstudy.models.models import Word, WordGroup  # noqa: E402


class FakeClock:
    """Wall clock under test control."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    ensure_directories()
    yield


@pytest.fixture
def fake() -> Faker:
    """Create a seeded Faker instance."""
    Faker.seed(1234)
    return Faker()


@pytest.fixture
def session_factory():
    """Create a session factory bound to a fresh in-memory database."""
    return create_session_factory("sqlite://")


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable wall clock."""
    return FakeClock(datetime(2024, 3, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def top_group(db: Session) -> WordGroup:
    """Create a top-level group, always accessible."""
    group = WordGroup(name="Level 1", order_index=0)
    db.add(group)
    db.commit()
    return group


@pytest.fixture
def unit_group(db: Session, top_group: WordGroup) -> WordGroup:
    """Create a nested group that the free tier must unlock."""
    group = WordGroup(name="Unit 1", order_index=1, parent_id=top_group.id)
    db.add(group)
    db.commit()
    return group


@pytest.fixture
def make_words(db: Session, fake: Faker):
    """Create a factory adding words with distinct texts to a group."""
    def _make_words(group: WordGroup, count: int) -> List[Word]:
        fronts = fake.words(nb=count, unique=True)
        words = [
            Word(group_id=group.id, front=f"{front}-{group.id}-{i}", back=f"{front}-{group.id}-{i}-translated")
            for i, front in enumerate(fronts)
        ]
        db.add_all(words)
        db.commit()
        return words

    return _make_words
