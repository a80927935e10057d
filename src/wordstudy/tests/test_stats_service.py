"""Tests for stats service."""
from datetime import datetime, UTC

import pytest
from sqlalchemy.orm import Session

from wordstudy.models.models import Outcome, StudyRecord, StudySession, WordGroup
from wordstudy.services.stats_service import StatsService


@pytest.fixture
def stats_service(db: Session) -> StatsService:
    """Create a stats service instance."""
    return StatsService(db)


def test_add_studied_words_accumulates(stats_service: StatsService, db: Session) -> None:
    """Test adding to the same day twice."""
    stats_service.add_studied_words("2024-03-10", 5)
    db.commit()
    stats_service.add_studied_words("2024-03-10", 3)
    db.commit()

    stats = stats_service.get_stats("2024-03-10")
    assert stats.studied_count == 8
    assert stats.streak == 1


def test_streak_extends_on_consecutive_days(stats_service: StatsService, db: Session) -> None:
    """Test streak growth and reset after a gap."""
    for day in ("2024-03-10", "2024-03-11", "2024-03-12"):
        stats_service.add_studied_words(day, 4)
        db.commit()
    assert stats_service.get_current_streak() == 3

    stats_service.add_studied_words("2024-03-15", 2)
    db.commit()
    assert stats_service.get_current_streak() == 1
    assert stats_service.get_max_streak() == 3


def test_no_stats(stats_service: StatsService) -> None:
    """Test empty statistics."""
    assert stats_service.get_current_streak() == 0
    assert stats_service.get_max_streak() == 0
    assert stats_service.get_session_accuracy(1) == 0.0


def test_accuracy(stats_service: StatsService, db: Session, top_group: WordGroup, make_words) -> None:
    """Test accuracy over session and word records."""
    words = make_words(top_group, 2)
    now = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    session = StudySession(group_id=top_group.id, started_at=now, word_ids=[w.id for w in words])
    db.add(session)
    db.commit()

    for word, outcome in [
        (words[0], Outcome.AGAIN),
        (words[0], Outcome.KNOWN),
        (words[1], Outcome.KNOWN),
        (words[1], Outcome.LATER),
    ]:
        db.add(StudyRecord(session_id=session.id, word_id=word.id, outcome=outcome, reviewed_at=now))
    db.commit()

    assert stats_service.get_session_accuracy(session.id) == 50.0
    assert stats_service.get_word_accuracy(words[0].id) == 50.0
