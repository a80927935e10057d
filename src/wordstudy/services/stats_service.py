"""Study statistics derived from sessions and records."""
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from wordstudy.models.models import Outcome, StudyRecord, UserStats

logger = logging.getLogger(__name__)


class StatsService:
    """Service for daily study statistics and accuracy."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def add_studied_words(self, today: str, words_studied: int) -> UserStats:
        """Add studied words to today's row, extending the streak on a new day.

        Stages changes only; the caller commits.
        """
        stats = self.db.query(UserStats).filter(UserStats.stats_date == today).first()
        if stats is not None:
            stats.studied_count += words_studied
            return stats

        yesterday = (date.fromisoformat(today) - timedelta(days=1)).isoformat()
        previous = self.db.query(UserStats).filter(UserStats.stats_date == yesterday).first()
        streak = previous.streak + 1 if previous is not None and previous.studied_count > 0 else 1
        stats = UserStats(stats_date=today, studied_count=words_studied, streak=streak)
        self.db.add(stats)
        logger.debug(f"Daily stats for {today} started with streak {streak}")
        return stats

    def get_stats(self, stats_date: str) -> Optional[UserStats]:
        """Get the stats row of a date."""
        return self.db.query(UserStats).filter(UserStats.stats_date == stats_date).first()

    def get_current_streak(self) -> int:
        """Get the streak of the most recent study day."""
        latest = self.db.query(UserStats).order_by(UserStats.stats_date.desc()).first()
        return latest.streak if latest else 0

    def get_max_streak(self) -> int:
        """Get the longest streak ever reached."""
        return self.db.query(func.max(UserStats.streak)).scalar() or 0

    def get_session_accuracy(self, session_id: int) -> float:
        """Share of a session's evaluations answered KNOWN, in percent."""
        return self._accuracy(StudyRecord.session_id == session_id)

    def get_word_accuracy(self, word_id: int) -> float:
        """Share of a word's evaluations answered KNOWN, in percent."""
        return self._accuracy(StudyRecord.word_id == word_id)

    def _accuracy(self, criterion) -> float:
        total = self.db.query(func.count(StudyRecord.id)).filter(criterion).scalar() or 0
        if total == 0:
            return 0.0
        known = (
            self.db.query(func.count(StudyRecord.id))
            .filter(criterion, StudyRecord.outcome == Outcome.KNOWN)
            .scalar()
            or 0
        )
        return known * 100.0 / total
