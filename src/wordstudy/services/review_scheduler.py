"""Fixed-table spaced-repetition scheduling.

Maps a word's current mastery level and the outcome of one evaluation to its
new mastery level and the earliest time it should be shown again. The
functions here are pure: callers supply ``now`` and persist the result.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from wordstudy.config import MAX_MASTERY_LEVEL, MIN_MASTERY_LEVEL, settings
from wordstudy.models.models import Outcome


@dataclass(frozen=True)
class ReviewSchedule:
    """New mastery level and next eligible review time for a word."""
    mastery_level: int
    next_review_at: datetime


def _clamp(level: int) -> int:
    return max(MIN_MASTERY_LEVEL, min(MAX_MASTERY_LEVEL, level))


def next_mastery_level(level: int, outcome: Outcome) -> int:
    """Return the mastery level after an evaluation."""
    level = _clamp(level)
    if outcome == Outcome.AGAIN:
        return max(MIN_MASTERY_LEVEL, level - 1)
    if outcome == Outcome.KNOWN:
        return min(MAX_MASTERY_LEVEL, level + 1)
    return level


def review_interval(level: int) -> timedelta:
    """Return the wait before a word at ``level`` is due again."""
    return timedelta(hours=settings.study.review_interval_hours[_clamp(level)])


def schedule_review(level: int, outcome: Outcome, now: datetime) -> ReviewSchedule:
    """Compute the new level and next review time for one evaluation."""
    new_level = next_mastery_level(level, outcome)
    return ReviewSchedule(
        mastery_level=new_level,
        next_review_at=now + review_interval(new_level),
    )
