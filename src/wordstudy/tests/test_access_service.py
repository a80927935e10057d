"""Tests for the free-tier access gate."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from wordstudy.exceptions import PersistenceError
from wordstudy.models.models import DailyReviewCount, UnitUnlock, WordGroup
from wordstudy.services.access_service import AccessGate, UNLIMITED_REVIEWS, review_date
from wordstudy.services.clock_service import ClockGuard


@pytest.fixture
def gate(db: Session, clock) -> AccessGate:
    """Create a gate with a ten-review daily limit."""
    return AccessGate(db, ClockGuard(db, clock), daily_limit=10, unlock_duration=timedelta(hours=3))


def test_counter_starts_at_zero(gate: AccessGate) -> None:
    """Test the first read of a day."""
    assert gate.get_today_review_count() == 0
    assert gate.remaining_reviews(is_premium=False) == 10
    assert gate.can_review_more(is_premium=False)


def test_limit_reached_after_ten_reviews(gate: AccessGate) -> None:
    """Test that the eleventh review is refused for free users."""
    for _ in range(10):
        gate.increment_review_count()

    assert gate.get_today_review_count() == 10
    assert not gate.can_review_more(is_premium=False)
    assert gate.remaining_reviews(is_premium=False) == 0


def test_premium_is_unlimited(gate: AccessGate) -> None:
    """Test that premium bypasses the quota."""
    for _ in range(12):
        gate.increment_review_count()

    assert gate.can_review_more(is_premium=True)
    assert gate.remaining_reviews(is_premium=True) == UNLIMITED_REVIEWS


def test_counter_resets_on_new_day(gate: AccessGate, db: Session, clock) -> None:
    """Test the daily reset."""
    for _ in range(10):
        gate.increment_review_count()

    clock.advance(days=1)
    assert gate.get_today_review_count() == 0
    assert gate.can_review_more(is_premium=False)
    assert db.query(DailyReviewCount).count() == 2


def test_clock_rollback_does_not_reset_quota(gate: AccessGate, clock) -> None:
    """Test that setting the device clock back a day keeps today's count."""
    for _ in range(10):
        gate.increment_review_count()

    clock.advance(days=-1)
    assert not gate.can_review_more(is_premium=False)


def test_counter_is_keyed_by_date(gate: AccessGate, db: Session, clock) -> None:
    """Test that the counter row uses the local calendar date."""
    gate.increment_review_count()
    counter = db.get(DailyReviewCount, review_date(clock.now))
    assert counter.count == 1


def test_read_failure_denies(gate: AccessGate, mocker) -> None:
    """Test that an unreadable counter denies free users."""
    mocker.patch.object(
        gate, "_counter_for", side_effect=OperationalError("SELECT", {}, Exception("locked"))
    )
    with pytest.raises(PersistenceError):
        gate.get_today_review_count()
    assert not gate.can_review_more(is_premium=False)
    assert gate.remaining_reviews(is_premium=False) == 0
    assert gate.can_review_more(is_premium=True)


def test_increment_failure_raises(gate: AccessGate, mocker) -> None:
    """Test that a failed increment surfaces as a persistence error."""
    mocker.patch.object(
        gate, "_counter_for", side_effect=OperationalError("UPDATE", {}, Exception("disk full"))
    )
    with pytest.raises(PersistenceError):
        gate.increment_review_count()


def test_top_level_group_is_always_unlocked(gate: AccessGate, top_group: WordGroup) -> None:
    """Test that top-level groups need no unlock."""
    assert gate.is_unlocked(top_group.id, is_premium=False, is_top_level=True)


def test_nested_group_is_locked_until_unlocked(gate: AccessGate, unit_group: WordGroup, clock) -> None:
    """Test the three-hour unlock window."""
    assert not gate.is_unlocked(unit_group.id, is_premium=False, is_top_level=False)
    assert gate.is_unlocked(unit_group.id, is_premium=True, is_top_level=False)

    unlock_until = gate.unlock(unit_group.id)
    assert unlock_until == clock.now + timedelta(hours=3)
    assert gate.is_unlocked(unit_group.id, is_premium=False, is_top_level=False)
    assert gate.get_remaining_unlock_time(unit_group.id) == timedelta(hours=3)
    assert gate.get_unlocked_group_ids() == {unit_group.id}

    clock.advance(hours=2, minutes=59)
    assert gate.is_unlocked(unit_group.id, is_premium=False, is_top_level=False)

    clock.advance(minutes=2)
    assert not gate.is_unlocked(unit_group.id, is_premium=False, is_top_level=False)
    assert gate.get_remaining_unlock_time(unit_group.id) == timedelta(0)
    assert gate.get_unlocked_group_ids() == set()


def test_unlock_again_overwrites_window(gate: AccessGate, db: Session, unit_group: WordGroup, clock) -> None:
    """Test that unlocking twice keeps a single row with the later expiry."""
    gate.unlock(unit_group.id)
    clock.advance(hours=1)
    second = gate.unlock(unit_group.id)

    unlocks = db.query(UnitUnlock).all()
    assert len(unlocks) == 1
    assert unlocks[0].unlock_until == second


def test_unlock_not_extended_by_clock_rollback(gate: AccessGate, unit_group: WordGroup, clock) -> None:
    """Test that moving the clock back cannot revive an expired unlock."""
    gate.unlock(unit_group.id)
    clock.advance(hours=4)
    assert not gate.is_unlocked(unit_group.id, is_premium=False, is_top_level=False)

    clock.advance(hours=-3)
    assert not gate.is_unlocked(unit_group.id, is_premium=False, is_top_level=False)


def test_unlock_read_failure_denies(gate: AccessGate, db: Session, unit_group: WordGroup, mocker) -> None:
    """Test that an unreadable unlock table denies access."""
    gate.unlock(unit_group.id)
    mocker.patch.object(db, "query", side_effect=OperationalError("SELECT", {}, Exception("locked")))
    assert not gate.is_unlocked(unit_group.id, is_premium=False, is_top_level=False)
