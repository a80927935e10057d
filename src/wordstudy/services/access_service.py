"""Free-tier access gating: daily review quota and timed group unlocks."""
import logging
import sys
from datetime import datetime, timedelta
from typing import Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordstudy import monitoring
from wordstudy.config import settings
from wordstudy.exceptions import PersistenceError
from wordstudy.models.base import transaction
from wordstudy.models.models import DailyReviewCount, UnitUnlock
from wordstudy.services.clock_service import ClockGuard

logger = logging.getLogger(__name__)

UNLIMITED_REVIEWS = sys.maxsize


def review_date(now: datetime) -> str:
    """Calendar date (local time) used as the daily counter key."""
    return now.astimezone().date().isoformat()


class AccessGate:
    """Decides whether the user may study right now.

    All time comparisons use the clock guard's trusted now. Reads that fail
    are treated as "cannot verify" and deny access.
    """

    def __init__(
        self,
        db: Session,
        clock: ClockGuard,
        daily_limit: Optional[int] = None,
        unlock_duration: Optional[timedelta] = None,
    ):
        """Initialize the gate with a database session and a clock guard."""
        self.db = db
        self.clock = clock
        self.daily_limit = settings.study.daily_review_limit if daily_limit is None else daily_limit
        self.unlock_duration = unlock_duration or timedelta(hours=settings.study.unlock_duration_hours)

    # Daily review limit

    def _counter_for(self, today: str) -> DailyReviewCount:
        """Load today's counter row for update, creating it at zero on a new day."""
        counter = (
            self.db.query(DailyReviewCount)
            .filter(DailyReviewCount.review_date == today)
            .with_for_update()
            .first()
        )
        if counter is None:
            logger.debug(f"New review day {today}, counter reset")
            counter = DailyReviewCount(review_date=today, count=0)
            self.db.add(counter)
            self.db.flush()
        return counter

    def get_today_review_count(self) -> int:
        """Get today's review count, resetting the counter on a new day."""
        today = review_date(self.clock.trusted_now())
        try:
            with transaction(self.db):
                return self._counter_for(today).count
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="review_count_read").inc()
            raise PersistenceError("review count read", e) from e

    def can_review_more(self, is_premium: bool) -> bool:
        """Check if the user can review more words today."""
        if is_premium:
            return True
        try:
            count = self.get_today_review_count()
        except PersistenceError as e:
            logger.error(f"Cannot verify daily review count, denying: {e}")
            return False
        return count < self.daily_limit

    def remaining_reviews(self, is_premium: bool) -> int:
        """Get remaining reviews for today."""
        if is_premium:
            return UNLIMITED_REVIEWS
        try:
            count = self.get_today_review_count()
        except PersistenceError as e:
            logger.error(f"Cannot verify daily review count: {e}")
            return 0
        return max(0, self.daily_limit - count)

    def increment_review_count(self) -> int:
        """Count one credited review for today and return the new total."""
        today = review_date(self.clock.trusted_now())
        try:
            with transaction(self.db):
                counter = self._counter_for(today)
                counter.count += 1
                count = counter.count
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="review_count_write").inc()
            raise PersistenceError("review count increment", e) from e
        logger.debug(f"Review count for {today} is now {count}")
        return count

    # Unit unlock

    def is_unlocked(self, group_id: int, is_premium: bool, is_top_level: bool) -> bool:
        """Check if a group is accessible."""
        if is_premium or is_top_level:
            return True
        now = self.clock.trusted_now()
        try:
            unlock = self.db.query(UnitUnlock).filter(UnitUnlock.group_id == group_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Cannot verify unlock of group {group_id}, denying: {e}")
            monitoring.db_errors.labels(operation="unlock_read").inc()
            self.db.rollback()
            return False
        return unlock is not None and unlock.unlock_until > now

    def unlock(self, group_id: int) -> datetime:
        """Unlock a group for the configured duration.

        Only call this once the rewarded interaction has been confirmed.
        """
        unlock_until = self.clock.trusted_now() + self.unlock_duration
        try:
            with transaction(self.db):
                unlock = (
                    self.db.query(UnitUnlock)
                    .filter(UnitUnlock.group_id == group_id)
                    .with_for_update()
                    .first()
                )
                if unlock is None:
                    self.db.add(UnitUnlock(group_id=group_id, unlock_until=unlock_until))
                else:
                    unlock.unlock_until = unlock_until
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="unlock_write").inc()
            raise PersistenceError("group unlock", e) from e
        monitoring.unit_unlocks.inc()
        logger.info(f"Group {group_id} unlocked until {unlock_until.isoformat()}")
        return unlock_until

    def get_remaining_unlock_time(self, group_id: int) -> timedelta:
        """Get the time left on a group's unlock, zero when locked."""
        now = self.clock.trusted_now()
        try:
            unlock = self.db.query(UnitUnlock).filter(UnitUnlock.group_id == group_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Cannot read unlock of group {group_id}: {e}")
            self.db.rollback()
            return timedelta(0)
        if unlock is None or unlock.unlock_until <= now:
            return timedelta(0)
        return unlock.unlock_until - now

    def get_unlocked_group_ids(self) -> Set[int]:
        """Get the ids of all groups with an unexpired unlock."""
        now = self.clock.trusted_now()
        try:
            unlocks = self.db.query(UnitUnlock).filter(UnitUnlock.unlock_until > now).all()
        except SQLAlchemyError as e:
            logger.error(f"Cannot read unlocks: {e}")
            self.db.rollback()
            return set()
        return {unlock.group_id for unlock in unlocks}
