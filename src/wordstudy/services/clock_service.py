"""Rollback-resistant clock used for all access gating."""
import logging
from datetime import datetime, UTC
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordstudy import monitoring
from wordstudy.models.base import transaction
from wordstudy.models.models import UserSetting

logger = logging.getLogger(__name__)

KEY_TRUSTED_CLOCK_MARK = "trusted_clock_mark"


def system_clock() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(UTC)


class ClockGuard:
    """Produces a "trusted now" that never moves backwards.

    The latest time ever observed is persisted as a high-water mark. A wall
    clock behind the mark is ignored in favour of the mark. Storage failures
    are logged and the computed value is still returned.
    """

    def __init__(self, db: Session, wall_clock: Optional[Callable[[], datetime]] = None):
        """Initialize the guard with a database session and a wall-clock source."""
        self.db = db
        self.wall_clock = wall_clock or system_clock
        self._last_seen: Optional[datetime] = None

    def _read_mark(self) -> Optional[datetime]:
        try:
            setting = self.db.get(UserSetting, KEY_TRUSTED_CLOCK_MARK)
        except SQLAlchemyError as e:
            logger.error(f"Could not read trusted clock mark: {e}")
            monitoring.db_errors.labels(operation="clock_read").inc()
            self.db.rollback()
            return None
        if setting is None:
            return None
        return _parse_mark(setting.value)

    def _write_mark(self, value: datetime) -> Optional[datetime]:
        """Raise the persisted mark to ``value`` unless it is already higher.

        Returns the mark stored after the write, or None when it could not be
        written.
        """
        try:
            with transaction(self.db):
                setting = (
                    self.db.query(UserSetting)
                    .filter(UserSetting.key == KEY_TRUSTED_CLOCK_MARK)
                    .with_for_update()
                    .populate_existing()
                    .one_or_none()
                )
                if setting is None:
                    self.db.add(UserSetting(key=KEY_TRUSTED_CLOCK_MARK, value=value.isoformat()))
                    return value
                stored = _parse_mark(setting.value)
                if stored is not None and stored >= value:
                    return stored
                setting.value = value.isoformat()
                return value
        except SQLAlchemyError as e:
            logger.error(f"Could not persist trusted clock mark: {e}")
            monitoring.db_errors.labels(operation="clock_write").inc()
            return None

    def trusted_now(self) -> datetime:
        """Return max(wall clock, persisted mark) and advance the mark."""
        now = _as_utc(self.wall_clock())
        mark = self._read_mark()
        if self._last_seen is not None and (mark is None or self._last_seen > mark):
            mark = self._last_seen

        if mark is not None and mark >= now:
            if mark > now:
                logger.warning(f"Wall clock {now.isoformat()} is behind trusted mark {mark.isoformat()}")
            self._last_seen = mark
            return mark

        stored = self._write_mark(now)
        if stored is not None and stored > now:
            logger.warning(f"Wall clock {now.isoformat()} is behind trusted mark {stored.isoformat()}")
            now = stored
        self._last_seen = now
        return now


def _parse_mark(raw: str) -> Optional[datetime]:
    try:
        return _as_utc(datetime.fromisoformat(raw))
    except ValueError:
        logger.warning(f"Ignoring malformed trusted clock mark {raw!r}")
        return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
