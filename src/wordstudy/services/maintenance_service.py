"""Service for periodic background maintenance."""
import asyncio
import logging
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from wordstudy.config import settings
from wordstudy.exceptions import PersistenceError
from wordstudy.models.base import SessionLocal
from wordstudy.services.study_service import StudyService

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Runs housekeeping tasks in the background.

    Each sweep opens its own database session so it never shares one with
    the sessions being studied.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[int] = None,
        retry_seconds: int = 60,
    ):
        """Initialize the service with a session factory and a sweep interval."""
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.maintenance.cleanup_interval_seconds
        self.retry_seconds = retry_seconds
        self.tasks: Dict[str, asyncio.Task] = {}
        self.running = False

    async def start(self) -> None:
        """Start the maintenance service."""
        if self.running:
            return

        self.running = True
        logger.info("Starting maintenance service...")

        self.tasks["stale_session_cleanup"] = asyncio.create_task(
            self._run_stale_session_cleanup()
        )

    async def stop(self) -> None:
        """Stop the maintenance service."""
        if not self.running:
            return

        self.running = False
        logger.info("Stopping maintenance service...")

        for task in self.tasks.values():
            task.cancel()

        await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        self.tasks.clear()

    def cleanup_stale_sessions(self) -> int:
        """Remove unfinished sessions that were abandoned long ago."""
        db = self.session_factory()
        try:
            return StudyService(db).cleanup_stale_sessions()
        finally:
            db.close()

    async def _run_stale_session_cleanup(self) -> None:
        """Run the stale session sweep until stopped."""
        while self.running:
            try:
                removed = self.cleanup_stale_sessions()
                if removed:
                    logger.info(f"Maintenance sweep removed {removed} stale sessions")
                await asyncio.sleep(self.interval_seconds)

            except asyncio.CancelledError:
                break
            except PersistenceError as e:
                logger.error(f"Error in stale session cleanup: {e}")
                await asyncio.sleep(self.retry_seconds)
            except Exception as e:
                logger.exception(f"Unexpected error in stale session cleanup: {e}")
                await asyncio.sleep(self.retry_seconds)
