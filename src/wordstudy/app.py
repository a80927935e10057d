"""Main application entry point."""
import asyncio
import logging
import signal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from wordstudy.config import settings
from wordstudy.models.base import init_db, SessionLocal
from wordstudy.monitoring import start_monitoring
from wordstudy.services.maintenance_service import MaintenanceService
from wordstudy.services.study_service import StudyService


class WordStudyApp:
    """Main application class.

    Owns the database session used for studying, the study service built on
    it and the background maintenance service.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        """Initialize the application."""
        self.session_factory = session_factory
        self.study_service: Optional[StudyService] = None
        self.maintenance: Optional[MaintenanceService] = None
        self.running = False
        self.db: Optional[Session] = None
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        try:
            if self.session_factory is SessionLocal:
                init_db()
            self.db = self.session_factory()
            self.logger.info("Database initialized")

            self.study_service = StudyService(self.db)
            self.logger.info("Study service created")

            self.maintenance = MaintenanceService(self.session_factory)
            await self.maintenance.start()
            self.logger.info("Maintenance service started")

            if settings.monitoring.enabled:
                start_monitoring(settings.monitoring.port)
                self.logger.info(f"Metrics served on port {settings.monitoring.port}")

            self.running = True

        except Exception as e:
            self.logger.error(f"Failed to start application: {e}")
            # Let stop() release whatever was acquired
            self.running = True
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the application."""
        if not self.running:
            return

        try:
            if self.maintenance:
                await self.maintenance.stop()
                self.maintenance = None
                self.logger.info("Maintenance service stopped")

            if self.study_service:
                await self.study_service.drain()
                self.study_service = None
                self.logger.info("Pending study writes finished")

            if self.db:
                self.db.close()
                self.db = None
                self.logger.info("Database session closed")

        finally:
            self.running = False

    async def serve(self) -> None:
        """Start the application and keep it running until SIGINT or SIGTERM."""
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

        await self.start()
        try:
            await stop_event.wait()
            self.logger.info("Received exit signal, shutting down...")
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            await self.stop()


def main() -> None:
    """Main entry point."""
    app = WordStudyApp()
    asyncio.run(app.serve())


if __name__ == "__main__":
    main()
