"""Main entry point for the study engine."""
import asyncio

from wordstudy.app import WordStudyApp
from wordstudy.config import ensure_directories
from wordstudy.logging_config import setup_logging


def main() -> None:
    """Run the study engine until interrupted."""
    ensure_directories()
    logger = setup_logging("Starting WordStudy ...")

    try:
        asyncio.run(WordStudyApp().serve())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    main()
