"""Errors raised by the study engine."""
from typing import Optional


class StudyError(Exception):
    """Base class for study engine errors."""


class SessionNotFoundError(StudyError, ValueError):
    """The session does not exist or is no longer in progress."""

    def __init__(self, session_id: int):
        super().__init__(f"Study session {session_id} not found or already completed")
        self.session_id = session_id


class PersistenceError(StudyError):
    """A storage read or write failed; durable state is unchanged for that transaction."""

    def __init__(self, operation: str, original: Optional[BaseException] = None):
        message = f"Persistence failure during {operation}"
        if original is not None:
            message = f"{message}: {original}"
        super().__init__(message)
        self.operation = operation
        self.original = original


class UnitTestUnavailableError(StudyError):
    """A group cannot be turned into a multiple-choice unit test."""

    def __init__(self, group_id: int, reason: str):
        super().__init__(f"Unit test for group {group_id} unavailable: {reason}")
        self.group_id = group_id
        self.reason = reason
