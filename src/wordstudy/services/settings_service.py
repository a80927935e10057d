"""Settings service for user preferences and premium state."""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordstudy.models.base import transaction
from wordstudy.models.models import UserSetting
from wordstudy.services.collaborators import PremiumStatusProvider

# Configure logging
logger = logging.getLogger(__name__)

KEY_IS_PREMIUM = "is_premium"
KEY_STUDY_DIRECTION_REVERSED = "study_direction_reversed"
KEY_QUIZ_MODE = "quiz_mode"


class SettingsService(PremiumStatusProvider):
    """Service for key/value user settings.

    Reads never raise: a missing or unreadable value yields the default.
    """

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_value(self, key: str) -> Optional[str]:
        """Get a raw setting value."""
        try:
            setting = self.db.query(UserSetting).filter(UserSetting.key == key).first()
        except SQLAlchemyError as e:
            logger.error(f"Error reading setting {key}: {e}")
            self.db.rollback()
            return None
        return setting.value if setting else None

    def set_value(self, key: str, value: str) -> None:
        """Create or overwrite a setting."""
        with transaction(self.db):
            self.put_value(key, value)

    def put_value(self, key: str, value: str) -> None:
        """Stage a setting write inside the caller's transaction."""
        setting = self.db.get(UserSetting, key)
        if setting is None:
            self.db.add(UserSetting(key=key, value=value))
        else:
            setting.value = value

    def delete_value(self, key: str) -> bool:
        """Delete a setting."""
        with transaction(self.db):
            deleted = self.db.query(UserSetting).filter(UserSetting.key == key).delete()
        return deleted > 0

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_value(key)
        if value is None:
            return default
        if value.lower() in ("true", "1", "yes"):
            return True
        if value.lower() in ("false", "0", "no"):
            return False
        return default

    def set_bool(self, key: str, value: bool) -> None:
        self.set_value(key, "true" if value else "false")

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get_value(key)
        try:
            return int(value) if value is not None else default
        except ValueError:
            return default

    def set_int(self, key: str, value: int) -> None:
        self.set_value(key, str(value))

    def is_premium(self) -> bool:
        """Check if the user has premium."""
        return self.get_bool(KEY_IS_PREMIUM, False)

    def set_premium(self, is_premium: bool) -> None:
        logger.info(f"Premium state set to {is_premium}")
        self.set_bool(KEY_IS_PREMIUM, is_premium)

    def is_study_direction_reversed(self) -> bool:
        """Check if cards show the back side first."""
        return self.get_bool(KEY_STUDY_DIRECTION_REVERSED, False)

    def set_study_direction_reversed(self, reversed: bool) -> None:
        self.set_bool(KEY_STUDY_DIRECTION_REVERSED, reversed)

    def is_quiz_mode_enabled(self) -> bool:
        """Check if the user prefers multiple-choice quizzes."""
        return self.get_bool(KEY_QUIZ_MODE, False)

    def set_quiz_mode_enabled(self, enabled: bool) -> None:
        self.set_bool(KEY_QUIZ_MODE, enabled)
