"""Tests for settings service."""
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from wordstudy.models.models import UserSetting
from wordstudy.services.settings_service import KEY_IS_PREMIUM, SettingsService


@pytest.fixture
def settings_service(db: Session) -> SettingsService:
    """Create a settings service instance."""
    return SettingsService(db)


def test_defaults(settings_service: SettingsService) -> None:
    """Test values of settings never written."""
    assert settings_service.is_premium() is False
    assert settings_service.is_study_direction_reversed() is False
    assert settings_service.is_quiz_mode_enabled() is False
    assert settings_service.get_value("missing") is None
    assert settings_service.get_int("missing", 5) == 5


def test_set_and_get(settings_service: SettingsService, db: Session) -> None:
    """Test writing and overwriting settings."""
    settings_service.set_premium(True)
    settings_service.set_quiz_mode_enabled(True)
    settings_service.set_study_direction_reversed(True)
    settings_service.set_int("daily_goal", 15)

    assert settings_service.is_premium() is True
    assert settings_service.is_quiz_mode_enabled() is True
    assert settings_service.is_study_direction_reversed() is True
    assert settings_service.get_int("daily_goal") == 15

    settings_service.set_premium(False)
    assert settings_service.is_premium() is False
    assert db.query(UserSetting).filter(UserSetting.key == KEY_IS_PREMIUM).count() == 1


def test_malformed_values_fall_back(settings_service: SettingsService) -> None:
    """Test that unparsable values yield the default."""
    settings_service.set_value("daily_goal", "many")
    settings_service.set_value(KEY_IS_PREMIUM, "perhaps")

    assert settings_service.get_int("daily_goal", 3) == 3
    assert settings_service.is_premium() is False


def test_delete_value(settings_service: SettingsService) -> None:
    """Test deleting a setting."""
    settings_service.set_value("theme", "dark")
    assert settings_service.delete_value("theme") is True
    assert settings_service.delete_value("theme") is False
    assert settings_service.get_value("theme") is None


def test_read_failure_yields_default(settings_service: SettingsService, db: Session, mocker) -> None:
    """Test that reads never raise."""
    settings_service.set_premium(True)
    mocker.patch.object(db, "query", side_effect=OperationalError("SELECT", {}, Exception("locked")))

    assert settings_service.is_premium() is False
