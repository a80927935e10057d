"""Configuration settings for the study engine."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))

# Scheduling settings
REVIEW_INTERVAL_HOURS = [0, 1, 8, 24, 72, 168]  # indexed by mastery level 0..5
MIN_MASTERY_LEVEL = 0
MAX_MASTERY_LEVEL = 5


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'wordstudy.db'}")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class StudySettings:
    """Study session settings."""
    batch_size: int = int(os.getenv("STUDY_BATCH_SIZE", "20"))
    daily_review_limit: int = int(os.getenv("DAILY_REVIEW_LIMIT", "10"))
    unlock_duration_hours: int = int(os.getenv("UNLOCK_DURATION_HOURS", "3"))
    max_later_cycles: int = int(os.getenv("MAX_LATER_CYCLES", "3"))
    stale_session_hours: int = int(os.getenv("STALE_SESSION_HOURS", "24"))
    quiz_candidate_sample: int = int(os.getenv("QUIZ_CANDIDATE_SAMPLE", "10"))
    review_interval_hours: list[int] = field(default_factory=lambda: REVIEW_INTERVAL_HOURS)


@dataclass
class MaintenanceSettings:
    """Background maintenance settings."""
    cleanup_interval_seconds: int = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "3600"))


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_study_settings() -> StudySettings:
    """Get study settings."""
    return StudySettings()


def get_maintenance_settings() -> MaintenanceSettings:
    """Get maintenance settings."""
    return MaintenanceSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    study: StudySettings = field(default_factory=get_study_settings)
    maintenance: MaintenanceSettings = field(default_factory=get_maintenance_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.study.batch_size < 1:
            raise ValueError("STUDY_BATCH_SIZE must be positive")

        if self.study.daily_review_limit < 0:
            raise ValueError("DAILY_REVIEW_LIMIT cannot be negative")

        if self.study.unlock_duration_hours < 1:
            raise ValueError("UNLOCK_DURATION_HOURS must be positive")

        if self.study.max_later_cycles < 0:
            raise ValueError("MAX_LATER_CYCLES cannot be negative")

        if self.study.stale_session_hours < 1:
            raise ValueError("STALE_SESSION_HOURS must be positive")

        if self.study.quiz_candidate_sample < 3:
            raise ValueError("QUIZ_CANDIDATE_SAMPLE must be at least 3")

        if len(self.study.review_interval_hours) != MAX_MASTERY_LEVEL + 1:
            raise ValueError("Review intervals must cover every mastery level")

        if self.maintenance.cleanup_interval_seconds < 1:
            raise ValueError("CLEANUP_INTERVAL_SECONDS must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
