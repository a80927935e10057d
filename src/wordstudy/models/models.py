"""Database models for the study engine."""
from datetime import datetime, UTC
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import relationship

from wordstudy.models.base import Base, TimestampMixin, UTCDateTime


class Outcome(PyEnum):
    """Self-assessed result of a single word evaluation."""

    AGAIN = 0  # forgot, show again
    LATER = 1  # defer to the later queue
    KNOWN = 2  # recalled


class WordGroup(Base, TimestampMixin):
    """Vocabulary group (a unit inside a top-level level)."""

    __tablename__ = "word_groups"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    order_index = Column(Integer, default=0)
    parent_id = Column(Integer, ForeignKey("word_groups.id", ondelete="CASCADE"), nullable=True)

    # Relationships
    words = relationship("Word", back_populates="group", cascade="all, delete-orphan")
    parent = relationship("WordGroup", remote_side=[id])

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None


class Word(Base, TimestampMixin):
    """Word model."""

    __tablename__ = "words"
    __table_args__ = (
        CheckConstraint("mastery_level >= 0 AND mastery_level <= 5", name="ck_words_mastery_range"),
    )

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("word_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    front = Column(String, nullable=False)
    back = Column(String, nullable=False)
    example_front = Column(String, nullable=True)
    example_back = Column(String, nullable=True)
    mastery_level = Column(Integer, default=0, nullable=False, index=True)
    next_review_at = Column(UTCDateTime(timezone=True), nullable=True, index=True)  # None = never reviewed
    review_count = Column(Integer, default=0, nullable=False)
    is_acquired = Column(Boolean, default=False, nullable=False)

    # Relationships
    group = relationship("WordGroup", back_populates="words")
    records = relationship("StudyRecord", back_populates="word", cascade="all, delete-orphan")

    @property
    def is_new(self) -> bool:
        return self.next_review_at is None

    def target_text(self, reversed: bool = False) -> str:
        """Text on the answer side of the card."""
        return self.front if reversed else self.back

    def __repr__(self) -> str:
        return f"<Word {self.id} {self.front!r} level={self.mastery_level}>"


class StudySession(Base):
    """A study session together with its resumable progress snapshot."""

    __tablename__ = "study_sessions"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("word_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at = Column(UTCDateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), index=True)
    completed_at = Column(UTCDateTime(timezone=True), nullable=True, index=True)  # None = in progress
    word_count = Column(Integer, default=0, nullable=False)
    mastered_count = Column(Integer, default=0, nullable=False)

    # Progress snapshot
    current_index = Column(Integer, default=0, nullable=False)
    known_count = Column(Integer, default=0, nullable=False)
    again_count = Column(Integer, default=0, nullable=False)
    later_count = Column(Integer, default=0, nullable=False)
    word_ids = Column(JSON, default=list, nullable=False)
    later_queue_ids = Column(JSON, default=list, nullable=False)
    cycle_count = Column(Integer, default=0, nullable=False)
    is_reversed = Column(Boolean, default=False, nullable=False)
    is_quiz_mode = Column(Boolean, default=False, nullable=False)

    # Relationships
    records = relationship("StudyRecord", back_populates="session", cascade="all, delete-orphan")

    @property
    def is_in_progress(self) -> bool:
        return self.completed_at is None

    @property
    def remaining_word_ids(self) -> list[int]:
        return list(self.word_ids or [])[self.current_index:] + list(self.later_queue_ids or [])


class StudyRecord(Base):
    """Append-only log entry of one evaluation."""

    __tablename__ = "study_records"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    word_id = Column(Integer, ForeignKey("words.id", ondelete="CASCADE"), nullable=False, index=True)
    outcome = Column(Enum(Outcome), nullable=False)
    reviewed_at = Column(UTCDateTime(timezone=True), nullable=False, index=True)
    response_time_ms = Column(Integer, default=0, nullable=False)

    # Relationships
    session = relationship("StudySession", back_populates="records")
    word = relationship("Word", back_populates="records")


class UnitUnlock(Base):
    """Timed access grant for a locked group."""

    __tablename__ = "unit_unlocks"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("word_groups.id", ondelete="CASCADE"), nullable=False, unique=True)
    unlock_until = Column(UTCDateTime(timezone=True), nullable=False)


class DailyReviewCount(Base):
    """Free-tier review counter, one row per calendar date."""

    __tablename__ = "daily_review_counts"

    review_date = Column(String, primary_key=True)  # yyyy-mm-dd
    count = Column(Integer, default=0, nullable=False)


class UserSetting(Base):
    """Key/value user setting."""

    __tablename__ = "user_settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)


class UserStats(Base):
    """Per-day study statistics."""

    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True)
    stats_date = Column(String, unique=True, nullable=False)  # yyyy-mm-dd
    studied_count = Column(Integer, default=0, nullable=False)
    streak = Column(Integer, default=0, nullable=False)
