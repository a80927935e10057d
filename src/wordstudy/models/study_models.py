"""Models for study-session results exchanged with the UI layer."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from wordstudy.models.models import Word


class BlockReason(Enum):
    """Why the access gate refused to start or credit a review."""
    QUOTA_EXCEEDED = "quota_exceeded"  # Free daily review limit reached
    LOCKED = "locked"  # Group requires premium or a rewarded unlock


@dataclass
class QuizOptions:
    """Four answer choices and the position of the correct one."""
    options: List[str]
    correct_index: int

    @property
    def correct_answer(self) -> str:
        return self.options[self.correct_index]

    def is_correct(self, selected_index: int) -> bool:
        return selected_index == self.correct_index


@dataclass
class SessionSnapshot:
    """Persistable progress of one session."""
    session_id: int
    group_id: int
    current_index: int
    word_ids: List[int]
    later_queue_ids: List[int]
    cycle_count: int = 0
    known_count: int = 0
    again_count: int = 0
    later_count: int = 0
    is_reversed: bool = False
    is_quiz_mode: bool = False

    @property
    def current_word_id(self) -> Optional[int]:
        if self.current_index < len(self.word_ids):
            return self.word_ids[self.current_index]
        return None

    @property
    def remaining_word_ids(self) -> List[int]:
        return self.word_ids[self.current_index:] + self.later_queue_ids


@dataclass
class SessionSummary:
    """Final counts of a finished session."""
    session_id: int
    group_id: int
    total_words: int
    known_count: int
    again_count: int
    later_count: int
    started_at: datetime
    completed_at: datetime
    forced: bool = False
    abandoned_word_ids: List[int] = field(default_factory=list)

    @property
    def duration(self) -> timedelta:
        return self.completed_at - self.started_at

    @property
    def accuracy_percent(self) -> int:
        evaluations = self.known_count + self.again_count + self.later_count
        if evaluations == 0:
            return 0
        return (self.known_count * 100) // evaluations

    @property
    def is_perfect(self) -> bool:
        return self.total_words > 0 and self.again_count == 0 and self.later_count == 0


# Results of StudyService.start_session

@dataclass
class Started:
    """A new session was created."""
    words: List[Word]
    snapshot: SessionSnapshot
    quiz_options: Optional[QuizOptions] = None


@dataclass
class Resumed:
    """An interrupted session was restored from its snapshot."""
    words: List[Word]
    snapshot: SessionSnapshot
    quiz_options: Optional[QuizOptions] = None


@dataclass
class Blocked:
    """The access gate refused the request."""
    reason: BlockReason


@dataclass
class SessionEmpty:
    """Nothing is new or due in the group."""
    group_id: int
    reason: str = "No words to study"


# Results of StudyService.evaluate / answer_quiz

@dataclass
class Continuing:
    """The session goes on with the next word."""
    snapshot: SessionSnapshot
    next_word: Word
    quiz_options: Optional[QuizOptions] = None
    recycled: bool = False


@dataclass
class Completed:
    """The session finished, naturally or by the recycling bound."""
    summary: SessionSummary


# Unit test mode

@dataclass
class UnitTest:
    """A scored multiple-choice test over a shuffled sample of a group's words."""
    group_id: int
    words: List[Word]
    pool: List[Word]
    quiz_options: Optional[QuizOptions]
    current_index: int = 0
    score: int = 0
    is_completed: bool = False
    error: Optional[str] = None

    @property
    def current_word(self) -> Optional[Word]:
        if self.is_completed or self.current_index >= len(self.words):
            return None
        return self.words[self.current_index]

    @property
    def total_count(self) -> int:
        return len(self.words)

    @property
    def score_percent(self) -> int:
        if not self.words:
            return 0
        return round(self.score * 100 / len(self.words))


@dataclass
class UnitTestAnswer:
    """Outcome of one unit test answer."""
    correct: bool
    correct_answer: str
    score: int
    is_completed: bool
