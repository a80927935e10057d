"""Service for standalone unit tests: scored quizzes that leave scheduling alone."""
import logging
import random
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordstudy import monitoring
from wordstudy.exceptions import PersistenceError, UnitTestUnavailableError
from wordstudy.models.base import transaction
from wordstudy.models.models import Word
from wordstudy.models.study_models import QuizOptions, UnitTest, UnitTestAnswer
from wordstudy.services.quiz_generator import can_generate_quiz, generate_options
from wordstudy.services.word_service import WordService

logger = logging.getLogger(__name__)


class UnitTestService:
    """Runs multiple-choice tests over one group.

    A correct answer marks the word acquired. Mastery levels, review dates
    and the daily review counter are never touched, and nothing about the
    test itself is persisted.
    """

    def __init__(
        self,
        db: Session,
        word_service: Optional[WordService] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the service with a database session."""
        self.db = db
        self.word_service = word_service or WordService(db)
        self.rng = rng or random.Random()

    def available_word_count(self, group_id: int) -> int:
        """Get how many words a test of this group can ask at most."""
        if self.word_service.get_group(group_id) is None:
            raise ValueError(f"Group {group_id} not found")
        pool = self.word_service.get_group_words(group_id)
        if not pool:
            raise UnitTestUnavailableError(group_id, "group has no words")
        if not can_generate_quiz(pool):
            raise UnitTestUnavailableError(group_id, "fewer than four distinct answers")
        return len(pool)

    def start_test(self, group_id: int, limit: int) -> UnitTest:
        """Start a test over ``limit`` shuffled words of the group."""
        if limit < 1:
            raise ValueError(f"Question count must be positive, got {limit}")
        self.available_word_count(group_id)

        pool = self.word_service.get_group_words(group_id)
        words = list(pool)
        self.rng.shuffle(words)
        words = words[:limit]

        options = self._options_for(words[0], pool)
        if options is None:
            raise UnitTestUnavailableError(group_id, "could not build the first question")

        logger.info(f"Started unit test of group {group_id} with {len(words)} of {len(pool)} words")
        return UnitTest(group_id=group_id, words=words, pool=pool, quiz_options=options)

    def answer(self, test: UnitTest, selected_index: int) -> UnitTestAnswer:
        """Score the answer to the current question and move to the next one."""
        word = test.current_word
        if word is None or test.quiz_options is None:
            raise ValueError(f"Unit test of group {test.group_id} is already completed")

        options = test.quiz_options
        correct = options.is_correct(selected_index)
        if correct and not word.is_acquired:
            self._mark_acquired(word)
        if correct:
            test.score += 1

        self._next_question(test)
        return UnitTestAnswer(
            correct=correct,
            correct_answer=options.correct_answer,
            score=test.score,
            is_completed=test.is_completed,
        )

    def _next_question(self, test: UnitTest) -> None:
        test.current_index += 1
        if test.current_index >= len(test.words):
            test.is_completed = True
            test.quiz_options = None
            logger.info(f"Unit test of group {test.group_id} finished: {test.score}/{test.total_count}")
            return

        test.quiz_options = self._options_for(test.words[test.current_index], test.pool)
        if test.quiz_options is None:
            test.is_completed = True
            test.error = "could not build the next question"
            logger.warning(f"Unit test of group {test.group_id} stopped early at question {test.current_index + 1}")

    def _options_for(self, word: Word, pool) -> Optional[QuizOptions]:
        return generate_options(word, pool, reversed=False, rng=self.rng)

    def _mark_acquired(self, word: Word) -> None:
        try:
            with transaction(self.db):
                word.is_acquired = True
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="unit_test_acquire").inc()
            raise PersistenceError("unit test acquisition", e) from e
