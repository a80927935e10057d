"""Service for running study sessions: start, resume, evaluate, finish."""
import asyncio
import functools
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordstudy import monitoring
from wordstudy.config import settings
from wordstudy.exceptions import PersistenceError, SessionNotFoundError
from wordstudy.models.base import transaction
from wordstudy.models.models import Outcome, StudyRecord, StudySession, Word
from wordstudy.models.study_models import (
    Blocked,
    BlockReason,
    Completed,
    Continuing,
    QuizOptions,
    Resumed,
    SessionEmpty,
    SessionSnapshot,
    SessionSummary,
    Started,
)
from wordstudy.services.access_service import AccessGate, review_date
from wordstudy.services.clock_service import ClockGuard
from wordstudy.services.collaborators import PremiumStatusProvider, RewardedAdProvider
from wordstudy.services.queue_engine import (
    QueueEvent,
    QueueState,
    QueueTransition,
    advance,
    move_for_outcome,
    move_for_quiz_answer,
)
from wordstudy.services.quiz_generator import can_generate_quiz, generate_options
from wordstudy.services.review_scheduler import schedule_review
from wordstudy.services.settings_service import SettingsService
from wordstudy.services.stats_service import StatsService
from wordstudy.services.word_service import WordService

logger = logging.getLogger(__name__)

StartResult = Union[Started, Resumed, Blocked, SessionEmpty]
EvaluationResult = Union[Continuing, Completed, Blocked]


def serialized(method):
    """Run a service method while holding the service's database lock."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._db_lock:
            return method(self, *args, **kwargs)

    return wrapper


@dataclass
class PendingWrite:
    """A computed transition whose snapshot has not been stored yet."""
    word_id: int
    outcome: Outcome
    quiz_correct: Optional[bool]
    transition: QueueTransition
    now: datetime

    def matches(self, word_id: int, outcome: Outcome, quiz_correct: Optional[bool]) -> bool:
        return (self.word_id, self.outcome, self.quiz_correct) == (word_id, outcome, quiz_correct)


@dataclass
class ActiveSession:
    """In-memory state of a session between evaluations."""
    session_id: int
    group_id: int
    started_at: datetime
    word_count: int
    state: QueueState
    is_reversed: bool = False
    is_quiz_mode: bool = False
    pending: Optional[PendingWrite] = None


class StudyService:
    """Service for managing study sessions.

    All I/O of a session goes through here; queue ordering is delegated to
    the queue engine and mastery updates to the review scheduler. Progress is
    written through after every evaluation so a session can be resumed after
    the process dies. Evaluations of one session must not run concurrently.

    The database session is not thread-safe, so every public method that
    touches it holds ``_db_lock``. Detached writes run on executor threads
    and queue up behind it.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[ClockGuard] = None,
        access_gate: Optional[AccessGate] = None,
        premium: Optional[PremiumStatusProvider] = None,
        settings_service: Optional[SettingsService] = None,
        word_service: Optional[WordService] = None,
        stats_service: Optional[StatsService] = None,
        rng: Optional[random.Random] = None,
        batch_size: Optional[int] = None,
        max_cycles: Optional[int] = None,
        stale_after: Optional[timedelta] = None,
    ):
        """Initialize the service with a database session and its collaborators."""
        self.db = db
        self.clock = clock or ClockGuard(db)
        self.access_gate = access_gate or AccessGate(db, self.clock)
        self.settings_service = settings_service or SettingsService(db)
        self.premium = premium or self.settings_service
        self.word_service = word_service or WordService(db)
        self.stats_service = stats_service or StatsService(db)
        self.rng = rng or random.Random()
        self.batch_size = batch_size or settings.study.batch_size
        self.max_cycles = settings.study.max_later_cycles if max_cycles is None else max_cycles
        self.stale_after = stale_after or timedelta(hours=settings.study.stale_session_hours)

        self.active_sessions: Dict[int, ActiveSession] = {}
        self._detached: Set[asyncio.Future] = set()
        self._db_lock = threading.RLock()

    # Session start / resume

    @serialized
    def start_session(self, group_id: int) -> StartResult:
        """Start or resume studying a group."""
        group = self.word_service.get_group(group_id)
        if group is None:
            raise ValueError(f"Group {group_id} not found")

        is_premium = self.premium.is_premium()
        if not self.access_gate.is_unlocked(group_id, is_premium, group.is_top_level):
            return self._blocked(BlockReason.LOCKED, group_id)
        if not self.access_gate.can_review_more(is_premium):
            return self._blocked(BlockReason.QUOTA_EXCEEDED, group_id)

        resumed = self._resume(group_id)
        if resumed is not None:
            return resumed

        now = self.clock.trusted_now()
        words = self.word_service.get_words_for_study(group_id, now, self.batch_size)
        if not words:
            logger.info(f"Nothing to study in group {group_id}")
            return SessionEmpty(group_id=group_id)

        is_reversed = self.settings_service.is_study_direction_reversed()
        is_quiz_mode = self.settings_service.is_quiz_mode_enabled() and can_generate_quiz(
            self.word_service.get_group_words(group_id), is_reversed
        )
        state = QueueState.start([word.id for word in words])
        session = StudySession(
            group_id=group_id,
            started_at=now,
            word_count=len(words),
            word_ids=list(state.main_queue),
            later_queue_ids=[],
            is_reversed=is_reversed,
            is_quiz_mode=is_quiz_mode,
        )
        try:
            with transaction(self.db):
                self.db.add(session)
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="session_start").inc()
            raise PersistenceError("session start", e) from e

        active = ActiveSession(
            session_id=session.id,
            group_id=group_id,
            started_at=now,
            word_count=len(words),
            state=state,
            is_reversed=is_reversed,
            is_quiz_mode=is_quiz_mode,
        )
        self.active_sessions[session.id] = active
        monitoring.sessions_started.labels(kind="started").inc()
        logger.info(f"Started session {session.id} for group {group_id} with {len(words)} words")
        return Started(
            words=words,
            snapshot=self._snapshot(active),
            quiz_options=self._options_for(active, words[0]),
        )

    def _blocked(self, reason: BlockReason, group_id: int) -> Blocked:
        monitoring.access_denials.labels(reason=reason.value).inc()
        logger.info(f"Study of group {group_id} blocked: {reason.value}")
        return Blocked(reason=reason)

    def _resume(self, group_id: int) -> Optional[Resumed]:
        """Restore the latest in-progress session of a group, if it is still usable."""
        try:
            sessions = (
                self.db.query(StudySession)
                .filter(
                    StudySession.group_id == group_id,
                    StudySession.completed_at.is_(None),
                )
                .order_by(StudySession.started_at.desc(), StudySession.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("session lookup", e) from e
        if not sessions:
            return None

        latest, older = sessions[0], sessions[1:]
        if older:
            logger.info(f"Discarding {len(older)} older unfinished sessions of group {group_id}")
            self._discard(older)

        if not latest.remaining_word_ids:
            logger.info(f"Session {latest.id} has an empty queue, discarding")
            self._discard([latest])
            return None

        referenced = list(dict.fromkeys(list(latest.word_ids) + list(latest.later_queue_ids)))
        words = self.word_service.get_words_by_ids(referenced)
        if len(words) != len(referenced):
            logger.warning(f"Session {latest.id} references deleted words, discarding")
            self._discard([latest])
            return None

        active = self.active_sessions.get(latest.id)
        if active is None:
            active = self._rehydrate(latest)
            self.active_sessions[latest.id] = active
        elif active.pending is not None:
            if isinstance(self._write_snapshot(active), Completed):
                return None

        current = self.word_service.get_word(active.state.current_word_id)
        monitoring.sessions_started.labels(kind="resumed").inc()
        logger.info(f"Resumed session {latest.id} for group {group_id} at index {active.state.index}")
        return Resumed(
            words=words,
            snapshot=self._snapshot(active),
            quiz_options=self._options_for(active, current) if current else None,
        )

    def _rehydrate(self, session: StudySession) -> ActiveSession:
        """Rebuild the in-memory state from a persisted snapshot."""
        main_queue = tuple(session.word_ids or [])
        later_queue = tuple(session.later_queue_ids or [])
        index = min(session.current_index, len(main_queue))
        if index >= len(main_queue) and later_queue:
            main_queue, index, later_queue = later_queue, 0, ()
        state = QueueState(
            main_queue=main_queue,
            index=index,
            later_queue=later_queue,
            cycle_count=session.cycle_count,
            known_count=session.known_count,
            again_count=session.again_count,
            later_count=session.later_count,
        )
        return ActiveSession(
            session_id=session.id,
            group_id=session.group_id,
            started_at=session.started_at,
            word_count=session.word_count,
            state=state,
            is_reversed=session.is_reversed,
            is_quiz_mode=session.is_quiz_mode,
        )

    def _discard(self, sessions: List[StudySession]) -> None:
        try:
            with transaction(self.db):
                for session in sessions:
                    self.db.delete(session)
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="session_discard").inc()
            raise PersistenceError("session discard", e) from e
        for session in sessions:
            self.active_sessions.pop(session.id, None)

    def _get_active(self, session_id: int) -> ActiveSession:
        active = self.active_sessions.get(session_id)
        if active is not None:
            return active
        try:
            session = self.db.get(StudySession, session_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("session lookup", e) from e
        if session is None or not session.is_in_progress:
            raise SessionNotFoundError(session_id)
        active = self._rehydrate(session)
        self.active_sessions[session_id] = active
        return active

    @serialized
    def get_snapshot(self, session_id: int) -> SessionSnapshot:
        """Get the current progress of an in-progress session."""
        return self._snapshot(self._get_active(session_id))

    # Evaluation

    @serialized
    def evaluate(
        self,
        session_id: int,
        word_id: int,
        outcome: Outcome,
        response_time_ms: int = 0,
    ) -> EvaluationResult:
        """Apply a flip-card self-assessment to the current word.

        A snapshot left pending by an earlier failure is stored first. If that
        finishes the session, its ``Completed`` result is returned instead.
        """
        return self._evaluate(session_id, word_id, outcome, None, response_time_ms)

    @serialized
    def answer_quiz(
        self,
        session_id: int,
        word_id: int,
        selected_index: int,
        options: QuizOptions,
        response_time_ms: int = 0,
    ) -> EvaluationResult:
        """Apply a multiple-choice answer to the current word.

        A correct answer counts as KNOWN and marks the word acquired. A wrong
        answer is recorded as AGAIN, leaves mastery unchanged and defers the
        word to the later queue.
        """
        correct = options.is_correct(selected_index)
        outcome = Outcome.KNOWN if correct else Outcome.AGAIN
        return self._evaluate(session_id, word_id, outcome, correct, response_time_ms)

    def _evaluate(
        self,
        session_id: int,
        word_id: int,
        outcome: Outcome,
        quiz_correct: Optional[bool],
        response_time_ms: int,
    ) -> EvaluationResult:
        started = time.perf_counter()
        active = self._get_active(session_id)

        if active.pending is not None:
            if active.pending.matches(word_id, outcome, quiz_correct):
                logger.info(f"Retrying snapshot write of session {session_id}")
                return self._write_snapshot(active)
            flushed = self._write_snapshot(active)
            if isinstance(flushed, Completed):
                return flushed

        current = active.state.current_word_id
        if current is None:
            raise SessionNotFoundError(session_id)
        if current != word_id:
            raise ValueError(f"Word {word_id} is not the current word ({current}) of session {session_id}")

        credited = outcome == Outcome.KNOWN
        if credited and not self.premium.is_premium() and not self.access_gate.can_review_more(False):
            monitoring.access_denials.labels(reason=BlockReason.QUOTA_EXCEEDED.value).inc()
            logger.info(f"Daily quota reached during session {session_id}")
            return Blocked(reason=BlockReason.QUOTA_EXCEEDED)

        now = self.clock.trusted_now()
        if quiz_correct is None:
            transition = advance(active.state, move_for_outcome(outcome), self.max_cycles)
            mastery_outcome = outcome
        else:
            transition = advance(
                active.state, move_for_quiz_answer(quiz_correct), self.max_cycles, counted_as=outcome
            )
            mastery_outcome = Outcome.KNOWN if quiz_correct else Outcome.LATER

        self._record_evaluation(active, word_id, outcome, mastery_outcome, quiz_correct, response_time_ms, now)

        if credited:
            try:
                self.access_gate.increment_review_count()
            except PersistenceError as e:
                logger.error(f"Could not count review of word {word_id}: {e}")

        active.pending = PendingWrite(
            word_id=word_id,
            outcome=outcome,
            quiz_correct=quiz_correct,
            transition=transition,
            now=now,
        )
        result = self._write_snapshot(active)
        monitoring.evaluations.labels(outcome=outcome.name.lower()).inc()
        monitoring.evaluation_duration.observe(time.perf_counter() - started)
        return result

    def _record_evaluation(
        self,
        active: ActiveSession,
        word_id: int,
        outcome: Outcome,
        mastery_outcome: Outcome,
        quiz_correct: Optional[bool],
        response_time_ms: int,
        now: datetime,
    ) -> None:
        """Append the study record and update the word's schedule in one transaction."""
        try:
            with transaction(self.db):
                if self.db.get(StudySession, active.session_id) is None:
                    raise SessionNotFoundError(active.session_id)
                self.db.add(
                    StudyRecord(
                        session_id=active.session_id,
                        word_id=word_id,
                        outcome=outcome,
                        reviewed_at=now,
                        response_time_ms=max(0, int(response_time_ms)),
                    )
                )
                word = self.db.get(Word, word_id)
                if word is None:
                    logger.warning(f"Word {word_id} disappeared during session {active.session_id}")
                elif mastery_outcome != Outcome.LATER:
                    schedule = schedule_review(word.mastery_level, mastery_outcome, now)
                    word.mastery_level = schedule.mastery_level
                    word.next_review_at = schedule.next_review_at
                    word.review_count += 1
                if word is not None and quiz_correct:
                    word.is_acquired = True
        except SessionNotFoundError:
            self.active_sessions.pop(active.session_id, None)
            raise
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="study_record").inc()
            raise PersistenceError("study record", e) from e

    def _write_snapshot(self, active: ActiveSession) -> EvaluationResult:
        """Store the pending transition; on success make it the current state."""
        pending = active.pending
        transition = pending.transition
        state = transition.state
        try:
            with transaction(self.db):
                session = self.db.get(StudySession, active.session_id)
                if session is None:
                    raise SessionNotFoundError(active.session_id)
                self._apply_snapshot(session, state)
                if transition.is_finished:
                    session.completed_at = pending.now
                    session.mastered_count = state.known_count
                    self.stats_service.add_studied_words(review_date(pending.now), session.word_count)
        except SessionNotFoundError:
            self.active_sessions.pop(active.session_id, None)
            raise
        except SQLAlchemyError as e:
            monitoring.db_errors.labels(operation="session_snapshot").inc()
            logger.error(f"Snapshot of session {active.session_id} not stored, kept pending: {e}")
            raise PersistenceError("session snapshot", e) from e

        active.state = state
        active.pending = None

        if transition.is_finished:
            self.active_sessions.pop(active.session_id, None)
            return Completed(summary=self._summary(active, transition, pending.now))

        next_word = self.word_service.get_word(state.current_word_id)
        if transition.event == QueueEvent.RECYCLED:
            logger.debug(f"Session {active.session_id} recycled later queue, cycle {state.cycle_count}")
        return Continuing(
            snapshot=self._snapshot(active),
            next_word=next_word,
            quiz_options=self._options_for(active, next_word) if next_word else None,
            recycled=transition.event == QueueEvent.RECYCLED,
        )

    @staticmethod
    def _apply_snapshot(session: StudySession, state: QueueState) -> None:
        session.current_index = state.index
        session.word_ids = list(state.main_queue)
        session.later_queue_ids = list(state.later_queue)
        session.cycle_count = state.cycle_count
        session.known_count = state.known_count
        session.again_count = state.again_count
        session.later_count = state.later_count

    def _summary(self, active: ActiveSession, transition: QueueTransition, now: datetime) -> SessionSummary:
        forced = transition.event == QueueEvent.FORCE_TERMINATED
        state = transition.state
        monitoring.sessions_completed.labels(kind="force_terminated" if forced else "completed").inc()
        if forced:
            logger.info(
                f"Session {active.session_id} stopped after {state.cycle_count - 1} recycles, "
                f"{len(transition.abandoned_word_ids)} words left for later"
            )
        else:
            logger.info(
                f"Session {active.session_id} completed: {state.known_count} known, "
                f"{state.again_count} again, {state.later_count} later"
            )
        return SessionSummary(
            session_id=active.session_id,
            group_id=active.group_id,
            total_words=active.word_count,
            known_count=state.known_count,
            again_count=state.again_count,
            later_count=state.later_count,
            started_at=active.started_at,
            completed_at=now,
            forced=forced,
            abandoned_word_ids=list(transition.abandoned_word_ids),
        )

    @serialized
    def flush_pending(self, session_id: int) -> Optional[EvaluationResult]:
        """Retry a snapshot write that failed earlier, if any."""
        active = self.active_sessions.get(session_id)
        if active is None or active.pending is None:
            return None
        return self._write_snapshot(active)

    def _snapshot(self, active: ActiveSession) -> SessionSnapshot:
        state = active.state
        return SessionSnapshot(
            session_id=active.session_id,
            group_id=active.group_id,
            current_index=state.index,
            word_ids=list(state.main_queue),
            later_queue_ids=list(state.later_queue),
            cycle_count=state.cycle_count,
            known_count=state.known_count,
            again_count=state.again_count,
            later_count=state.later_count,
            is_reversed=active.is_reversed,
            is_quiz_mode=active.is_quiz_mode,
        )

    # Detached evaluation

    async def evaluate_async(
        self,
        session_id: int,
        word_id: int,
        outcome: Outcome,
        response_time_ms: int = 0,
    ) -> EvaluationResult:
        """Evaluate without letting caller cancellation interrupt the write."""
        return await self._run_detached(self.evaluate, session_id, word_id, outcome, response_time_ms)

    async def answer_quiz_async(
        self,
        session_id: int,
        word_id: int,
        selected_index: int,
        options: QuizOptions,
        response_time_ms: int = 0,
    ) -> EvaluationResult:
        """Answer a quiz without letting caller cancellation interrupt the write."""
        return await self._run_detached(
            self.answer_quiz, session_id, word_id, selected_index, options, response_time_ms
        )

    async def _run_detached(self, func, *args):
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, functools.partial(func, *args))
        self._detached.add(future)
        future.add_done_callback(self._detached_done)
        return await asyncio.shield(future)

    def _detached_done(self, future: asyncio.Future) -> None:
        self._detached.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Detached study write failed: {future.exception()}")

    async def drain(self) -> None:
        """Wait for detached writes that outlived their callers."""
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)

    # Quiz options and access

    @serialized
    def generate_quiz_options(
        self,
        word: Union[Word, int],
        reversed: Optional[bool] = None,
    ) -> Optional[QuizOptions]:
        """Build four-choice options for a word, or None when not enough distractors exist."""
        if isinstance(word, int):
            word_id = word
            word = self.word_service.get_word(word_id)
            if word is None:
                raise ValueError(f"Word {word_id} not found")
        if reversed is None:
            reversed = self.settings_service.is_study_direction_reversed()
        return generate_options(
            word,
            self.word_service.get_group_words(word.group_id),
            self.word_service.get_all_words(),
            reversed=reversed,
            rng=self.rng,
        )

    def _options_for(self, active: ActiveSession, word: Word) -> Optional[QuizOptions]:
        if not active.is_quiz_mode:
            return None
        return self.generate_quiz_options(word, active.is_reversed)

    @serialized
    def is_unlocked(self, group_id: int) -> bool:
        """Check if a group can be studied right now."""
        group = self.word_service.get_group(group_id)
        if group is None:
            raise ValueError(f"Group {group_id} not found")
        return self.access_gate.is_unlocked(group_id, self.premium.is_premium(), group.is_top_level)

    @serialized
    def request_unlock(self, group_id: int) -> datetime:
        """Unlock a group after the rewarded ad reported the reward as granted."""
        if self.word_service.get_group(group_id) is None:
            raise ValueError(f"Group {group_id} not found")
        return self.access_gate.unlock(group_id)

    def unlock_with_ad(self, group_id: int, ads: RewardedAdProvider) -> bool:
        """Show a rewarded ad and unlock the group only if the reward was granted."""
        if not ads.show_rewarded_ad():
            logger.info(f"Rewarded ad for group {group_id} not completed, group stays locked")
            return False
        self.request_unlock(group_id)
        return True

    @serialized
    def remaining_reviews_today(self) -> int:
        """Get the number of reviews left today under the free tier."""
        return self.access_gate.remaining_reviews(self.premium.is_premium())

    # Maintenance

    @serialized
    def abandon_session(self, session_id: int) -> bool:
        """Delete an unfinished session and its records."""
        session = self.db.get(StudySession, session_id)
        if session is None or not session.is_in_progress:
            return False
        self._discard([session])
        logger.info(f"Abandoned session {session_id}")
        return True

    @serialized
    def cleanup_stale_sessions(self, max_age: Optional[timedelta] = None) -> int:
        """Delete unfinished sessions started longer than ``max_age`` ago."""
        cutoff = self.clock.trusted_now() - (max_age or self.stale_after)
        try:
            stale = (
                self.db.query(StudySession)
                .filter(
                    StudySession.completed_at.is_(None),
                    StudySession.started_at < cutoff,
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("stale session lookup", e) from e
        if not stale:
            return 0
        self._discard(stale)
        monitoring.stale_sessions_removed.inc(len(stale))
        logger.info(f"Removed {len(stale)} stale unfinished sessions")
        return len(stale)
