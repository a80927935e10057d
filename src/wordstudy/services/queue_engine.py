"""Word-queue state machine for one study session.

The engine owns no I/O. A session is described by an immutable
:class:`QueueState`; :func:`advance` applies one evaluation and returns the
next state together with what happened (continue, recycle, finish).

Ordering rules:

* ``RETRY`` keeps the current word in place so it is shown again at once.
* ``DEFER`` appends the current word to the later queue and moves on.
* ``ADVANCE`` moves on without keeping the word.

When the main queue runs out, a non-empty later queue becomes the new main
queue. Each such promotion counts as a cycle; once the number of cycles
exceeds ``max_cycles`` the session ends and the deferred words are dropped
for this session (their schedules are left untouched).
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from wordstudy.config import settings
from wordstudy.models.models import Outcome


class QueueMove(Enum):
    """Queue effect of an evaluation."""
    RETRY = "retry"
    DEFER = "defer"
    ADVANCE = "advance"


class QueueEvent(Enum):
    """What the transition did to the session."""
    CONTINUE = "continue"
    RECYCLED = "recycled"
    COMPLETED = "completed"
    FORCE_TERMINATED = "force_terminated"


@dataclass(frozen=True)
class QueueState:
    """Ordered queues, position and counters of one session."""
    main_queue: tuple = ()
    index: int = 0
    later_queue: tuple = ()
    cycle_count: int = 0
    known_count: int = 0
    again_count: int = 0
    later_count: int = 0

    @classmethod
    def start(cls, word_ids: List[int]) -> "QueueState":
        return cls(main_queue=tuple(word_ids))

    @property
    def current_word_id(self) -> Optional[int]:
        if self.index < len(self.main_queue):
            return self.main_queue[self.index]
        return None

    @property
    def remaining_word_ids(self) -> List[int]:
        return list(self.main_queue[self.index:]) + list(self.later_queue)

    @property
    def is_finished(self) -> bool:
        return not self.remaining_word_ids


@dataclass(frozen=True)
class QueueTransition:
    """Result of applying one move."""
    state: QueueState
    event: QueueEvent
    abandoned_word_ids: List[int] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.event in (QueueEvent.COMPLETED, QueueEvent.FORCE_TERMINATED)


def move_for_outcome(outcome: Outcome) -> QueueMove:
    """Queue move for a flip-card self-assessment."""
    if outcome == Outcome.AGAIN:
        return QueueMove.RETRY
    if outcome == Outcome.LATER:
        return QueueMove.DEFER
    return QueueMove.ADVANCE


def move_for_quiz_answer(correct: bool) -> QueueMove:
    """Queue move for a multiple-choice answer.

    A wrong answer defers the word instead of retrying it immediately,
    unlike AGAIN in flip-card mode.
    """
    return QueueMove.ADVANCE if correct else QueueMove.DEFER


def advance(
    state: QueueState,
    move: QueueMove,
    max_cycles: Optional[int] = None,
    counted_as: Optional[Outcome] = None,
) -> QueueTransition:
    """Apply ``move`` to the word at ``state.index``.

    ``counted_as`` selects which counter the evaluation increments; it
    defaults to the outcome that naturally produces ``move``.
    """
    if max_cycles is None:
        max_cycles = settings.study.max_later_cycles
    current = state.current_word_id
    if current is None:
        raise ValueError("Cannot evaluate a finished session")

    if counted_as is None:
        counted_as = {
            QueueMove.RETRY: Outcome.AGAIN,
            QueueMove.DEFER: Outcome.LATER,
            QueueMove.ADVANCE: Outcome.KNOWN,
        }[move]
    state = _count(state, counted_as)

    if move == QueueMove.RETRY:
        return QueueTransition(state=state, event=QueueEvent.CONTINUE)

    later_queue = state.later_queue
    if move == QueueMove.DEFER:
        later_queue = later_queue + (current,)
    state = replace(state, index=state.index + 1, later_queue=later_queue)

    if state.index < len(state.main_queue):
        return QueueTransition(state=state, event=QueueEvent.CONTINUE)

    if not state.later_queue:
        return QueueTransition(state=state, event=QueueEvent.COMPLETED)

    cycle_count = state.cycle_count + 1
    if cycle_count > max_cycles:
        abandoned = list(state.later_queue)
        state = replace(state, later_queue=(), cycle_count=cycle_count)
        return QueueTransition(
            state=state,
            event=QueueEvent.FORCE_TERMINATED,
            abandoned_word_ids=abandoned,
        )

    state = replace(
        state,
        main_queue=state.later_queue,
        index=0,
        later_queue=(),
        cycle_count=cycle_count,
    )
    return QueueTransition(state=state, event=QueueEvent.RECYCLED)


def _count(state: QueueState, outcome: Outcome) -> QueueState:
    if outcome == Outcome.AGAIN:
        return replace(state, again_count=state.again_count + 1)
    if outcome == Outcome.LATER:
        return replace(state, later_count=state.later_count + 1)
    return replace(state, known_count=state.known_count + 1)
