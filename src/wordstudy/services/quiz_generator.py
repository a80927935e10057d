"""Multiple-choice option generation for quiz mode."""
import logging
import random
from typing import Iterable, List, Optional, Sequence

from wordstudy.config import settings
from wordstudy.models.models import Word
from wordstudy.models.study_models import QuizOptions

logger = logging.getLogger(__name__)

OPTION_COUNT = 4
DISTRACTOR_COUNT = OPTION_COUNT - 1


def can_generate_quiz(pool: Iterable[Word], reversed: bool = False) -> bool:
    """Check that the pool has enough distinct answers for a four-choice quiz."""
    return len({word.target_text(reversed) for word in pool}) >= OPTION_COUNT


def _candidates(
    correct_word: Word,
    pool: Sequence[Word],
    correct_answer: str,
    reversed: bool,
    exclude: Iterable[str] = (),
) -> List[str]:
    excluded = set(exclude)
    return [
        word.target_text(reversed)
        for word in pool
        if word.id != correct_word.id
        and word.target_text(reversed) != correct_answer
        and word.target_text(reversed) not in excluded
    ]


def _unique(texts: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for text in texts:
        if text not in seen:
            seen.add(text)
            result.append(text)
    return result


def generate_options(
    correct_word: Word,
    same_pool: Sequence[Word],
    fallback_pool: Sequence[Word] = (),
    reversed: bool = False,
    rng: Optional[random.Random] = None,
) -> Optional[QuizOptions]:
    """Build four shuffled options containing the correct answer once.

    Distractors come from ``same_pool`` first and are topped up from
    ``fallback_pool`` when fewer than three distinct ones are found. Returns
    None when three distinct distractors cannot be found; the caller should
    then present the word as a flip card.
    """
    rng = rng or random.Random()
    correct_answer = correct_word.target_text(reversed)

    same = _candidates(correct_word, same_pool, correct_answer, reversed)
    rng.shuffle(same)
    wrong_pool = _unique(same[:settings.study.quiz_candidate_sample])

    if len(wrong_pool) < DISTRACTOR_COUNT:
        extra = _unique(_candidates(correct_word, fallback_pool, correct_answer, reversed, exclude=wrong_pool))
        rng.shuffle(extra)
        wrong_pool.extend(extra[:DISTRACTOR_COUNT - len(wrong_pool)])

    distractors = wrong_pool[:DISTRACTOR_COUNT]
    if len(distractors) < DISTRACTOR_COUNT:
        logger.debug(f"Only {len(distractors)} distractors for word {correct_word.id}, falling back to flip card")
        return None

    options = distractors + [correct_answer]
    rng.shuffle(options)
    return QuizOptions(options=options, correct_index=options.index(correct_answer))
