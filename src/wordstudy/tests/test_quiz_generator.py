"""Tests for quiz option generation."""
import random
from typing import List

import pytest
from faker import Faker

from wordstudy.models.models import Word
from wordstudy.services.quiz_generator import can_generate_quiz, generate_options

fake = Faker()


def make_pool(count: int, group_id: int = 1, start_id: int = 1) -> List[Word]:
    """Create unsaved words with distinct texts."""
    return [
        Word(id=start_id + i, group_id=group_id, front=f"front-{start_id + i}", back=f"back-{start_id + i}")
        for i in range(count)
    ]


@pytest.fixture
def rng() -> random.Random:
    """Create a deterministic random source."""
    return random.Random(42)


def test_options_contain_correct_answer_once(rng: random.Random) -> None:
    """Test the shape of generated options."""
    pool = make_pool(8)
    options = generate_options(pool[0], pool, rng=rng)

    assert options is not None
    assert len(options.options) == 4
    assert len(set(options.options)) == 4
    assert options.options.count("back-1") == 1
    assert options.correct_answer == "back-1"
    assert options.is_correct(options.correct_index)


def test_reversed_uses_front_text(rng: random.Random) -> None:
    """Test that reversed direction quizzes on the front side."""
    pool = make_pool(5)
    options = generate_options(pool[2], pool, reversed=True, rng=rng)

    assert options.correct_answer == "front-3"
    assert all(option.startswith("front-") for option in options.options)


def test_duplicate_texts_are_not_distractors(rng: random.Random) -> None:
    """Test that words sharing the correct answer's text are skipped."""
    pool = make_pool(4)
    pool.append(Word(id=99, group_id=1, front="synonym", back="back-1"))
    pool.append(Word(id=100, group_id=1, front="other", back="back-2"))
    options = generate_options(pool[0], pool, rng=rng)

    assert options is not None
    assert options.options.count("back-1") == 1
    assert len(set(options.options)) == 4


def test_tops_up_from_fallback_pool(rng: random.Random) -> None:
    """Test that a small group borrows distractors from other groups."""
    same = make_pool(2)
    fallback = same + make_pool(5, group_id=2, start_id=10)
    options = generate_options(same[0], same, fallback, rng=rng)

    assert options is not None
    assert "back-2" in options.options
    assert len(set(options.options)) == 4


def test_not_enough_distractors_returns_none(rng: random.Random) -> None:
    """Test that quiz generation gives up instead of returning fewer options."""
    pool = make_pool(3)
    assert generate_options(pool[0], pool, pool, rng=rng) is None


def test_options_vary_over_calls() -> None:
    """Test that option order is shuffled."""
    pool = make_pool(10)
    rng = random.Random(7)
    orders = {tuple(generate_options(pool[0], pool, rng=rng).options) for _ in range(20)}
    assert len(orders) > 1


def test_can_generate_quiz_needs_four_distinct_answers() -> None:
    """Test the quiz-mode eligibility check."""
    assert can_generate_quiz(make_pool(4))
    assert not can_generate_quiz(make_pool(3))

    pool = make_pool(3) + [Word(id=50, group_id=1, front=fake.word(), back="back-1")]
    assert not can_generate_quiz(pool)
