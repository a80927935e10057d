"""Tests for word service."""
from datetime import timedelta

import pytest
from faker import Faker
from sqlalchemy.orm import Session

from wordstudy.models.models import Word, WordGroup
from wordstudy.services.word_service import WordService

fake = Faker()


@pytest.fixture
def word_service(db: Session) -> WordService:
    """Create a word service instance."""
    return WordService(db)


def test_create_group_and_children(word_service: WordService) -> None:
    """Test creating nested groups."""
    level = word_service.create_group("Level 1")
    unit_b = word_service.create_group("Unit B", parent_id=level.id, order_index=2)
    unit_a = word_service.create_group("Unit A", parent_id=level.id, order_index=1)

    assert level.is_top_level
    assert not unit_a.is_top_level
    assert [g.id for g in word_service.get_child_groups(level.id)] == [unit_a.id, unit_b.id]


def test_create_word(word_service: WordService, top_group: WordGroup) -> None:
    """Test creating a word."""
    front, back = fake.word(), fake.word()
    word = word_service.create_word(top_group.id, front, back, example_front=fake.sentence())

    assert word.id is not None
    assert word.front == front
    assert word.back == back
    assert word.mastery_level == 0
    assert word.is_new
    assert word.is_acquired is False


def test_create_word_in_missing_group(word_service: WordService) -> None:
    """Test that words need an existing group."""
    with pytest.raises(ValueError):
        word_service.create_word(999, "a", "b")


def test_create_words(word_service: WordService, top_group: WordGroup) -> None:
    """Test bulk creation."""
    words = word_service.create_words(top_group.id, [("one", "uno"), ("two", "dos")])
    assert len(words) == 2
    assert [w.front for w in word_service.get_group_words(top_group.id)] == ["one", "two"]


def test_get_words_by_ids_keeps_order(word_service: WordService, top_group: WordGroup, make_words) -> None:
    """Test lookup order and skipping of missing ids."""
    words = make_words(top_group, 3)
    ids = [words[2].id, 999, words[0].id]

    assert [w.id for w in word_service.get_words_by_ids(ids)] == [words[2].id, words[0].id]
    assert word_service.get_words_by_ids([]) == []


def test_words_for_study_new_first_then_due(
    word_service: WordService, db: Session, top_group: WordGroup, make_words, clock
) -> None:
    """Test pool selection order and exclusion of words not yet due."""
    words = make_words(top_group, 5)
    now = clock.now
    words[0].mastery_level, words[0].next_review_at = 2, now - timedelta(hours=1)
    words[1].mastery_level, words[1].next_review_at = 3, now - timedelta(hours=5)
    words[2].mastery_level, words[2].next_review_at = 1, now + timedelta(hours=1)
    db.commit()

    pool = word_service.get_words_for_study(top_group.id, now, limit=10)

    assert [w.id for w in pool] == [words[3].id, words[4].id, words[1].id, words[0].id]
    assert word_service.get_due_word_count(top_group.id, now) == 4


def test_words_for_study_respects_limit(
    word_service: WordService, top_group: WordGroup, make_words, clock
) -> None:
    """Test the batch size limit."""
    make_words(top_group, 25)
    assert len(word_service.get_words_for_study(top_group.id, clock.now, limit=20)) == 20


def test_words_for_study_includes_due_top_level(
    word_service: WordService, db: Session, top_group: WordGroup, make_words, clock
) -> None:
    """Test that mastered words come back once their seven days have passed."""
    word = make_words(top_group, 1)[0]
    word.mastery_level = 5
    word.next_review_at = clock.now - timedelta(days=7)
    db.commit()

    assert word_service.get_words_for_study(top_group.id, clock.now, limit=20) == [word]
    assert word_service.get_mastered_count(top_group.id) == 1


def test_delete_word(word_service: WordService, db: Session, top_group: WordGroup, make_words) -> None:
    """Test deleting a word."""
    word = make_words(top_group, 1)[0]
    word_id = word.id

    assert word_service.delete_word(word_id) is True
    assert db.get(Word, word_id) is None
    assert word_service.delete_word(word_id) is False


def test_search_words(word_service: WordService, top_group: WordGroup) -> None:
    """Test searching by either side."""
    word_service.create_word(top_group.id, "apple", "manzana")
    word_service.create_word(top_group.id, "pear", "pera")

    assert [w.front for w in word_service.search_words("APP")] == ["apple"]
    assert [w.front for w in word_service.search_words("per")] == ["pear"]
