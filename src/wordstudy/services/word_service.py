"""Service for managing words and vocabulary groups."""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from wordstudy.config import MAX_MASTERY_LEVEL
from wordstudy.models.base import transaction
from wordstudy.models.models import Word, WordGroup

logger = logging.getLogger(__name__)


class WordService:
    """Service for managing words in the system."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    # Groups

    def get_group(self, group_id: int) -> Optional[WordGroup]:
        """Get a group by its ID."""
        return self.db.get(WordGroup, group_id)

    def create_group(self, name: str, parent_id: Optional[int] = None, order_index: int = 0) -> WordGroup:
        """Create a vocabulary group."""
        group = WordGroup(name=name, parent_id=parent_id, order_index=order_index)
        with transaction(self.db):
            self.db.add(group)
        self.db.refresh(group)
        return group

    def get_child_groups(self, parent_id: int) -> List[WordGroup]:
        """Get the groups nested under a top-level group."""
        return (
            self.db.query(WordGroup)
            .filter(WordGroup.parent_id == parent_id)
            .order_by(WordGroup.order_index, WordGroup.id)
            .all()
        )

    # Words

    def get_word(self, word_id: int) -> Optional[Word]:
        """Get a word by its ID."""
        return self.db.get(Word, word_id)

    def get_words_by_ids(self, word_ids: Iterable[int]) -> List[Word]:
        """Get words in the order of ``word_ids``, skipping ids that no longer exist."""
        ids = list(word_ids)
        if not ids:
            return []
        found: Dict[int, Word] = {
            word.id: word for word in self.db.query(Word).filter(Word.id.in_(set(ids))).all()
        }
        return [found[word_id] for word_id in ids if word_id in found]

    def get_group_words(self, group_id: int) -> List[Word]:
        """Get all words of a group."""
        return (
            self.db.query(Word)
            .filter(Word.group_id == group_id)
            .order_by(Word.id)
            .all()
        )

    def get_all_words(self) -> List[Word]:
        """Get every word across all groups."""
        return self.db.query(Word).order_by(Word.id).all()

    def create_word(
        self,
        group_id: int,
        front: str,
        back: str,
        example_front: Optional[str] = None,
        example_back: Optional[str] = None,
    ) -> Word:
        """Create a new word in a group."""
        if self.get_group(group_id) is None:
            raise ValueError(f"Group {group_id} not found")
        word = Word(
            group_id=group_id,
            front=front,
            back=back,
            example_front=example_front,
            example_back=example_back,
        )
        with transaction(self.db):
            self.db.add(word)
        self.db.refresh(word)
        return word

    def create_words(self, group_id: int, pairs: Iterable[tuple]) -> List[Word]:
        """Create multiple words at once from (front, back) pairs."""
        if self.get_group(group_id) is None:
            raise ValueError(f"Group {group_id} not found")
        words = [Word(group_id=group_id, front=front, back=back) for front, back in pairs]
        with transaction(self.db):
            self.db.add_all(words)
        return words

    def delete_word(self, word_id: int) -> bool:
        """Delete a word and its study records."""
        word = self.get_word(word_id)
        if not word:
            return False
        with transaction(self.db):
            self.db.delete(word)
        logger.info(f"Deleted word {word_id}")
        return True

    def get_words_for_study(self, group_id: int, now: datetime, limit: int) -> List[Word]:
        """Choose the word pool for a new session.

        Words never reviewed come first (oldest first), then words whose next
        review is due (most overdue first), up to ``limit`` words.
        """
        new_words = (
            self.db.query(Word)
            .filter(
                and_(
                    Word.group_id == group_id,
                    Word.next_review_at.is_(None),
                )
            )
            .order_by(Word.id)
            .limit(limit)
            .all()
        )
        remaining = limit - len(new_words)
        if remaining <= 0:
            return new_words

        due_words = (
            self.db.query(Word)
            .filter(
                and_(
                    Word.group_id == group_id,
                    Word.next_review_at.isnot(None),
                    Word.next_review_at <= now,
                )
            )
            .order_by(Word.next_review_at, Word.id)
            .limit(remaining)
            .all()
        )
        logger.debug(f"Group {group_id}: {len(new_words)} new and {len(due_words)} due words selected")
        return new_words + due_words

    def get_due_word_count(self, group_id: int, now: datetime) -> int:
        """Count words of a group that are new or due."""
        return (
            self.db.query(Word)
            .filter(
                Word.group_id == group_id,
                or_(Word.next_review_at.is_(None), Word.next_review_at <= now),
            )
            .count()
        )

    def get_mastered_count(self, group_id: int) -> int:
        """Count words of a group at the top mastery level."""
        return (
            self.db.query(Word)
            .filter(Word.group_id == group_id, Word.mastery_level >= MAX_MASTERY_LEVEL)
            .count()
        )

    def search_words(self, query: str, limit: int = 10) -> List[Word]:
        """Search for words by either side's text."""
        return (
            self.db.query(Word)
            .filter(
                or_(
                    Word.front.ilike(f"%{query}%"),
                    Word.back.ilike(f"%{query}%"),
                )
            )
            .limit(limit)
            .all()
        )
