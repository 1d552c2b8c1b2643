"""
Domain models for cards and their study statistics.

These are pure data structures with no I/O or external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum

from .constants import INITIAL_EASE, PASSING_GRADE
from .errors import InvalidGrade


class Grade(IntEnum):
    """Quality of a single recall attempt, monotonic in recall quality."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @classmethod
    def parse(cls, value: object) -> Grade:
        """
        Validate a raw grade coming from a caller.

        Raises:
            InvalidGrade: If value is not an integer in 0-3. Bools are rejected.
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidGrade(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidGrade(value) from None

    @property
    def is_passing(self) -> bool:
        return self >= PASSING_GRADE

    @property
    def label(self) -> str:
        return self.name.capitalize()


class ClientDifficulty(str, Enum):
    EASY = "easy"
    HARD = "hard"


class StudyMode(str, Enum):
    FLIP = "flip"
    TYPE_ANSWER = "type_answer"
    MULTIPLE_CHOICE = "multiple_choice"


class LocalMode(str, Enum):
    STUDY = "study"  # first pass through the deck
    REVIEW = "review"  # repeating hard cards


@dataclass(frozen=True)
class IntervalResult:
    """
    Output of the interval calculator for one graded card.

    Attributes:
        ease_factor: New ease factor, never below 1.3.
        interval: New interval in whole days.
        repetitions: Consecutive successful recalls after this review.
        next_due_at: When the card becomes due again.
        grade: The grade that produced this result.
    """

    ease_factor: float
    interval: int
    repetitions: int
    next_due_at: datetime
    grade: Grade


@dataclass(frozen=True)
class StudyStats:
    """
    Persisted spaced-repetition state of a card.

    Created lazily on first review. Only ever replaced by applying an
    IntervalResult.
    """

    ease_factor: float = INITIAL_EASE
    interval: int = 0
    repetitions: int = 0
    last_review_at: datetime | None = None
    next_review_at: datetime | None = None
    last_grade: Grade | None = None

    @classmethod
    def initial(cls) -> StudyStats:
        return cls()

    def apply(self, result: IntervalResult, reviewed_at: datetime) -> StudyStats:
        return replace(
            self,
            ease_factor=result.ease_factor,
            interval=result.interval,
            repetitions=result.repetitions,
            last_review_at=reviewed_at,
            next_review_at=result.next_due_at,
            last_grade=result.grade,
        )

    def is_due(self, now: datetime) -> bool:
        return self.next_review_at is None or self.next_review_at <= now


@dataclass
class Card:
    """A flashcard as owned by the card store. Content is opaque to scheduling."""

    id: int
    deck_id: int
    front: str
    back: str
    ipa: str | None = None
    image_url: str | None = None
    audio_url: str | None = None
    examples: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    stats: StudyStats | None = None

    @property
    def is_new(self) -> bool:
        return self.stats is None or self.stats.last_review_at is None


@dataclass(frozen=True)
class DueCardsCount:
    """
    Availability snapshot reported by the card store.

    "Nothing due right now" is a normal state expressed here, never raised.
    """

    due_cards: int
    new_cards: int = 0
    learning_cards: int = 0
    review_cards: int = 0
    has_cards_available: bool = False
    next_card_available_at: datetime | None = None
    minutes_until_next: int = 0


@dataclass
class CardPage:
    """One page of a paginated card listing."""

    content: list[Card]
    page: int = 0
    size: int = 0
    total_elements: int = 0
    total_pages: int = 0
    last: bool = True
