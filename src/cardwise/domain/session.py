"""
Session state for both scheduler variants.

A session is either a LocalSession (easy/hard, mastery-gated) or an
SrsSession (graded, persisted through the card store). Both satisfy the
SessionProgress protocol read by the statistics aggregator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Protocol

from .models import Card, ClientDifficulty, DueCardsCount, Grade, LocalMode, StudyMode


class SessionProgress(Protocol):
    """Counters every session exposes to the aggregator."""

    @property
    def total_cards(self) -> int: ...

    @property
    def reviewed_count(self) -> int: ...

    @property
    def correct_count(self) -> int: ...

    @property
    def completed_count(self) -> int: ...

    @property
    def total_response_time_ms(self) -> int: ...

    @property
    def started_at(self) -> datetime: ...

    @property
    def ended_at(self) -> datetime | None: ...


@dataclass
class ClientStudyCard:
    """A card decorated with state that only lives as long as a local session."""

    card: Card
    times_studied: int = 0
    difficulty: ClientDifficulty | None = None
    needs_review: bool = True
    last_studied_at: datetime | None = None

    @property
    def id(self) -> int:
        return self.card.id

    @property
    def is_mastered(self) -> bool:
        return self.difficulty == ClientDifficulty.EASY


@dataclass
class LocalSession:
    deck_id: int
    deck_title: str
    cards: list[ClientStudyCard]
    started_at: datetime
    mode: LocalMode = LocalMode.STUDY
    current_index: int = 0
    studied_cards: list[int] = field(default_factory=list)
    completed_cards: list[int] = field(default_factory=list)
    is_active: bool = True
    is_complete: bool = False
    answer_shown: bool = False
    ended_at: datetime | None = None
    rating_count: int = 0
    total_response_time_ms: int = 0
    card_shown_at: datetime | None = None
    kind: Literal["local"] = "local"

    @property
    def current_card(self) -> ClientStudyCard | None:
        if self.is_complete or not self.cards:
            return None
        return self.cards[self.current_index]

    @property
    def total_cards(self) -> int:
        return len(self.cards)

    @property
    def reviewed_count(self) -> int:
        return len(self.studied_cards)

    @property
    def correct_count(self) -> int:
        return len(self.completed_cards)

    @property
    def completed_count(self) -> int:
        return len(self.completed_cards)

    @property
    def mastered_count(self) -> int:
        return sum(1 for c in self.cards if c.is_mastered)


@dataclass
class PracticeCard:
    """A due card pulled into an SRS session, plus the outcome of its review."""

    card: Card
    shown_at: datetime | None = None
    pause_ms_at_show: int = 0
    grade: Grade | None = None
    time_spent_ms: int = 0
    was_correct: bool | None = None
    is_reviewed: bool = False

    @property
    def id(self) -> int:
        return self.card.id


def _empty_breakdown() -> dict[Grade, int]:
    return {g: 0 for g in Grade}


@dataclass
class SrsSession:
    session_id: str
    mode: StudyMode
    started_at: datetime
    deck_id: int | None = None
    availability: DueCardsCount | None = None
    reviewed: list[PracticeCard] = field(default_factory=list)
    current: PracticeCard | None = None
    total_cards: int = 0
    reviewed_cards: int = 0
    correct_cards: int = 0
    grade_breakdown: dict[Grade, int] = field(default_factory=_empty_breakdown)
    total_response_time_ms: int = 0
    is_complete: bool = False
    ended_at: datetime | None = None
    paused_at: datetime | None = None
    total_pause_ms: int = 0
    kind: Literal["srs"] = "srs"

    @property
    def reviewed_count(self) -> int:
        return self.reviewed_cards

    @property
    def correct_count(self) -> int:
        return self.correct_cards

    @property
    def completed_count(self) -> int:
        return self.reviewed_cards

    @property
    def reviewed_ids(self) -> set[int]:
        return {pc.id for pc in self.reviewed}

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None


Session = LocalSession | SrsSession
