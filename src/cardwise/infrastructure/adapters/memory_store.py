"""
In-memory card store.

Dict-backed implementation of the CardStore port. Used by tests, the CLI's
offline mode and the server's demo backend.
"""

import logging
import math
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from cardwise.domain.errors import CardStoreUnavailable
from cardwise.domain.models import Card, CardPage, DueCardsCount, IntervalResult, StudyStats
from cardwise.domain.ports import CardStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _paginate(cards: list[Card], page: int, size: int) -> CardPage:
    size = max(size, 1)
    total = len(cards)
    start = page * size
    content = cards[start : start + size]
    total_pages = math.ceil(total / size) if total else 0
    return CardPage(
        content=content,
        page=page,
        size=size,
        total_elements=total,
        total_pages=total_pages,
        last=page >= total_pages - 1,
    )


class InMemoryCardStore(CardStore):
    """
    Holds cards and their stats in process memory.

    Set fail_writes to simulate an unreachable store during write-back.
    """

    def __init__(
        self,
        cards: Iterable[Card] = (),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._cards: dict[int, Card] = {}
        self._clock = clock
        self.fail_writes = False
        self.writes: list[tuple[int, IntervalResult]] = []
        for card in cards:
            self.add_card(card)

    def add_card(self, card: Card) -> None:
        self._cards[card.id] = card

    def card(self, card_id: int) -> Card:
        return self._cards[card_id]

    def _in_scope(self, deck_id: int | None) -> list[Card]:
        cards = self._cards.values()
        if deck_id is not None:
            cards = [c for c in cards if c.deck_id == deck_id]
        return sorted(cards, key=lambda c: c.id)

    def _due(self, deck_id: int | None, now: datetime) -> list[Card]:
        due = [c for c in self._in_scope(deck_id) if c.stats is None or c.stats.is_due(now)]
        # Oldest due first; never-reviewed cards after overdue reviews.
        return sorted(
            due,
            key=lambda c: (
                c.stats is None or c.stats.next_review_at is None,
                c.stats.next_review_at if c.stats and c.stats.next_review_at else now,
                c.id,
            ),
        )

    async def get_due_count(self, deck_id: int | None = None) -> DueCardsCount:
        now = self._clock()
        due = self._due(deck_id, now)
        new = [c for c in due if c.is_new]
        # Relearning cards: reviewed but repetitions reset by a failed grade.
        learning = [c for c in due if not c.is_new and c.stats.repetitions == 0]

        upcoming = [
            c.stats.next_review_at
            for c in self._in_scope(deck_id)
            if c.stats and c.stats.next_review_at and c.stats.next_review_at > now
        ]
        next_at = now if due else (min(upcoming) if upcoming else None)
        minutes = 0
        if next_at is not None and next_at > now:
            minutes = math.ceil((next_at - now).total_seconds() / 60)

        return DueCardsCount(
            due_cards=len(due),
            new_cards=len(new),
            learning_cards=len(learning),
            review_cards=len(due) - len(new) - len(learning),
            has_cards_available=bool(due),
            next_card_available_at=next_at,
            minutes_until_next=minutes,
        )

    async def list_due_cards(
        self, deck_id: int | None = None, page: int = 0, size: int = 50
    ) -> CardPage:
        return _paginate(self._due(deck_id, self._clock()), page, size)

    async def get_stats(self, card_id: int) -> StudyStats | None:
        card = self._cards.get(card_id)
        return card.stats if card else None

    async def write_stats(self, card_id: int, result: IntervalResult) -> None:
        if self.fail_writes:
            raise CardStoreUnavailable("in-memory store is set to fail writes")
        card = self._cards.get(card_id)
        if card is None:
            raise CardStoreUnavailable(f"unknown card {card_id}")
        card.stats = (card.stats or StudyStats.initial()).apply(result, reviewed_at=self._clock())
        self.writes.append((card_id, result))
        logger.debug(f"Stored stats for card {card_id}: interval={result.interval}d")

    async def list_cards_by_deck(self, deck_id: int, page: int = 0, size: int = 50) -> CardPage:
        return _paginate(self._in_scope(deck_id), page, size)
