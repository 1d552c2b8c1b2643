"""
Local (ephemeral) study session scheduler.

Cards are rated easy or hard. Hard cards keep coming back, in a fixed
circular order, until every card in the deck has been rated easy. Nothing
is persisted; this scheduler is decoupled from the long-term SRS clock.
"""

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from cardwise.application.stats import SessionStatsAggregator, SessionSummary
from cardwise.domain.constants import DEFAULT_PAGE_SIZE
from cardwise.domain.errors import EmptyDeck, InvalidDifficulty
from cardwise.domain.models import Card, ClientDifficulty, LocalMode
from cardwise.domain.ports import CardStore
from cardwise.domain.session import ClientStudyCard, LocalSession

logger = logging.getLogger(__name__)


class LocalState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETE = "complete"


@dataclass(frozen=True)
class LocalPreferences:
    show_progress: bool = True
    shuffle_cards: bool = True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def shuffle_cards(cards: list, rng: random.Random) -> list:
    """Fisher-Yates shuffle into a new list."""
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


class LocalSessionScheduler:
    """
    Mastery-gated scheduler for one untracked practice session.

    Callers must serialize rate_card calls; the scheduler holds a single
    session and mutates it in place.
    """

    def __init__(
        self,
        preferences: LocalPreferences | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utcnow,
        aggregator: SessionStatsAggregator | None = None,
    ):
        self.preferences = preferences or LocalPreferences()
        self._rng = rng or random.Random()
        self._clock = clock
        self._aggregator = aggregator or SessionStatsAggregator()
        self.session: LocalSession | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> LocalState:
        if self.session is None:
            return LocalState.NOT_STARTED
        if self.session.is_complete:
            return LocalState.COMPLETE
        return LocalState.ACTIVE

    @property
    def current_card(self) -> ClientStudyCard | None:
        return self.session.current_card if self.session else None

    def update_preferences(self, **changes) -> LocalPreferences:
        self.preferences = replace(self.preferences, **changes)
        return self.preferences

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(
        self,
        deck_id: int,
        deck_title: str,
        cards: Sequence[Card],
        mode: LocalMode = LocalMode.STUDY,
    ) -> LocalSession:
        """
        Start a session over the given cards.

        Raises:
            EmptyDeck: If cards is empty. The previous session, if any, is kept.
        """
        if not cards:
            raise EmptyDeck(deck_id)

        study_cards = [ClientStudyCard(card=c) for c in cards]
        if self.preferences.shuffle_cards:
            study_cards = shuffle_cards(study_cards, self._rng)

        now = self._clock()
        self.session = LocalSession(
            deck_id=deck_id,
            deck_title=deck_title,
            cards=study_cards,
            started_at=now,
            mode=mode,
            card_shown_at=now,
        )
        logger.info(f"Started local session for deck {deck_id} with {len(study_cards)} cards")
        return self.session

    async def start_from_store(
        self,
        store: CardStore,
        deck_id: int,
        deck_title: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        mode: LocalMode = LocalMode.STUDY,
    ) -> LocalSession:
        """Load the whole deck up front, then start. No paging happens mid-session."""
        cards: list[Card] = []
        page = 0
        while True:
            result = await store.list_cards_by_deck(deck_id, page=page, size=page_size)
            cards.extend(result.content)
            if result.last or not result.content:
                break
            page += 1
        return self.start(deck_id, deck_title, cards, mode=mode)

    def show_answer(self) -> None:
        session = self.session
        if session is None or self.state != LocalState.ACTIVE or session.answer_shown:
            return
        session.answer_shown = True

    def rate_card(self, difficulty: ClientDifficulty | str) -> None:
        """
        Record an easy/hard rating for the current card and advance.

        No-op when there is no active session or no current card.

        Raises:
            InvalidDifficulty: difficulty is not easy or hard.
        """
        try:
            difficulty = ClientDifficulty(difficulty)
        except ValueError:
            raise InvalidDifficulty(difficulty) from None

        session = self.session
        if session is None or self.state != LocalState.ACTIVE:
            return
        card = session.current_card
        if card is None:
            return

        now = self._clock()

        card.difficulty = difficulty
        card.times_studied += 1
        card.last_studied_at = now
        session.rating_count += 1
        if session.card_shown_at is not None:
            elapsed = (now - session.card_shown_at).total_seconds() * 1000
            session.total_response_time_ms += max(int(elapsed), 0)

        if card.id not in session.studied_cards:
            session.studied_cards.append(card.id)

        if difficulty == ClientDifficulty.EASY:
            card.needs_review = False
            if card.id not in session.completed_cards:
                session.completed_cards.append(card.id)
        else:
            card.needs_review = True

        # Mastery gate: the session ends only when every card is easy.
        if session.mastered_count >= session.total_cards:
            self._complete(now)
            return

        next_index = self._find_next_unmastered(session)
        if next_index is None:
            logger.warning(
                f"Local session for deck {session.deck_id} found no unmastered card "
                f"although {session.total_cards - session.mastered_count} are not easy; "
                "ending session"
            )
            self._complete(now)
            return

        session.current_index = next_index
        session.answer_shown = False
        session.card_shown_at = now

    def previous_card(self) -> None:
        session = self.session
        if session is None or self.state != LocalState.ACTIVE or session.current_index <= 0:
            return
        session.current_index -= 1
        session.answer_shown = False
        session.card_shown_at = self._clock()

    def end(self) -> SessionSummary | None:
        """Finish the session early and report on it."""
        session = self.session
        if session is None:
            return None
        if not session.is_complete:
            self._complete(self._clock())
        return self.stats()

    def reset(self) -> None:
        """Abandon the session entirely."""
        if self.session is not None:
            logger.debug(f"Discarding local session for deck {self.session.deck_id}")
        self.session = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def stats(self) -> SessionSummary | None:
        if self.session is None:
            return None
        return self._aggregator.summarize(self.session, now=self._clock())

    def has_cards_to_review(self) -> bool:
        if self.session is None:
            return False
        return any(c.needs_review for c in self.session.cards)

    def can_go_next(self) -> bool:
        session = self.session
        if session is None or session.is_complete:
            return False
        return session.answer_shown or session.current_index < session.total_cards - 1

    def can_go_previous(self) -> bool:
        session = self.session
        if session is None or session.is_complete:
            return False
        return session.current_index > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _find_next_unmastered(session: LocalSession) -> int | None:
        """
        Two-pass circular scan over the fixed card order.

        Scans current+1 to the end, then wraps from 0 up to and including the
        current index, so a lone remaining hard card is shown again.
        """
        cards = session.cards
        for i in range(session.current_index + 1, len(cards)):
            if not cards[i].is_mastered:
                return i
        for i in range(0, session.current_index + 1):
            if not cards[i].is_mastered:
                return i
        return None

    def _complete(self, now: datetime) -> None:
        session = self.session
        session.is_complete = True
        session.is_active = False
        session.answer_shown = False
        session.ended_at = now
        logger.info(
            f"Local session for deck {session.deck_id} complete: "
            f"{session.completed_count}/{session.total_cards} mastered "
            f"in {session.rating_count} ratings"
        )
