"""
Spaced-repetition study session scheduler.

Pulls due cards from the card store one at a time, grades them through the
interval calculator and writes the result back before counting the review.
A session is a finite pull of due cards: no card is reviewed twice.
"""

import logging
import uuid
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from cardwise.application.interval_calculator import compute_for_stats
from cardwise.application.stats import SessionStatsAggregator, SessionSummary
from cardwise.domain.constants import DEFAULT_MAX_CARDS_PER_SESSION, DEFAULT_PAGE_SIZE
from cardwise.domain.errors import (
    CardStoreError,
    CardStoreUnavailable,
    NoCardsDue,
    NoCurrentCard,
    ReviewInFlight,
    ReviewWriteFailed,
)
from cardwise.domain.models import (
    Card,
    DueCardsCount,
    Grade,
    IntervalResult,
    StudyMode,
    StudyStats,
)
from cardwise.domain.ports import CardStore
from cardwise.domain.session import PracticeCard, SrsSession

logger = logging.getLogger(__name__)


class SrsState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETE = "complete"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return max(int((end - start).total_seconds() * 1000), 0)


class SrsSessionScheduler:
    """
    Scheduler for one persistent SRS session.

    Depends on the CardStore port, not a concrete adapter. Only one
    submit_review may be outstanding at a time; a second one is rejected
    with ReviewInFlight rather than interleaved.
    """

    def __init__(
        self,
        store: CardStore,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_cards: int = DEFAULT_MAX_CARDS_PER_SESSION,
        clock: Callable[[], datetime] = _utcnow,
        aggregator: SessionStatsAggregator | None = None,
    ):
        """
        Args:
            store: The card store (port) used for due cards and write-back.
            page_size: How many due cards to request per fetch.
            max_cards: Upper bound on cards reviewed in one session.
            clock: Wall clock, injectable for tests.
            aggregator: Optional custom aggregator; uses default if not provided.
        """
        self._store = store
        self._page_size = page_size
        self._max_cards = max_cards
        self._clock = clock
        self._aggregator = aggregator or SessionStatsAggregator()

        self.session: SrsSession | None = None
        self._batch: deque[Card] = deque()
        self._refilled = False
        self._in_flight = False
        self._summary: SessionSummary | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SrsState:
        if self.session is None:
            return SrsState.IDLE
        if self.session.is_complete:
            return SrsState.COMPLETE
        return SrsState.ACTIVE

    @property
    def current_card(self) -> PracticeCard | None:
        return self.session.current if self.session else None

    @property
    def review_in_flight(self) -> bool:
        return self._in_flight

    @property
    def availability(self) -> DueCardsCount | None:
        return self.session.availability if self.session else None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(
        self, mode: StudyMode | str = StudyMode.FLIP, deck_id: int | None = None
    ) -> SrsSession:
        """
        Start a session over the cards due in a deck, or across all decks.

        Cards that are not due yet but will be later are not an error: the
        session starts and carries that availability as data.

        Raises:
            NoCardsDue: Nothing is due now and nothing is scheduled.
            CardStoreUnavailable: The store could not be reached. Still Idle.
        """
        mode = StudyMode(mode)
        availability = await self._store.get_due_count(deck_id)

        if availability.due_cards <= 0 and availability.next_card_available_at is None:
            raise NoCardsDue(deck_id)

        batch: list[Card] = []
        if availability.due_cards > 0:
            page = await self._store.list_due_cards(deck_id, page=0, size=self._page_size)
            batch = page.content

        self._batch = deque(batch)
        self._refilled = False
        self._in_flight = False
        self._summary = None
        self.session = SrsSession(
            session_id=uuid.uuid4().hex,
            mode=mode,
            started_at=self._clock(),
            deck_id=deck_id,
            availability=availability,
            total_cards=min(max(availability.due_cards, 0), self._max_cards),
        )
        self._recount_total()

        if not batch:
            logger.info(
                f"No cards due now for deck={deck_id}; "
                f"next in {availability.minutes_until_next} minutes"
            )
        else:
            logger.info(
                f"Started SRS session {self.session.session_id} "
                f"(deck={deck_id}, mode={mode.value}, due={availability.due_cards})"
            )
        return self.session

    async def get_next_card(self) -> PracticeCard | None:
        """
        Fill the card slot with the next due card.

        Returns the current card if the slot is already occupied, or None once
        the session is complete.
        """
        session = self._require_session()
        if session.is_complete:
            return None
        if session.current is not None:
            return session.current

        card = self._pop_candidate(session)
        if card is None and not self._refilled and session.reviewed_cards < self._max_cards:
            # Raises CardStoreUnavailable with the session untouched.
            await self._refill(session)
            self._refilled = True
            card = self._pop_candidate(session)

        if card is None:
            self._finish(session)
            logger.info(f"SRS session {session.session_id} ran out of due cards")
            return None

        # A later exhaustion may re-query again.
        self._refilled = False
        session.current = PracticeCard(
            card=card, shown_at=self._clock(), pause_ms_at_show=session.total_pause_ms
        )
        self._recount_total()
        return session.current

    async def submit_review(self, grade: int, response_time_ms: int | None = None) -> PracticeCard:
        """
        Grade the current card and persist the new schedule.

        The review only counts once the write-back succeeded. On failure the
        session is left exactly as it was, so the same call can be retried.

        Raises:
            InvalidGrade: grade is outside 0-3.
            NoCurrentCard: No card is being shown.
            ReviewInFlight: A previous review is still being written back.
            ReviewWriteFailed: The card store rejected or dropped the write.
            CardStoreUnavailable: The card's saved stats could not be read.
        """
        g = Grade.parse(grade)
        session = self._require_session()
        if self._in_flight:
            raise ReviewInFlight("a review is already being saved for this session")
        practice_card = session.current
        if practice_card is None:
            raise NoCurrentCard()

        self._in_flight = True
        try:
            stats = await self._current_stats(practice_card)
            now = self._clock()
            result = compute_for_stats(g, stats, now)
            await self._write_back(practice_card, result)
        finally:
            self._in_flight = False

        if self.session is not session:
            # reset() while the write was outstanding; the write landed but the
            # session it belonged to is gone.
            logger.debug(f"Review for card {practice_card.id} landed after session reset")
            return practice_card

        if response_time_ms is None:
            response_time_ms = self._exposure_ms(session, practice_card, now)
        response_time_ms = max(int(response_time_ms), 0)

        practice_card.card.stats = (stats or StudyStats.initial()).apply(
            result, reviewed_at=now
        )
        practice_card.grade = g
        practice_card.was_correct = g.is_passing
        practice_card.time_spent_ms = response_time_ms
        practice_card.is_reviewed = True

        session.reviewed.append(practice_card)
        session.reviewed_cards += 1
        if g.is_passing:
            session.correct_cards += 1
        session.grade_breakdown[g] += 1
        session.total_response_time_ms += response_time_ms
        session.current = None

        logger.debug(
            f"Card {practice_card.id} graded {g.label}: interval={result.interval}d "
            f"ease={result.ease_factor:.2f} reps={result.repetitions}"
        )
        return practice_card

    def pause(self) -> None:
        session = self._require_session()
        if session.is_complete or session.paused_at is not None:
            return
        session.paused_at = self._clock()

    def resume(self) -> None:
        session = self._require_session()
        if session.paused_at is None:
            return
        session.total_pause_ms += _elapsed_ms(session.paused_at, self._clock())
        session.paused_at = None

    def complete(self) -> SessionSummary:
        """
        Finalize the session and return its summary.

        Calling it again returns the same summary without recomputing.

        Raises:
            ReviewInFlight: A review is still being written back.
        """
        if self._summary is not None:
            return self._summary
        if self._in_flight:
            raise ReviewInFlight("cannot complete while a review is being saved")
        session = self._require_session()
        if session.paused_at is not None:
            self.resume()
        self._finish(session)
        self._summary = self._aggregator.summarize(session, now=session.ended_at)
        logger.info(
            f"SRS session {session.session_id} complete: "
            f"{session.reviewed_cards} reviewed, accuracy {self._summary.accuracy}%"
        )
        return self._summary

    def stats(self) -> SessionSummary | None:
        if self._summary is not None:
            return self._summary
        if self.session is None:
            return None
        return self._aggregator.summarize(self.session, now=self._clock())

    def reset(self) -> None:
        """
        Abandon the session.

        An outstanding write-back still lands; only in-memory state is dropped.
        """
        if self.session is not None:
            logger.debug(f"Discarding SRS session {self.session.session_id}")
        self.session = None
        self._batch.clear()
        self._refilled = False
        self._summary = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_session(self) -> SrsSession:
        if self.session is None:
            raise NoCurrentCard("no SRS session has been started")
        return self.session

    def _pop_candidate(self, session: SrsSession) -> Card | None:
        if session.reviewed_cards >= self._max_cards:
            return None
        seen = session.reviewed_ids
        while self._batch:
            card = self._batch.popleft()
            if card.id not in seen:
                return card
        return None

    async def _refill(self, session: SrsSession) -> None:
        """
        Re-query the store: cards may have become due while the session ran.

        Cards already reviewed this session can be due again (a failed grade
        schedules them for tomorrow, and the clock moves), so pages holding
        only those are skipped until one with an unseen card turns up.
        """
        seen = session.reviewed_ids
        fresh: list[Card] = []
        try:
            availability = await self._store.get_due_count(session.deck_id)
            if availability.due_cards <= 0:
                return
            page_no = 0
            while not fresh:
                page = await self._store.list_due_cards(
                    session.deck_id, page=page_no, size=self._page_size
                )
                fresh = [c for c in page.content if c.id not in seen]
                if page.last or not page.content:
                    break
                page_no += 1
        except CardStoreError:
            raise
        except Exception as e:
            raise CardStoreUnavailable(f"could not refresh due cards: {e}") from e

        session.availability = availability
        self._batch.extend(fresh)
        logger.debug(f"Refilled SRS session {session.session_id} with {len(fresh)} cards")

    async def _current_stats(self, practice_card: PracticeCard) -> StudyStats | None:
        """
        The card's saved schedule.

        Due listings may omit study stats; those are read from the store so
        the review builds on the existing ease, interval and repetitions.
        None means the card has never been reviewed.
        """
        if practice_card.card.stats is not None:
            return practice_card.card.stats
        try:
            return await self._store.get_stats(practice_card.id)
        except CardStoreError:
            raise
        except Exception as e:
            raise CardStoreUnavailable(
                f"could not read stats for card {practice_card.id}: {e}"
            ) from e

    async def _write_back(self, practice_card: PracticeCard, result: IntervalResult) -> None:
        try:
            await self._store.write_stats(practice_card.id, result)
        except Exception as e:
            logger.error(f"Write-back failed for card {practice_card.id}: {e}")
            if isinstance(e, ReviewWriteFailed):
                raise
            raise ReviewWriteFailed(practice_card.id, e) from e

    def _recount_total(self) -> None:
        session = self.session
        in_play = session.reviewed_cards + (1 if session.current else 0) + len(self._batch)
        session.total_cards = min(max(session.total_cards, in_play), self._max_cards)

    def _exposure_ms(self, session: SrsSession, card: PracticeCard, now: datetime) -> int:
        if card.shown_at is None:
            return 0
        paused = session.total_pause_ms
        if session.paused_at is not None:
            paused += _elapsed_ms(session.paused_at, now)
        # Only pauses taken while this card was on screen count against it.
        paused -= card.pause_ms_at_show
        return max(_elapsed_ms(card.shown_at, now) - paused, 0)

    def _finish(self, session: SrsSession) -> None:
        if session.is_complete:
            return
        session.is_complete = True
        session.current = None
        session.ended_at = self._clock()
