import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from cardwise.application.config import resolve_config
from cardwise.application.factory import get_card_store
from cardwise.application.local_scheduler import LocalPreferences, LocalSessionScheduler
from cardwise.application.srs_scheduler import SrsSessionScheduler
from cardwise.consts import VERSION
from cardwise.domain.constants import MAX_RETAINED_SESSIONS
from cardwise.domain.errors import (
    CardStoreError,
    CardwiseError,
    NoCardsDue,
    ReviewInFlight,
    SchedulerInputError,
)
from cardwise.domain.models import Card, ClientDifficulty, LocalMode, StudyMode
from cardwise.domain.ports import CardStore

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cardwise.server")

_store: CardStore | None = None
local_sessions: dict[str, LocalSessionScheduler] = {}
srs_sessions: dict[str, SrsSessionScheduler] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Cardwise Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Cardwise Server shutting down...")
    local_sessions.clear()
    srs_sessions.clear()
    if _store is not None:
        await _store.aclose()


app = FastAPI(
    title="Cardwise Server",
    description="Study session scheduling for vocabulary flashcards.",
    version=VERSION,
    lifespan=lifespan,
)


def get_store() -> CardStore:
    """Card store shared by every request, built from the resolved config."""
    global _store
    if _store is None:
        _store = get_card_store(resolve_config())
    return _store


def _to_http(e: CardwiseError) -> HTTPException:
    if isinstance(e, SchedulerInputError):
        status = 400
    elif isinstance(e, NoCardsDue):
        status = 404
    elif isinstance(e, ReviewInFlight):
        status = 409
    elif isinstance(e, CardStoreError):
        status = 503
    else:
        status = 500
    return HTTPException(status_code=status, detail=str(e))


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CardView(BaseModel):
    id: int
    deck_id: int
    front: str
    back: str
    ipa: str | None = None
    image_url: str | None = None
    audio_url: str | None = None
    examples: list[str] = []

    @classmethod
    def from_card(cls, card: Card) -> "CardView":
        return cls(
            id=card.id,
            deck_id=card.deck_id,
            front=card.front,
            back=card.back,
            ipa=card.ipa,
            image_url=card.image_url,
            audio_url=card.audio_url,
            examples=card.examples,
        )


class DueCountResponse(BaseModel):
    due_cards: int
    new_cards: int
    learning_cards: int
    review_cards: int
    has_cards_available: bool
    next_card_available_at: datetime | None = None
    minutes_until_next: int


class LocalSessionResponse(BaseModel):
    session_id: str
    state: str
    deck_id: int | None = None
    total_cards: int = 0
    studied_cards: int = 0
    completed_cards: int = 0
    answer_shown: bool = False
    current_card: CardView | None = None
    times_studied: int = 0


class SrsSessionResponse(BaseModel):
    session_id: str
    state: str
    total_cards: int = 0
    reviewed_cards: int = 0
    correct_cards: int = 0
    current_card: CardView | None = None
    availability: DueCountResponse | None = None


start_time = time.time()


def _local_view(session_id: str, scheduler: LocalSessionScheduler) -> LocalSessionResponse:
    session = scheduler.session
    if session is None:
        return LocalSessionResponse(session_id=session_id, state=scheduler.state.value)
    current = session.current_card
    return LocalSessionResponse(
        session_id=session_id,
        state=scheduler.state.value,
        deck_id=session.deck_id,
        total_cards=session.total_cards,
        studied_cards=session.reviewed_count,
        completed_cards=session.completed_count,
        answer_shown=session.answer_shown,
        current_card=CardView.from_card(current.card) if current else None,
        times_studied=current.times_studied if current else 0,
    )


def _srs_view(scheduler: SrsSessionScheduler) -> SrsSessionResponse:
    session = scheduler.session
    current = session.current
    availability = None
    if session.availability is not None:
        availability = DueCountResponse(**vars(session.availability))
    return SrsSessionResponse(
        session_id=session.session_id,
        state=scheduler.state.value,
        total_cards=session.total_cards,
        reviewed_cards=session.reviewed_cards,
        correct_cards=session.correct_cards,
        current_card=CardView.from_card(current.card) if current else None,
        availability=availability,
    )


def _register(registry: dict, session_id: str, scheduler) -> None:
    """
    Track a new session, evicting old ones once the registry is full.

    Finished sessions go first, oldest first; active ones only when every
    tracked session is still running.
    """
    while len(registry) >= MAX_RETAINED_SESSIONS:
        victim = next(
            (k for k, s in registry.items() if s.state.value == "complete"),
            next(iter(registry)),
        )
        registry.pop(victim).reset()
        logger.info(f"Evicted session {victim}")
    registry[session_id] = scheduler


def _local(session_id: str) -> LocalSessionScheduler:
    scheduler = local_sessions.get(session_id)
    if scheduler is None:
        raise HTTPException(status_code=404, detail=f"Unknown local session {session_id}")
    return scheduler


def _srs(session_id: str) -> SrsSessionScheduler:
    scheduler = srs_sessions.get(session_id)
    if scheduler is None:
        raise HTTPException(status_code=404, detail=f"Unknown SRS session {session_id}")
    return scheduler


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/due-count", response_model=DueCountResponse)
async def due_count(deck_id: int | None = None, store: CardStore = Depends(get_store)):
    try:
        availability = await store.get_due_count(deck_id)
    except CardwiseError as e:
        logger.error(f"Due count failed: {e}")
        raise _to_http(e) from e
    return DueCountResponse(**vars(availability))


# ---------------------------------------------------------------------------
# Local sessions
# ---------------------------------------------------------------------------


class LocalStartRequest(BaseModel):
    deck_id: int
    deck_title: str = ""
    mode: LocalMode = LocalMode.STUDY
    shuffle_cards: bool | None = None


class RateRequest(BaseModel):
    difficulty: ClientDifficulty


@app.post("/local/sessions", response_model=LocalSessionResponse)
async def start_local_session(req: LocalStartRequest, store: CardStore = Depends(get_store)):
    """
    Load a whole deck and start an easy/hard study session over it.
    """
    config = resolve_config()
    shuffle = config.shuffle_cards if req.shuffle_cards is None else req.shuffle_cards
    scheduler = LocalSessionScheduler(
        preferences=LocalPreferences(show_progress=config.show_progress, shuffle_cards=shuffle)
    )
    try:
        await scheduler.start_from_store(
            store, req.deck_id, req.deck_title, page_size=config.page_size, mode=req.mode
        )
    except CardwiseError as e:
        logger.error(f"Local session start failed: {e}")
        raise _to_http(e) from e

    session_id = uuid.uuid4().hex
    _register(local_sessions, session_id, scheduler)
    return _local_view(session_id, scheduler)


@app.post("/local/sessions/{session_id}/answer", response_model=LocalSessionResponse)
async def show_local_answer(session_id: str):
    scheduler = _local(session_id)
    scheduler.show_answer()
    return _local_view(session_id, scheduler)


@app.post("/local/sessions/{session_id}/rate", response_model=LocalSessionResponse)
async def rate_local_card(session_id: str, req: RateRequest):
    scheduler = _local(session_id)
    scheduler.rate_card(req.difficulty)
    return _local_view(session_id, scheduler)


@app.post("/local/sessions/{session_id}/previous", response_model=LocalSessionResponse)
async def previous_local_card(session_id: str):
    scheduler = _local(session_id)
    scheduler.previous_card()
    return _local_view(session_id, scheduler)


@app.get("/local/sessions/{session_id}/stats")
async def local_stats(session_id: str):
    summary = _local(session_id).stats()
    return summary.to_dict() if summary else {}


@app.delete("/local/sessions/{session_id}")
async def discard_local_session(session_id: str):
    scheduler = local_sessions.pop(session_id, None)
    if scheduler is None:
        raise HTTPException(status_code=404, detail=f"Unknown local session {session_id}")
    scheduler.reset()
    return {"ok": True}


# ---------------------------------------------------------------------------
# SRS sessions
# ---------------------------------------------------------------------------


class SrsStartRequest(BaseModel):
    mode: StudyMode | None = None
    deck_id: int | None = None


class ReviewRequest(BaseModel):
    # Validated by the scheduler so bad grades surface as InvalidGrade.
    grade: Any
    response_time_ms: int | None = None


@app.post("/srs/sessions", response_model=SrsSessionResponse)
async def start_srs_session(req: SrsStartRequest, store: CardStore = Depends(get_store)):
    """
    Start a spaced-repetition session over the cards due now.
    """
    config = resolve_config()
    scheduler = SrsSessionScheduler(
        store, page_size=config.page_size, max_cards=config.max_cards_per_session
    )
    try:
        session = await scheduler.start(req.mode or config.default_mode, req.deck_id)
    except CardwiseError as e:
        logger.info(f"SRS session not started: {e}")
        raise _to_http(e) from e

    _register(srs_sessions, session.session_id, scheduler)
    return _srs_view(scheduler)


@app.post("/srs/sessions/{session_id}/next", response_model=SrsSessionResponse)
async def next_srs_card(session_id: str):
    scheduler = _srs(session_id)
    try:
        await scheduler.get_next_card()
    except CardwiseError as e:
        logger.error(f"Fetching next card failed: {e}")
        raise _to_http(e) from e
    return _srs_view(scheduler)


@app.post("/srs/sessions/{session_id}/review", response_model=SrsSessionResponse)
async def review_srs_card(session_id: str, req: ReviewRequest):
    scheduler = _srs(session_id)
    try:
        await scheduler.submit_review(req.grade, req.response_time_ms)
    except CardwiseError as e:
        raise _to_http(e) from e
    return _srs_view(scheduler)


@app.post("/srs/sessions/{session_id}/pause", response_model=SrsSessionResponse)
async def pause_srs_session(session_id: str):
    scheduler = _srs(session_id)
    scheduler.pause()
    return _srs_view(scheduler)


@app.post("/srs/sessions/{session_id}/resume", response_model=SrsSessionResponse)
async def resume_srs_session(session_id: str):
    scheduler = _srs(session_id)
    scheduler.resume()
    return _srs_view(scheduler)


@app.post("/srs/sessions/{session_id}/complete")
async def complete_srs_session(session_id: str):
    try:
        summary = _srs(session_id).complete()
    except CardwiseError as e:
        raise _to_http(e) from e
    return summary.to_dict()


@app.delete("/srs/sessions/{session_id}")
async def discard_srs_session(session_id: str):
    scheduler = srs_sessions.pop(session_id, None)
    if scheduler is None:
        raise HTTPException(status_code=404, detail=f"Unknown SRS session {session_id}")
    scheduler.reset()
    return {"ok": True}
