"""
HTTP card store.

Implements the CardStore port against the flashcard REST API. Every response
is wrapped in a {success, data, message} envelope with camelCase payloads.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from cardwise.domain.constants import REQUEST_TIMEOUT
from cardwise.domain.errors import CardStoreUnavailable
from cardwise.domain.models import (
    Card,
    CardPage,
    DueCardsCount,
    Grade,
    IntervalResult,
    StudyStats,
)
from cardwise.domain.ports import CardStore


def _parse_dt(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def parse_stats(data: dict | None) -> StudyStats | None:
    if not data:
        return None
    quality = data.get("quality")
    return StudyStats(
        ease_factor=float(data.get("easeFactor", 2.5)),
        interval=int(data.get("interval", data.get("intervalDays", 0)) or 0),
        repetitions=int(data.get("repetitions", 0) or 0),
        last_review_at=_parse_dt(data.get("lastReviewDate")),
        next_review_at=_parse_dt(data.get("nextReviewDate") or data.get("dueDate")),
        last_grade=Grade(quality) if quality is not None else None,
    )


def parse_card(data: dict, deck_id: int | None = None) -> Card:
    """Map an API card (plain card or practice card) onto the domain Card."""
    return Card(
        id=int(data.get("id", data.get("cardId"))),
        deck_id=int(data.get("deckId", deck_id if deck_id is not None else 0)),
        front=data.get("front", data.get("frontText", "")),
        back=data.get("back", data.get("backDefinition", "")),
        ipa=data.get("ipaPronunciation", data.get("ipa")),
        image_url=data.get("imageUrl", data.get("frontImageUrl")),
        audio_url=data.get("audioUrl"),
        examples=list(data.get("examples") or []),
        tags=list(data.get("tags") or []),
        stats=parse_stats(data.get("studyStats")),
    )


def parse_page(data: dict, deck_id: int | None = None) -> CardPage:
    """
    Accept both pagination shapes the API emits.

    Spring style puts number/totalPages at the top level; the deck listing
    nests them under "page".
    """
    meta = data.get("page") if isinstance(data.get("page"), dict) else data
    number = int(meta.get("number", 0))
    total_pages = int(meta.get("totalPages", 0))
    return CardPage(
        content=[parse_card(c, deck_id) for c in data.get("content", [])],
        page=number,
        size=int(meta.get("size", 0)),
        total_elements=int(meta.get("totalElements", 0)),
        total_pages=total_pages,
        last=bool(data.get("last", number >= total_pages - 1)),
    )


def parse_due_count(data: dict) -> DueCardsCount:
    return DueCardsCount(
        due_cards=int(data.get("totalDue", data.get("dueCards", 0))),
        new_cards=int(data.get("newCards", 0)),
        learning_cards=int(data.get("learningCards", 0)),
        review_cards=int(data.get("reviewCards", 0)),
        has_cards_available=bool(data.get("hasCardsAvailable", False)),
        next_card_available_at=_parse_dt(data.get("nextCardAvailableAt")),
        minutes_until_next=int(data.get("minutesUntilNext", 0) or 0),
    )


def stats_payload(result: IntervalResult) -> dict:
    return {
        "easeFactor": result.ease_factor,
        "interval": result.interval,
        "repetitions": result.repetitions,
        "nextReviewDate": result.next_due_at.isoformat(),
        "quality": int(result.grade),
    }


class HttpCardStore(CardStore):
    """Adapter for the flashcard REST API (httpx, async)."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.logger.debug(f"HttpCardStore initialized with base_url={self.base_url}")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        parse: Callable[[Any], Any] | None = None,
        allow_missing: bool = False,
        **kwargs,
    ) -> Any:
        """
        Send one API call, unwrap the envelope and map the payload.

        Args:
            parse: Maps the envelope's data onto domain types. Malformed
                payloads are reported like any other store failure.
            allow_missing: Treat a 404 as "no such resource" and return None.
                Only reads may set this; a write that hits 404 did not land.

        Raises:
            CardStoreUnavailable: Transport error, non-2xx status, failed or
                malformed envelope, or a payload that does not parse.
        """
        try:
            resp = await self._get_client().request(method, path, **kwargs)
            if allow_missing and resp.status_code == 404:
                return None
            resp.raise_for_status()
            data = resp.json()

            if not isinstance(data, dict) or "success" not in data:
                raise ValueError("response is missing required success field")
            if not data["success"]:
                raise ValueError(data.get("message") or "request was not successful")
            payload = data.get("data")
            return parse(payload) if parse is not None else payload
        except (httpx.HTTPError, ValueError, TypeError, KeyError, AttributeError) as e:
            self.logger.error(f"Card store call {method} {path} failed: {e}")
            raise CardStoreUnavailable(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _deck_params(deck_id: int | None, **extra) -> dict:
        params = {k: v for k, v in extra.items() if v is not None}
        if deck_id is not None:
            params["deckId"] = deck_id
        return params

    async def get_due_count(self, deck_id: int | None = None) -> DueCardsCount:
        return await self._request(
            "GET",
            "/v1/practice/cards/due-count",
            parse=lambda data: parse_due_count(data or {}),
            params=self._deck_params(deck_id),
        )

    async def list_due_cards(
        self, deck_id: int | None = None, page: int = 0, size: int = 50
    ) -> CardPage:
        def parse(data):
            if not data:
                return CardPage(content=[], page=page, size=size)
            return parse_page(data, deck_id)

        return await self._request(
            "GET",
            "/v1/practice/due-cards",
            parse=parse,
            params=self._deck_params(deck_id, page=page, size=size),
        )

    async def get_stats(self, card_id: int) -> StudyStats | None:
        return await self._request(
            "GET",
            f"/v1/practice/cards/{card_id}/study-state",
            parse=parse_stats,
            allow_missing=True,
        )

    async def write_stats(self, card_id: int, result: IntervalResult) -> None:
        await self._request(
            "PUT",
            f"/v1/practice/cards/{card_id}/study-state",
            json=stats_payload(result),
        )

    async def list_cards_by_deck(self, deck_id: int, page: int = 0, size: int = 50) -> CardPage:
        def parse(data):
            if not data:
                return CardPage(content=[], page=page, size=size)
            return parse_page(data, deck_id)

        return await self._request(
            "GET", f"/v1/decks/{deck_id}/cards", parse=parse, params={"page": page, "size": size}
        )
