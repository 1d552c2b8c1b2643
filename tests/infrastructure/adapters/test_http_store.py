import json
from datetime import datetime, timezone

import httpx
import pytest

from cardwise.application.interval_calculator import compute_next
from cardwise.domain.errors import CardStoreUnavailable
from cardwise.domain.models import Grade
from cardwise.infrastructure.adapters.http_store import HttpCardStore

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def envelope(data, success=True, message=None):
    return {"success": success, "data": data, "message": message}


def make_store(handler, token=None):
    return HttpCardStore(
        "http://api.test/api/", token=token, transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_get_due_count_maps_payload():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = request.url
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json=envelope(
                {
                    "totalDue": 4,
                    "newCards": 1,
                    "reviewCards": 2,
                    "learningCards": 1,
                    "nextCardAvailableAt": "2024-03-01T09:00:00Z",
                    "minutesUntilNext": 0,
                    "hasCardsAvailable": True,
                }
            ),
        )

    store = make_store(handler, token="secret")
    counts = await store.get_due_count(7)
    await store.aclose()

    assert seen["url"].path == "/api/v1/practice/cards/due-count"
    assert seen["url"].params["deckId"] == "7"
    assert seen["auth"] == "Bearer secret"
    assert counts.due_cards == 4
    assert counts.review_cards == 2
    assert counts.next_card_available_at == NOW
    assert counts.has_cards_available is True


@pytest.mark.asyncio
async def test_list_due_cards_parses_cards_and_stats():
    def handler(request: httpx.Request):
        assert request.url.params["page"] == "0"
        assert request.url.params["size"] == "20"
        assert "deckId" not in request.url.params
        return httpx.Response(
            200,
            json=envelope(
                {
                    "content": [
                        {
                            "id": 11,
                            "deckId": 3,
                            "front": "gato",
                            "back": "cat",
                            "ipaPronunciation": "ˈɡa.to",
                            "examples": ["El gato duerme."],
                            "studyStats": {
                                "easeFactor": 2.36,
                                "interval": 6,
                                "repetitions": 2,
                                "lastReviewDate": "2024-02-24T09:00:00Z",
                                "nextReviewDate": "2024-03-01T09:00:00Z",
                                "quality": 2,
                            },
                        }
                    ],
                    "number": 0,
                    "size": 20,
                    "totalElements": 1,
                    "totalPages": 1,
                    "last": True,
                }
            ),
        )

    store = make_store(handler)
    page = await store.list_due_cards(size=20)

    card = page.content[0]
    assert card.id == 11
    assert card.deck_id == 3
    assert card.ipa == "ˈɡa.to"
    assert card.examples == ["El gato duerme."]
    assert card.stats.interval == 6
    assert card.stats.last_grade is Grade.GOOD
    assert card.stats.next_review_at == NOW
    assert page.last is True


@pytest.mark.asyncio
async def test_deck_listing_nested_page_metadata():
    def handler(request: httpx.Request):
        assert request.url.path == "/api/v1/decks/3/cards"
        return httpx.Response(
            200,
            json=envelope(
                {
                    "content": [{"id": 1, "front": "uno", "back": "one"}],
                    "page": {"size": 1, "number": 0, "totalElements": 2, "totalPages": 2},
                }
            ),
        )

    page = await make_store(handler).list_cards_by_deck(3, size=1)

    assert page.content[0].deck_id == 3
    assert page.content[0].stats is None
    assert page.total_pages == 2
    assert page.last is False


@pytest.mark.asyncio
async def test_write_stats_sends_put():
    captured = {}

    def handler(request: httpx.Request):
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=envelope(None))

    result = compute_next(Grade.GOOD, 2.5, 1, 1, now=NOW)
    await make_store(handler).write_stats(11, result)

    assert captured["method"] == "PUT"
    assert captured["path"] == "/api/v1/practice/cards/11/study-state"
    body = captured["body"]
    assert body["easeFactor"] == pytest.approx(2.5)
    assert body["interval"] == 6
    assert body["repetitions"] == 2
    assert body["nextReviewDate"] == "2024-03-07T09:00:00+00:00"
    assert body["quality"] == 2


@pytest.mark.asyncio
async def test_missing_stats_is_none():
    store = make_store(lambda request: httpx.Response(404))
    assert await store.get_stats(5) is None


@pytest.mark.asyncio
async def test_server_error_raises_unavailable():
    store = make_store(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(CardStoreUnavailable):
        await store.get_due_count()


@pytest.mark.asyncio
async def test_unsuccessful_envelope_raises_unavailable():
    store = make_store(
        lambda request: httpx.Response(200, json=envelope(None, False, "deck locked"))
    )
    with pytest.raises(CardStoreUnavailable, match="deck locked"):
        await store.write_stats(1, compute_next(2, 2.5, 0, 0, now=NOW))


@pytest.mark.asyncio
async def test_malformed_response_raises_unavailable():
    store = make_store(lambda request: httpx.Response(200, json={"data": {}}))
    with pytest.raises(CardStoreUnavailable, match="success"):
        await store.get_due_count()


@pytest.mark.asyncio
async def test_transport_error_raises_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CardStoreUnavailable):
        await make_store(handler).list_due_cards()


@pytest.mark.asyncio
async def test_write_that_hits_404_raises_unavailable():
    store = make_store(lambda request: httpx.Response(404))
    with pytest.raises(CardStoreUnavailable, match="404"):
        await store.write_stats(11, compute_next(Grade.GOOD, 2.5, 0, 0, now=NOW))


@pytest.mark.asyncio
async def test_stats_fetched_from_study_state():
    def handler(request: httpx.Request):
        assert request.method == "GET"
        assert request.url.path == "/api/v1/practice/cards/11/study-state"
        return httpx.Response(
            200, json=envelope({"easeFactor": 2.5, "interval": 6, "repetitions": 2})
        )

    stats = await make_store(handler).get_stats(11)

    assert stats.interval == 6
    assert stats.repetitions == 2
    assert stats.last_grade is None


def due_page(card):
    return envelope({"content": [card], "number": 0, "size": 1, "totalPages": 1, "last": True})


@pytest.mark.parametrize(
    "payload",
    [
        pytest.param(due_page({"front": "gato", "back": "cat"}), id="card-without-id"),
        pytest.param(
            due_page({"id": 1, "front": "gato", "back": "cat", "studyStats": {"quality": 5}}),
            id="quality-out-of-range",
        ),
        pytest.param(
            due_page(
                {"id": 1, "front": "gato", "studyStats": {"nextReviewDate": "next tuesday"}}
            ),
            id="bad-date",
        ),
        pytest.param(envelope(["not", "a", "page"]), id="page-not-an-object"),
    ],
)
@pytest.mark.asyncio
async def test_malformed_due_cards_raise_unavailable(payload):
    store = make_store(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(CardStoreUnavailable):
        await store.list_due_cards()


@pytest.mark.asyncio
async def test_malformed_due_count_raises_unavailable():
    store = make_store(
        lambda request: httpx.Response(200, json=envelope({"totalDue": "several"}))
    )
    with pytest.raises(CardStoreUnavailable):
        await store.get_due_count()


@pytest.mark.asyncio
async def test_malformed_study_state_raises_unavailable():
    store = make_store(
        lambda request: httpx.Response(200, json=envelope({"interval": 6, "quality": 9}))
    )
    with pytest.raises(CardStoreUnavailable):
        await store.get_stats(11)
