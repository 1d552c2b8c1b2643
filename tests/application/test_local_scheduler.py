import random

import pytest

from cardwise.application.local_scheduler import (
    LocalPreferences,
    LocalSessionScheduler,
    LocalState,
    shuffle_cards,
)
from cardwise.domain.errors import EmptyDeck, InvalidDifficulty, SchedulerInputError
from cardwise.domain.models import ClientDifficulty


@pytest.fixture
def scheduler(clock):
    return LocalSessionScheduler(preferences=LocalPreferences(shuffle_cards=False), clock=clock)


def current_id(scheduler):
    return scheduler.current_card.id


def test_three_card_mastery_example(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)

    assert current_id(scheduler) == 1
    scheduler.rate_card("hard")
    assert current_id(scheduler) == 2
    scheduler.rate_card("easy")
    assert current_id(scheduler) == 3
    scheduler.rate_card("easy")
    # Wraps back to the only card still hard.
    assert current_id(scheduler) == 1
    scheduler.rate_card("easy")

    session = scheduler.session
    assert scheduler.state == LocalState.COMPLETE
    assert session.completed_cards == [2, 3, 1]
    assert session.studied_cards == [1, 2, 3]
    assert session.rating_count == 4
    assert session.cards[0].times_studied == 2
    assert session.ended_at is not None
    assert scheduler.current_card is None


def test_sole_hard_card_is_shown_again(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)
    scheduler.rate_card("easy")
    scheduler.rate_card("easy")
    assert current_id(scheduler) == 3

    for _ in range(3):
        scheduler.rate_card("hard")
        assert scheduler.state == LocalState.ACTIVE
        assert current_id(scheduler) == 3

    scheduler.rate_card("easy")
    assert scheduler.state == LocalState.COMPLETE


def test_gate_is_idempotent_once_complete(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)
    for _ in deck_cards:
        scheduler.rate_card(ClientDifficulty.EASY)
    session = scheduler.session
    snapshot = (list(session.completed_cards), list(session.studied_cards), session.rating_count)

    scheduler.rate_card("hard")
    scheduler.rate_card("easy")
    scheduler.show_answer()

    assert scheduler.state == LocalState.COMPLETE
    assert (session.completed_cards, session.studied_cards, session.rating_count) == (
        snapshot[0],
        snapshot[1],
        snapshot[2],
    )
    assert session.answer_shown is False


def test_terminates_under_adversarial_ratings(clock, card_factory):
    cards = [card_factory(i) for i in range(1, 9)]
    rng = random.Random(7)
    scheduler = LocalSessionScheduler(rng=rng, clock=clock)
    scheduler.start(1, "Adversarial", cards)

    ratings = 0
    while scheduler.state == LocalState.ACTIVE:
        # Rate hard twice as often as easy; every easy is permanent.
        scheduler.rate_card("hard" if rng.random() < 0.66 else "easy")
        ratings += 1
        assert ratings < 10_000

    session = scheduler.session
    assert sorted(session.completed_cards) == list(range(1, 9))
    assert set(session.completed_cards) <= set(session.studied_cards)


def test_empty_deck_rejected_and_previous_session_kept(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)
    previous = scheduler.session

    with pytest.raises(EmptyDeck):
        scheduler.start(2, "Empty", [])

    assert scheduler.session is previous


def test_show_answer_only_while_active(scheduler, deck_cards):
    scheduler.show_answer()
    assert scheduler.session is None

    scheduler.start(1, "Basics", deck_cards)
    scheduler.show_answer()
    assert scheduler.session.answer_shown is True
    assert scheduler.can_go_next() is True

    scheduler.rate_card("hard")
    assert scheduler.session.answer_shown is False


def test_rate_without_session_is_noop(scheduler):
    scheduler.rate_card("easy")
    assert scheduler.state == LocalState.NOT_STARTED


def test_unknown_difficulty_rejected(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)

    with pytest.raises(InvalidDifficulty) as exc:
        scheduler.rate_card("meh")

    assert isinstance(exc.value, SchedulerInputError)
    assert scheduler.session.rating_count == 0
    assert current_id(scheduler) == 1


def test_previous_card(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)
    assert scheduler.can_go_previous() is False
    scheduler.previous_card()
    assert current_id(scheduler) == 1

    scheduler.rate_card("hard")
    scheduler.show_answer()
    assert scheduler.can_go_previous() is True
    scheduler.previous_card()
    assert current_id(scheduler) == 1
    assert scheduler.session.answer_shown is False


def test_response_time_accumulates(scheduler, deck_cards, clock):
    scheduler.start(1, "Basics", deck_cards)
    clock.advance(seconds=4)
    scheduler.rate_card("hard")
    clock.advance(seconds=2)
    scheduler.rate_card("easy")

    assert scheduler.session.total_response_time_ms == 6000
    summary = scheduler.stats()
    assert summary.average_time_per_card_seconds == pytest.approx(3.0)


def test_end_early_reports_summary(scheduler, deck_cards, clock):
    scheduler.start(1, "Basics", deck_cards)
    scheduler.rate_card("easy")
    scheduler.rate_card("hard")
    clock.advance(minutes=3)

    summary = scheduler.end()

    assert scheduler.state == LocalState.COMPLETE
    assert summary.session_kind == "local"
    assert summary.reviewed_cards == 2
    assert summary.correct_cards == 1
    assert summary.accuracy == 50
    assert summary.duration_minutes == pytest.approx(3.0)
    assert summary.grade_breakdown == {}


def test_reset_discards_session(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)
    scheduler.reset()
    assert scheduler.state == LocalState.NOT_STARTED
    assert scheduler.stats() is None
    assert scheduler.has_cards_to_review() is False


def test_has_cards_to_review(scheduler, deck_cards):
    scheduler.start(1, "Basics", deck_cards)
    assert scheduler.has_cards_to_review() is True
    for _ in deck_cards:
        scheduler.rate_card("easy")
    assert scheduler.has_cards_to_review() is False


def test_shuffle_is_a_permutation():
    items = list(range(20))
    shuffled = shuffle_cards(items, random.Random(3))
    assert sorted(shuffled) == items
    assert items == list(range(20))


def test_update_preferences(scheduler, deck_cards):
    prefs = scheduler.update_preferences(shuffle_cards=True)
    assert prefs.shuffle_cards is True
    assert prefs.show_progress is True


@pytest.mark.asyncio
async def test_start_from_store_pages_whole_deck(clock, card_factory):
    from cardwise.infrastructure.adapters.memory_store import InMemoryCardStore

    cards = [card_factory(i, deck_id=4) for i in range(1, 6)] + [card_factory(99, deck_id=5)]
    store = InMemoryCardStore(cards, clock=clock)
    scheduler = LocalSessionScheduler(preferences=LocalPreferences(shuffle_cards=False))

    session = await scheduler.start_from_store(store, 4, "Deck four", page_size=2)

    assert [c.id for c in session.cards] == [1, 2, 3, 4, 5]
    assert session.deck_title == "Deck four"


@pytest.mark.asyncio
async def test_start_from_store_empty_deck(memory_store):
    scheduler = LocalSessionScheduler()
    with pytest.raises(EmptyDeck):
        await scheduler.start_from_store(memory_store, 42, "Nothing")
