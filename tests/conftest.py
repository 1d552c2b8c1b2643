import os
from datetime import datetime, timedelta, timezone

import pytest

from cardwise.domain.models import Card, StudyStats
from cardwise.infrastructure.adapters.memory_store import InMemoryCardStore

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for deterministic timing."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_card(card_id: int, deck_id: int = 1, stats: StudyStats | None = None) -> Card:
    return Card(
        id=card_id,
        deck_id=deck_id,
        front=f"word-{card_id}",
        back=f"meaning-{card_id}",
        stats=stats,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def deck_cards():
    """Three never-reviewed cards in deck 1."""
    return [make_card(1), make_card(2), make_card(3)]


@pytest.fixture
def memory_store(clock, deck_cards):
    return InMemoryCardStore(deck_cards, clock=clock)


@pytest.fixture
def card_factory():
    return make_card


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the developer's own config file and CARDWISE_* env out of tests."""
    from cardwise.application import config

    monkeypatch.setattr(config, "CONFIG_FILES", [tmp_path / "no-config.toml"])
    for key in list(os.environ):
        if key.startswith("CARDWISE_"):
            monkeypatch.delenv(key)
