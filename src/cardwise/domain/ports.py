"""
Ports (interfaces) for the card store.

These define the contract that infrastructure adapters must implement.
Schedulers depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import CardPage, DueCardsCount, IntervalResult, StudyStats


class CardStore(ABC):
    """
    Port for reading cards and reading/writing their study statistics.

    Implementations:
        - HttpCardStore: Talks to the flashcard REST API.
        - InMemoryCardStore: Dict-backed store for tests and offline runs.

    Every method may raise CardStoreUnavailable on transport failure.
    """

    @abstractmethod
    async def get_due_count(self, deck_id: int | None = None) -> DueCardsCount:
        """
        Report how many cards are due now and when the next one will be.

        Args:
            deck_id: Restrict to one deck; None means all decks.
        """
        pass

    @abstractmethod
    async def list_due_cards(
        self, deck_id: int | None = None, page: int = 0, size: int = 50
    ) -> CardPage:
        """
        List the cards that are due now, oldest due first.

        Args:
            deck_id: Restrict to one deck; None means all decks.
            page: Zero-based page number.
            size: Page size.
        """
        pass

    @abstractmethod
    async def get_stats(self, card_id: int) -> StudyStats | None:
        """Return the persisted stats of a card, or None if it was never reviewed."""
        pass

    @abstractmethod
    async def write_stats(self, card_id: int, result: IntervalResult) -> None:
        """
        Persist a freshly computed interval result for a card.

        Raises:
            CardStoreUnavailable: The write did not land. Nothing was persisted.
        """
        pass

    @abstractmethod
    async def list_cards_by_deck(self, deck_id: int, page: int = 0, size: int = 50) -> CardPage:
        """List every card of a deck, paginated."""
        pass

    async def aclose(self) -> None:
        """Release held connections. Stores without any keep the default no-op."""
        return None
