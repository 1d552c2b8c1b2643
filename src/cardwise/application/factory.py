"""
Card Store Factory
Centralizes the logic for selecting the appropriate CardStore adapter.
"""

import json
import logging

from cardwise.application.config import AppConfig
from cardwise.domain.ports import CardStore
from cardwise.infrastructure.adapters.http_store import HttpCardStore, parse_card
from cardwise.infrastructure.adapters.memory_store import InMemoryCardStore

logger = logging.getLogger(__name__)


def get_card_store(config: AppConfig) -> CardStore:
    """
    Returns the CardStore implementation selected by config.backend.

    The memory backend is seeded from config.cards_file when one is set.
    """
    if config.backend == "memory":
        store = InMemoryCardStore()
        if config.cards_file is not None:
            raw = json.loads(config.cards_file.read_text(encoding="utf-8"))
            for item in raw:
                store.add_card(parse_card(item))
            logger.info(f"Loaded {len(raw)} cards from {config.cards_file}")
        return store

    return HttpCardStore(
        base_url=config.api_url,
        token=config.api_token,
        timeout=config.request_timeout,
    )
