from .http_store import HttpCardStore
from .memory_store import InMemoryCardStore

__all__ = ["HttpCardStore", "InMemoryCardStore"]
