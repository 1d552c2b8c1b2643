"""
Scheduler error taxonomy.

Input errors are caller contract violations and are never retried.
Card store errors are transient and leave session state untouched, so the
same call can simply be repeated.
"""


class CardwiseError(Exception):
    """Base class for every error raised by cardwise."""


class SchedulerInputError(CardwiseError):
    """The caller broke the scheduler's contract."""


class InvalidGrade(SchedulerInputError):
    def __init__(self, grade: object):
        super().__init__(f"grade must be an integer between 0 and 3, got {grade!r}")
        self.grade = grade


class InvalidDifficulty(SchedulerInputError):
    def __init__(self, difficulty: object):
        super().__init__(f"difficulty must be 'easy' or 'hard', got {difficulty!r}")
        self.difficulty = difficulty


class EmptyDeck(SchedulerInputError):
    def __init__(self, deck_id: int | None = None):
        super().__init__(f"deck {deck_id} has no cards to study")
        self.deck_id = deck_id


class NoCurrentCard(SchedulerInputError):
    def __init__(self, message: str = "no card is currently being shown"):
        super().__init__(message)


class NoCardsDue(CardwiseError):
    """Nothing is due and nothing is scheduled to become due."""

    def __init__(self, deck_id: int | None = None):
        scope = f"deck {deck_id}" if deck_id is not None else "any deck"
        super().__init__(f"no cards are due in {scope}")
        self.deck_id = deck_id


class ReviewInFlight(CardwiseError):
    """A previous review for this session is still being written back."""


class CardStoreError(CardwiseError):
    """Transient failure talking to the card store. Safe to retry."""


class CardStoreUnavailable(CardStoreError):
    pass


class ReviewWriteFailed(CardStoreError):
    def __init__(self, card_id: int, cause: Exception):
        super().__init__(f"could not persist review for card {card_id}: {cause}")
        self.card_id = card_id
        self.cause = cause
