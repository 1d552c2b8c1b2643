"""
Session statistics aggregator.

Derives accuracy, completion and timing from a session's counters.
This is a pure computation module with no I/O and no mutation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from cardwise.domain.constants import (
    ACCURACY_AVERAGE,
    ACCURACY_EXCELLENT,
    ACCURACY_GOOD,
    ACCURACY_POOR,
)
from cardwise.domain.models import Grade
from cardwise.domain.session import LocalSession, Session, SrsSession


@dataclass(frozen=True)
class SessionSummary:
    """
    End-of-session report shared by both scheduler variants.

    grade_breakdown is keyed by grade name and is empty for local sessions.
    """

    session_kind: str
    total_cards: int
    reviewed_cards: int
    correct_cards: int
    incorrect_cards: int
    accuracy: int
    completion_rate: float
    duration_minutes: float
    average_time_per_card_seconds: float
    completed_at: datetime | None = None
    grade_breakdown: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "session_kind": self.session_kind,
            "total_cards": self.total_cards,
            "reviewed_cards": self.reviewed_cards,
            "correct_cards": self.correct_cards,
            "incorrect_cards": self.incorrect_cards,
            "accuracy": self.accuracy,
            "completion_rate": self.completion_rate,
            "duration_minutes": self.duration_minutes,
            "average_time_per_card_seconds": self.average_time_per_card_seconds,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "grade_breakdown": dict(self.grade_breakdown),
        }


class SessionStatsAggregator:
    """
    Builds SessionSummary objects from session counters.

    Stateless and side-effect free.
    """

    def summarize(self, session: Session, now: datetime | None = None) -> SessionSummary:
        now = now or datetime.now(timezone.utc)
        reviewed = session.reviewed_count
        correct = session.correct_count

        breakdown: dict[str, int] = {}
        if isinstance(session, SrsSession):
            breakdown = {Grade(g).name.lower(): n for g, n in session.grade_breakdown.items()}

        return SessionSummary(
            session_kind=session.kind,
            total_cards=session.total_cards,
            reviewed_cards=reviewed,
            correct_cards=correct,
            incorrect_cards=reviewed - correct,
            accuracy=self.accuracy(correct, reviewed),
            completion_rate=self.completion_rate(session),
            duration_minutes=self.duration_minutes(session.started_at, session.ended_at, now),
            average_time_per_card_seconds=self.average_time_per_card(
                session.total_response_time_ms, reviewed
            ),
            completed_at=session.ended_at,
            grade_breakdown=breakdown,
        )

    @staticmethod
    def accuracy(correct: int, reviewed: int) -> int:
        if reviewed <= 0:
            return 0
        return round(100 * correct / reviewed)

    @staticmethod
    def completion_rate(session: Session) -> float:
        """
        Local sessions complete cards by mastering them; SRS sessions by reviewing them.
        """
        if session.total_cards <= 0:
            return 0.0
        if isinstance(session, LocalSession):
            return 100 * session.completed_count / session.total_cards
        return 100 * session.reviewed_count / session.total_cards

    @staticmethod
    def duration_minutes(
        started_at: datetime, ended_at: datetime | None, now: datetime
    ) -> float:
        end = ended_at or now
        minutes = (end - started_at).total_seconds() / 60
        # Clock skew can put end before start.
        return max(minutes, 0.0)

    @staticmethod
    def average_time_per_card(total_response_time_ms: int, reviewed: int) -> float:
        if reviewed <= 0:
            return 0.0
        return total_response_time_ms / reviewed / 1000


def accuracy_band(accuracy: int) -> str:
    """Bucket an accuracy percentage for display."""
    if accuracy >= ACCURACY_EXCELLENT:
        return "excellent"
    if accuracy >= ACCURACY_GOOD:
        return "good"
    if accuracy >= ACCURACY_AVERAGE:
        return "average"
    if accuracy >= ACCURACY_POOR:
        return "poor"
    return "very poor"


def format_next_review(minutes_until: int) -> str:
    """
    Format minutes until the next review.

    Returns strings like "Ready now", "5m", "2h 30m" or "3d 4h".
    """
    if minutes_until <= 0:
        return "Ready now"
    if minutes_until < 60:
        return f"{minutes_until}m"

    hours, mins = divmod(minutes_until, 60)
    if hours < 24:
        return f"{hours}h {mins}m" if mins else f"{hours}h"

    days, rem_hours = divmod(hours, 24)
    return f"{days}d {rem_hours}h" if rem_hours else f"{days}d"
