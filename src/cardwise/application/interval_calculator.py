"""
SM-2 interval calculator.

This is a pure computation module with no I/O and no knowledge of sessions.
Its output is the only thing ever written to a card's study statistics.
"""

from datetime import datetime, timedelta, timezone

from cardwise.domain.constants import (
    FIRST_INTERVAL_DAYS,
    MIN_EASE,
    RELEARN_INTERVAL_DAYS,
    SECOND_INTERVAL_DAYS,
)
from cardwise.domain.models import Grade, IntervalResult, StudyStats


def _round_half_up(value: float) -> int:
    # Intervals are always positive, so this is plain half-up rounding.
    return int(value + 0.5)


def next_ease(grade: Grade, current_ease: float) -> float:
    """
    SM-2 ease update mapped onto a 0-3 grade scale.

    EASY raises ease by 0.1, GOOD keeps it, HARD and AGAIN lower it.
    The result never drops below 1.3.
    """
    miss = 3 - int(grade)
    return max(MIN_EASE, current_ease + (0.1 - miss * (0.08 + miss * 0.02)))


def compute_next(
    grade: int,
    current_ease: float,
    current_interval: int,
    repetitions: int,
    now: datetime | None = None,
) -> IntervalResult:
    """
    Compute the next review schedule for a graded card.

    Args:
        grade: Recall quality 0-3 (Again, Hard, Good, Easy).
        current_ease: Ease factor before this review.
        current_interval: Interval in days before this review.
        repetitions: Consecutive successful recalls before this review.
        now: Review time. Defaults to the current UTC time.

    Returns:
        IntervalResult with the new ease, interval, repetitions and due date.

    Raises:
        InvalidGrade: If grade is outside 0-3. Nothing is computed in that case.
    """
    g = Grade.parse(grade)
    now = now or datetime.now(timezone.utc)

    ease = next_ease(g, current_ease)

    if g.is_passing:
        if repetitions <= 0:
            interval = FIRST_INTERVAL_DAYS
        elif repetitions == 1:
            interval = SECOND_INTERVAL_DAYS
        else:
            interval = _round_half_up(current_interval * ease)
        new_reps = max(repetitions, 0) + 1
    else:
        # Forgotten: back to the short relearning step.
        interval = RELEARN_INTERVAL_DAYS
        new_reps = 0

    return IntervalResult(
        ease_factor=ease,
        interval=interval,
        repetitions=new_reps,
        next_due_at=now + timedelta(days=interval),
        grade=g,
    )


def compute_for_stats(
    grade: int, stats: StudyStats | None, now: datetime | None = None
) -> IntervalResult:
    """Run compute_next against a card's stats, defaulting a never-seen card."""
    stats = stats or StudyStats.initial()
    return compute_next(grade, stats.ease_factor, stats.interval, stats.repetitions, now)


def preview_intervals(
    stats: StudyStats | None, now: datetime | None = None
) -> dict[Grade, IntervalResult]:
    """What each grade button would do to this card."""
    now = now or datetime.now(timezone.utc)
    return {g: compute_for_stats(g, stats, now) for g in Grade}


def format_interval(days: int) -> str:
    """Human-readable label for an interval in days."""
    if days <= 1:
        return "1d"
    if days < 30:
        return f"{days}d"
    if days < 365:
        return f"{round(days / 30)}mo"
    return f"{round(days / 365, 1)}y"


