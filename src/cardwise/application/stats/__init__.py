# Application Stats Package
from .aggregator import SessionStatsAggregator, SessionSummary, accuracy_band, format_next_review

__all__ = ["SessionStatsAggregator", "SessionSummary", "accuracy_band", "format_next_review"]
