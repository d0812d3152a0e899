"""Correlation of partial source results into one scored report."""

from .engine import CorrelationEngine
from .scoring import ScoringConfig, SignalScorer

__all__ = [
    "CorrelationEngine",
    "ScoringConfig",
    "SignalScorer",
]
