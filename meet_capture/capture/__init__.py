"""
Caption capture module.

Provides segment aggregation and caption noise filtering.
"""

from .aggregator import SegmentAggregator
from .filters import ExitPhraseDetector, is_ui_noise, UI_NOISE_PATTERNS

__all__ = [
    "SegmentAggregator",
    "ExitPhraseDetector",
    "is_ui_noise",
    "UI_NOISE_PATTERNS",
]
