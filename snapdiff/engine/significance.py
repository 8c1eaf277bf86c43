"""Significance classification for mismatch percentages."""

from __future__ import annotations

SIGNIFICANCE_THRESHOLD = 5.0


def is_significant(diff_percentage: float, threshold: float = SIGNIFICANCE_THRESHOLD) -> bool:
    """Changes strictly above ``threshold`` percent are significant."""
    return diff_percentage > threshold
