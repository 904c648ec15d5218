"""
Competency level categorization.

Three buckets over a rounded percentage score:

- L0: below 40%  (needs development)
- L1: 40-74%     (developing)
- L2: 75%+       (strong)
"""

from __future__ import annotations

import math
import re
from enum import Enum


class CompetencyLevel(str, Enum):
    """Level achieved on a competency."""

    L0 = "L0"
    L1 = "L1"
    L2 = "L2"

    @classmethod
    def from_percentage(cls, percentage: float) -> CompetencyLevel:
        """
        Convert a 0-100 percentage score to a level.

        Args:
            percentage: Rounded percentage score

        Returns:
            Corresponding CompetencyLevel
        """
        if percentage >= L2_THRESHOLD:
            return cls.L2
        elif percentage >= L1_THRESHOLD:
            return cls.L1
        return cls.L0

    @classmethod
    def from_average(cls, value: float) -> CompetencyLevel:
        """Bucket an average ordinal (0-2) back into a level."""
        if value < 0.5:
            return cls.L0
        elif value < 1.5:
            return cls.L1
        return cls.L2

    @property
    def ordinal(self) -> int:
        """0, 1 or 2."""
        return int(self.value[1])

    @property
    def headline(self) -> str:
        """Short human-readable label."""
        return {
            CompetencyLevel.L0: "Needs Development",
            CompetencyLevel.L1: "Developing Well",
            CompetencyLevel.L2: "Strong Competency",
        }[self]

    @property
    def status(self) -> str:
        """Feedback status keyword."""
        return {
            CompetencyLevel.L0: "needs_work",
            CompetencyLevel.L1: "developing",
            CompetencyLevel.L2: "strong",
        }[self]

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            CompetencyLevel.L0: "red",
            CompetencyLevel.L1: "yellow",
            CompetencyLevel.L2: "green",
        }[self]


# Calibrated thresholds (percentage points)
L1_THRESHOLD = 40
L2_THRESHOLD = 75


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def percentage(current: float, maximum: float) -> int:
    """Rounded percentage of current over maximum; 0 when maximum is 0."""
    if maximum <= 0:
        return 0
    return round_half_up(current / maximum * 100)


_CODE_PATTERN = re.compile(r"^([A-Za-z]*)(\d+)$")


def code_sort_key(code: str) -> tuple[str, int, str]:
    """Natural ordering for codes like C1..C16 and M1..M8 (C2 sorts before C10)."""
    match = _CODE_PATTERN.match(code)
    if not match:
        return (code, -1, code)
    return (match.group(1), int(match.group(2)), code)
