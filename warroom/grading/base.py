"""
Base AI Grader.

Free-text answers (text, reflection, AI-generated prompts) are scored by an
external grader. Graders return a GradeResult or raise ExternalServiceError;
the scoring engine turns any failure into the fallback score.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

FALLBACK_FEEDBACK = "Response received. Manual review recommended for detailed feedback."


@dataclass
class GradeResult:
    """Score and feedback for one free-text answer."""

    score: float
    max_score: float
    feedback: str
    strengths: list[str] = field(default_factory=list)
    areas_for_improvement: list[str] = field(default_factory=list)
    confidence: float = 1.0
    needs_manual_review: bool = False

    def clamped(self) -> GradeResult:
        """Copy with the score forced into [0, max_score]; non-finite scores become 0."""
        score = self.score if math.isfinite(self.score) else 0.0
        score = max(0.0, min(self.max_score, score))
        return GradeResult(
            score=score,
            max_score=self.max_score,
            feedback=self.feedback,
            strengths=list(self.strengths),
            areas_for_improvement=list(self.areas_for_improvement),
            confidence=self.confidence,
            needs_manual_review=self.needs_manual_review,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "max_score": self.max_score,
            "feedback": self.feedback,
            "strengths": self.strengths,
            "areas_for_improvement": self.areas_for_improvement,
            "confidence": self.confidence,
            "needs_manual_review": self.needs_manual_review,
        }


def fallback_grade(max_points: float) -> GradeResult:
    """Deterministic score used when grading fails: half the maximum, floored."""
    return GradeResult(
        score=float(math.floor(max_points / 2)),
        max_score=max_points,
        feedback=FALLBACK_FEEDBACK,
        strengths=["Response provided"],
        areas_for_improvement=["Unable to perform AI evaluation"],
        confidence=0.0,
        needs_manual_review=True,
    )


class Grader(ABC):
    """Abstract free-text grader."""

    name: str = "base_grader"

    @abstractmethod
    def grade(
        self,
        question_text: str,
        answer: str,
        max_points: float,
        rubric: str | None = None,
        look_for: list[str] | None = None,
    ) -> GradeResult:
        """
        Grade a free-text answer.

        Raises:
            ExternalServiceError: The service failed or returned garbage
        """
        ...
