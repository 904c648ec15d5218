"""
Grading Module - AI grading of free-text answers.

Components:
- base: Grader interface, GradeResult, fallback_grade
- gemini_grader: Google Gemini implementation
"""

from warroom.grading.base import FALLBACK_FEEDBACK, GradeResult, Grader, fallback_grade
from warroom.grading.gemini_grader import GeminiGrader, get_default_grader

__all__ = [
    "Grader",
    "GradeResult",
    "GeminiGrader",
    "fallback_grade",
    "FALLBACK_FEEDBACK",
    "get_default_grader",
]
