"""
Gemini-backed free-text grader.

Builds a rubric prompt, asks Gemini for a JSON verdict and parses it. Any
failure (missing key, network, unparseable output) surfaces as
ExternalServiceError so the caller can fall back.
"""

from __future__ import annotations

import json
import re

from loguru import logger

from config import get_settings
from warroom.core.exceptions import ExternalServiceError
from warroom.grading.base import GradeResult, Grader

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class GeminiGrader(Grader):
    """Grades free-text answers with a Gemini model."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model_name or settings.ai_model
        self.temperature = settings.ai_temperature if temperature is None else temperature
        self.max_output_tokens = settings.ai_max_output_tokens
        self._client = None

    @property
    def client(self):
        """Lazy-load the Gemini model."""
        if self._client is None:
            if not self.api_key:
                raise ExternalServiceError("Gemini API key not configured", service=self.name)
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._client = genai.GenerativeModel(
                model_name=self.model_name,
                generation_config={
                    "temperature": self.temperature,
                    "top_p": 0.8,
                    "top_k": 40,
                    "max_output_tokens": self.max_output_tokens,
                },
            )
        return self._client

    def build_prompt(
        self,
        question_text: str,
        answer: str,
        max_points: float,
        rubric: str | None = None,
        look_for: list[str] | None = None,
    ) -> str:
        parts = [
            "You are an expert evaluator assessing entrepreneurial competency.",
            f"\nQUESTION ASKED:\n{question_text}",
            f"\nUSER'S RESPONSE:\n{answer}",
        ]
        if rubric:
            parts.append(f"\nSCORING RUBRIC:\n{rubric}")
        if look_for:
            parts.append("\nEVALUATION CRITERIA - Look for:\n" + "\n".join(f"- {item}" for item in look_for))
        parts.append(f"""
Assign a score from 0 to {max_points:g}. Return only JSON:
{{
  "score": <number>,
  "feedback": "2-3 sentences of constructive feedback",
  "strengths": ["..."],
  "areas_for_improvement": ["..."],
  "confidence": <0.0-1.0>
}}""")
        return "\n".join(parts)

    def parse_response(self, text: str, max_points: float) -> GradeResult:
        """
        Extract the JSON verdict from model output.

        Raises:
            ExternalServiceError: No JSON object, or no numeric score
        """
        match = _JSON_BLOCK.search(text or "")
        if not match:
            raise ExternalServiceError("Failed to parse JSON from Gemini response", service=self.name)
        try:
            data = json.loads(match.group(0))
            score = float(data["score"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Malformed Gemini verdict: {e}", service=self.name) from e

        return GradeResult(
            score=score,
            max_score=max_points,
            feedback=str(data.get("feedback", "")),
            strengths=list(data.get("strengths") or []),
            areas_for_improvement=list(data.get("areas_for_improvement") or []),
            confidence=float(data.get("confidence", 1.0)),
        ).clamped()

    def grade(
        self,
        question_text: str,
        answer: str,
        max_points: float,
        rubric: str | None = None,
        look_for: list[str] | None = None,
    ) -> GradeResult:
        prompt = self.build_prompt(question_text, answer, max_points, rubric, look_for)
        try:
            response = self.client.generate_content(prompt)
            text = response.text
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.error(f"Gemini grading failed: {e}")
            raise ExternalServiceError(f"Gemini request failed: {e}", service=self.name) from e
        return self.parse_response(text, max_points)


def get_default_grader() -> Grader | None:
    """GeminiGrader when a key is configured and grading is enabled, else None (fallback scoring)."""
    settings = get_settings()
    if not settings.has_ai_configured():
        logger.debug("AI grading not configured; free-text answers get the fallback score")
        return None
    return GeminiGrader()
