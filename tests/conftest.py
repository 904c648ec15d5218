"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from warroom.core.exceptions import ExternalServiceError  # noqa: E402
from warroom.grading.base import GradeResult, Grader  # noqa: E402
from warroom.questions.engine import require_question  # noqa: E402
from warroom.questions.models import QuestionResponse, parse_response_data  # noqa: E402
from warroom.state.manager import create_initial_state  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full assessment runs)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep local .env files and real API keys out of the tests."""
    from config import get_settings

    monkeypatch.delenv("WARROOM_GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("WARROOM_AI_GRADING_ENABLED", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def initial_state():
    """Canonical starting state ($50,000 capital, $4,000/month burn)."""
    return create_initial_state()


def build_response(
    question_id: str,
    payload: dict,
    points: float = 10.0,
    max_points: float | None = None,
    competencies: list[str] | None = None,
    assessment_id: str = "test-assessment",
) -> QuestionResponse:
    """QuestionResponse for a bank question, with stage and competencies taken from the bank."""
    question = require_question(question_id)
    return QuestionResponse(
        assessment_id=assessment_id,
        question_id=question_id,
        stage_number=question.stage,
        response_data=parse_response_data(payload),
        points_awarded=points,
        max_points=question.max_points if max_points is None else max_points,
        competencies_assessed=list(question.competencies) if competencies is None else competencies,
    )


@pytest.fixture
def make_response():
    """Factory fixture for QuestionResponse objects."""
    return build_response


class FixedGrader(Grader):
    """Grader returning a preset score."""

    name = "fixed"

    def __init__(self, score: float = 8.0, feedback: str = "Clear and specific."):
        self.score = score
        self.feedback = feedback
        self.calls = []

    def grade(self, question_text, answer, max_points, rubric=None, look_for=None):
        self.calls.append({"question_text": question_text, "answer": answer, "rubric": rubric, "look_for": look_for})
        return GradeResult(score=self.score, max_score=max_points, feedback=self.feedback)


class FailingGrader(Grader):
    """Grader whose service is always down."""

    name = "failing"

    def grade(self, question_text, answer, max_points, rubric=None, look_for=None):
        raise ExternalServiceError("service unavailable", service=self.name)


@pytest.fixture
def fixed_grader():
    return FixedGrader()


@pytest.fixture
def failing_grader():
    return FailingGrader()
