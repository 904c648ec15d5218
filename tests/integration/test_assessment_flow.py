"""
Integration tests for full assessment runs.

Drives the orchestrator the way the CLI does: answer the current question
until the stage has none left, then complete the stage.
"""

from datetime import datetime, timezone

import pytest

from warroom.assessment.session import (
    AssessmentStatus,
    build_final_report,
    complete_stage,
    get_current_question,
    get_progress,
    start_assessment,
    submit_response,
)
from warroom.assessment.store import AssessmentStore
from warroom.core.exceptions import NotFoundError, StateConsistencyError, ValidationError


def text(value, qtype="text"):
    return {"type": qtype, "value": value}


def choice(option_id, qtype="choice"):
    return {"type": qtype, "selected_option_id": option_id}


BALANCED_BUDGET = {"type": "budget", "allocations": [
    {"category_id": "product", "percentage": 40},
    {"category_id": "marketing", "percentage": 20},
    {"category_id": "operations", "percentage": 15},
    {"category_id": "reserve", "percentage": 25},
]}

DISCIPLINED = {
    "Q-N2-1": text("Independent physiotherapy clinics lose six hours a week on insurance paperwork."),
    "Q-N2-2": choice("B"),
    "Q-N2-3": choice("C"),
    "Q-N2-4": text("Clinics with two to ten practitioners and no billing staff."),
    "Q-N1-1": text("A claims assistant that pre-fills forms from session notes."),
    "Q-N1-2": choice("A", "scenario"),
    "Q-N1-3": {"type": "slider", "value": 15},
    "Q-0-1": BALANCED_BUDGET,
    "Q-0-2": choice("C"),
    "Q-0-3": {"type": "calculation", "result": 12.5},
    "Q-0-4": choice("B"),
    "Q-0-5": choice("A"),
    "Q-1-1": choice("B", "scenario"),
    "Q-1-2": choice("B"),
    "Q-1-3": choice("B"),
    "Q-1-4": text("Weekly retention cohorts and time-to-first-claim."),
    "Q-1-5": choice("A"),
    "Q-2-1": choice("B"),
    "Q-2-2": choice("B"),
    "Q-2-3": choice("B"),
    "Q-2-4": {"type": "calculation", "result": 10},
    "Q-2-5": {"type": "slider", "value": 30},
    "Q-3-1": {"type": "outcome"},
    "Q-3-2": text("Validating demand before hiring kept our runway intact.", "reflection"),
    "Q-3-3": choice("B"),
    "Q-3-4": choice("B"),
}

RECKLESS = {
    **DISCIPLINED,
    "Q-N1-2": choice("C", "scenario"),
    "Q-N1-3": {"type": "slider", "value": 3},
    "Q-0-2": choice("A"),
}


def run_stage(record, answers, grader=None):
    """Answer every question the stage presents, then complete it."""
    results = []
    question = get_current_question(record)
    while question is not None:
        record, result = submit_response(record, question.id, answers[question.id], grader=grader)
        results.append(result)
        question = get_current_question(record)
    record, transition = complete_stage(record)
    return record, transition, results


def run_all(record, answers, grader=None):
    transitions = []
    while not record.is_complete:
        record, transition, _ = run_stage(record, answers, grader)
        transitions.append(transition)
    return record, transitions


class TestFullRun:
    """A complete run through all six stages."""

    def test_disciplined_run(self):
        record, transitions = run_all(start_assessment("run-1"), DISCIPLINED)

        assert record.status == AssessmentStatus.COMPLETE
        assert record.current_stage is None
        assert record.current_question_id is None
        assert record.completed_stages == [-2, -1, 0, 1, 2, 3]
        assert [t.next_stage for t in transitions] == [-1, 0, 1, 2, 3, None]
        assert record.mistakes == []
        assert record.state.compounded_losses == 0
        assert get_progress(record) == {"answered": 0, "total": 0, "percentage": 100}

    def test_hidden_questions_not_asked(self):
        record, _ = run_all(start_assessment("run-2"), DISCIPLINED)
        answered = {r.question_id for r in record.responses}
        assert "Q-0-5" not in answered
        assert "Q-1-5" not in answered
        assert "Q-1-4" in answered

    def test_decision_log_matches_responses(self):
        record, _ = run_all(start_assessment("run-3"), DISCIPLINED)
        assert [e.question_id for e in record.state.decisions_log] == [r.question_id for r in record.responses]

    def test_business_context_captured(self):
        record, _ = run_all(start_assessment("run-4"), DISCIPLINED)
        assert record.state.business_context.problem == DISCIPLINED["Q-N2-1"]["value"]

    def test_final_report(self):
        record, _ = run_all(start_assessment("run-5"), DISCIPLINED)
        report = build_final_report(record)

        assert report["status"] == "complete"
        assert "projection" not in report
        assert 0 < report["overall"]["percentage"] <= 100
        assert report["mistakes"]["total_mistakes"] == 0
        assert report["mistakes"]["mistakes_avoided"] == ["M1", "M2", "M3", "M4", "M5", "M6", "M7", "M8"]
        assert report["consequences"]["warning_level"] == "none"
        # no grader configured: every free-text answer is flagged
        assert "Q-N2-1" in report["manual_review"]
        assert "Q-3-2" in report["manual_review"]

    def test_run_with_grader(self, fixed_grader):
        record, _ = run_all(start_assessment("run-6"), DISCIPLINED, grader=fixed_grader)
        free_text = [r for r in record.responses if r.question_id in ("Q-N2-1", "Q-3-2")]
        assert all(r.points_awarded == 8 for r in free_text)
        assert not any(r.needs_manual_review for r in free_text)

    def test_grader_outage_does_not_block(self, failing_grader):
        record, _ = run_all(start_assessment("run-7"), DISCIPLINED, grader=failing_grader)
        assert record.is_complete
        assert record.responses[0].points_awarded == 5


class TestMistakePath:
    """Mistakes fire once, land immediately, and compound on later stage entry."""

    def test_mistake_fires_once(self):
        record = start_assessment("mistakes-1")
        record, _, _ = run_stage(record, RECKLESS)
        record, _, results = run_stage(record, RECKLESS)

        triggered = [r.mistake_triggered for r in results]
        assert triggered == [None, "M2", None]
        assert [m.code for m in record.mistakes] == ["M2"]
        assert record.state.mistakes_triggered == ["M2"]

    def test_immediate_impact(self):
        record = start_assessment("mistakes-2")
        record, _, _ = run_stage(record, RECKLESS)
        record, _ = submit_response(record, "Q-N1-1", RECKLESS["Q-N1-1"])
        record, result = submit_response(record, "Q-N1-2", RECKLESS["Q-N1-2"])

        assert result.applied_effects == {"retentionChange": -4}
        assert record.state.customers.retention == 92
        assert record.state.decisions_log[-1].consequence == "Ignoring Customer Feedback"

    def test_compounding_on_entering_validating(self):
        """M2 ($6,000) and M3 ($12,000) compound together when stage 1 begins."""
        record = start_assessment("mistakes-3")
        costs = []
        for _ in range(3):
            record, transition, _ = run_stage(record, RECKLESS)
            costs.append(transition.compounded_cost)

        assert costs == [0, 0, 18_000]
        assert record.current_stage == 1
        assert record.state.compounded_losses == 18_000
        assert record.stage_snapshots[-1].compounded_cost == 18_000
        assert all(m.has_compounded_at(1) for m in record.mistakes)
        assert "Ignoring Customer Feedback" in transition.narrative

    def test_report_while_in_progress(self):
        record = start_assessment("mistakes-4")
        for _ in range(3):
            record, _, _ = run_stage(record, RECKLESS)

        report = build_final_report(record)

        assert report["status"] == "in_progress"
        assert report["mistakes"]["total_mistakes"] == 2
        # M2 at stage 2 (800 x 12) plus M3 at stage 2 ((12,000 + 3,000) x 1.5)
        assert report["projection"]["stage_breakdown"][0] == {"stage": 2, "cost": 32_100}

    def test_full_reckless_run(self):
        record, _ = run_all(start_assessment("mistakes-5"), RECKLESS)
        report = build_final_report(record)

        assert report["mistakes"]["total_mistakes"] == 2
        assert report["mistakes"]["worst_mistake"].code == "M3"
        assert "M2" not in report["mistakes"]["mistakes_avoided"]
        assert [i.stage for i in record.mistakes[1].compounding_impacts_applied] == [1, 2]


class TestBranching:
    """The next question is chosen from the state after the submitted answer."""

    def test_answer_branches_past_question(self):
        record = start_assessment("b1")
        record, _ = submit_response(record, "Q-N2-1", DISCIPLINED["Q-N2-1"])
        record, result = submit_response(record, "Q-N2-2", choice("D"))

        assert result.next_question.id == "Q-N2-4"
        assert get_current_question(record).id == "Q-N2-4"

        record, _ = submit_response(record, "Q-N2-4", DISCIPLINED["Q-N2-4"])
        record, transition = complete_stage(record)
        assert transition.next_stage == -1
        assert "Q-N2-3" not in {r.question_id for r in record.responses}

    def test_mistake_opens_follow_up(self):
        """Hiring too fast at Q-1-2 routes Q-1-3 to the over-hiring follow-up."""
        answers = {**DISCIPLINED, "Q-1-2": choice("A"), "Q-1-5": choice("B")}
        record = start_assessment("b2")
        for _ in range(3):
            record, _, _ = run_stage(record, answers)

        record, _ = submit_response(record, "Q-1-1", answers["Q-1-1"])
        record, result = submit_response(record, "Q-1-2", answers["Q-1-2"])
        assert result.mistake_triggered == "M6"
        assert result.next_question.id == "Q-1-3"

        record, result = submit_response(record, "Q-1-3", answers["Q-1-3"])
        assert result.next_question.id == "Q-1-5"

        record, _ = submit_response(record, "Q-1-5", answers["Q-1-5"])
        assert record.current_question_id is None
        assert record.state.team.size == 4
        record, _ = complete_stage(record)
        assert record.current_stage == 2
        assert "Q-1-4" not in {r.question_id for r in record.responses}


class TestGuards:
    """Submissions and transitions that must be rejected."""

    def test_question_from_other_stage(self):
        with pytest.raises(StateConsistencyError):
            submit_response(start_assessment("g1"), "Q-0-1", BALANCED_BUDGET)

    def test_not_current_question(self):
        with pytest.raises(StateConsistencyError):
            submit_response(start_assessment("g2"), "Q-N2-2", choice("B"))

    def test_duplicate_answer(self):
        record, _ = submit_response(start_assessment("g3"), "Q-N2-1", DISCIPLINED["Q-N2-1"])
        with pytest.raises(StateConsistencyError, match="already answered"):
            submit_response(record, "Q-N2-1", DISCIPLINED["Q-N2-1"])

    def test_unknown_question(self):
        with pytest.raises(NotFoundError):
            submit_response(start_assessment("g4"), "Q-9-9", choice("A"))

    def test_mismatched_payload(self):
        record = start_assessment("g5")
        with pytest.raises(ValidationError):
            submit_response(record, "Q-N2-1", choice("A"))
        assert record.responses == []

    def test_complete_stage_too_early(self):
        record, _ = submit_response(start_assessment("g6"), "Q-N2-1", DISCIPLINED["Q-N2-1"])
        with pytest.raises(StateConsistencyError, match="unanswered"):
            complete_stage(record)

    def test_after_completion(self):
        record, _ = run_all(start_assessment("g7"), DISCIPLINED)
        with pytest.raises(StateConsistencyError):
            submit_response(record, "Q-3-4", choice("B"))
        with pytest.raises(StateConsistencyError):
            complete_stage(record)

    def test_question_skipped_by_branch(self):
        """Once the taken path is finished, a skipped question cannot be answered."""
        record = start_assessment("g9")
        record, _ = submit_response(record, "Q-N2-1", DISCIPLINED["Q-N2-1"])
        record, _ = submit_response(record, "Q-N2-2", choice("D"))
        record, _ = submit_response(record, "Q-N2-4", DISCIPLINED["Q-N2-4"])
        assert record.current_question_id is None

        with pytest.raises(StateConsistencyError, match="complete_stage"):
            submit_response(record, "Q-N2-3", choice("D"))
        assert [r.question_id for r in record.responses] == ["Q-N2-1", "Q-N2-2", "Q-N2-4"]

    def test_input_record_unchanged(self):
        record = start_assessment("g8")
        updated, _ = submit_response(record, "Q-N2-1", DISCIPLINED["Q-N2-1"])
        assert record.responses == []
        assert record.state.decisions_log == []
        assert len(updated.responses) == 1


class TestProgressAndPersistence:
    """Progress reporting and resuming from the store."""

    def test_progress(self):
        record = start_assessment("p1")
        assert get_progress(record) == {"answered": 0, "total": 4, "percentage": 0}
        record, _ = submit_response(record, "Q-N2-1", DISCIPLINED["Q-N2-1"])
        assert get_progress(record) == {"answered": 1, "total": 4, "percentage": 25}

    def test_timestamps(self):
        now = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
        record = start_assessment("p2", now=now)
        record, result = submit_response(record, "Q-N2-1", DISCIPLINED["Q-N2-1"], now=now)
        assert record.created_at == now
        assert result.response.answered_at == now
        assert record.state.decisions_log[0].timestamp == now

    def test_resume_from_store(self, tmp_path):
        store = AssessmentStore(f"sqlite:///{tmp_path / 'flow.db'}")
        record = start_assessment("resume")
        record, _, _ = run_stage(record, RECKLESS)
        record, _ = submit_response(record, "Q-N1-1", RECKLESS["Q-N1-1"])
        store.save(record)

        resumed = store.load("resume")
        assert get_current_question(resumed).id == "Q-N1-2"

        resumed, _ = run_all(resumed, RECKLESS)
        store.save(resumed)
        assert store.load("resume").is_complete
