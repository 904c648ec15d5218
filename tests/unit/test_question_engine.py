"""
Unit tests for question sequencing, branching and stage progress.

Also checks that the bundled stage, competency and mistake data are
consistent with each other.
"""

import pytest

from warroom.core.exceptions import NotFoundError
from warroom.core.stages import STAGE_ORDER
from warroom.mistakes.registry import get_all_mistakes
from warroom.questions.bank import question_index
from warroom.questions.engine import (
    get_all_stages,
    get_first_question_of_stage,
    get_next_question,
    get_next_stage,
    get_stage_config,
    get_stage_progress,
    get_stage_questions,
    is_stage_complete,
    require_question,
    unanswered_reachable_questions,
)
from warroom.scoring.competencies import get_competency_definition
from warroom.state.manager import apply_consequence, trigger_mistake


def choice(option_id, qtype="choice"):
    return {"type": qtype, "selected_option_id": option_id}


TEXT = {"type": "text", "value": "Small clinics lose hours every week reconciling insurance claims."}


class TestLookups:
    """Tests for stage and question lookups."""

    def test_all_stages_in_order(self):
        stages = get_all_stages()
        assert [s["number"] for s in stages] == [-2, -1, 0, 1, 2, 3]
        assert [s["name"] for s in stages] == [
            "IDEATING", "CONCEPTING", "COMMITTING", "VALIDATING", "SCALING", "ESTABLISHING",
        ]

    def test_unknown_stage(self):
        with pytest.raises(NotFoundError):
            get_stage_config(7)

    def test_unknown_question(self):
        with pytest.raises(NotFoundError):
            require_question("Q-9-9")

    def test_next_stage(self):
        assert get_next_stage(-2) == -1
        assert get_next_stage(0) == 1
        assert get_next_stage(3) is None

    def test_stage_questions_ordered(self):
        assert [q.id for q in get_stage_questions(-2)] == ["Q-N2-1", "Q-N2-2", "Q-N2-3", "Q-N2-4"]

    def test_first_question(self, initial_state):
        assert get_first_question_of_stage(-2, initial_state).id == "Q-N2-1"

    def test_first_question_skips_answered(self, initial_state, make_response):
        """Answered questions are skipped when resolving the first question."""
        responses = [make_response("Q-N2-1", TEXT, points=5)]
        assert get_first_question_of_stage(-2, initial_state, responses).id == "Q-N2-2"


class TestBranching:
    """Tests for get_next_question."""

    def test_linear_advance(self, initial_state, make_response):
        responses = [make_response("Q-N2-1", TEXT, points=5)]
        assert get_next_question("Q-N2-1", -2, responses, initial_state).id == "Q-N2-2"

    def test_previous_answer_branch(self, initial_state, make_response):
        """Answering D at Q-N2-2 jumps to Q-N2-4."""
        responses = [
            make_response("Q-N2-1", TEXT, points=5),
            make_response("Q-N2-2", choice("D"), points=2),
        ]
        assert get_next_question("Q-N2-2", -2, responses, initial_state).id == "Q-N2-4"

    def test_no_branch_when_condition_false(self, initial_state, make_response):
        responses = [
            make_response("Q-N2-1", TEXT, points=5),
            make_response("Q-N2-2", choice("B"), points=8),
        ]
        assert get_next_question("Q-N2-2", -2, responses, initial_state).id == "Q-N2-3"

    def test_branch_to_answered_target_advances_linearly(self, initial_state, make_response):
        responses = [
            make_response("Q-N2-4", {"type": "text", "value": "Dental clinics"}, points=5),
            make_response("Q-N2-2", choice("D"), points=2),
        ]
        assert get_next_question("Q-N2-2", -2, responses, initial_state).id == "Q-N2-3"

    def test_state_threshold_branch(self, initial_state, make_response):
        """Low runway after the calculation routes to the runway alarm."""
        low_runway = apply_consequence(initial_state, {"capitalChange": -30_000})
        responses = [make_response("Q-0-3", {"type": "calculation", "result": 5})]
        assert get_next_question("Q-0-3", 0, responses, low_runway).id == "Q-0-5"

    def test_state_threshold_not_met(self, initial_state, make_response):
        responses = [make_response("Q-0-3", {"type": "calculation", "result": 12.5})]
        assert get_next_question("Q-0-3", 0, responses, initial_state).id == "Q-0-4"

    def test_hidden_question_skipped(self, initial_state, make_response):
        """Q-0-5 is only shown when runway is short."""
        responses = [
            make_response("Q-0-3", {"type": "calculation", "result": 12.5}),
            make_response("Q-0-4", choice("B"), points=8),
        ]
        assert get_next_question("Q-0-4", 0, responses, initial_state) is None

    def test_mistake_branch(self, initial_state, make_response):
        """Hiring too fast sends the learner to the idle-hires follow-up."""
        state = trigger_mistake(initial_state, "M6")
        responses = [
            make_response("Q-1-1", choice("B", "scenario")),
            make_response("Q-1-2", choice("A"), points=2),
            make_response("Q-1-3", choice("B")),
        ]
        assert get_next_question("Q-1-3", 1, responses, state).id == "Q-1-5"
        responses.append(make_response("Q-1-5", choice("A")))
        assert get_next_question("Q-1-5", 1, responses, state) is None

    def test_competency_branch(self, initial_state, make_response):
        """Strong financial literacy skips the unit economics drill."""
        strong = [
            make_response("Q-0-3", {"type": "calculation", "result": 12.5}, points=10),
            make_response("Q-2-3", choice("B"), points=10),
        ]
        weak = [
            make_response("Q-0-3", {"type": "calculation", "result": 1}, points=2.5),
            make_response("Q-2-3", choice("A"), points=3),
        ]
        assert get_next_question("Q-2-3", 2, strong, initial_state).id == "Q-2-5"
        assert get_next_question("Q-2-3", 2, weak, initial_state).id == "Q-2-4"

    def test_unknown_current_returns_first(self, initial_state):
        assert get_next_question(None, 3, [], initial_state).id == "Q-3-1"
        assert get_next_question("Q-0-1", 3, [], initial_state).id == "Q-3-1"


class TestProgress:
    """Tests for stage progress and completion."""

    def test_fresh_stage(self, initial_state):
        progress = get_stage_progress(-2, [], initial_state)
        assert progress == {"answered": 0, "total": 4, "percentage": 0}

    def test_hidden_questions_not_counted(self, initial_state):
        """Q-0-5 is not reachable with healthy runway, so the stage has four questions."""
        assert get_stage_progress(0, [], initial_state)["total"] == 4

    def test_total_shrinks_after_branch(self, initial_state, make_response):
        """Branching past Q-N2-3 removes it from the total."""
        responses = [
            make_response("Q-N2-1", TEXT, points=5),
            make_response("Q-N2-2", choice("D"), points=2),
        ]
        assert get_stage_progress(-2, responses, initial_state) == {"answered": 2, "total": 3, "percentage": 67}

    def test_complete_stage_is_100_percent(self, initial_state, make_response):
        responses = [
            make_response("Q-N2-1", TEXT, points=5),
            make_response("Q-N2-2", choice("D"), points=2),
            make_response("Q-N2-4", {"type": "text", "value": "Independent dental clinics"}, points=5),
        ]
        assert get_stage_progress(-2, responses, initial_state) == {"answered": 3, "total": 3, "percentage": 100}
        assert is_stage_complete(-2, responses, initial_state)
        assert unanswered_reachable_questions(-2, responses, initial_state) == []

    def test_other_stage_responses_ignored(self, initial_state, make_response):
        responses = [make_response("Q-0-2", choice("C"))]
        assert get_stage_progress(-2, responses, initial_state)["answered"] == 0

    @pytest.mark.parametrize("answers", [
        [("Q-N2-1", TEXT)],
        [("Q-N2-1", TEXT), ("Q-N2-2", choice("B"))],
        [("Q-N2-1", TEXT), ("Q-N2-2", choice("D"))],
        [("Q-N2-1", TEXT), ("Q-N2-2", choice("B")), ("Q-N2-3", choice("C"))],
        [("Q-N2-1", TEXT), ("Q-N2-2", choice("B")), ("Q-N2-3", choice("C")), ("Q-N2-4", TEXT)],
    ])
    def test_complete_iff_no_next_question(self, initial_state, make_response, answers):
        """A stage is complete exactly when no next question remains."""
        responses = [make_response(qid, payload, points=5) for qid, payload in answers]
        next_question = get_next_question(answers[-1][0], -2, responses, initial_state)
        remaining = unanswered_reachable_questions(-2, responses, initial_state)
        assert (next_question is None) == (remaining == [])
        assert is_stage_complete(-2, responses, initial_state) == (next_question is None)
        progress = get_stage_progress(-2, responses, initial_state)
        assert progress["total"] == len(responses) + len(remaining)


class TestBundledData:
    """Consistency checks across the stage, competency and mistake files."""

    def test_every_stage_loads(self):
        for stage in STAGE_ORDER:
            config = get_stage_config(stage)
            assert config.stage == stage
            assert config.questions

    def test_question_ids_unique(self):
        index = question_index()
        assert len(index) == sum(len(get_stage_questions(s)) for s in STAGE_ORDER)

    def test_competencies_exist(self):
        for question in question_index().values():
            for code in question.competencies:
                assert get_competency_definition(code) is not None, f"{question.id} -> {code}"

    def test_mistake_triggers_reference_real_questions(self):
        index = question_index()
        for mistake in get_all_mistakes():
            for trigger in mistake.triggers:
                assert trigger.question_id in index, f"{mistake.code} -> {trigger.question_id}"

    def test_option_mistakes_exist(self):
        codes = {m.code for m in get_all_mistakes()}
        for question in question_index().values():
            for option in question.options:
                if option.triggers_mistake:
                    assert option.triggers_mistake in codes
