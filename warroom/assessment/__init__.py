"""
Assessment Module - orchestration and persistence.

Components:
- session: AssessmentRecord, submit_response, complete_stage, final report
- store: SQLAlchemy-backed AssessmentStore
"""

from warroom.assessment.session import (
    AssessmentRecord,
    AssessmentStatus,
    StageSnapshot,
    StageTransition,
    SubmissionResult,
    build_final_report,
    complete_stage,
    get_current_question,
    get_progress,
    start_assessment,
    submit_response,
)
from warroom.assessment.store import AssessmentStore

__all__ = [
    "AssessmentRecord",
    "AssessmentStatus",
    "StageSnapshot",
    "StageTransition",
    "SubmissionResult",
    "AssessmentStore",
    "start_assessment",
    "submit_response",
    "complete_stage",
    "get_current_question",
    "get_progress",
    "build_final_report",
]
