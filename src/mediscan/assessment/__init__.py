"""Symptom assessment: oracle client, result schema, conversation engine."""

from mediscan.assessment.conversation import (
    ConversationEngine,
    ConversationTurn,
    SessionStatus,
    TurnOutcome,
)
from mediscan.assessment.oracle import DiagnosticOracle
from mediscan.assessment.schema import (
    AssessmentResult,
    CompleteAssessment,
    InProgressAssessment,
    normalize_assessment,
    parse_assessment,
)

__all__ = [
    "AssessmentResult",
    "CompleteAssessment",
    "ConversationEngine",
    "ConversationTurn",
    "DiagnosticOracle",
    "InProgressAssessment",
    "SessionStatus",
    "TurnOutcome",
    "normalize_assessment",
    "parse_assessment",
]
