"""
Assessment schema: the oracle's structured output as a tagged union.

    AssessmentResult = InProgressAssessment | CompleteAssessment

``parse_assessment`` validates the ``status`` discriminant first and only then
destructures the fields of the matching variant. Mixed payloads (terminal
fields on an in-progress answer, a follow-up question on a complete answer)
are rejected as SchemaValidationError, as are enum, range and invariant
violations. Manual validation over dataclasses, no pydantic.

A complete payload may omit ``summary``: ``normalize_assessment`` substitutes
the top differential's condition, or demotes the answer back to in-progress
with a generic clarifying question. A record with an empty summary is never
produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Union

from mediscan.errors import SchemaValidationError
from mediscan.records.types import TriageLevel

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETE = "complete"

LIKELIHOODS = ("High", "Medium", "Low")
DIAGNOSIS_SEVERITIES = ("Emergency", "High", "Moderate", "Low")
TRIAGE_LEVELS = tuple(level.value for level in TriageLevel)

MIN_REASONING_CHARS = 20

GENERIC_FOLLOW_UP = "Could you provide more details?"

# Keys that only belong to the complete variant
_TERMINAL_KEYS = (
    "summary",
    "recommendedSpecialist",
    "visualAnalysis",
    "differentialDiagnosis",
    "detailedAnalysis",
    "triageLevel",
    "confidenceScore",
    "recommendations",
)


@dataclass(frozen=True)
class VisualAnalysis:
    color: str = ""
    texture: str = ""
    shape: str = ""
    location: str = ""
    findings: str = ""


@dataclass(frozen=True)
class Diagnosis:
    """One entry of the differential, ordered most to least relevant."""
    condition: str
    likelihood: str  # High | Medium | Low
    reasoning: str
    severity: str  # Emergency | High | Moderate | Low
    action: str


@dataclass(frozen=True)
class InProgressAssessment:
    """Oracle wants more information. ``next_question`` may be empty; callers fall back."""
    next_question: str = ""
    disclaimer: str = ""

    @property
    def status(self) -> str:
        return STATUS_IN_PROGRESS


@dataclass(frozen=True)
class CompleteAssessment:
    """Terminal answer. ``summary`` is None only before normalization."""
    disclaimer: str
    summary: str | None = None
    recommended_specialist: str | None = None
    visual_analysis: VisualAnalysis | None = None
    differential_diagnosis: tuple[Diagnosis, ...] = ()
    detailed_analysis: str = ""
    triage_level: TriageLevel | None = None
    confidence_score: float | None = None
    recommendations: tuple[str, ...] = field(default_factory=tuple)

    @property
    def status(self) -> str:
        return STATUS_COMPLETE

    @property
    def effective_triage_level(self) -> TriageLevel:
        return self.triage_level or TriageLevel.LOW


AssessmentResult = Union[InProgressAssessment, CompleteAssessment]


# ---------------------------------------------------------------------------
# Field helpers: each appends to ``errs`` and returns a cleaned value
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, dict):
        return all(_is_blank(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return not value
    return False


def _opt_str(payload: dict[str, Any], key: str, path: str, errs: list[str]) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        errs.append(f"{path}: expected string, got {type(value).__name__}")
        return None
    return value.strip()


def _str_list(payload: dict[str, Any], key: str, path: str, errs: list[str]) -> tuple[str, ...]:
    value = payload.get(key)
    if value is None:
        return ()
    if not isinstance(value, list):
        errs.append(f"{path}: expected array, got {type(value).__name__}")
        return ()
    out: list[str] = []
    for i, item in enumerate(value):
        if not isinstance(item, str):
            errs.append(f"{path}[{i}]: expected string")
            continue
        if item.strip():
            out.append(item.strip())
    return tuple(out)


def _enum_value(value: Any, allowed: tuple[str, ...], path: str, errs: list[str]) -> str:
    if not isinstance(value, str) or value not in allowed:
        errs.append(f"{path} must be one of {allowed}, got {value!r}")
        return ""
    return value


def _parse_visual(value: Any, errs: list[str]) -> VisualAnalysis | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        errs.append("visualAnalysis: expected object")
        return None
    parts = {k: _opt_str(value, k, f"visualAnalysis.{k}", errs) or "" for k in ("color", "texture", "shape", "location", "findings")}
    if not any(parts.values()):
        return None
    return VisualAnalysis(**parts)


def _parse_diagnosis(value: Any, path: str, errs: list[str]) -> Diagnosis | None:
    if not isinstance(value, dict):
        errs.append(f"{path}: expected object")
        return None
    condition = _opt_str(value, "condition", f"{path}.condition", errs) or ""
    if not condition:
        errs.append(f"{path}.condition is required")
    reasoning = _opt_str(value, "reasoning", f"{path}.reasoning", errs) or ""
    if len(reasoning) < MIN_REASONING_CHARS:
        errs.append(f"{path}.reasoning must be at least {MIN_REASONING_CHARS} characters")
    return Diagnosis(
        condition=condition,
        likelihood=_enum_value(value.get("likelihood"), LIKELIHOODS, f"{path}.likelihood", errs),
        reasoning=reasoning,
        severity=_enum_value(value.get("severity"), DIAGNOSIS_SEVERITIES, f"{path}.severity", errs),
        action=_opt_str(value, "action", f"{path}.action", errs) or "",
    )


def _parse_confidence(value: Any, errs: list[str]) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errs.append(f"confidenceScore: expected number, got {type(value).__name__}")
        return None
    if not 0 <= value <= 100:
        errs.append(f"confidenceScore must be within 0-100, got {value}")
        return None
    return float(value)


# ---------------------------------------------------------------------------
# Variant parsing
# ---------------------------------------------------------------------------

def _parse_in_progress(payload: dict[str, Any], disclaimer: str, errs: list[str]) -> InProgressAssessment:
    mixed = [k for k in _TERMINAL_KEYS if not _is_blank(payload.get(k))]
    if mixed:
        errs.append(f"in_progress answer carries terminal fields: {', '.join(mixed)}")
    question = _opt_str(payload, "nextQuestion", "nextQuestion", errs) or ""
    return InProgressAssessment(next_question=question, disclaimer=disclaimer)


def _parse_complete(payload: dict[str, Any], disclaimer: str, errs: list[str]) -> CompleteAssessment:
    if not disclaimer:
        errs.append("disclaimer must be non-empty when status is complete")
    if not _is_blank(payload.get("nextQuestion")):
        errs.append("complete answer carries a follow-up question")

    raw_dx = payload.get("differentialDiagnosis")
    diagnoses: list[Diagnosis] = []
    if raw_dx is not None:
        if not isinstance(raw_dx, list):
            errs.append("differentialDiagnosis: expected array")
        else:
            for i, item in enumerate(raw_dx):
                dx = _parse_diagnosis(item, f"differentialDiagnosis[{i}]", errs)
                if dx is not None:
                    diagnoses.append(dx)

    level_raw = payload.get("triageLevel")
    level: TriageLevel | None = None
    if level_raw is not None:
        level_value = _enum_value(level_raw, TRIAGE_LEVELS, "triageLevel", errs)
        level = TriageLevel(level_value) if level_value else None

    return CompleteAssessment(
        disclaimer=disclaimer,
        summary=_opt_str(payload, "summary", "summary", errs) or None,
        recommended_specialist=_opt_str(payload, "recommendedSpecialist", "recommendedSpecialist", errs) or None,
        visual_analysis=_parse_visual(payload.get("visualAnalysis"), errs),
        differential_diagnosis=tuple(diagnoses),
        detailed_analysis=_opt_str(payload, "detailedAnalysis", "detailedAnalysis", errs) or "",
        triage_level=level,
        confidence_score=_parse_confidence(payload.get("confidenceScore"), errs),
        recommendations=_str_list(payload, "recommendations", "recommendations", errs),
    )


def parse_assessment(payload: Any) -> AssessmentResult:
    """Validate a decoded oracle payload. Raises SchemaValidationError on any violation."""
    if not isinstance(payload, dict):
        raise SchemaValidationError(f"assessment must be a JSON object, got {type(payload).__name__}")

    status = payload.get("status")
    if status not in (STATUS_IN_PROGRESS, STATUS_COMPLETE):
        raise SchemaValidationError(f"status must be 'in_progress' or 'complete', got {status!r}")

    errs: list[str] = []
    if "disclaimer" not in payload:
        errs.append("disclaimer is required")
    disclaimer = _opt_str(payload, "disclaimer", "disclaimer", errs) or ""

    result: AssessmentResult
    if status == STATUS_IN_PROGRESS:
        result = _parse_in_progress(payload, disclaimer, errs)
    else:
        result = _parse_complete(payload, disclaimer, errs)

    if errs:
        raise SchemaValidationError(f"invalid {status} assessment: {errs[0]}", errs)
    return result


def normalize_assessment(result: AssessmentResult) -> AssessmentResult:
    """Apply the summary-substitution rule to a complete answer."""
    if not isinstance(result, CompleteAssessment) or result.summary:
        return result
    if result.differential_diagnosis:
        return replace(result, summary=result.differential_diagnosis[0].condition)
    return InProgressAssessment(next_question=GENERIC_FOLLOW_UP, disclaimer=result.disclaimer)


def is_demotion(original: AssessmentResult, normalized: AssessmentResult) -> bool:
    """True when normalization turned an empty completion back into a question."""
    return isinstance(original, CompleteAssessment) and isinstance(normalized, InProgressAssessment)
