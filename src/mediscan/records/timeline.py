"""Timeline helpers: filtering, manual entries, user edits, and health insights."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from mediscan.errors import InputError, SchemaValidationError
from mediscan.records.types import HealthRecord, PatientContext, RecordKind, TriageLevel

TIME_RANGES: dict[str, float | None] = {
    "all": None,
    "7days": 7 * 24 * 60 * 60,
    "30days": 30 * 24 * 60 * 60,
}

MANUAL_KINDS = (RecordKind.NOTE, RecordKind.APPOINTMENT, RecordKind.SYMPTOM)


def filter_records(
    records: Iterable[HealthRecord],
    kind: str = "all",
    time_range: str = "all",
    query: str = "",
    now: float | None = None,
) -> list[HealthRecord]:
    """Filter by kind, age and free-text query; newest first."""
    if time_range not in TIME_RANGES:
        raise InputError(f"time_range must be one of {tuple(TIME_RANGES)}")
    now = time.time() if now is None else now
    window = TIME_RANGES[time_range]
    needle = query.strip().lower()

    out: list[HealthRecord] = []
    for r in records:
        if kind != "all" and r.kind.value != kind:
            continue
        if window is not None and now - r.created_at >= window:
            continue
        if needle:
            haystack = " ".join((r.summary, r.details, r.notes or "")).lower()
            if needle not in haystack:
                continue
        out.append(r)
    return sorted(out, key=lambda r: r.created_at, reverse=True)


def new_entry(
    context: PatientContext,
    kind: RecordKind,
    summary: str,
    details: str = "",
    notes: str | None = None,
) -> HealthRecord:
    """Manually added timeline entry (note, appointment, or self-reported symptom)."""
    if kind not in MANUAL_KINDS:
        raise InputError(f"manual entries must be one of {[k.value for k in MANUAL_KINDS]}")
    if not summary.strip():
        raise InputError("summary is required")
    return HealthRecord.create(
        profile_id=context.profile_id,
        kind=kind,
        summary=summary.strip(),
        details=details,
        notes=notes,
        triage_level=TriageLevel.LOW,
    )


def edit_record(
    record: HealthRecord,
    *,
    summary: str | None = None,
    details: str | None = None,
    notes: str | None = None,
) -> HealthRecord:
    """Replacement record with user edits applied. Only summary/details/notes change."""
    changes: dict[str, Any] = {}
    if summary is not None:
        if not summary.strip():
            raise InputError("summary cannot be empty")
        changes["summary"] = summary.strip()
    if details is not None:
        changes["details"] = details
    if notes is not None:
        changes["notes"] = notes
    return replace(record, **changes)


# ---------------------------------------------------------------------------
# Health insights (produced by the oracle over a set of records)
# ---------------------------------------------------------------------------

PATTERN_TYPES = ("trend", "recurrence", "correlation", "alert")
PATTERN_SEVERITIES = ("positive", "neutral", "negative")


@dataclass(frozen=True)
class HealthPattern:
    type: str
    title: str
    description: str
    severity: str
    related_records: tuple[str, ...] = ()


@dataclass(frozen=True)
class HealthInsight:
    summary: str
    patterns: tuple[HealthPattern, ...] = ()
    recommendations: tuple[str, ...] = ()
    generated_at: float = field(default_factory=time.time)


EMPTY_INSIGHT_SUMMARY = "No health records available to analyze."


def records_for_insights(records: Iterable[HealthRecord]) -> list[dict[str, Any]]:
    """Compact view of records sent to the oracle (no attachments)."""
    return [
        {
            "id": r.id,
            "date": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(r.created_at)),
            "type": r.kind.value,
            "summary": r.summary,
            "details": r.details,
            "notes": r.notes,
        }
        for r in records
    ]


def parse_insight(payload: Any) -> HealthInsight:
    """Validate a decoded insight payload. Raises SchemaValidationError."""
    if not isinstance(payload, dict):
        raise SchemaValidationError("insight must be a JSON object")
    errs: list[str] = []
    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        errs.append("summary is required")
    patterns: list[HealthPattern] = []
    raw_patterns = payload.get("patterns")
    if not isinstance(raw_patterns, list):
        errs.append("patterns must be an array")
        raw_patterns = []
    for i, p in enumerate(raw_patterns):
        if not isinstance(p, dict):
            errs.append(f"patterns[{i}]: expected object")
            continue
        if p.get("type") not in PATTERN_TYPES:
            errs.append(f"patterns[{i}].type must be one of {PATTERN_TYPES}")
            continue
        if p.get("severity") not in PATTERN_SEVERITIES:
            errs.append(f"patterns[{i}].severity must be one of {PATTERN_SEVERITIES}")
            continue
        patterns.append(HealthPattern(
            type=p["type"],
            title=str(p.get("title") or ""),
            description=str(p.get("description") or ""),
            severity=p["severity"],
            related_records=tuple(str(x) for x in (p.get("relatedRecords") or [])),
        ))
    recs = payload.get("recommendations")
    if not isinstance(recs, list):
        errs.append("recommendations must be an array")
        recs = []
    if errs:
        raise SchemaValidationError(f"invalid health insight: {errs[0]}", errs)
    return HealthInsight(
        summary=summary.strip(),
        patterns=tuple(patterns),
        recommendations=tuple(r for r in recs if isinstance(r, str) and r.strip()),
    )
