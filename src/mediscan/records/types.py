"""
Shared triage and record model.

These types are used across:
  - ConversationEngine (creates symptom records from finalized assessments)
  - EmergencyTriage (creates emergency records on call initiation)
  - MedicineCabinet / timeline helpers (medication, note, appointment records)
  - RecordStore implementations (persist and list records per profile)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any


class TriageLevel(Enum):
    """Severity classification attached to an assessment or record."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EMERGENCY = "Emergency"


class RecordKind(Enum):
    SYMPTOM = "symptom"
    MEDICATION = "medication"
    EMERGENCY = "emergency"
    APPOINTMENT = "appointment"
    NOTE = "note"


class PatientCategory(Enum):
    SELF = "self"
    CHILD = "child"
    ELDERLY = "elderly"
    OTHER = "other"


def new_record_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Patient context: supplied once per session, immutable
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatientContext:
    """Who the assessment is for."""
    profile_id: str
    name: str
    category: PatientCategory = PatientCategory.SELF
    age: int | None = None

    def to_prompt_context(self) -> str:
        """One-line patient description sent to the oracle."""
        age = str(self.age) if self.age is not None else "?"
        return f"{self.category.value} ({age}), Name: {self.name}"


DEFAULT_PATIENT = PatientContext(profile_id="main", name="Me", category=PatientCategory.SELF)


# ---------------------------------------------------------------------------
# HealthRecord
# ---------------------------------------------------------------------------

# Fields a user may change after creation; everything else is fixed at creation.
EDITABLE_FIELDS = frozenset({"summary", "details", "notes"})


@dataclass(frozen=True)
class HealthRecord:
    """One timeline entry. Owned by the record store once created."""
    id: str
    profile_id: str
    created_at: float
    kind: RecordKind
    summary: str
    details: str = ""  # Markdown
    triage_level: TriageLevel | None = None
    confidence: float | None = None
    attachments: tuple[str, ...] = ()  # base64-encoded media payloads
    notes: str | None = None

    @classmethod
    def create(
        cls,
        profile_id: str,
        kind: RecordKind,
        summary: str,
        details: str = "",
        *,
        triage_level: TriageLevel | None = None,
        confidence: float | None = None,
        attachments: list[str] | tuple[str, ...] | None = None,
        notes: str | None = None,
        created_at: float | None = None,
    ) -> HealthRecord:
        return cls(
            id=new_record_id(),
            profile_id=profile_id,
            created_at=time.time() if created_at is None else created_at,
            kind=kind,
            summary=summary,
            details=details,
            triage_level=triage_level,
            confidence=confidence,
            attachments=tuple(attachments or ()),
            notes=notes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "created_at": self.created_at,
            "kind": self.kind.value,
            "summary": self.summary,
            "details": self.details,
            "triage_level": self.triage_level.value if self.triage_level else None,
            "confidence": self.confidence,
            "attachments": list(self.attachments),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> HealthRecord:
        level = d.get("triage_level")
        return cls(
            id=str(d["id"]),
            profile_id=str(d["profile_id"]),
            created_at=float(d["created_at"]),
            kind=RecordKind(d["kind"]),
            summary=str(d.get("summary") or ""),
            details=str(d.get("details") or ""),
            triage_level=TriageLevel(level) if level else None,
            confidence=d.get("confidence"),
            attachments=tuple(d.get("attachments") or ()),
            notes=d.get("notes"),
        )


# ---------------------------------------------------------------------------
# DoctorListing: read-only result of specialist lookup, never persisted
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DoctorListing:
    name: str
    address: str
    rating: str | None = None
    phone: str | None = None
    lat: float | None = None
    lng: float | None = None


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def to_query(self) -> str:
        return f"{self.lat:.4f},{self.lng:.4f}"


@dataclass(frozen=True)
class LookupLocation:
    """Where to search for specialists: free text, coordinates, or both."""
    text: str = ""
    coords: GeoPoint | None = None

    def describe(self) -> str:
        if self.text:
            return self.text
        if self.coords is not None:
            return self.coords.to_query()
        return ""

