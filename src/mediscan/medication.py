"""Medication scanner results, the per-profile medicine cabinet (and its file), and medication records."""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mediscan.errors import RecordStoreError, SchemaValidationError
from mediscan.records.store import write_json_atomic
from mediscan.records.types import HealthRecord, PatientContext, RecordKind, TriageLevel

logger = logging.getLogger(__name__)

INTERACTION_SEVERITIES = ("None", "Minor", "Moderate", "Major", "Contraindicated")
SERIOUS_INTERACTIONS = frozenset({"Major", "Contraindicated"})


@dataclass(frozen=True)
class DrugInteraction:
    drug_name: str
    severity: str
    description: str = ""
    mechanism: str = ""
    action: str = ""


@dataclass(frozen=True)
class MedicationScan:
    """Oracle identification of one medication plus interaction check."""
    name: str
    dosage: str
    usage_instructions: str
    treats_body_part: str
    confidence: float
    generic_name: str | None = None
    form: str = ""  # Pill, Capsule, Liquid, ...
    treats_conditions: tuple[str, ...] = ()
    uses: tuple[str, ...] = ()
    common_side_effects: tuple[str, ...] = ()
    rare_side_effects: tuple[str, ...] = ()
    missed_dose: str = ""
    storage: str = ""
    warnings: tuple[str, ...] = ()
    interactions: tuple[DrugInteraction, ...] = ()
    is_expired: bool = False

    @property
    def has_serious_interaction(self) -> bool:
        return any(i.severity in SERIOUS_INTERACTIONS for i in self.interactions)

    def to_payload(self) -> dict[str, Any]:
        """Back to the oracle's camelCase shape; ``parse_medication`` reads it again."""
        return {
            "name": self.name,
            "genericName": self.generic_name,
            "dosage": self.dosage,
            "type": self.form,
            "treatsBodyPart": self.treats_body_part,
            "treatsConditions": list(self.treats_conditions),
            "uses": list(self.uses),
            "sideEffects": {"common": list(self.common_side_effects), "rare": list(self.rare_side_effects)},
            "usageInstructions": self.usage_instructions,
            "missedDose": self.missed_dose,
            "storage": self.storage,
            "warnings": list(self.warnings),
            "interactionsWithList": [
                {
                    "drugName": i.drug_name,
                    "severity": i.severity,
                    "description": i.description,
                    "mechanism": i.mechanism,
                    "action": i.action,
                }
                for i in self.interactions
            ],
            "isExpired": self.is_expired,
            "confidence": self.confidence,
        }


def _strings(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(v.strip() for v in value if isinstance(v, str) and v.strip())


def parse_medication(payload: Any) -> MedicationScan:
    """Validate a decoded medication payload. Raises SchemaValidationError."""
    if not isinstance(payload, dict):
        raise SchemaValidationError("medication must be a JSON object")
    errs: list[str] = []
    for key in ("name", "dosage", "usageInstructions", "treatsBodyPart"):
        if not isinstance(payload.get(key), str) or not payload[key].strip():
            errs.append(f"{key} is required")
    confidence = payload.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        errs.append("confidence must be a number")
        confidence = 0.0
    if not isinstance(payload.get("warnings"), list):
        errs.append("warnings must be an array")

    interactions: list[DrugInteraction] = []
    raw_interactions = payload.get("interactionsWithList")
    if not isinstance(raw_interactions, list):
        errs.append("interactionsWithList must be an array")
        raw_interactions = []
    for i, raw in enumerate(raw_interactions):
        if not isinstance(raw, dict):
            errs.append(f"interactionsWithList[{i}]: expected object")
            continue
        severity = raw.get("severity")
        if severity not in INTERACTION_SEVERITIES:
            errs.append(f"interactionsWithList[{i}].severity must be one of {INTERACTION_SEVERITIES}")
            continue
        interactions.append(DrugInteraction(
            drug_name=str(raw.get("drugName") or ""),
            severity=severity,
            description=str(raw.get("description") or ""),
            mechanism=str(raw.get("mechanism") or ""),
            action=str(raw.get("action") or ""),
        ))
    if errs:
        raise SchemaValidationError(f"invalid medication scan: {errs[0]}", errs)

    side_effects = payload.get("sideEffects") or {}
    if not isinstance(side_effects, dict):
        side_effects = {}
    return MedicationScan(
        name=payload["name"].strip(),
        dosage=payload["dosage"].strip(),
        usage_instructions=payload["usageInstructions"].strip(),
        treats_body_part=payload["treatsBodyPart"].strip(),
        confidence=float(confidence),
        generic_name=payload.get("genericName") or None,
        form=str(payload.get("type") or ""),
        treats_conditions=_strings(payload.get("treatsConditions")),
        uses=_strings(payload.get("uses")),
        common_side_effects=_strings(side_effects.get("common")),
        rare_side_effects=_strings(side_effects.get("rare")),
        missed_dose=str(payload.get("missedDose") or ""),
        storage=str(payload.get("storage") or ""),
        warnings=_strings(payload.get("warnings")),
        interactions=tuple(interactions),
        is_expired=bool(payload.get("isExpired")),
    )


@dataclass(frozen=True)
class SavedMedication:
    id: str
    profile_id: str
    added_at: float
    scan: MedicationScan
    image: str = ""  # base64
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "added_at": self.added_at,
            "image": self.image,
            "notes": self.notes,
            "scan": self.scan.to_payload(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SavedMedication:
        return cls(
            id=str(d["id"]),
            profile_id=str(d["profile_id"]),
            added_at=float(d["added_at"]),
            scan=parse_medication(d["scan"]),
            image=str(d.get("image") or ""),
            notes=d.get("notes"),
        )


@dataclass
class MedicineCabinet:
    """Saved medications per profile, one entry per (case-insensitive) name."""
    items: list[SavedMedication] = field(default_factory=list)

    def add(self, scan: MedicationScan, profile_id: str, image: str = "", notes: str | None = None) -> SavedMedication:
        """Save a scan; replaces an existing entry with the same name for this profile."""
        name = scan.name.lower()
        self.items = [
            m for m in self.items
            if not (m.profile_id == profile_id and m.scan.name.lower() == name)
        ]
        saved = SavedMedication(
            id=uuid.uuid4().hex,
            profile_id=profile_id,
            added_at=time.time(),
            scan=scan,
            image=image,
            notes=notes,
        )
        self.items.insert(0, saved)
        return saved

    def remove(self, medication_id: str) -> bool:
        before = len(self.items)
        self.items = [m for m in self.items if m.id != medication_id]
        return len(self.items) < before

    def for_profile(self, profile_id: str) -> list[SavedMedication]:
        return [m for m in self.items if m.profile_id == profile_id]

    def names_for(self, profile_id: str) -> list[str]:
        """Medication names used as the interaction-check list for a new scan."""
        return [m.scan.name for m in self.for_profile(profile_id)]


def medication_record(scan: MedicationScan, context: PatientContext, image: str | None = None) -> HealthRecord:
    """Timeline entry for a saved medication."""
    details = (
        f"**Dosage:** {scan.dosage}\n"
        f"**Usage:** {scan.usage_instructions}\n"
        f"**Warnings:** {', '.join(scan.warnings)}"
    )
    return HealthRecord.create(
        profile_id=context.profile_id,
        kind=RecordKind.MEDICATION,
        summary=scan.name,
        details=details,
        triage_level=TriageLevel.HIGH if scan.has_serious_interaction else TriageLevel.LOW,
        confidence=scan.confidence,
        attachments=[image] if image else None,
    )


# ---------------------------------------------------------------------------
# Cabinet file: {"medications": [<SavedMedication.to_dict()>, ...]}
# ---------------------------------------------------------------------------

def load_cabinet(path: str | Path) -> MedicineCabinet:
    """Read the cabinet file; a missing file is an empty cabinet. Raises RecordStoreError."""
    path = Path(path)
    if not path.exists():
        return MedicineCabinet()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RecordStoreError(f"cannot read medicine cabinet {path}: {e}") from e
    try:
        items = [SavedMedication.from_dict(d) for d in data.get("medications", [])]
    except (SchemaValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
        raise RecordStoreError(f"malformed medicine cabinet {path}: {e}") from e
    logger.info("Loaded %d saved medication(s) from %s", len(items), path)
    return MedicineCabinet(items)


def save_cabinet(cabinet: MedicineCabinet, path: str | Path) -> None:
    write_json_atomic(Path(path), {"medications": [m.to_dict() for m in cabinet.items]})
