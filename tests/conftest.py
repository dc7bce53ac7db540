"""Shared fakes: scripted oracle, specialist lookup, and payload builders."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from mediscan.assessment.schema import parse_assessment
from mediscan.emergency.guide import parse_guide
from mediscan.medication import parse_medication
from mediscan.errors import LookupFailedError
from mediscan.records.store import InMemoryRecordStore
from mediscan.records.types import DoctorListing, PatientCategory, PatientContext

REASONING = "Redness, itching and a raised border over several days fit this condition well."


def in_progress(question: str = "How long have you had the rash?") -> dict[str, Any]:
    return {
        "status": "in_progress",
        "nextQuestion": question,
        "summary": None,
        "recommendedSpecialist": None,
        "visualAnalysis": None,
        "differentialDiagnosis": None,
        "detailedAnalysis": None,
        "triageLevel": None,
        "confidenceScore": None,
        "recommendations": None,
        "disclaimer": "This is not medical advice.",
    }


def complete(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "status": "complete",
        "nextQuestion": None,
        "summary": "Contact Dermatitis",
        "recommendedSpecialist": None,
        "visualAnalysis": {
            "color": "red",
            "texture": "raised",
            "shape": "irregular",
            "location": "forearm",
            "findings": "Erythematous patch with defined borders.",
        },
        "differentialDiagnosis": [
            {
                "condition": "Contact Dermatitis",
                "likelihood": "High",
                "reasoning": REASONING,
                "severity": "Low",
                "action": "Avoid the irritant and apply a mild steroid cream.",
            },
            {
                "condition": "Eczema",
                "likelihood": "Medium",
                "reasoning": "Chronic itchy patches can also be atopic eczema flaring up.",
                "severity": "Low",
                "action": "Moisturize regularly.",
            },
        ],
        "detailedAnalysis": "The rash is most consistent with an irritant reaction.",
        "triageLevel": "Low",
        "confidenceScore": 82,
        "recommendations": ["Stop using the new soap", "See a dermatologist if it spreads"],
        "disclaimer": "This is not medical advice.",
    }
    payload.update(overrides)
    return payload


def guide_payload(steps: int = 3) -> dict[str, Any]:
    return {
        "title": "CPR (Adult)",
        "severity": "Critical",
        "steps": [
            {
                "title": f"Step {i + 1}",
                "instruction": f"Instruction {i + 1}",
                "hasTimer": i == 1,
                "timerSeconds": 120 if i == 1 else None,
                "warning": None,
            }
            for i in range(steps)
        ],
        "postEmergency": ["Stay with the person until help arrives"],
    }


def medication_payload(name: str = "Ibuprofen", interactions: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "name": name,
        "genericName": "Ibuprofen",
        "dosage": "200 mg",
        "type": "Pill",
        "treatsBodyPart": "Musculoskeletal",
        "treatsConditions": ["Pain", "Fever"],
        "uses": ["Pain relief"],
        "sideEffects": {"common": ["Nausea"], "rare": ["Ulcer"]},
        "usageInstructions": "Take with food.",
        "missedDose": "Skip it.",
        "storage": "Below 25C.",
        "warnings": ["Do not exceed 1200 mg/day"],
        "interactionsWithList": interactions or [],
        "isExpired": False,
        "confidence": 88,
    }


class FakeOracle:
    """
    Scripted oracle. Each script item is a payload dict (validated with the
    real schema parser) or an exception instance to raise.
    """

    def __init__(self, *script: Any, block: bool = False) -> None:
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []
        self.guide_script: list[Any] = []
        self.started = threading.Event()
        self.gate = threading.Event()
        if not block:
            self.gate.set()

    def _next(self) -> Any:
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def analyze_symptoms(self, prompt, history, images, language, patient_context=None):
        self.calls.append({
            "prompt": prompt,
            "history": list(history),
            "images": list(images),
            "language": language,
            "patient_context": patient_context,
        })
        self.started.set()
        self.gate.wait(5)
        return parse_assessment(self._next())

    def get_first_aid_guide(self, emergency_name, language):
        self.calls.append({"guide": emergency_name, "language": language})
        item = self.guide_script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return parse_guide(item)

    def scan_medication(self, image, existing_medications, language):
        self.calls.append({"scan": image.ref, "existing": list(existing_medications), "language": language})
        return parse_medication(self._next())


class FakeLookup:
    def __init__(
        self,
        doctors: list[DoctorListing] | None = None,
        error: Exception | None = None,
        *,
        block: bool = False,
    ) -> None:
        self.doctors = doctors or []
        self.error = error
        self.calls: list[tuple[str, Any, str]] = []
        self.started = threading.Event()
        self.gate = threading.Event()
        if not block:
            self.gate.set()

    def find_nearby(self, specialty, location, language):
        self.calls.append((specialty, location, language))
        self.started.set()
        self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.doctors)


@pytest.fixture
def patient() -> PatientContext:
    return PatientContext(profile_id="p1", name="Sam", category=PatientCategory.SELF, age=34)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def failing_lookup() -> FakeLookup:
    return FakeLookup(error=LookupFailedError("network down"))
