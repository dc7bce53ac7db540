"""
Emergency triage state machine.

    dashboard --start_triage--> triage --yes--> red_alert --go_back--> dashboard
                                   |--no (last question)--> dashboard
    dashboard/red_alert --load_guide--> guide --go_back--> dashboard

Any single "yes" escalates immediately; there is no scoring across questions.
Reaching red_alert does not persist anything: the emergency record is written
by ``record_emergency_call`` when a call is actually placed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from mediscan.emergency.guide import FirstAidGuide, GuideSession
from mediscan.errors import GuideLoadError, OracleError, TriageStateError
from mediscan.records.store import RecordStore
from mediscan.records.types import HealthRecord, PatientContext, RecordKind, TriageLevel

logger = logging.getLogger(__name__)

GUIDE_LOAD_FAILED = "Failed to load guide. Please call emergency services."


class EmergencyMode(Enum):
    DASHBOARD = "dashboard"
    TRIAGE = "triage"
    RED_ALERT = "red_alert"
    GUIDE = "guide"


@dataclass(frozen=True)
class TriageQuestion:
    key: str
    text: str


TRIAGE_QUESTIONS: tuple[TriageQuestion, ...] = (
    TriageQuestion("chest", "Is there severe chest pain or pressure?"),
    TriageQuestion("breath", "Is there difficulty breathing or gasping?"),
    TriageQuestion("bleed", "Is there uncontrollable bleeding?"),
    TriageQuestion("unconscious", "Is the person unconscious or unresponsive?"),
    TriageQuestion("stroke", "Signs of Stroke (Face drooping, Arm weakness, Speech)?"),
)

# Guide catalog: key -> emergency name sent to the oracle
COMMON_EMERGENCIES: dict[str, str] = {
    "cpr": "CPR (Adult)",
    "choking": "Choking / Heimlich",
    "bleeding": "Severe Bleeding",
    "burns": "Burns",
    "seizure": "Seizure",
    "allergic": "Allergic Reaction",
}


class GuideOracle(Protocol):
    def get_first_aid_guide(self, emergency_name: str, language: str) -> FirstAidGuide: ...


class EmergencyTriage:
    """Rapid yes/no screening plus first-aid guide retrieval. Independent of the symptom interview."""

    def __init__(self, oracle: GuideOracle | None = None) -> None:
        self._oracle = oracle
        self.mode = EmergencyMode.DASHBOARD
        self.question_index = 0
        self.guide_session: GuideSession | None = None
        self._loading = False

    @property
    def current_question(self) -> TriageQuestion | None:
        if self.mode is not EmergencyMode.TRIAGE:
            return None
        return TRIAGE_QUESTIONS[self.question_index]

    @property
    def loading(self) -> bool:
        return self._loading

    def start_triage(self) -> TriageQuestion:
        """Enter the questionnaire at the first question."""
        if self.mode is not EmergencyMode.DASHBOARD:
            raise TriageStateError(f"cannot start triage from {self.mode.value}")
        self.mode = EmergencyMode.TRIAGE
        self.question_index = 0
        return TRIAGE_QUESTIONS[0]

    def answer(self, yes: bool) -> EmergencyMode:
        """Yes escalates to red_alert; no advances, and no on the last question returns to the dashboard."""
        if self.mode is not EmergencyMode.TRIAGE:
            raise TriageStateError(f"no triage question is active (mode={self.mode.value})")
        question = TRIAGE_QUESTIONS[self.question_index]
        if yes:
            self.mode = EmergencyMode.RED_ALERT
            logger.warning("Triage escalated to red alert on %r", question.key)
        elif self.question_index < len(TRIAGE_QUESTIONS) - 1:
            self.question_index += 1
        else:
            self.mode = EmergencyMode.DASHBOARD
            self.question_index = 0
            logger.info("Triage all-clear")
        return self.mode

    def go_back(self) -> EmergencyMode:
        """User override: leave triage, red alert or the guide for the dashboard."""
        if self.mode is EmergencyMode.DASHBOARD:
            raise TriageStateError("already on the dashboard")
        if self.mode is EmergencyMode.RED_ALERT:
            logger.info("Red alert dismissed by user")
        self.mode = EmergencyMode.DASHBOARD
        self.question_index = 0
        self.guide_session = None
        return self.mode

    async def load_guide(self, emergency_name: str, language: str) -> GuideSession:
        """
        Fetch a first-aid guide from the fast oracle and enter guide mode.

        Raises GuideLoadError on any oracle failure; the mode is left unchanged.
        """
        if self._oracle is None:
            raise GuideLoadError(GUIDE_LOAD_FAILED)
        if self.mode is EmergencyMode.TRIAGE:
            raise TriageStateError("finish or leave the questionnaire before opening a guide")
        if self._loading:
            raise TriageStateError("a guide is already loading")
        name = COMMON_EMERGENCIES.get(emergency_name, emergency_name)

        self._loading = True
        try:
            loop = asyncio.get_running_loop()
            guide = await loop.run_in_executor(None, self._oracle.get_first_aid_guide, name, language)
        except OracleError as e:
            logger.error("First-aid guide %r failed to load: %s", name, e)
            raise GuideLoadError(GUIDE_LOAD_FAILED) from e
        finally:
            self._loading = False

        self.guide_session = GuideSession(guide)
        self.mode = EmergencyMode.GUIDE
        logger.info("Guide loaded: %s (%d steps)", guide.title, len(guide.steps))
        return self.guide_session


def record_emergency_call(
    store: RecordStore,
    context: PatientContext,
    number: str,
    location: str = "",
) -> HealthRecord:
    """Persist a kind=emergency record for a placed call."""
    if not number.strip():
        raise TriageStateError("emergency number is required")
    details = f"Emergency call placed to **{number.strip()}**."
    if location.strip():
        details += f"\n\n**Location:** {location.strip()}"
    record = HealthRecord.create(
        profile_id=context.profile_id,
        kind=RecordKind.EMERGENCY,
        summary=f"Emergency call ({number.strip()})",
        details=details,
        triage_level=TriageLevel.EMERGENCY,
    )
    store.append(record)
    logger.info("Emergency call recorded: %s -> %s", context.profile_id, number.strip())
    return record
