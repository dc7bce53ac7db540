"""Emergency protocol: rapid triage questionnaire, first-aid guides, contacts."""

from mediscan.emergency.contacts import EmergencyContact, EmergencyContacts
from mediscan.emergency.guide import FirstAidGuide, FirstAidStep, GuideSession
from mediscan.emergency.triage_machine import (
    COMMON_EMERGENCIES,
    TRIAGE_QUESTIONS,
    EmergencyMode,
    EmergencyTriage,
    record_emergency_call,
)

__all__ = [
    "COMMON_EMERGENCIES",
    "TRIAGE_QUESTIONS",
    "EmergencyContact",
    "EmergencyContacts",
    "EmergencyMode",
    "EmergencyTriage",
    "FirstAidGuide",
    "FirstAidStep",
    "GuideSession",
    "record_emergency_call",
]
