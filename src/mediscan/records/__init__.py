"""Health records: shared model, stores, and timeline helpers."""

from mediscan.records.client import RemoteRecordStore
from mediscan.records.store import InMemoryRecordStore, JsonFileRecordStore, RecordStore
from mediscan.records.types import (
    DEFAULT_PATIENT,
    DoctorListing,
    GeoPoint,
    HealthRecord,
    LookupLocation,
    PatientCategory,
    PatientContext,
    RecordKind,
    TriageLevel,
)

__all__ = [
    "DEFAULT_PATIENT",
    "DoctorListing",
    "GeoPoint",
    "HealthRecord",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "LookupLocation",
    "PatientCategory",
    "PatientContext",
    "RecordKind",
    "RecordStore",
    "RemoteRecordStore",
    "TriageLevel",
]
