"""
Profile registry: the people this device keeps records for, and which one is active.

The default profile ("main", "Me") always exists and cannot be removed.
Profiles are plain PatientContexts; the file is
``{"active": "<id>", "profiles": [{"id", "name", "category", "age"}, ...]}``.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from mediscan.errors import InputError, RecordStoreError
from mediscan.records.store import write_json_atomic
from mediscan.records.types import DEFAULT_PATIENT, PatientCategory, PatientContext

logger = logging.getLogger(__name__)


def profile_to_dict(profile: PatientContext) -> dict[str, Any]:
    return {
        "id": profile.profile_id,
        "name": profile.name,
        "category": profile.category.value,
        "age": profile.age,
    }


def profile_from_dict(d: dict[str, Any]) -> PatientContext:
    age = d.get("age")
    return PatientContext(
        profile_id=str(d["id"]),
        name=str(d["name"]),
        category=PatientCategory(d.get("category") or "self"),
        age=int(age) if age is not None else None,
    )


@dataclass
class ProfileRegistry:
    profiles: list[PatientContext] = field(default_factory=lambda: [DEFAULT_PATIENT])
    active_id: str = DEFAULT_PATIENT.profile_id

    def __post_init__(self) -> None:
        if not any(p.profile_id == DEFAULT_PATIENT.profile_id for p in self.profiles):
            self.profiles.insert(0, DEFAULT_PATIENT)
        if self.find(self.active_id) is None:
            self.active_id = DEFAULT_PATIENT.profile_id

    def __iter__(self) -> Iterator[PatientContext]:
        return iter(self.profiles)

    def __len__(self) -> int:
        return len(self.profiles)

    @property
    def active(self) -> PatientContext:
        return self.get(self.active_id)

    def find(self, profile_id: str) -> PatientContext | None:
        for p in self.profiles:
            if p.profile_id == profile_id:
                return p
        return None

    def get(self, profile_id: str) -> PatientContext:
        profile = self.find(profile_id)
        if profile is None:
            raise InputError(f"no profile {profile_id!r}")
        return profile

    def add(
        self,
        name: str,
        category: PatientCategory = PatientCategory.CHILD,
        age: int | None = None,
    ) -> PatientContext:
        """Register a profile and make it active."""
        name = (name or "").strip()
        if not name:
            raise InputError("profile name is required")
        if age is not None and age < 0:
            raise InputError("age cannot be negative")
        profile = PatientContext(profile_id=uuid.uuid4().hex[:12], name=name, category=category, age=age)
        self.profiles.append(profile)
        self.active_id = profile.profile_id
        logger.info("Profile added: %s (%s)", profile.profile_id, category.value)
        return profile

    def switch(self, profile_id: str) -> PatientContext:
        profile = self.get(profile_id)
        self.active_id = profile.profile_id
        return profile

    def remove(self, profile_id: str) -> None:
        """Forget a profile. Its records stay in the store."""
        if profile_id == DEFAULT_PATIENT.profile_id:
            raise InputError("the default profile cannot be removed")
        self.get(profile_id)
        self.profiles = [p for p in self.profiles if p.profile_id != profile_id]
        if self.active_id == profile_id:
            self.active_id = DEFAULT_PATIENT.profile_id

    def to_dict(self) -> dict[str, Any]:
        return {"active": self.active_id, "profiles": [profile_to_dict(p) for p in self.profiles]}


def load_profiles(path: str | Path) -> ProfileRegistry:
    """Read the registry file; a missing file gives the default profile only. Raises RecordStoreError."""
    path = Path(path)
    if not path.exists():
        return ProfileRegistry()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RecordStoreError(f"cannot read profiles {path}: {e}") from e
    try:
        profiles = [profile_from_dict(d) for d in data.get("profiles", [])]
        active = str(data.get("active") or DEFAULT_PATIENT.profile_id)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise RecordStoreError(f"malformed profiles {path}: {e}") from e
    return ProfileRegistry(profiles, active)


def save_profiles(registry: ProfileRegistry, path: str | Path) -> None:
    write_json_atomic(Path(path), registry.to_dict())
