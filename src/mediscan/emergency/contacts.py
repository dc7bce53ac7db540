"""Emergency contacts list (always starts with the public emergency number)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from mediscan.errors import InputError

DEFAULT_EMERGENCY_NUMBER = "112"


@dataclass(frozen=True)
class EmergencyContact:
    id: str
    name: str
    relation: str
    number: str


def _default_contacts() -> list[EmergencyContact]:
    return [EmergencyContact(id="1", name="Emergency Services", relation="Public", number=DEFAULT_EMERGENCY_NUMBER)]


@dataclass
class EmergencyContacts:
    contacts: list[EmergencyContact] = field(default_factory=_default_contacts)

    def add(self, name: str, relation: str, number: str) -> EmergencyContact:
        """Name and number are required; relation is free text."""
        if not name.strip() or not number.strip():
            raise InputError("contact name and number are required")
        contact = EmergencyContact(
            id=uuid.uuid4().hex,
            name=name.strip(),
            relation=relation.strip(),
            number=number.strip(),
        )
        self.contacts.append(contact)
        return contact

    def remove(self, contact_id: str) -> bool:
        before = len(self.contacts)
        self.contacts = [c for c in self.contacts if c.id != contact_id]
        return len(self.contacts) < before

    def __iter__(self):
        return iter(self.contacts)

    def __len__(self) -> int:
        return len(self.contacts)
