"""Profile registry, its file, and the JSON data export."""

from __future__ import annotations

import json

import pytest

from conftest import medication_payload
from mediscan.backup import build_backup, default_backup_name, write_backup
from mediscan.errors import InputError, RecordStoreError
from mediscan.medication import MedicineCabinet, parse_medication
from mediscan.profiles import ProfileRegistry, load_profiles, save_profiles
from mediscan.records.store import InMemoryRecordStore
from mediscan.records.types import DEFAULT_PATIENT, HealthRecord, PatientCategory, RecordKind


class TestRegistry:
    def test_starts_with_default_profile(self):
        registry = ProfileRegistry()
        assert registry.active == DEFAULT_PATIENT
        assert len(registry) == 1

    def test_add_makes_profile_active(self):
        registry = ProfileRegistry()
        kid = registry.add("Alex", PatientCategory.CHILD, 7)
        assert registry.active == kid
        assert kid.to_prompt_context() == "child (7), Name: Alex"

    def test_switch_and_remove(self):
        registry = ProfileRegistry()
        grandma = registry.add("Rosa", PatientCategory.ELDERLY, 81)
        registry.switch("main")
        assert registry.active_id == "main"
        registry.switch(grandma.profile_id)
        registry.remove(grandma.profile_id)
        assert registry.active == DEFAULT_PATIENT
        assert registry.find(grandma.profile_id) is None

    @pytest.mark.parametrize("action", [
        lambda r: r.add("  "),
        lambda r: r.add("Alex", age=-1),
        lambda r: r.switch("nobody"),
        lambda r: r.remove("main"),
        lambda r: r.remove("nobody"),
    ])
    def test_rejected(self, action):
        with pytest.raises(InputError):
            action(ProfileRegistry())

    def test_unknown_active_falls_back_to_default(self):
        assert ProfileRegistry([], "gone").active == DEFAULT_PATIENT


class TestRegistryFile:
    def test_survives_reload(self, tmp_path):
        path = tmp_path / "profiles.json"
        registry = ProfileRegistry()
        kid = registry.add("Alex", PatientCategory.CHILD, None)
        save_profiles(registry, path)

        reloaded = load_profiles(path)
        assert reloaded.active == kid
        assert [p.name for p in reloaded] == ["Me", "Alex"]

    def test_missing_and_malformed(self, tmp_path):
        path = tmp_path / "profiles.json"
        assert load_profiles(path).active == DEFAULT_PATIENT
        path.write_text(json.dumps({"profiles": [{"name": "no id"}]}))
        with pytest.raises(RecordStoreError):
            load_profiles(path)


class TestBackup:
    def test_collects_every_registered_profile(self, tmp_path):
        registry = ProfileRegistry()
        kid = registry.add("Alex", PatientCategory.CHILD, 7)
        store = InMemoryRecordStore()
        store.append(HealthRecord.create("main", RecordKind.NOTE, "Flu shot", created_at=1.0))
        store.append(HealthRecord.create(kid.profile_id, RecordKind.SYMPTOM, "Earache", created_at=2.0))
        store.append(HealthRecord.create("stranger", RecordKind.NOTE, "Not exported", created_at=3.0))
        cabinet = MedicineCabinet()
        cabinet.add(parse_medication(medication_payload()), kid.profile_id)

        payload = build_backup(registry, store, cabinet, now=1_700_000_000.0)
        path = write_backup(payload, tmp_path / default_backup_name(1_700_000_000.0))

        data = json.loads(path.read_text())
        assert path.name.startswith("mediscan_backup_2023-11-")
        assert data["active"] == kid.profile_id
        assert [p["name"] for p in data["profiles"]] == ["Me", "Alex"]
        assert sorted(r["summary"] for r in data["records"]) == ["Earache", "Flu shot"]
        assert data["medications"][0]["scan"]["name"] == "Ibuprofen"
