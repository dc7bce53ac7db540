"""Record stores: in-memory, JSON file, and the HTTP client against a faked requests session."""

from __future__ import annotations

import json
from dataclasses import replace

import pytest
import requests

from mediscan.errors import RecordNotFoundError, RecordStoreError
from mediscan.records.client import RemoteRecordStore
from mediscan.records.store import InMemoryRecordStore, JsonFileRecordStore
from mediscan.records.timeline import edit_record
from mediscan.records.types import HealthRecord, RecordKind, TriageLevel


def _record(summary: str = "Rash", created_at: float = 1000.0, profile_id: str = "p1") -> HealthRecord:
    return HealthRecord.create(
        profile_id,
        RecordKind.SYMPTOM,
        summary,
        "details",
        triage_level=TriageLevel.LOW,
        created_at=created_at,
    )


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRecordStore()
    return JsonFileRecordStore(tmp_path / "records.json")


class TestStoreContract:
    def test_list_is_newest_first_and_per_profile(self, any_store):
        old, new, other = _record("old", 1.0), _record("new", 2.0), _record("x", 3.0, profile_id="p2")
        for r in (old, new, other):
            any_store.append(r)
        assert any_store.list_by_profile("p1") == [new, old]
        assert any_store.list_by_profile("p2") == [other]

    def test_edit_allowed_fields(self, any_store):
        r = any_store.append(_record())
        edited = edit_record(r, summary="Rash (healed)", notes="Cleared after a week")
        any_store.update(edited)
        assert any_store.get(r.id).notes == "Cleared after a week"

    def test_immutable_fields_rejected(self, any_store):
        r = any_store.append(_record())
        with pytest.raises(RecordStoreError):
            any_store.update(replace(r, triage_level=TriageLevel.HIGH))
        with pytest.raises(RecordStoreError):
            any_store.update(replace(r, created_at=5.0))

    def test_unknown_ids(self, any_store):
        with pytest.raises(RecordNotFoundError):
            any_store.update(_record())
        with pytest.raises(RecordNotFoundError):
            any_store.remove("nope")

    def test_remove(self, any_store):
        r = any_store.append(_record())
        any_store.remove(r.id)
        assert any_store.list_by_profile("p1") == []

    def test_duplicate_append_rejected(self, any_store):
        r = any_store.append(_record())
        with pytest.raises(RecordStoreError):
            any_store.append(r)

    def test_empty_summary_rejected(self, any_store):
        with pytest.raises(RecordStoreError):
            any_store.append(_record(summary=" "))


class TestJsonFile:
    def test_survives_reload(self, tmp_path):
        path = tmp_path / "nested" / "records.json"
        store = JsonFileRecordStore(path)
        r = store.append(_record())
        reloaded = JsonFileRecordStore(path)
        assert reloaded.list_by_profile("p1") == [r]
        assert json.loads(path.read_text())["records"][0]["id"] == r.id

    def test_failed_write_leaves_store_unchanged(self, tmp_path):
        path = tmp_path / "records.json"
        store = JsonFileRecordStore(path)
        kept = store.append(_record("kept"))
        (tmp_path / "records.json.tmp").mkdir()

        with pytest.raises(RecordStoreError):
            store.append(_record("lost", 2000.0))
        with pytest.raises(RecordStoreError):
            store.update(edit_record(kept, summary="renamed"))
        with pytest.raises(RecordStoreError):
            store.remove(kept.id)

        assert store.list_by_profile("p1") == [kept]
        assert JsonFileRecordStore(path).list_by_profile("p1") == [kept]

    def test_unwritable_directory_raises_store_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = JsonFileRecordStore(blocker / "records.json")
        with pytest.raises(RecordStoreError):
            store.append(_record())
        assert len(store) == 0

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text("{not json")
        with pytest.raises(RecordStoreError):
            JsonFileRecordStore(path)


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None):
        self.status_code = status_code
        self._body = body
        self.content = b"" if body is None else json.dumps(body).encode()
        self.text = self.content.decode()

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict | None]] = []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class TestRemoteStore:
    def test_append_posts_record(self):
        r = _record()
        session = FakeSession(FakeResponse(201, r.to_dict()))
        store = RemoteRecordStore("http://records.local/", session=session)
        assert store.append(r) == r
        method, url, body = session.calls[0]
        assert (method, url) == ("POST", "http://records.local/records")
        assert body["summary"] == "Rash"

    def test_list_by_profile(self):
        r = _record()
        session = FakeSession(FakeResponse(200, {"profile_id": "p1", "records": [r.to_dict()]}))
        store = RemoteRecordStore("http://records.local", session=session)
        assert store.list_by_profile("p1") == [r]
        assert session.calls[0][1] == "http://records.local/profiles/p1/records"

    def test_not_found(self):
        session = FakeSession(FakeResponse(404, {"detail": "no record x"}))
        with pytest.raises(RecordNotFoundError):
            RemoteRecordStore("http://records.local", session=session).remove("x")

    def test_conflict(self):
        session = FakeSession(FakeResponse(409, {"detail": "immutable"}))
        with pytest.raises(RecordStoreError) as exc:
            RemoteRecordStore("http://records.local", session=session).update(_record())
        assert "immutable" in str(exc.value)

    def test_unreachable(self):
        session = FakeSession(requests.ConnectionError("refused"))
        with pytest.raises(RecordStoreError):
            RemoteRecordStore("http://records.local", session=session).append(_record())

    def test_url_required(self):
        with pytest.raises(RecordStoreError):
            RemoteRecordStore("")
