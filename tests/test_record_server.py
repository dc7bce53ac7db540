"""Record-store FastAPI server via TestClient."""

from __future__ import annotations

import inspect

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from mediscan.config import load_config
from mediscan.records.server import create_app, create_default_app
from mediscan.records.store import InMemoryRecordStore, JsonFileRecordStore
from mediscan.records.types import HealthRecord, RecordKind


@pytest.fixture
def client_and_store():
    store = InMemoryRecordStore()
    return TestClient(create_app(store)), store


def _payload(**overrides) -> dict:
    record = HealthRecord.create("p1", RecordKind.NOTE, "Dentist at 3pm", created_at=100.0)
    return {**record.to_dict(), **overrides}


def test_health(client_and_store):
    client, _ = client_and_store
    assert client.get("/health").json() == {"status": "ok"}


def test_create_list_update_delete(client_and_store):
    client, store = client_and_store
    body = _payload()

    resp = client.post("/records", json=body)
    assert resp.status_code == 201
    assert len(store) == 1

    listed = client.get("/profiles/p1/records").json()
    assert [r["id"] for r in listed["records"]] == [body["id"]]

    resp = client.put(f"/records/{body['id']}", json={**body, "notes": "bring x-rays"})
    assert resp.status_code == 200
    assert store.get(body["id"]).notes == "bring x-rays"

    assert client.delete(f"/records/{body['id']}").status_code == 204
    assert client.get(f"/records/{body['id']}").status_code == 404


def test_immutable_change_conflicts(client_and_store):
    client, _ = client_and_store
    body = _payload()
    client.post("/records", json=body)
    resp = client.put(f"/records/{body['id']}", json={**body, "kind": "symptom"})
    assert resp.status_code == 409


def test_path_id_mismatch(client_and_store):
    client, _ = client_and_store
    body = _payload()
    client.post("/records", json=body)
    assert client.put("/records/other", json=body).status_code == 422


def test_invalid_payload(client_and_store):
    client, _ = client_and_store
    assert client.post("/records", json={"summary": "no id"}).status_code == 422


def test_unknown_record(client_and_store):
    client, _ = client_and_store
    assert client.delete("/records/missing").status_code == 404
    assert client.put("/records/missing", json=_payload(id="missing")).status_code == 404


def test_default_app_writes_configured_file(tmp_path):
    path = tmp_path / "served.json"
    client = TestClient(create_default_app(load_config(records_path=str(path))))
    assert client.post("/records", json=_payload()).status_code == 201
    assert [r.summary for r in JsonFileRecordStore(path).list_by_profile("p1")] == ["Dentist at 3pm"]


def test_handlers_run_in_threadpool():
    routes = [r for r in create_app(InMemoryRecordStore()).routes if isinstance(r, APIRoute)]
    assert len(routes) == 6
    assert not any(inspect.iscoroutinefunction(r.endpoint) for r in routes)
