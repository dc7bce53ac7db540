"""Remote record store - HTTP client for the record server (``mediscan serve``)."""

from __future__ import annotations

import logging
from typing import Any

import requests

from mediscan.errors import RecordNotFoundError, RecordStoreError
from mediscan.records.types import HealthRecord

logger = logging.getLogger(__name__)


class RemoteRecordStore:
    """RecordStore over HTTP. Unlike best-effort telemetry, every failure raises RecordStoreError."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        if not base_url:
            raise RecordStoreError("record store URL is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.request(method, url, json=json, timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning("Record store unreachable (%s %s): %s", method, path, e)
            raise RecordStoreError(f"record store unreachable: {e}") from e
        if resp.status_code == 404:
            raise RecordNotFoundError(_detail(resp) or f"not found: {path}")
        if not resp.ok:
            raise RecordStoreError(f"record store {method} {path} failed ({resp.status_code}): {_detail(resp)}")
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RecordStoreError(f"record store returned invalid JSON for {method} {path}") from e

    def append(self, record: HealthRecord) -> HealthRecord:
        data = self._request("POST", "/records", json=record.to_dict())
        logger.debug("Record posted: %s", record.id)
        return HealthRecord.from_dict(data) if data else record

    def update(self, record: HealthRecord) -> HealthRecord:
        data = self._request("PUT", f"/records/{record.id}", json=record.to_dict())
        return HealthRecord.from_dict(data) if data else record

    def remove(self, record_id: str) -> None:
        self._request("DELETE", f"/records/{record_id}")

    def get(self, record_id: str) -> HealthRecord:
        return HealthRecord.from_dict(self._request("GET", f"/records/{record_id}"))

    def list_by_profile(self, profile_id: str) -> list[HealthRecord]:
        data = self._request("GET", f"/profiles/{profile_id}/records") or {}
        return [HealthRecord.from_dict(d) for d in data.get("records", [])]


def _detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)[:200]
