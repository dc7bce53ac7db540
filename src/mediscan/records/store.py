"""
Record stores: persist HealthRecords per profile.

All writes are whole-record appends or whole-record replacements keyed by id.
``update`` only accepts changes to the user-editable fields (summary, details,
notes); anything else is a RecordStoreError.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

from mediscan.errors import RecordNotFoundError, RecordStoreError
from mediscan.records.types import EDITABLE_FIELDS, HealthRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class RecordStore(Protocol):
    def append(self, record: HealthRecord) -> HealthRecord: ...

    def update(self, record: HealthRecord) -> HealthRecord: ...

    def remove(self, record_id: str) -> None: ...

    def get(self, record_id: str) -> HealthRecord: ...

    def list_by_profile(self, profile_id: str) -> list[HealthRecord]: ...


def check_edit(existing: HealthRecord, updated: HealthRecord) -> None:
    """Raise RecordStoreError if ``updated`` changes anything but the editable fields."""
    before = existing.to_dict()
    after = updated.to_dict()
    changed = sorted(k for k in before if before[k] != after[k] and k not in EDITABLE_FIELDS)
    if changed:
        raise RecordStoreError(f"record {existing.id}: fields are immutable: {', '.join(changed)}")
    if not updated.summary.strip():
        raise RecordStoreError(f"record {existing.id}: summary cannot be empty")


def _newest_first(records: Iterable[HealthRecord]) -> list[HealthRecord]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class InMemoryRecordStore:
    """Dict-backed store. Thread-safe."""

    def __init__(self, records: Iterable[HealthRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, HealthRecord] = {r.id: r for r in records}

    def append(self, record: HealthRecord) -> HealthRecord:
        if not record.summary.strip():
            raise RecordStoreError("record summary cannot be empty")
        with self._lock:
            if record.id in self._records:
                raise RecordStoreError(f"record {record.id} already exists")
            self._commit({**self._records, record.id: record})
        logger.debug("Record appended: %s (%s)", record.id, record.kind.value)
        return record

    def update(self, record: HealthRecord) -> HealthRecord:
        with self._lock:
            existing = self._records.get(record.id)
            if existing is None:
                raise RecordNotFoundError(f"no record {record.id}")
            check_edit(existing, record)
            self._commit({**self._records, record.id: record})
        return record

    def remove(self, record_id: str) -> None:
        with self._lock:
            if record_id not in self._records:
                raise RecordNotFoundError(f"no record {record_id}")
            self._commit({k: r for k, r in self._records.items() if k != record_id})

    def get(self, record_id: str) -> HealthRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"no record {record_id}")
        return record

    def list_by_profile(self, profile_id: str) -> list[HealthRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.profile_id == profile_id]
        return _newest_first(records)

    def __len__(self) -> int:
        return len(self._records)

    def _commit(self, records: dict[str, HealthRecord]) -> None:
        # Lock held. Memory only changes once the write went through.
        self._persist(records)
        self._records = records

    def _persist(self, records: dict[str, HealthRecord]) -> None:
        """Write hook; raising RecordStoreError aborts the change."""


class JsonFileRecordStore(InMemoryRecordStore):
    """
    Single JSON file, rewritten whole after each write (temp file + rename).

    File layout: ``{"records": [<HealthRecord.to_dict()>, ...]}``.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        super().__init__(self._load())

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> list[HealthRecord]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RecordStoreError(f"cannot read record file {self._path}: {e}") from e
        try:
            records = [HealthRecord.from_dict(d) for d in data.get("records", [])]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RecordStoreError(f"malformed record file {self._path}: {e}") from e
        logger.info("Loaded %d record(s) from %s", len(records), self._path)
        return records

    def _persist(self, records: dict[str, HealthRecord]) -> None:
        payload = {"records": [r.to_dict() for r in _newest_first(records.values())]}
        write_json_atomic(self._path, payload)


def write_json_atomic(path: Path, payload: dict) -> None:
    """Write ``payload`` to ``path`` via a temp file and rename. OSError becomes RecordStoreError."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)
    except OSError as e:
        raise RecordStoreError(f"cannot write {path}: {e}") from e
