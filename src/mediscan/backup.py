"""JSON export of everything kept for this device: profiles, their records, and the medicine cabinet."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from mediscan.medication import MedicineCabinet
from mediscan.profiles import ProfileRegistry
from mediscan.records.store import RecordStore, write_json_atomic

logger = logging.getLogger(__name__)


def default_backup_name(now: float | None = None) -> str:
    day = datetime.fromtimestamp(time.time() if now is None else now).strftime("%Y-%m-%d")
    return f"mediscan_backup_{day}.json"


def build_backup(
    registry: ProfileRegistry,
    store: RecordStore,
    cabinet: MedicineCabinet,
    now: float | None = None,
) -> dict[str, Any]:
    """Records are collected per registered profile, newest first."""
    records = [r.to_dict() for p in registry for r in store.list_by_profile(p.profile_id)]
    return {
        "exported_at": time.time() if now is None else now,
        **registry.to_dict(),
        "records": records,
        "medications": [m.to_dict() for m in cabinet.items],
    }


def write_backup(payload: dict[str, Any], path: str | Path) -> Path:
    path = Path(path)
    write_json_atomic(path, payload)
    logger.info(
        "Exported %d record(s) and %d medication(s) to %s",
        len(payload["records"]), len(payload["medications"]), path,
    )
    return path
