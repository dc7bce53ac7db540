"""Record store FastAPI server - exposes a RecordStore over HTTP for RemoteRecordStore."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response

from mediscan.config import AssistantConfig, load_config
from mediscan.errors import RecordNotFoundError, RecordStoreError
from mediscan.records.store import JsonFileRecordStore, RecordStore
from mediscan.records.types import HealthRecord

logger = logging.getLogger(__name__)


def _parse_record(payload: dict[str, Any]) -> HealthRecord:
    try:
        return HealthRecord.from_dict(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"invalid record: {e}") from e


def create_app(store: RecordStore) -> FastAPI:
    """Build the app around ``store``. Handlers are sync so the blocking store runs in the threadpool."""
    app = FastAPI(title="MediScan Record Store")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/records", status_code=201)
    def post_record(payload: dict[str, Any]) -> JSONResponse:
        record = _parse_record(payload)
        try:
            store.append(record)
        except RecordStoreError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        logger.info("Record stored: %s (%s, profile=%s)", record.id, record.kind.value, record.profile_id)
        return JSONResponse(record.to_dict(), status_code=201)

    @app.get("/records/{record_id}")
    def get_record(record_id: str) -> dict[str, Any]:
        try:
            return store.get(record_id).to_dict()
        except RecordNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.put("/records/{record_id}")
    def put_record(record_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        record = _parse_record(payload)
        if record.id != record_id:
            raise HTTPException(status_code=422, detail="record id does not match path")
        try:
            store.update(record)
        except RecordNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except RecordStoreError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return record.to_dict()

    @app.delete("/records/{record_id}", status_code=204)
    def delete_record(record_id: str) -> Response:
        try:
            store.remove(record_id)
        except RecordNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        logger.info("Record deleted: %s", record_id)
        return Response(status_code=204)

    @app.get("/profiles/{profile_id}/records")
    def list_records(profile_id: str) -> dict[str, Any]:
        records = store.list_by_profile(profile_id)
        return {"profile_id": profile_id, "records": [r.to_dict() for r in records]}

    return app


def create_default_app(config: AssistantConfig | None = None) -> FastAPI:
    """App backed by the configured JSON file (``MEDISCAN_RECORDS_PATH`` unless ``config`` says otherwise)."""
    cfg = config or load_config()
    logger.info("Record store file: %s", cfg.records_path)
    return create_app(JsonFileRecordStore(cfg.records_path))
