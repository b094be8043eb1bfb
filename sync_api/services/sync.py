from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from sync_api.core.cache import cache_client
from sync_api.core.config import get_settings
from sync_api.core.errors import ApiError, AppHTTPException
from sync_api.schemas.sync import (
    SECRET_AUTH_KEYS,
    ConfigureRequest,
    RecordErrorOut,
    SyncConfigOut,
    SyncCounts,
    SyncHistoryOut,
    SyncRunOut,
    SyncStatusOut,
    TriggerResponse,
)
from sync_worker.adapters.file_upload import SUPPORTED_FORMATS, infer_format
from sync_worker.configuration import SourceConfig, SyncConfigRequest, SyncConfigStore
from sync_worker.errors import ValidationError
from sync_worker.history import HistoryTracker
from sync_worker.locks import MerchantLock
from sync_worker.models import SyncConfig, SyncRun, as_utc
from sync_worker.pipeline import SyncExecutor

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.astimezone(timezone.utc).isoformat() if value else None


def _status_cache_key(merchant_id: str) -> str:
    return f"sync_status:v{get_settings().cache_schema_version}:{merchant_id}"


def invalidate_status(merchant_id: str) -> None:
    cache_client.delete(_status_cache_key(merchant_id))


def _config_out(config: SyncConfig) -> SyncConfigOut:
    source = dict(config.source or {})
    if source.get("auth"):
        source["auth"] = {key: value for key, value in source["auth"].items() if key not in SECRET_AUTH_KEYS}
    return SyncConfigOut(
        merchant_id=config.merchant_id,
        sync_type=config.sync_type,
        schedule=config.schedule,
        source=source,
        field_mapping=dict(config.field_mapping or {}),
        incremental_sync_enabled=config.incremental_sync_enabled,
        apply_deletions=config.apply_deletions,
        has_webhook_secret=bool(config.webhook_secret),
        status=config.status,
        created_at=_iso(config.created_at),
        updated_at=_iso(config.updated_at),
    )


def _run_out(run: SyncRun) -> SyncRunOut:
    return SyncRunOut(
        sync_id=run.id,
        merchant_id=run.merchant_id,
        trigger=run.trigger,
        status=run.status,
        counts=SyncCounts(**run.counts()),
        errors=[RecordErrorOut(**error) for error in run.errors or []],
        missing_skus=list(run.missing_skus or []),
        error_summary=run.error_summary,
        attempts=run.attempts,
        started_at=_iso(run.started_at) or "",
        completed_at=_iso(run.completed_at),
    )


def _trigger_out(run: SyncRun) -> TriggerResponse:
    return TriggerResponse(sync_id=run.id, status=run.status, counts=SyncCounts(**run.counts()))


def configure_sync(db: Session, merchant_id: str, payload: ConfigureRequest) -> SyncConfigOut:
    source = SourceConfig(**payload.source.model_dump()) if payload.source else None
    desired = SyncConfigRequest(
        sync_type=payload.sync_type,
        field_mapping=payload.field_mapping,
        schedule=payload.schedule,
        source=source,
        incremental_sync_enabled=payload.incremental_sync_enabled,
        apply_deletions=payload.apply_deletions,
        webhook_secret=payload.webhook_secret,
        status=payload.status,
    )
    config = SyncConfigStore(db).configure(merchant_id, desired)
    invalidate_status(merchant_id)
    return _config_out(config)


def get_sync_config(db: Session, merchant_id: str) -> SyncConfigOut:
    return _config_out(SyncConfigStore(db).get_config(merchant_id))


def disable_sync(db: Session, merchant_id: str) -> SyncConfigOut:
    config = SyncConfigStore(db).disable(merchant_id)
    invalidate_status(merchant_id)
    return _config_out(config)


def trigger_sync(db: Session, merchant_id: str) -> TriggerResponse:
    invalidate_status(merchant_id)
    try:
        run = SyncExecutor(db).trigger(merchant_id, reason="manual")
    finally:
        invalidate_status(merchant_id)
    return _trigger_out(run)


def get_sync_status(db: Session, merchant_id: str) -> SyncStatusOut:
    settings = get_settings()
    cache_key = _status_cache_key(merchant_id)
    cached = cache_client.get_json(cache_key)
    if cached.hit and cached.value:
        # Runs started outside the API (scheduler, worker CLI) never invalidate the cache.
        if MerchantLock(db, ttl_seconds=0).holder(merchant_id) is None:
            return SyncStatusOut(**cached.value)
        invalidate_status(merchant_id)

    status = HistoryTracker(db).get_status(merchant_id)
    payload = SyncStatusOut(
        merchant_id=status.merchant_id,
        status=status.status,
        is_running=status.is_running,
        active_sync_id=status.active_sync_id,
        last_sync_at=_iso(status.last_sync_at),
        next_sync_at=_iso(status.next_sync_at),
        last_run_summary=_run_out(status.last_run) if status.last_run else None,
    )
    # A running status goes stale the moment the run ends; only settled states are cached.
    if not status.is_running:
        cache_client.set_json(cache_key, payload.model_dump(), ttl_seconds=settings.status_cache_ttl_seconds)
    return payload


def get_sync_history(db: Session, merchant_id: str, limit: int) -> SyncHistoryOut:
    SyncConfigStore(db).get_config(merchant_id)
    runs = HistoryTracker(db).get_history(merchant_id, limit=limit)
    return SyncHistoryOut(merchant_id=merchant_id, items=[_run_out(run) for run in runs])


def upload_catalog(
    db: Session,
    merchant_id: str,
    content: bytes,
    filename: str | None,
    content_type: str | None,
    file_format: str | None = None,
    field_mapping: str | None = None,
) -> TriggerResponse:
    settings = get_settings()
    if len(content) > settings.max_upload_bytes:
        raise AppHTTPException(
            status_code=413,
            error=ApiError(
                code="payload_too_large",
                message="Uploaded file is too large",
                details={"max_bytes": settings.max_upload_bytes},
            ),
        )

    resolved_format = (file_format or "").lower() or infer_format(filename, content_type)
    if resolved_format not in SUPPORTED_FORMATS:
        raise AppHTTPException(
            status_code=415,
            error=ApiError(
                code="unsupported_media_type",
                message="Upload must be a CSV or JSON file",
                details={"filename": filename, "content_type": content_type},
            ),
        )

    mapping_override = _parse_mapping_override(field_mapping)
    invalidate_status(merchant_id)
    try:
        run = SyncExecutor(db).run_upload(merchant_id, content, resolved_format, mapping_override=mapping_override)
    finally:
        invalidate_status(merchant_id)
    logger.info("Upload %s for merchant %s processed as run %s", filename or "<unnamed>", merchant_id, run.id)
    return _trigger_out(run)


def receive_webhook(
    db: Session,
    merchant_id: str,
    body: bytes,
    signature: str | None,
    event: str | None,
) -> TriggerResponse:
    run = SyncExecutor(db).process_webhook(merchant_id, body, signature, event)
    invalidate_status(merchant_id)
    return _trigger_out(run)


def _parse_mapping_override(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("field_mapping must be a JSON object") from exc
    if not isinstance(mapping, dict) or not all(isinstance(value, str) for value in mapping.values()):
        raise ValidationError("field_mapping must map field names to path strings")
    return mapping
