from typing import Any

from pydantic import BaseModel, Field

SECRET_AUTH_KEYS = ("token", "password")


class SourceIn(BaseModel):
    type: str = "api"
    url: str | None = None
    auth: dict[str, str] = Field(default_factory=dict)
    next_page_field: str | None = None
    records_field: str | None = None


class ConfigureRequest(BaseModel):
    sync_type: str
    field_mapping: dict[str, str]
    schedule: str | None = None
    source: SourceIn | None = None
    incremental_sync_enabled: bool = False
    apply_deletions: bool = False
    webhook_secret: str | None = None
    status: str = "active"


class SyncConfigOut(BaseModel):
    merchant_id: str
    sync_type: str
    schedule: str | None
    source: dict[str, Any]
    field_mapping: dict[str, str]
    incremental_sync_enabled: bool
    apply_deletions: bool
    has_webhook_secret: bool
    status: str
    created_at: str | None
    updated_at: str | None


class RecordErrorOut(BaseModel):
    sku: str | None
    stage: str
    message: str


class SyncCounts(BaseModel):
    total: int
    created: int
    updated: int
    skipped: int
    failed: int
    deleted: int


class SyncRunOut(BaseModel):
    sync_id: str
    merchant_id: str
    trigger: str
    status: str
    counts: SyncCounts
    errors: list[RecordErrorOut]
    missing_skus: list[str]
    error_summary: str | None
    attempts: int
    started_at: str
    completed_at: str | None


class TriggerResponse(BaseModel):
    sync_id: str
    status: str
    counts: SyncCounts


class SyncStatusOut(BaseModel):
    merchant_id: str
    status: str
    is_running: bool
    active_sync_id: str | None
    last_sync_at: str | None
    next_sync_at: str | None
    last_run_summary: SyncRunOut | None


class SyncHistoryOut(BaseModel):
    merchant_id: str
    items: list[SyncRunOut]
