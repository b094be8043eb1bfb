from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


JsonDict = dict[str, object]

SYNC_TYPES = ("scheduled", "webhook", "manual")
RUN_TRIGGERS = ("scheduled", "manual", "webhook", "upload")
TERMINAL_RUN_STATUSES = ("success", "partial_failure", "failed")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands DateTime(timezone=True) columns back naive.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_sync_id() -> str:
    return f"sync_{uuid4().hex}"


class Base(DeclarativeBase):
    pass


class SyncConfig(Base):
    __tablename__ = "sync_configs"

    merchant_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    sync_type: Mapped[str] = mapped_column(String(16))
    schedule: Mapped[str | None] = mapped_column(String(64))
    source: Mapped[JsonDict] = mapped_column(JSON, default=dict)
    field_mapping: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    incremental_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    apply_deletions: Mapped[bool] = mapped_column(Boolean, default=False)
    webhook_secret: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16), index=True, default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class ProductSnapshot(Base):
    __tablename__ = "product_snapshots"
    __table_args__ = (UniqueConstraint("merchant_id", "sku", name="uq_snapshot_merchant_sku"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String(100), index=True)
    sku: Mapped[str] = mapped_column(String(256))
    payload: Mapped[JsonDict] = mapped_column(JSON, default=dict)
    content_hash: Mapped[str] = mapped_column(String(64))
    last_sync_id: Mapped[str | None] = mapped_column(String(64))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_sync_id)
    merchant_id: Mapped[str] = mapped_column(String(100), index=True)
    trigger: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(32), index=True, default="pending")
    items_total: Mapped[int] = mapped_column(Integer, default=0)
    items_created: Mapped[int] = mapped_column(Integer, default=0)
    items_updated: Mapped[int] = mapped_column(Integer, default=0)
    items_skipped: Mapped[int] = mapped_column(Integer, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, default=0)
    items_deleted: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list[JsonDict]] = mapped_column(JSON, default=list)
    missing_skus: Mapped[list[str]] = mapped_column(JSON, default=list)
    error_summary: Mapped[str | None] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_finalized(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def counts(self) -> dict[str, int]:
        return {
            "total": self.items_total,
            "created": self.items_created,
            "updated": self.items_updated,
            "skipped": self.items_skipped,
            "failed": self.items_failed,
            "deleted": self.items_deleted,
        }


class SyncLock(Base):
    __tablename__ = "sync_locks"

    merchant_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    sync_id: Mapped[str] = mapped_column(String(64))
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class CatalogDocument(Base):
    __tablename__ = "catalog_documents"
    __table_args__ = (UniqueConstraint("merchant_id", "sku", name="uq_document_merchant_sku"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String(100), index=True)
    sku: Mapped[str] = mapped_column(String(256), index=True)
    title: Mapped[str] = mapped_column(String(512))
    description: Mapped[str] = mapped_column(Text)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(256), index=True)
    attributes: Mapped[JsonDict] = mapped_column(JSON, default=dict)
    searchable_text: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
