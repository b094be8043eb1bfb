from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.orm import Session

from sync_worker.errors import NotFound, ValidationError
from sync_worker.mapping.field_mapper import normalize_mapping, validate_mapping
from sync_worker.models import SYNC_TYPES, SyncConfig
from sync_worker.schedules import DEFAULT_SCHEDULE, build_trigger

AUTH_TYPES = ("none", "bearer", "basic")

logger = logging.getLogger(__name__)


@dataclass
class SourceConfig:
    type: str = "api"
    url: str | None = None
    auth: dict[str, str] = field(default_factory=dict)
    next_page_field: str | None = None
    records_field: str | None = None


@dataclass
class SyncConfigRequest:
    sync_type: str
    field_mapping: dict[str, str]
    schedule: str | None = None
    source: SourceConfig | None = None
    incremental_sync_enabled: bool = False
    apply_deletions: bool = False
    webhook_secret: str | None = None
    status: str = "active"


class SyncConfigStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def configure(self, merchant_id: str, desired: SyncConfigRequest) -> SyncConfig:
        if not merchant_id or not merchant_id.strip():
            raise ValidationError("merchant_id is required")
        problems = self._validate(desired)
        if problems:
            raise ValidationError("Invalid sync configuration", details={"problems": problems})

        schedule = desired.schedule
        if desired.sync_type == "scheduled" and not schedule:
            schedule = DEFAULT_SCHEDULE

        config = self.db.get(SyncConfig, merchant_id)
        is_new = config is None
        if config is None:
            config = SyncConfig(merchant_id=merchant_id)
            self.db.add(config)

        config.sync_type = desired.sync_type
        config.schedule = schedule
        config.source = asdict(desired.source) if desired.source else {}
        config.field_mapping = normalize_mapping(desired.field_mapping)
        config.incremental_sync_enabled = desired.incremental_sync_enabled
        config.apply_deletions = desired.apply_deletions
        config.webhook_secret = desired.webhook_secret
        config.status = desired.status
        self.db.commit()

        logger.info("Sync %s for merchant %s (%s)", "configured" if is_new else "reconfigured", merchant_id, desired.sync_type)
        return config

    def get_config(self, merchant_id: str) -> SyncConfig:
        config = self.db.get(SyncConfig, merchant_id)
        if config is None:
            raise NotFound("Sync configuration not found", details={"merchant_id": merchant_id})
        return config

    def disable(self, merchant_id: str) -> SyncConfig:
        config = self.get_config(merchant_id)
        if config.status != "disabled":
            config.status = "disabled"
            self.db.commit()
            logger.info("Sync disabled for merchant %s", merchant_id)
        return config

    def list_scheduled(self) -> list[SyncConfig]:
        return list(
            self.db.execute(
                select(SyncConfig).where(SyncConfig.sync_type == "scheduled", SyncConfig.status == "active")
            ).scalars()
        )

    def _validate(self, desired: SyncConfigRequest) -> list[str]:
        problems: list[str] = []
        if desired.sync_type not in SYNC_TYPES:
            problems.append(f"sync_type must be one of: {', '.join(SYNC_TYPES)}")
        if desired.status not in ("active", "disabled"):
            problems.append("status must be active or disabled")

        if not isinstance(desired.field_mapping, dict):
            problems.append("field_mapping is required and must be an object")
        else:
            problems.extend(validate_mapping(desired.field_mapping))

        if desired.schedule:
            try:
                build_trigger(desired.schedule)
            except ValueError as exc:
                problems.append(str(exc))

        if desired.source is not None:
            problems.extend(self._validate_source(desired.source))

        if desired.sync_type == "scheduled" and not (desired.source and desired.source.url):
            problems.append("source.url is required for scheduled sync")
        if desired.sync_type == "webhook" and not desired.webhook_secret:
            problems.append("webhook_secret is required for webhook sync")
        return problems

    @staticmethod
    def _validate_source(source: SourceConfig) -> list[str]:
        problems: list[str] = []
        if source.url:
            parsed = urlparse(source.url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                problems.append("source.url must be an absolute http(s) URL")

        auth_type = (source.auth or {}).get("type", "none")
        if auth_type not in AUTH_TYPES:
            problems.append(f"source.auth.type must be one of: {', '.join(AUTH_TYPES)}")
        elif auth_type == "bearer" and not (source.auth.get("token") or source.auth.get("credential_ref")):
            problems.append("bearer auth needs a token or credential_ref")
        elif auth_type == "basic" and not (
            source.auth.get("credential_ref") or (source.auth.get("username") and source.auth.get("password"))
        ):
            problems.append("basic auth needs username and password or credential_ref")
        return problems
