from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sync_worker.adapters.api_pull import ApiPullAdapter
from sync_worker.adapters.base import CanonicalProduct, DeleteMarker, FetchResult, RawProductRecord, SourceAdapter
from sync_worker.adapters.file_upload import FileAdapter
from sync_worker.adapters.webhook import WebhookAdapter
from sync_worker.collector import ErrorCollector
from sync_worker.config import WorkerSettings, get_settings
from sync_worker.configuration import SyncConfigStore
from sync_worker.diffing.engine import CREATE, SKIP, DiffDecision, DiffEngine
from sync_worker.document_store import DocumentStore, SqlDocumentStore
from sync_worker.errors import RetryableSourceError, SourceError, SyncTimeout, ValidationError
from sync_worker.events import SYNC_COMPLETED, SYNC_FAILED, SYNC_STARTED, EventNotifier, LoggingEventNotifier
from sync_worker.history import HistoryTracker
from sync_worker.locks import MerchantLock
from sync_worker.mapping.field_mapper import FieldMapper, MappingError, normalize_mapping, validate_mapping
from sync_worker.models import ProductSnapshot, SyncConfig, SyncRun, new_sync_id

# Grace on top of max_run_seconds so a live run is never reclaimed before it times itself out.
LOCK_GRACE_SECONDS = 60

AdapterFactory = Callable[[SyncConfig, float], SourceAdapter]

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    run: SyncRun
    config: SyncConfig
    mapping: dict[str, str]
    deadline: float
    detect_deletions: bool
    attempts: int = 0


class SyncExecutor:
    """Runs one sync end to end: lock, fetch, map, diff, apply, finalize.

    All catalog and snapshot writes of a run are committed together with the
    finalized run row, so a failed or timed-out run leaves the catalog as it was.
    """

    def __init__(
        self,
        db: Session,
        settings: WorkerSettings | None = None,
        document_store: DocumentStore | None = None,
        notifier: EventNotifier | None = None,
        adapter_factory: AdapterFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.configs = SyncConfigStore(db)
        self.history = HistoryTracker(db, retention=self.settings.history_retention)
        self.locks = MerchantLock(db, ttl_seconds=self.settings.max_run_seconds + LOCK_GRACE_SECONDS)
        self.diff_engine = DiffEngine(db)
        self.document_store = document_store or SqlDocumentStore(db)
        self.notifier = notifier or LoggingEventNotifier()
        self.adapter_factory = adapter_factory or self._default_adapter
        self._sleep = sleep
        self._clock = clock

    def trigger(self, merchant_id: str, reason: str = "manual") -> SyncRun:
        if reason not in ("manual", "scheduled"):
            raise ValidationError(f"Unsupported trigger reason: {reason}")
        config = self._active_config(merchant_id)
        if not (config.source or {}).get("url"):
            raise ValidationError(
                "No pullable source is configured for this merchant; upload a file instead",
                details={"merchant_id": merchant_id},
            )

        attempts = self.settings.retry_max_attempts if reason == "scheduled" else 1
        return self._execute(
            config,
            trigger=reason,
            fetch=lambda context: self._fetch_with_retries(context, attempts),
            detect_deletions=True,
        )

    def run_upload(
        self,
        merchant_id: str,
        content: bytes,
        file_format: str,
        mapping_override: Mapping[str, str] | None = None,
    ) -> SyncRun:
        config = self._active_config(merchant_id)
        mapping = None
        if mapping_override:
            problems = validate_mapping(mapping_override)
            if problems:
                raise ValidationError("Invalid field mapping", details={"problems": problems})
            mapping = normalize_mapping(mapping_override)

        adapter = FileAdapter(content, file_format)
        return self._execute(
            config,
            trigger="upload",
            fetch=lambda context: adapter.fetch(),
            detect_deletions=True,
            mapping=mapping,
        )

    def process_webhook(self, merchant_id: str, body: bytes, signature: str | None, event: str | None = None) -> SyncRun:
        config = self.configs.get_config(merchant_id)
        # Authenticate before anything is locked or recorded.
        record = WebhookAdapter(config.webhook_secret, body, signature, event).parse()
        self._ensure_active(config)
        return self._execute(
            config,
            trigger="webhook",
            fetch=lambda context: FetchResult(records=[record]),
            detect_deletions=False,
        )

    def _execute(
        self,
        config: SyncConfig,
        trigger: str,
        fetch: Callable[[RunContext], FetchResult],
        detect_deletions: bool,
        mapping: dict[str, str] | None = None,
    ) -> SyncRun:
        merchant_id = config.merchant_id
        sync_id = new_sync_id()
        self.locks.acquire(merchant_id, sync_id)
        try:
            run = self.history.start_run(merchant_id, trigger, sync_id)
            context = RunContext(
                run=run,
                config=config,
                mapping=dict(mapping or config.field_mapping),
                deadline=self._clock() + self.settings.max_run_seconds,
                detect_deletions=detect_deletions,
            )
            self.history.mark_running(run)
            self._notify(SYNC_STARTED, run)

            try:
                self._run_stages(context, fetch)
            except SyncTimeout:
                logger.warning("Sync %s for merchant %s timed out", sync_id, merchant_id)
                self._fail(context, "sync_timeout")
            except SourceError as exc:
                logger.warning("Sync %s for merchant %s could not read its source: %s", sync_id, merchant_id, exc)
                self._fail(context, f"{exc.code}: {exc}")
            except Exception as exc:
                logger.exception("Sync %s for merchant %s failed", sync_id, merchant_id)
                self._fail(context, f"internal_error: {exc}")
        finally:
            self.locks.release(merchant_id, sync_id)

        self._notify(SYNC_FAILED if run.status == "failed" else SYNC_COMPLETED, run)
        return run

    def _run_stages(self, context: RunContext, fetch: Callable[[RunContext], FetchResult]) -> None:
        run = context.run
        fetched = fetch(context)
        self._check_deadline(context)

        collector = ErrorCollector()
        collector.extend(fetched.errors)
        run.items_total = fetched.total

        mapper = FieldMapper(context.mapping)
        upserts = [record for record in fetched.records if isinstance(record, RawProductRecord)]
        markers = [record for record in fetched.records if isinstance(record, DeleteMarker)]
        products = self._map_records(context, mapper, upserts, collector)
        unidentified_failures = collector.has_unidentified()

        diff = self.diff_engine.diff(
            run.merchant_id,
            products,
            incremental_enabled=context.config.incremental_sync_enabled,
            detect_deletions=context.detect_deletions,
            failed_skus=collector.failed_skus(),
        )
        collector.extend(diff.errors)
        for decision in diff.decisions:
            self._check_deadline(context)
            self._apply(context, decision, collector)

        announced = self._resolve_delete_markers(context, mapper, markers, collector)
        if announced and not context.config.apply_deletions:
            run.items_skipped += len(announced)
        missing = list(diff.missing_skus)
        if missing and unidentified_failures and context.config.apply_deletions:
            # An unreadable row may be one of the missing SKUs; report them instead of deleting.
            logger.warning(
                "Sync %s holds back %s deletions for merchant %s: some records could not be read",
                run.id,
                len(missing),
                run.merchant_id,
            )
            run.missing_skus = missing
            missing = []
        self._apply_deletions(context, missing + announced, collector)

        run.items_failed = collector.count
        run.errors = collector.to_list()
        run.attempts = context.attempts
        self.history.finalize(run, "partial_failure" if collector.count else "success")

    def _fetch_with_retries(self, context: RunContext, max_attempts: int) -> FetchResult:
        for attempt in range(max_attempts):
            context.attempts = attempt + 1
            timeout = max(0.1, min(self.settings.source_timeout_seconds, self._remaining(context)))
            adapter = self.adapter_factory(context.config, timeout)
            try:
                return adapter.fetch()
            except RetryableSourceError as exc:
                if context.attempts >= max_attempts:
                    raise
                backoff = self.settings.retry_backoff_seconds * (2**attempt)
                if backoff >= self._remaining(context):
                    raise SyncTimeout("No time left to retry the source fetch") from exc
                logger.info(
                    "Fetch for merchant %s failed (%s); retrying in %.1fs (attempt %s/%s)",
                    context.config.merchant_id,
                    exc,
                    backoff,
                    context.attempts + 1,
                    max_attempts,
                )
                self._sleep(backoff)
            finally:
                adapter.close()
        raise SourceError("Source fetch was not attempted")

    def _map_records(
        self,
        context: RunContext,
        mapper: FieldMapper,
        records: list[RawProductRecord],
        collector: ErrorCollector,
    ) -> list[CanonicalProduct]:
        if not records:
            return []

        pool = ThreadPoolExecutor(max_workers=min(self.settings.worker_pool_size, len(records)))
        try:
            futures = [pool.submit(_map_one, mapper, record) for record in records]
            _, pending = wait(futures, timeout=self._remaining(context))
            if pending:
                raise SyncTimeout("Mapping did not finish before the run deadline")
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

        products: list[CanonicalProduct] = []
        for future in futures:
            outcome = future.result()
            if isinstance(outcome, MappingError):
                collector.record(outcome)
            else:
                products.append(outcome)
        return products

    def _apply(self, context: RunContext, decision: DiffDecision, collector: ErrorCollector) -> None:
        run = context.run
        if decision.action == SKIP:
            run.items_skipped += 1
            return

        product = decision.product
        try:
            self.document_store.upsert(run.merchant_id, product)
        except SQLAlchemyError:
            raise
        except Exception as exc:
            collector.add(product.sku, "apply", str(exc) or type(exc).__name__)
            return

        snapshot = decision.snapshot
        if snapshot is None:
            snapshot = ProductSnapshot(merchant_id=run.merchant_id, sku=product.sku)
            self.db.add(snapshot)
        snapshot.payload = product.to_payload()
        snapshot.content_hash = decision.content_hash
        snapshot.last_sync_id = run.id

        if decision.action == CREATE:
            run.items_created += 1
        else:
            run.items_updated += 1

    def _resolve_delete_markers(
        self,
        context: RunContext,
        mapper: FieldMapper,
        markers: list[DeleteMarker],
        collector: ErrorCollector,
    ) -> list[str]:
        if not markers:
            return []

        skus: list[str] = []
        for marker in markers:
            sku = mapper.resolve_sku(marker)
            if sku is None:
                collector.add(None, "mapping", f"delete event without a sku at path '{mapper.mapping.get('sku')}'")
            else:
                skus.append(sku)

        known = self.diff_engine.load_snapshots(context.run.merchant_id, skus)
        for sku in skus:
            if sku not in known:
                context.run.items_skipped += 1
        return [sku for sku in skus if sku in known]

    def _apply_deletions(self, context: RunContext, skus: list[str], collector: ErrorCollector) -> None:
        run = context.run
        if not skus:
            return
        if not context.config.apply_deletions:
            run.missing_skus = sorted(set(skus))
            return

        snapshots = self.diff_engine.load_snapshots(run.merchant_id, skus)
        for sku in skus:
            self._check_deadline(context)
            try:
                self.document_store.delete(run.merchant_id, sku)
            except SQLAlchemyError:
                raise
            except Exception as exc:
                collector.add(sku, "delete", str(exc) or type(exc).__name__)
                continue
            snapshot = snapshots.get(sku)
            if snapshot is not None:
                self.db.delete(snapshot)
            run.items_deleted += 1

    def _fail(self, context: RunContext, summary: str) -> None:
        self.db.rollback()
        context.run.attempts = context.attempts
        self.history.finalize(context.run, "failed", error_summary=summary)

    def _notify(self, event: str, run: SyncRun) -> None:
        payload = {
            "merchant_id": run.merchant_id,
            "sync_id": run.id,
            "trigger": run.trigger,
            "status": run.status,
            "counts": run.counts(),
        }
        try:
            self.notifier.notify(event, payload)
        except Exception as exc:
            logger.warning("Event notifier failed for %s on sync %s: %s", event, run.id, exc)

    def _active_config(self, merchant_id: str) -> SyncConfig:
        config = self.configs.get_config(merchant_id)
        self._ensure_active(config)
        return config

    @staticmethod
    def _ensure_active(config: SyncConfig) -> None:
        if config.status != "active":
            raise ValidationError("Sync is disabled for this merchant", details={"merchant_id": config.merchant_id})

    def _remaining(self, context: RunContext) -> float:
        return max(0.0, context.deadline - self._clock())

    def _check_deadline(self, context: RunContext) -> None:
        if self._clock() >= context.deadline:
            raise SyncTimeout("Sync exceeded its maximum duration")

    def _default_adapter(self, config: SyncConfig, timeout_seconds: float) -> SourceAdapter:
        return ApiPullAdapter(
            dict(config.source or {}),
            timeout_seconds=timeout_seconds,
            max_pages=self.settings.max_pages,
            credentials=self.settings.source_credentials,
        )


def _map_one(mapper: FieldMapper, record: RawProductRecord) -> CanonicalProduct | MappingError:
    try:
        return mapper.map(record)
    except Exception as exc:
        try:
            sku = mapper.resolve_sku(record)
        except Exception:
            sku = None
        return MappingError(sku=sku, message=f"unexpected mapping failure: {exc}")
