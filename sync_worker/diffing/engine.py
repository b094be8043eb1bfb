from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from sync_worker.adapters.base import CanonicalProduct, format_price
from sync_worker.errors import RecordError
from sync_worker.models import ProductSnapshot

CREATE = "create"
UPDATE = "update"
SKIP = "skip"

SNAPSHOT_LOOKUP_CHUNK = 500


def content_hash(product: CanonicalProduct) -> str:
    fields = {
        "title": product.title,
        "description": product.description,
        "price": format_price(product.price),
        "image_url": product.image_url,
        "category": product.category,
    }
    encoded = json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class DiffDecision:
    action: str
    product: CanonicalProduct
    content_hash: str
    snapshot: ProductSnapshot | None = None


@dataclass
class DiffResult:
    decisions: list[DiffDecision] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)
    missing_skus: list[str] = field(default_factory=list)

    def actions(self, action: str) -> list[DiffDecision]:
        return [decision for decision in self.decisions if decision.action == action]

    @property
    def updates(self) -> list[DiffDecision]:
        return self.actions(UPDATE)


class DiffEngine:
    def __init__(self, db: Session) -> None:
        self.db = db

    def diff(
        self,
        merchant_id: str,
        products: Iterable[CanonicalProduct],
        incremental_enabled: bool,
        detect_deletions: bool = False,
        failed_skus: Iterable[str] = (),
    ) -> DiffResult:
        batch = list(products)
        if detect_deletions:
            snapshots = self.load_snapshots(merchant_id)
        else:
            snapshots = self.load_snapshots(merchant_id, [product.sku for product in batch])

        result = DiffResult()
        seen: set[str] = set()
        for product in batch:
            if product.sku in seen:
                result.errors.append(
                    RecordError(sku=product.sku, stage="diff", message=f"duplicate sku '{product.sku}' in batch")
                )
                continue
            seen.add(product.sku)
            result.decisions.append(self.classify(product, snapshots.get(product.sku), incremental_enabled))

        if detect_deletions:
            # A SKU whose record failed this run is still in the source catalog.
            present = seen | set(failed_skus)
            result.missing_skus = sorted(sku for sku in snapshots if sku not in present)
        return result

    @staticmethod
    def classify(
        product: CanonicalProduct,
        snapshot: ProductSnapshot | None,
        incremental_enabled: bool,
    ) -> DiffDecision:
        digest = content_hash(product)
        if snapshot is None:
            return DiffDecision(action=CREATE, product=product, content_hash=digest)
        if incremental_enabled and snapshot.content_hash == digest:
            return DiffDecision(action=SKIP, product=product, content_hash=digest, snapshot=snapshot)
        return DiffDecision(action=UPDATE, product=product, content_hash=digest, snapshot=snapshot)

    def load_snapshots(self, merchant_id: str, skus: list[str] | None = None) -> dict[str, ProductSnapshot]:
        if skus is None:
            rows = self.db.execute(select(ProductSnapshot).where(ProductSnapshot.merchant_id == merchant_id)).scalars()
            return {row.sku: row for row in rows}

        unique = sorted(set(skus))
        found: dict[str, ProductSnapshot] = {}
        for start in range(0, len(unique), SNAPSHOT_LOOKUP_CHUNK):
            chunk = unique[start : start + SNAPSHOT_LOOKUP_CHUNK]
            rows = self.db.execute(
                select(ProductSnapshot).where(ProductSnapshot.merchant_id == merchant_id, ProductSnapshot.sku.in_(chunk))
            ).scalars()
            for row in rows:
                found[row.sku] = row
        return found
