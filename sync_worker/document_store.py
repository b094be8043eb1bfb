from __future__ import annotations

from typing import Protocol

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from sync_worker.adapters.base import CanonicalProduct
from sync_worker.mapping.normalization import normalize_text
from sync_worker.models import CatalogDocument

MAX_SEARCH_TOKENS = 220


class DocumentStore(Protocol):
    def upsert(self, merchant_id: str, product: CanonicalProduct) -> None: ...

    def delete(self, merchant_id: str, sku: str) -> None: ...


class SqlDocumentStore:
    """Writes products into catalog_documents, the table the search indexer reads."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def upsert(self, merchant_id: str, product: CanonicalProduct) -> None:
        document = self._get(merchant_id, product.sku)
        if document is None:
            document = CatalogDocument(merchant_id=merchant_id, sku=product.sku)
            self.db.add(document)

        document.title = product.title
        document.description = product.description
        document.price = product.price
        document.image_url = product.image_url
        document.category = product.category
        document.attributes = dict(product.metadata)
        document.searchable_text = build_searchable_text(product)
        self.db.flush()

    def delete(self, merchant_id: str, sku: str) -> None:
        document = self._get(merchant_id, sku)
        if document is not None:
            self.db.delete(document)
            self.db.flush()

    def _get(self, merchant_id: str, sku: str) -> CatalogDocument | None:
        return self.db.execute(
            select(CatalogDocument).where(and_(CatalogDocument.merchant_id == merchant_id, CatalogDocument.sku == sku))
        ).scalar_one_or_none()


def build_searchable_text(product: CanonicalProduct) -> str:
    chunks: list[object] = [product.sku, product.title, product.category, product.description]
    chunks.extend(_attribute_tokens(product.metadata))

    tokens: list[str] = []
    seen: set[str] = set()
    for chunk in chunks:
        normalized_chunk = normalize_text(str(chunk) if chunk is not None else "")
        for token in normalized_chunk.split():
            if token in seen:
                continue
            seen.add(token)
            tokens.append(token)
            if len(tokens) >= MAX_SEARCH_TOKENS:
                return " ".join(tokens)
    return " ".join(tokens)


def _attribute_tokens(attributes: dict[str, object]) -> list[str]:
    tokens: list[str] = []
    for key, value in attributes.items():
        tokens.append(str(key))
        if isinstance(value, dict):
            for child_key, child_value in value.items():
                tokens.append(str(child_key))
                tokens.append(str(child_value))
            continue
        if isinstance(value, (list, tuple)):
            for item in list(value)[:8]:
                tokens.append(str(item))
            continue
        if value is not None:
            tokens.append(str(value))
    return tokens
