from __future__ import annotations

from collections.abc import Mapping

from sync_worker.adapters.base import CanonicalProduct, DeleteMarker, RawProductRecord
from sync_worker.errors import RecordError
from sync_worker.mapping.normalization import coerce_price, coerce_text
from sync_worker.mapping.paths import MISSING, PathSyntaxError, parse_path, resolve_path

REQUIRED_FIELDS = ("sku", "title", "description")
OPTIONAL_FIELDS = ("price", "image_url", "category")
CANONICAL_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS
FIELD_ALIASES = {"imageUrl": "image_url", "image": "image_url"}


class MappingError(RecordError):
    def __init__(self, sku: str | None, message: str) -> None:
        super().__init__(sku=sku, stage="mapping", message=message)


def normalize_mapping(mapping: Mapping[str, str]) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for key, path in mapping.items():
        field = FIELD_ALIASES.get(key, key)
        normalized[field] = path
    return normalized


def validate_mapping(mapping: Mapping[str, str]) -> list[str]:
    problems: list[str] = []
    normalized = normalize_mapping(mapping)
    for field in REQUIRED_FIELDS:
        if not normalized.get(field):
            problems.append(f"field_mapping must include a source path for '{field}'")
    for field, path in normalized.items():
        if field in REQUIRED_FIELDS and not path:
            continue
        try:
            parse_path(path)
        except PathSyntaxError as exc:
            problems.append(f"field_mapping.{field}: {exc}")
    return problems


class FieldMapper:
    def __init__(self, mapping: Mapping[str, str]) -> None:
        self.mapping = normalize_mapping(mapping)
        self._paths = {field: parse_path(path) for field, path in self.mapping.items()}

    def resolve_sku(self, record: RawProductRecord | DeleteMarker) -> str | None:
        segments = self._paths.get("sku")
        if segments is None:
            return None
        return coerce_text(resolve_path(record.data, segments))

    def map(self, record: RawProductRecord) -> CanonicalProduct | MappingError:
        sku = self.resolve_sku(record)

        required: dict[str, str] = {}
        for field in REQUIRED_FIELDS:
            value = self._text(field, record)
            if value is None:
                path = self.mapping.get(field, "")
                return MappingError(sku, f"missing required field '{field}' at path '{path}'")
            required[field] = value

        product = CanonicalProduct(
            sku=required["sku"],
            title=required["title"],
            description=required["description"],
        )

        if "price" in self._paths:
            product.price = coerce_price(self._raw("price", record))
        product.image_url = self._text("image_url", record)
        product.category = self._text("category", record)

        for field in self._paths:
            if field in CANONICAL_FIELDS:
                continue
            value = self._raw(field, record)
            if value is not MISSING:
                product.metadata[field] = value
        return product

    def _raw(self, field: str, record: RawProductRecord) -> object:
        segments = self._paths.get(field)
        if segments is None:
            return MISSING
        return resolve_path(record.data, segments)

    def _text(self, field: str, record: RawProductRecord) -> str | None:
        value = self._raw(field, record)
        if value is MISSING:
            return None
        return coerce_text(value)


def map_record(record: RawProductRecord, mapping: Mapping[str, str]) -> CanonicalProduct | MappingError:
    return FieldMapper(mapping).map(record)
