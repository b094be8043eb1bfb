from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Union

from sync_worker.errors import RecordError


# A JSON-shaped tree: the only shapes a source can hand us.
RawValue = Union[str, int, float, bool, None, list["RawValue"], dict[str, "RawValue"]]


@dataclass
class RawProductRecord:
    data: dict[str, RawValue]
    source_ref: str = ""


@dataclass
class DeleteMarker:
    """A source announcing that a product no longer exists."""

    data: dict[str, RawValue]
    source_ref: str = ""


@dataclass
class CanonicalProduct:
    sku: str
    title: str
    description: str
    price: Decimal | None = None
    image_url: str | None = None
    category: str | None = None
    metadata: dict[str, RawValue] = field(default_factory=dict)

    def to_payload(self) -> dict[str, object]:
        return {
            "sku": self.sku,
            "title": self.title,
            "description": self.description,
            "price": format_price(self.price),
            "image_url": self.image_url,
            "category": self.category,
            "metadata": dict(self.metadata),
        }


def format_price(value: Decimal | None) -> str | None:
    if value is None:
        return None
    # normalize() alone turns 100 into 1E+2
    return format(value.normalize(), "f")


@dataclass
class FetchResult:
    records: list[RawProductRecord | DeleteMarker]
    errors: list[RecordError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.errors)


class SourceAdapter(ABC):
    source_type: str

    @abstractmethod
    def fetch(self) -> FetchResult:
        raise NotImplementedError

    def close(self) -> None:
        return None
