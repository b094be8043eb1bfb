from __future__ import annotations

from collections.abc import Iterable

from sync_worker.errors import RecordError


class ErrorCollector:
    """Per-run sink for record failures.

    Failures are recorded, never raised; the finalized run carries the list so
    merchants can see which SKUs failed and at which stage.
    """

    def __init__(self) -> None:
        self._errors: list[RecordError] = []

    def add(self, sku: str | None, stage: str, message: str) -> None:
        self._errors.append(RecordError(sku=sku, stage=stage, message=message))

    def record(self, error: RecordError) -> None:
        self._errors.append(error)

    def extend(self, errors: Iterable[RecordError]) -> None:
        for error in errors:
            self.record(error)

    @property
    def count(self) -> int:
        return len(self._errors)

    def failed_skus(self) -> set[str]:
        return {error.sku for error in self._errors if error.sku is not None}

    def has_unidentified(self) -> bool:
        """True when some failure could not be tied to a SKU, e.g. an unparseable row."""
        return any(error.sku is None for error in self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def to_list(self) -> list[dict[str, str | None]]:
        return [error.to_dict() for error in self._errors]
