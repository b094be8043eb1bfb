from __future__ import annotations

import csv
import io
import json
import logging

from sync_worker.adapters.base import FetchResult, RawProductRecord, SourceAdapter
from sync_worker.errors import RecordError, SourceError, ValidationError

SUPPORTED_FORMATS = ("csv", "json")
# A JSON object holding the product list under one of these keys is unwrapped.
WRAPPER_KEYS = ("products", "items")
CONTENT_TYPES = {
    "text/csv": "csv",
    "application/csv": "csv",
    "application/vnd.ms-excel": "csv",
    "application/json": "json",
    "text/json": "json",
}

logger = logging.getLogger(__name__)


def infer_format(filename: str | None, content_type: str | None) -> str | None:
    lowered = (filename or "").lower()
    for file_format in SUPPORTED_FORMATS:
        if lowered.endswith(f".{file_format}"):
            return file_format
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return CONTENT_TYPES.get(media_type)


class FileAdapter(SourceAdapter):
    source_type = "file"

    def __init__(self, content: bytes, file_format: str) -> None:
        file_format = (file_format or "").lower()
        if file_format not in SUPPORTED_FORMATS:
            raise ValidationError(f"Unsupported file format '{file_format}'; expected csv or json")
        self.content = content
        self.file_format = file_format

    def fetch(self) -> FetchResult:
        try:
            text = self.content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise SourceError("Uploaded file is not valid UTF-8") from exc

        if self.file_format == "csv":
            result = self._parse_csv(text)
        else:
            result = self._parse_json(text)
        logger.debug(
            "Parsed %s upload: %s records, %s malformed", self.file_format, len(result.records), len(result.errors)
        )
        return result

    def _parse_csv(self, text: str) -> FetchResult:
        reader = csv.reader(io.StringIO(text, newline=""), strict=True)
        try:
            header = [name.strip() for name in next(reader)]
        except StopIteration as exc:
            raise SourceError("CSV file is empty") from exc
        except csv.Error as exc:
            raise SourceError(f"CSV header could not be parsed: {exc}") from exc

        if not any(header):
            raise SourceError("CSV header row is empty")
        if len(set(header)) != len(header):
            raise SourceError("CSV header contains duplicate column names")

        result = FetchResult(records=[])
        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as exc:
                result.errors.append(RecordError(sku=None, stage="parse", message=f"line {reader.line_num}: {exc}"))
                continue

            if not any(cell.strip() for cell in row):
                continue
            if len(row) != len(header):
                result.errors.append(
                    RecordError(
                        sku=None,
                        stage="parse",
                        message=f"line {reader.line_num}: expected {len(header)} fields, got {len(row)}",
                    )
                )
                continue
            result.records.append(RawProductRecord(data=dict(zip(header, row)), source_ref=f"line {reader.line_num}"))
        return result

    def _parse_json(self, text: str) -> FetchResult:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SourceError(f"Uploaded JSON could not be parsed: {exc.msg} (line {exc.lineno})") from exc

        if isinstance(payload, dict):
            wrapped = next((payload[key] for key in WRAPPER_KEYS if isinstance(payload.get(key), list)), None)
            payload = wrapped if wrapped is not None else [payload]
        if not isinstance(payload, list):
            raise SourceError("JSON upload must be an array of objects")

        result = FetchResult(records=[])
        for index, item in enumerate(payload):
            if isinstance(item, dict):
                result.records.append(RawProductRecord(data=item, source_ref=f"item {index}"))
            else:
                result.errors.append(
                    RecordError(sku=None, stage="parse", message=f"item {index}: expected an object, got {type(item).__name__}")
                )
        return result
