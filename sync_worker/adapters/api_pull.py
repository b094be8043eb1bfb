from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import httpx

from sync_worker.adapters.base import FetchResult, RawProductRecord, SourceAdapter
from sync_worker.errors import RecordError, RetryableSourceError, SourceError
from sync_worker.mapping.paths import MISSING, resolve_path

RETRYABLE_HTTP_STATUSES = {408, 425, 429, 500, 502, 503, 504}
DEFAULT_RECORD_FIELDS = ("products", "items", "data", "records")
DEFAULT_NEXT_FIELDS = ("next", "next_page_url")

logger = logging.getLogger(__name__)


class ApiPullAdapter(SourceAdapter):
    source_type = "api"

    def __init__(
        self,
        source: dict[str, Any],
        timeout_seconds: float = 30.0,
        max_pages: int = 100,
        credentials: dict[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        url = source.get("url")
        if not url:
            raise SourceError("No source URL configured for API pull")
        self.url = str(url)
        self.max_pages = max(1, max_pages)
        self.next_page_field: str | None = source.get("next_page_field")
        self.records_field: str | None = source.get("records_field")
        self.credentials = credentials or {}
        self._headers, self._auth = self._build_auth(dict(source.get("auth") or {}))
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=timeout_seconds,
            headers={"User-Agent": "CatalogSync/1.0", "Accept": "application/json"},
            follow_redirects=True,
        )

    def fetch(self) -> FetchResult:
        result = FetchResult(records=[])
        url: str | None = self.url
        seen: set[str] = set()
        page = 0

        while url:
            if url in seen:
                logger.warning("Pagination loop detected at %s; stopping", url)
                break
            if page >= self.max_pages:
                logger.warning("Stopped paging %s after %s pages", self.url, self.max_pages)
                break
            seen.add(url)
            page += 1

            payload, response = self._get_json(url)
            for index, item in enumerate(self._extract_records(payload)):
                source_ref = f"page {page} item {index}"
                if isinstance(item, dict):
                    result.records.append(RawProductRecord(data=item, source_ref=source_ref))
                else:
                    result.errors.append(
                        RecordError(sku=None, stage="parse", message=f"{source_ref}: expected an object, got {type(item).__name__}")
                    )
            url = self._next_url(payload, response, url)

        logger.debug("Fetched %s records from %s over %s page(s)", len(result.records), self.url, page)
        return result

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _build_auth(self, auth: dict[str, str]) -> tuple[dict[str, str], httpx.BasicAuth | None]:
        auth_type = auth.get("type", "none")
        secret = None
        ref = auth.get("credential_ref")
        if ref:
            secret = self.credentials.get(ref)
            if secret is None:
                raise SourceError(f"Unknown credential reference '{ref}'")

        if auth_type == "bearer":
            token = secret or auth.get("token")
            return {"Authorization": f"Bearer {token}"}, None
        if auth_type == "basic":
            if secret is not None:
                username, _, password = secret.partition(":")
            else:
                username, password = auth.get("username", ""), auth.get("password", "")
            return {}, httpx.BasicAuth(username, password)
        return {}, None

    def _get_json(self, url: str) -> tuple[Any, httpx.Response]:
        try:
            response = self.client.get(url, headers=self._headers, auth=self._auth)
        except httpx.TimeoutException as exc:
            raise RetryableSourceError(f"Timed out fetching {url}") from exc
        except httpx.TransportError as exc:
            raise RetryableSourceError(f"Network error fetching {url}: {exc}") from exc

        if response.status_code in RETRYABLE_HTTP_STATUSES:
            raise RetryableSourceError(
                f"Source returned {response.status_code} for {url}", details={"status_code": response.status_code}
            )
        if response.is_error:
            raise SourceError(f"Source returned {response.status_code} for {url}", details={"status_code": response.status_code})

        try:
            return response.json(), response
        except ValueError as exc:
            raise SourceError(f"Source response from {url} is not valid JSON") from exc

    def _extract_records(self, payload: Any) -> list[Any]:
        if self.records_field:
            records = resolve_path(payload, self.records_field)
            if not isinstance(records, list):
                raise SourceError(f"records_field '{self.records_field}' did not resolve to a list")
            return records

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            for key in DEFAULT_RECORD_FIELDS:
                if isinstance(payload.get(key), list):
                    return payload[key]
            return [payload]
        raise SourceError("Source response must be a JSON array or object")

    def _next_url(self, payload: Any, response: httpx.Response, current: str) -> str | None:
        if self.next_page_field:
            candidates = [resolve_path(payload, self.next_page_field)]
        else:
            link = response.links.get("next", {}).get("url")
            candidates = [link]
            if isinstance(payload, dict):
                candidates.extend(payload.get(key) for key in DEFAULT_NEXT_FIELDS)

        for value in candidates:
            if value is MISSING or not isinstance(value, str) or not value.strip():
                continue
            value = value.strip()
            if self.next_page_field or value.startswith(("http://", "https://", "/", "?")):
                return urljoin(current, value)
        return None
