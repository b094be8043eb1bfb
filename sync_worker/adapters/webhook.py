from __future__ import annotations

import hashlib
import hmac
import json

from sync_worker.adapters.base import DeleteMarker, FetchResult, RawProductRecord, SourceAdapter
from sync_worker.errors import SignatureInvalid, ValidationError

SIGNATURE_PREFIX = "sha256="
DELETE_EVENTS = {"delete", "deleted", "product.deleted", "product.delete", "products/delete", "product_deleted"}


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str | None, body: bytes, signature: str | None) -> bool:
    if not secret or not signature:
        return False
    provided = signature.strip().lower()
    if provided.startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX) :]
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8"))


class WebhookAdapter(SourceAdapter):
    """One signed push from a merchant's platform, carrying one product."""

    source_type = "webhook"

    def __init__(self, secret: str | None, body: bytes, signature: str | None, event: str | None = None) -> None:
        self.secret = secret
        self.body = body
        self.signature = signature
        self.event = event

    def verify(self) -> None:
        if not verify_signature(self.secret, self.body, self.signature):
            raise SignatureInvalid("Invalid webhook signature")

    def parse(self) -> RawProductRecord | DeleteMarker:
        self.verify()
        try:
            payload = json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError("Webhook body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")

        event = self.event or payload.get("event") or payload.get("topic")
        if isinstance(event, str) and event.strip().lower() in DELETE_EVENTS:
            return DeleteMarker(data=payload, source_ref=f"webhook {event}")
        return RawProductRecord(data=payload, source_ref="webhook")

    def fetch(self) -> FetchResult:
        return FetchResult(records=[self.parse()])
