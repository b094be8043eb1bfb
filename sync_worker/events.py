from __future__ import annotations

import logging
from typing import Any, Protocol

SYNC_STARTED = "sync.started"
SYNC_COMPLETED = "sync.completed"
SYNC_FAILED = "sync.failed"

logger = logging.getLogger(__name__)


class EventNotifier(Protocol):
    def notify(self, event: str, payload: dict[str, Any]) -> None: ...


class LoggingEventNotifier:
    """Default notifier; outbound delivery to merchants lives elsewhere."""

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("%s merchant=%s sync=%s status=%s", event, payload.get("merchant_id"), payload.get("sync_id"), payload.get("status"))
