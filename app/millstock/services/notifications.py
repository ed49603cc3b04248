from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Protocol

from app.millstock.core.logging import log_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferEvent:
    type: str
    transfer_id: str
    transfer_number: str
    from_warehouse_id: str
    to_warehouse_id: str
    actor_id: str | None
    status: str
    notify_user_id: str | None = None


class NotificationPublisher(Protocol):
    def publish(self, event: TransferEvent) -> None: ...


class LoggingNotificationPublisher:
    def publish(self, event: TransferEvent) -> None:
        log_json(logger, {"event": "transfer_notification", **asdict(event)})


class RecordingNotificationPublisher:
    """Keeps published events in memory."""

    def __init__(self) -> None:
        self.events: list[TransferEvent] = []

    def publish(self, event: TransferEvent) -> None:
        self.events.append(event)


def publish_safely(publisher: NotificationPublisher | None, event: TransferEvent) -> None:
    if publisher is None:
        return
    try:
        publisher.publish(event)
    except Exception:
        logger.exception(
            "Failed to publish transfer notification",
            extra={"transfer_id": event.transfer_id, "type": event.type},
        )
