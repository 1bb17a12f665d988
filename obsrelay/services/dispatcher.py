"""Relay one broker delivery to every room subscribed to its entity."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from obsrelay.config import ConnectionDetails
from obsrelay.services.classifier import (
    ClassificationError,
    EventCategory,
    PayloadError,
    classify,
)
from obsrelay.services.formatter import format_notification
from obsrelay.services.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class Delivery(Protocol):
    """What the dispatcher needs from a broker message (``aio_pika.IncomingMessage``)."""

    routing_key: Optional[str]
    body: bytes

    async def ack(self, multiple: bool = False) -> None: ...

    async def reject(self, requeue: bool = False) -> None: ...


class ChatSender(Protocol):
    async def send_html_message(self, room_id: str, plain: str, html: str) -> object: ...


class RelayRecorder(Protocol):
    def record(self, outcome: "RelayOutcome") -> None: ...


class ErrorPolicy(str, Enum):
    """What happens to a delivery that cannot be relayed.

    LEAVE: never ack; the broker redelivers once the channel goes away.
    REJECT: malformed payloads are rejected without requeue; unknown routing
    keys are still left alone.
    """

    LEAVE = "leave"
    REJECT = "reject"


class RelayStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"
    IGNORED = "ignored"
    UNCLASSIFIED = "unclassified"
    MALFORMED = "malformed"


@dataclass
class RelayOutcome:
    server: str
    category: EventCategory
    routing_key: str
    status: RelayStatus
    subject: str = ""
    summary: str = ""
    rooms: list[str] = field(default_factory=list)
    failed_rooms: list[str] = field(default_factory=list)
    acknowledged: bool = False
    error: Optional[Exception] = None

    @property
    def rooms_notified(self) -> int:
        return len(self.rooms) - len(self.failed_rooms)


class RelayDispatcher:
    """
    Classify a delivery, fan it out to the subscribed rooms and ack it.

    Sends are best-effort: a failing room is logged and skipped. The delivery
    is acked exactly once after every send was attempted, also when nobody is
    subscribed. Unclassifiable or malformed deliveries are not acked (see
    ``ErrorPolicy``). An ack failure propagates to the caller.
    """

    def __init__(
        self,
        details: ConnectionDetails,
        category: EventCategory,
        registry: SubscriptionRegistry,
        chat: ChatSender,
        *,
        recorder: Optional[RelayRecorder] = None,
        error_policy: ErrorPolicy = ErrorPolicy.LEAVE,
    ) -> None:
        self.details = details
        self.category = category
        self.registry = registry
        self.chat = chat
        self.recorder = recorder
        self.error_policy = error_policy

    async def handle_delivery(self, delivery: Delivery) -> RelayOutcome:
        outcome = RelayOutcome(
            server=self.details.domain,
            category=self.category,
            routing_key=delivery.routing_key or "",
            status=RelayStatus.SUCCESS,
        )
        try:
            await self._relay(delivery, outcome)
        except Exception as exc:
            outcome.error = exc
            raise
        finally:
            if self.recorder is not None:
                self.recorder.record(outcome)
        return outcome

    async def _relay(self, delivery: Delivery, outcome: RelayOutcome) -> None:
        routing_key = outcome.routing_key

        try:
            classified = classify(
                self.category,
                routing_key,
                delivery.body,
                scope=self.details.rabbitscope,
            )
        except ClassificationError as exc:
            logger.warning(f"Error while getting event on {self.details.domain}: {exc}. Skipping")
            outcome.status = RelayStatus.UNCLASSIFIED
            outcome.error = exc
            return
        except PayloadError as exc:
            logger.warning(f"Malformed {self.category.value} event on {self.details.domain}: {exc}")
            outcome.status = RelayStatus.MALFORMED
            outcome.error = exc
            if self.error_policy is ErrorPolicy.REJECT:
                await delivery.reject(requeue=False)
            return

        key = classified.key
        outcome.subject = str(key)
        rooms = self.registry.lookup(key)
        outcome.rooms = rooms

        if not rooms:
            outcome.status = RelayStatus.IGNORED
            await delivery.ack()
            outcome.acknowledged = True
            return

        note = format_notification(classified, self.details)
        outcome.summary = note.plain
        logger.info(f"{note.plain} → {len(rooms)} room(s) on {self.details.domain}")

        for room in rooms:
            try:
                await self.chat.send_html_message(room, note.plain, note.html)
            except Exception as exc:
                logger.exception(f"Sending to {room} failed")
                outcome.failed_rooms.append(room)
                outcome.error = exc

        if outcome.failed_rooms:
            outcome.status = (
                RelayStatus.ERROR
                if len(outcome.failed_rooms) == len(rooms)
                else RelayStatus.PARTIAL
            )

        await delivery.ack()
        outcome.acknowledged = True
