"""Turn broker deliveries (routing key + JSON body) into typed relay events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from obsrelay.schemas import BuildEvent, RequestEvent
from obsrelay.services.keys import BuildKey, RequestKey, SubscriptionKey

KEY_BUILD_SUCCESS = "obs.package.build_success"
KEY_BUILD_FAIL = "obs.package.build_fail"

KEY_REQUEST_CHANGE = "obs.request.change"
KEY_REQUEST_STATECHANGE = "obs.request.state_change"
KEY_REQUEST_DELETE = "obs.request.delete"


class RelayError(Exception):
    """Base for deliveries that cannot be relayed."""


class ClassificationError(RelayError):
    """The routing key does not belong to any known event subtype."""

    def __init__(self, routing_key: str, reason: str) -> None:
        super().__init__(f"{reason}: {routing_key}")
        self.routing_key = routing_key


class PayloadError(RelayError):
    """The delivery body is not a valid event payload."""


class EventCategory(str, Enum):
    BUILD = "build"
    REQUEST = "request"

    @property
    def routing_suffixes(self) -> tuple[str, ...]:
        return ROUTING_SUFFIXES[self]


ROUTING_SUFFIXES: dict[EventCategory, tuple[str, ...]] = {
    EventCategory.BUILD: (KEY_BUILD_SUCCESS, KEY_BUILD_FAIL),
    EventCategory.REQUEST: (
        KEY_REQUEST_CHANGE,
        KEY_REQUEST_STATECHANGE,
        KEY_REQUEST_DELETE,
    ),
}


class BuildResult(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RequestChange(str, Enum):
    CHANGED_BY_ADMIN = "changed by admin"
    STATE_CHANGED = "changed"
    DELETED = "deleted"


@dataclass(frozen=True)
class ClassifiedEvent:
    category: EventCategory
    subtype: BuildResult | RequestChange
    event: BuildEvent | RequestEvent
    routing_key: str

    @property
    def key(self) -> SubscriptionKey:
        if isinstance(self.event, BuildEvent):
            return BuildKey(self.event.project, self.event.package)
        return RequestKey(str(self.event.number))


M = TypeVar("M", bound=BaseModel)


def classify_build(routing_key: str) -> BuildResult:
    if KEY_BUILD_SUCCESS in routing_key:
        return BuildResult.SUCCEEDED
    if KEY_BUILD_FAIL in routing_key:
        return BuildResult.FAILED
    raise ClassificationError(routing_key, "Build event neither success nor failure")


def classify_request(routing_key: str) -> RequestChange:
    # Checked in this order; the first suffix found wins.
    if KEY_REQUEST_CHANGE in routing_key:
        return RequestChange.CHANGED_BY_ADMIN
    if KEY_REQUEST_STATECHANGE in routing_key:
        return RequestChange.STATE_CHANGED
    if KEY_REQUEST_DELETE in routing_key:
        return RequestChange.DELETED
    raise ClassificationError(routing_key, "Changetype of request event unknown")


def parse_payload(model: type[M], body: bytes | str) -> M:
    """Validate a JSON body against ``model``; unknown fields are ignored."""
    try:
        text = body.decode("utf-8") if isinstance(body, bytes) else body
    except UnicodeDecodeError as exc:
        raise PayloadError(f"Payload is not UTF-8: {exc}") from exc
    try:
        return model.model_validate_json(text)
    except ValidationError as exc:
        raise PayloadError(
            f"Invalid {model.__name__} payload ({exc.error_count()} error(s)): {exc}"
        ) from exc


def classify(
    category: EventCategory,
    routing_key: str,
    body: bytes | str,
    *,
    scope: Optional[str] = None,
) -> ClassifiedEvent:
    """
    Classify one delivery.

    When ``scope`` is given the routing key must start with ``"{scope}."``,
    which keeps events of one OBS instance out of another's rooms.

    Raises
    ------
    ClassificationError
        Unknown routing key or foreign scope.
    PayloadError
        Body is not UTF-8 JSON of the expected shape.
    """
    if scope and not routing_key.startswith(f"{scope}."):
        raise ClassificationError(routing_key, f"Routing key outside scope {scope!r}")

    subtype: BuildResult | RequestChange
    if category is EventCategory.BUILD:
        subtype = classify_build(routing_key)
        event: BuildEvent | RequestEvent = parse_payload(BuildEvent, body)
    else:
        subtype = classify_request(routing_key)
        event = parse_payload(RequestEvent, body)

    return ClassifiedEvent(
        category=category, subtype=subtype, event=event, routing_key=routing_key
    )
