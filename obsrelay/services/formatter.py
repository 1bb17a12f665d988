"""Plain-text and HTML renderings of relay events."""

from __future__ import annotations

from html import escape as _esc
from typing import Any, NamedTuple

from obsrelay.config import ConnectionDetails
from obsrelay.schemas import BuildEvent, RequestEvent
from obsrelay.services.classifier import (
    BuildResult,
    ClassifiedEvent,
    RequestChange,
)


class Notification(NamedTuple):
    plain: str
    html: str


def _esc_html(value: Any) -> str:
    return _esc(str(value or ""), quote=True)


def _link(url: str, text: str) -> str:
    return f'<a href="{_esc_html(url)}">{_esc_html(text)}</a>'


def package_url(details: ConnectionDetails, project: str, package: str) -> str:
    return f"https://{details.buildprefix}.{details.domain}/package/show/{project}/{package}"


def request_url(details: ConnectionDetails, number: int | str) -> str:
    return f"https://{details.buildprefix}.{details.domain}/request/show/{number}"


def format_build(
    event: BuildEvent, result: BuildResult, details: ConnectionDetails
) -> Notification:
    where = f"({event.arch} / {event.repository})"
    plain = f"Build {result.value}: {event.project}/{event.package} {where}"

    word = _esc_html(result.value)
    if result is BuildResult.FAILED:
        word = f"<u>{word}</u>"
    html = (
        f"<strong>Build {word}</strong>: "
        f"{_link(package_url(details, event.project, event.package), f'{event.project}/{event.package}')}"
        f" {_esc_html(where)}"
    )
    return Notification(plain, html)


def format_request(
    event: RequestEvent, change: RequestChange, details: ConnectionDetails
) -> Notification:
    comment = event.comment or ""
    plain = f"Request {event.number} was {change.value}: {event.state} ({comment})"
    html = (
        f"{_link(request_url(details, event.number), f'Request {event.number}')}"
        f" was {_esc_html(change.value)}: <strong>{_esc_html(event.state)}</strong>"
        f" ({_esc_html(comment)})"
    )
    return Notification(plain, html)


def format_notification(
    classified: ClassifiedEvent, details: ConnectionDetails
) -> Notification:
    event, subtype = classified.event, classified.subtype
    if isinstance(event, BuildEvent) and isinstance(subtype, BuildResult):
        return format_build(event, subtype, details)
    if isinstance(event, RequestEvent) and isinstance(subtype, RequestChange):
        return format_request(event, subtype, details)
    raise TypeError(f"Cannot format {classified.category.value} event as {subtype!r}")
