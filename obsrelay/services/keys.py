"""Subscription keys and how they are cut out of chat messages."""

from __future__ import annotations

from typing import NamedTuple


class BuildKey(NamedTuple):
    project: str
    package: str

    def __str__(self) -> str:
        return f"{self.project}/{self.package}"


class RequestKey(NamedTuple):
    number: str

    def __str__(self) -> str:
        return self.number


SubscriptionKey = BuildKey | RequestKey


def build_key_from_path(text: str) -> BuildKey:
    """
    Take the two right-most ``/`` segments as ``(project, package)``.

    Example
    -------
    'build.opensuse.org/package/show/home:me/hello ' → ('home:me', 'hello')

    Raises
    ------
    ValueError
        If there are fewer than two segments.
    """
    parts = text.split("/")
    if len(parts) < 2:
        raise ValueError(f"Expected PROJECT/PACKAGE, got {text!r}")
    it = reversed(parts)
    package = next(it).strip()
    project = next(it).strip()
    return BuildKey(project, package)


def request_key_from_path(text: str) -> RequestKey:
    """Take the right-most ``/`` segment as the request number."""
    parts = text.split("/")
    if len(parts) < 2:
        raise ValueError(f"Expected a request URL, got {text!r}")
    return RequestKey(parts[-1].strip())
