"""Broker payload schemas"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class BuildEvent(BaseModel):
    """
    Payload of ``obs.package.build_success`` / ``obs.package.build_fail``.
    Only project, package, arch and repository end up in notifications.
    """

    model_config = ConfigDict(extra="ignore")

    project: str
    package: str
    arch: str
    repository: str
    reason: Optional[str] = None
    release: Optional[str] = None
    readytime: Optional[str] = None
    srcmd5: Optional[str] = None
    rev: Optional[str] = None
    bcnt: Optional[str] = None
    verifymd5: Optional[str] = None
    starttime: Optional[str] = None
    endtime: Optional[str] = None
    workerid: Optional[str] = None
    versrel: Optional[str] = None
    hostarch: Optional[str] = None
    previouslyfailed: Optional[str] = None


class RequestEvent(BaseModel):
    """Payload of the ``obs.request.*`` events."""

    model_config = ConfigDict(extra="ignore")

    number: int
    state: str
    author: Optional[str] = None
    comment: Optional[str] = None
    description: Optional[str] = None
    actions: Optional[Any] = None
    when: Optional[str] = None
    who: Optional[str] = None
    oldstate: Optional[str] = None
