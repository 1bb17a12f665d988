"""Ruter Stats?"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from obsrelay.config import settings
from obsrelay.db import get_db
from obsrelay.models import RelayEventLog
from obsrelay.timezone import TZ
from obsrelay.utils import mask_room_id

router = APIRouter(tags=["Stats"])

RECENT_LIMIT = 50


def _check_admin_key(key_from_request: Optional[str]) -> bool:
    admin_key = settings.admin_http_key
    if not admin_key:
        return True
    return (key_from_request or "") == admin_key


def _fmt_dt(value: Optional[datetime]) -> str:
    if not value:
        return "-"
    if value.tzinfo:
        return value.astimezone(TZ).strftime("%Y-%m-%d %H:%M")
    return value.strftime("%Y-%m-%d %H:%M")


def _subscription_rows(relay: Any) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    if relay is None:
        return rows
    for binding in relay.bindings:
        for category, registry in binding.registries.items():
            for key, rooms in registry.snapshot().items():
                rows.append(
                    {
                        "server": binding.details.domain,
                        "category": category.value,
                        "subject": str(key),
                        "rooms": [mask_room_id(r) for r in rooms],
                    }
                )
    return rows


@router.get("/stats")
def stats(
    request: Request,
    key: Optional[str] = Query(None, alias="key"),
    db: Session = Depends(get_db),
):
    if not _check_admin_key(key):
        raise HTTPException(403, "Invalid admin key.")

    relay = getattr(request.app.state, "relay", None)
    subscriptions = _subscription_rows(relay)

    recent = (
        db.query(RelayEventLog)
        .order_by(RelayEventLog.created_at.desc(), RelayEventLog.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )

    by_status: dict[str, int] = {}
    for status, in db.query(RelayEventLog.status):
        by_status[status or "unknown"] = by_status.get(status or "unknown", 0) + 1

    return {
        "summary": {
            "running": bool(relay and relay.running),
            "subscriptions": len(subscriptions),
            "events": sum(by_status.values()),
            "events_by_status": by_status,
        },
        "subscriptions": subscriptions,
        "events": [
            {
                "created_at": _fmt_dt(log.created_at),
                "server": log.server or "-",
                "category": log.category or "-",
                "routing_key": log.routing_key or "-",
                "subject": log.subject or "-",
                "status": log.status or "unknown",
                "rooms_notified": log.rooms_notified or 0,
                "summary": log.summary or "",
                "error": log.error_message,
            }
            for log in recent
        ],
    }
