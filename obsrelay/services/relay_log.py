"""Persist what happened to each delivery (not the subscriptions)."""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from obsrelay.db import SessionLocal
from obsrelay.models import RelayEventLog
from obsrelay.services.dispatcher import RelayOutcome

logger = logging.getLogger(__name__)


class RelayLogRecorder:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def record(self, outcome: RelayOutcome) -> None:
        log = RelayEventLog(
            server=outcome.server,
            category=outcome.category.value,
            routing_key=outcome.routing_key,
            subject=outcome.subject,
            status=outcome.status.value,
            rooms_notified=outcome.rooms_notified,
            summary=outcome.summary,
            error_message=str(outcome.error) if outcome.error else None,
        )
        try:
            with self._session_factory() as db:
                db.add(log)
                db.commit()
        except SQLAlchemyError:
            logger.exception(f"Could not store relay log for {outcome.routing_key}")
