"""models for DBs"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base
from .timezone import now_local


class RelayEventLog(Base):
    """One handled broker delivery."""

    __tablename__ = "relay_event_logs"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=now_local, index=True)
    server = Column(String, index=True)
    category = Column(String, index=True)
    routing_key = Column(String, default="")
    subject = Column(String, default="", index=True)
    status = Column(String, default="success", index=True)
    rooms_notified = Column(Integer, default=0)
    summary = Column(Text, default="")
    error_message = Column(Text, nullable=True)
