"""Unit tests for RelayLogRecorder."""

from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from obsrelay.db import Base
from obsrelay.models import RelayEventLog
from obsrelay.services.classifier import ClassificationError, EventCategory
from obsrelay.services.dispatcher import RelayOutcome, RelayStatus
from obsrelay.services.relay_log import RelayLogRecorder


def _session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path}/log.sqlite3")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


def test_records_successful_relay(tmp_path):
    factory = _session_factory(tmp_path)
    outcome = RelayOutcome(
        server="opensuse.org",
        category=EventCategory.BUILD,
        routing_key="opensuse.obs.package.build_success",
        status=RelayStatus.PARTIAL,
        subject="a/b",
        summary="Build succeeded: a/b (x86_64 / standard)",
        rooms=["!r:x", "!s:x"],
        failed_rooms=["!s:x"],
        acknowledged=True,
    )

    RelayLogRecorder(factory).record(outcome)

    with factory() as db:
        row = db.query(RelayEventLog).one()
    assert row.server == "opensuse.org"
    assert row.category == "build"
    assert row.status == "partial"
    assert row.rooms_notified == 1
    assert row.subject == "a/b"
    assert row.error_message is None
    assert row.created_at is not None


def test_records_error_message(tmp_path):
    factory = _session_factory(tmp_path)
    outcome = RelayOutcome(
        server="suse.de",
        category=EventCategory.REQUEST,
        routing_key="suse.obs.request.create",
        status=RelayStatus.UNCLASSIFIED,
        error=ClassificationError("suse.obs.request.create", "Changetype unknown"),
    )

    RelayLogRecorder(factory).record(outcome)

    with factory() as db:
        row = db.query(RelayEventLog).one()
    assert row.status == "unclassified"
    assert "suse.obs.request.create" in row.error_message


def test_database_errors_are_logged_not_raised():
    session = MagicMock()
    session.__enter__.return_value = session
    session.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
    outcome = RelayOutcome(
        server="suse.de",
        category=EventCategory.BUILD,
        routing_key="suse.obs.package.build_fail",
        status=RelayStatus.IGNORED,
    )

    RelayLogRecorder(lambda: session).record(outcome)

    session.add.assert_called_once()
