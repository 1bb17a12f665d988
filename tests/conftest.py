"""Global test fixtures."""

import os
import tempfile
from unittest.mock import AsyncMock

# Settings are read at import time, so the environment has to be in place
# before any test module imports obsrelay.
_TMP = tempfile.mkdtemp(prefix="obsrelay-tests-")
os.environ.setdefault("DB_URL", f"sqlite:///{_TMP}/relay.sqlite3")
os.environ.setdefault("RELAY_AUTOSTART", "false")
os.environ.setdefault("ADMIN_HTTP_KEY", "test-admin-key")
os.environ.setdefault("RELAY_SERVERS", "opensuse,suse")

import pytest  # noqa: E402

from obsrelay.config import OPENSUSE_CONNECTION, SUSE_CONNECTION  # noqa: E402


@pytest.fixture
def opensuse():
    return OPENSUSE_CONNECTION


@pytest.fixture
def suse():
    return SUSE_CONNECTION


class FakeDelivery:
    """Stand-in for ``aio_pika.IncomingMessage`` recording ack/reject."""

    def __init__(self, routing_key: str, body, events: list | None = None) -> None:
        self.routing_key = routing_key
        self.body = body if isinstance(body, bytes) else body.encode()
        self.events = events if events is not None else []

        async def _ack(multiple: bool = False) -> None:
            self.events.append("ack")

        async def _reject(requeue: bool = False) -> None:
            self.events.append(("reject", requeue))

        self.ack = AsyncMock(side_effect=_ack)
        self.reject = AsyncMock(side_effect=_reject)


@pytest.fixture
def make_delivery():
    return FakeDelivery
