"""the beautiful world start from here."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from obsrelay.config import resolve_servers, settings
from obsrelay.db import Base, engine
from obsrelay.routers import info, stats
from obsrelay.services.dispatcher import ErrorPolicy
from obsrelay.services.matrix import MatrixClient
from obsrelay.services.relay import RelayService
from obsrelay.services.relay_log import RelayLogRecorder

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(engine)


def build_relay() -> RelayService:
    chat = MatrixClient(
        settings.matrix_homeserver_url,
        user=settings.matrix_user,
        password=settings.matrix_password,
        access_token=settings.matrix_access_token,
    )
    return RelayService(
        chat,
        resolve_servers(settings.servers),
        recorder=RelayLogRecorder(),
        command_prefix=settings.command_prefix,
        exchange_name=settings.exchange_name,
        dedupe=settings.dedupe_subscriptions,
        confirm=settings.confirm_subscriptions,
        error_policy=ErrorPolicy.REJECT if settings.reject_malformed else ErrorPolicy.LEAVE,
        sync_timeout_ms=settings.matrix_sync_timeout_ms,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    relay = build_relay()
    app.state.relay = relay
    if settings.autostart:
        await relay.start()
    else:
        logger.info("RELAY_AUTOSTART is off; not connecting to Matrix or the brokers")
    try:
        yield
    finally:
        await relay.stop()


app = FastAPI(title="OBS → Matrix relay", lifespan=lifespan)

app.include_router(info.router)
app.include_router(stats.router)
