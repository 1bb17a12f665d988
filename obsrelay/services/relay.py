"""Wire registries, dispatchers, chat handlers and broker loops per OBS server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from aio_pika.abc import AbstractRobustConnection

from obsrelay.config import ConnectionDetails
from obsrelay.services import broker
from obsrelay.services.classifier import EventCategory
from obsrelay.services.commands import (
    BuildSubscriptionHandler,
    HelpHandler,
    MessageHandler,
    MessageRouter,
    RequestSubscriptionHandler,
)
from obsrelay.services.dispatcher import ErrorPolicy, RelayDispatcher, RelayRecorder
from obsrelay.services.matrix import MatrixClient
from obsrelay.services.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


@dataclass
class ServerBinding:
    """Everything that belongs to one OBS instance. Owns its registries."""

    details: ConnectionDetails
    registries: dict[EventCategory, SubscriptionRegistry]
    dispatchers: dict[EventCategory, RelayDispatcher]
    handlers: list[MessageHandler]
    connection: Optional[AbstractRobustConnection] = None
    consumers: list[broker.BrokerConsumer] = field(default_factory=list)


def create_binding(
    details: ConnectionDetails,
    chat: MatrixClient,
    *,
    recorder: Optional[RelayRecorder] = None,
    dedupe: bool = False,
    confirm: bool = False,
    error_policy: ErrorPolicy = ErrorPolicy.LEAVE,
) -> ServerBinding:
    registries: dict[EventCategory, SubscriptionRegistry] = {
        category: SubscriptionRegistry(dedupe=dedupe) for category in EventCategory
    }
    dispatchers = {
        category: RelayDispatcher(
            details,
            category,
            registries[category],
            chat,
            recorder=recorder,
            error_policy=error_policy,
        )
        for category in EventCategory
    }
    handlers: list[MessageHandler] = [
        BuildSubscriptionHandler(
            details, registries[EventCategory.BUILD], chat, confirm=confirm
        ),
        RequestSubscriptionHandler(
            details, registries[EventCategory.REQUEST], chat, confirm=confirm
        ),
    ]
    return ServerBinding(
        details=details,
        registries=registries,
        dispatchers=dispatchers,
        handlers=handlers,
    )


class RelayService:
    """
    Runs the whole relay: one Matrix sync loop plus one broker receive loop
    per (server, category).

    Usage:
        service = RelayService(chat, servers, recorder=RelayLogRecorder())
        async with service:
            await asyncio.Event().wait()
    """

    def __init__(
        self,
        chat: MatrixClient,
        servers: Sequence[ConnectionDetails],
        *,
        recorder: Optional[RelayRecorder] = None,
        command_prefix: str = "",
        exchange_name: str = broker.DEFAULT_EXCHANGE,
        dedupe: bool = False,
        confirm: bool = False,
        error_policy: ErrorPolicy = ErrorPolicy.LEAVE,
        sync_timeout_ms: int = 30000,
    ) -> None:
        self.chat = chat
        self.exchange_name = exchange_name
        self.sync_timeout_ms = sync_timeout_ms
        self.bindings = [
            create_binding(
                details,
                chat,
                recorder=recorder,
                dedupe=dedupe,
                confirm=confirm,
                error_policy=error_policy,
            )
            for details in servers
        ]
        handlers: list[MessageHandler] = [HelpHandler(chat, command_prefix)]
        for binding in self.bindings:
            handlers.extend(binding.handlers)
        self.router = MessageRouter(handlers)
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def binding_for(self, domain: str) -> Optional[ServerBinding]:
        for binding in self.bindings:
            if binding.details.domain == domain:
                return binding
        return None

    async def start(self) -> None:
        """
        Log in to Matrix, bind all broker queues, then start the loops.

        Any transport error here propagates: the relay must not run with
        missing bindings.
        """
        await self.chat.ensure_logged_in()

        for binding in self.bindings:
            details = binding.details
            try:
                binding.connection = await broker.connect(details)
                channel = await binding.connection.channel()
                for category in EventCategory:
                    queue = await broker.bind_queue(
                        channel, details, category, self.exchange_name
                    )
                    binding.consumers.append(
                        broker.BrokerConsumer(queue, binding.dispatchers[category])
                    )
            except Exception:
                logger.error(f"Could not set up broker bindings for {details.domain}")
                await self.stop()
                raise

        for binding in self.bindings:
            for consumer in binding.consumers:
                self._tasks.append(
                    asyncio.create_task(consumer.run(), name=f"consumer-{consumer.name}")
                )
        self._tasks.append(
            asyncio.create_task(
                self.chat.sync_forever(self.router.dispatch, timeout_ms=self.sync_timeout_ms),
                name="matrix-sync",
            )
        )
        logger.info(
            f"Relay started for {len(self.bindings)} server(s), "
            f"{len(self._tasks) - 1} consumer(s)"
        )

    async def stop(self) -> None:
        self.chat.close()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        for binding in self.bindings:
            binding.consumers = []
            if binding.connection is not None:
                await binding.connection.close()
                binding.connection = None
        logger.info("Relay stopped")

    async def __aenter__(self) -> "RelayService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.stop()
