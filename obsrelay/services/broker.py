"""RabbitMQ side: connect to an OBS broker, bind a queue, pull deliveries."""

from __future__ import annotations

import logging
from typing import Optional

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)

from obsrelay.config import ConnectionDetails
from obsrelay.services.classifier import EventCategory
from obsrelay.services.dispatcher import RelayDispatcher, RelayOutcome

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE = "pubsub"


def amqp_url(details: ConnectionDetails) -> str:
    return f"amqps://{details.login}@{details.rabbitprefix}.{details.domain}/%2f"


def binding_keys(details: ConnectionDetails, category: EventCategory) -> list[str]:
    return [f"{details.rabbitscope}.{suffix}" for suffix in category.routing_suffixes]


async def connect(details: ConnectionDetails) -> AbstractRobustConnection:
    """Open a robust connection; errors propagate so startup fails loudly."""
    connection = await aio_pika.connect_robust(amqp_url(details))
    logger.info(f"Connected to {details.rabbitprefix}.{details.domain}")
    return connection


async def bind_queue(
    channel: AbstractChannel,
    details: ConnectionDetails,
    category: EventCategory,
    exchange_name: str = DEFAULT_EXCHANGE,
) -> AbstractQueue:
    """
    Declare an anonymous exclusive queue and bind it to the OBS topic exchange.

    The exchange is only checked (passive declare): it belongs to OBS.
    """
    exchange = await channel.get_exchange(exchange_name, ensure=True)
    queue = await channel.declare_queue(exclusive=True, auto_delete=True)
    for key in binding_keys(details, category):
        await queue.bind(exchange, routing_key=key)
    logger.info(
        f"Subscribing to {category.value} events of {details.domain} "
        f"via {exchange_name} ({queue.name})"
    )
    return queue


class BrokerConsumer:
    """
    Receive loop for one bound queue.

    Deliveries are processed one at a time, in order; each is acked (or not)
    by the dispatcher before the next is taken.
    """

    def __init__(self, queue: AbstractQueue, dispatcher: RelayDispatcher) -> None:
        self.queue = queue
        self.dispatcher = dispatcher
        self.processed = 0
        self.failed = 0

    @property
    def name(self) -> str:
        return f"{self.dispatcher.category.value}@{self.dispatcher.details.domain}"

    async def run(self) -> None:
        logger.info(f"Consumer '{self.name}' started")
        try:
            async with self.queue.iterator() as deliveries:
                async for delivery in deliveries:
                    await self.process(delivery)
        finally:
            logger.info(f"Consumer '{self.name}' stopped")

    async def process(self, delivery: AbstractIncomingMessage) -> Optional[RelayOutcome]:
        try:
            outcome = await self.dispatcher.handle_delivery(delivery)
        except Exception:
            self.failed += 1
            logger.exception(f"Consumer '{self.name}' failed on {delivery.routing_key}")
            return None
        self.processed += 1
        return outcome
