"""Chat commands: help, and subscribing rooms to builds and requests."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol, Sequence

from obsrelay.config import ConnectionDetails
from obsrelay.services.keys import (
    BuildKey,
    RequestKey,
    build_key_from_path,
    request_key_from_path,
)
from obsrelay.services.matrix import MSGTYPE_NOTICE, MSGTYPE_TEXT, RoomMessage
from obsrelay.services.registry import SubscriptionRegistry
from obsrelay.utils import general_help_text

logger = logging.getLogger(__name__)

UNSUBSCRIBE_WORD = "unsubscribe"

BUILD_USAGE = (
    "Sorry, I could not parse that. Please post PROJECT/PACKAGE or a package URL"
)
REQUEST_USAGE = "Sorry, I could not parse that. Please post a submitrequest URL"


class HandleResult(Enum):
    CONTINUE = "continue"
    STOP = "stop"


class ChatReplier(Protocol):
    async def send_message(self, room_id: str, text: str, msgtype: str = ...) -> object: ...


class MessageHandler(Protocol):
    async def handle(self, message: RoomMessage) -> HandleResult: ...


def _split_unsubscribe(text: str) -> tuple[bool, str]:
    head, _, rest = text.partition(" ")
    if head.lower() == UNSUBSCRIBE_WORD and rest.strip():
        return True, rest.strip()
    return False, text


class HelpHandler:
    """``{prefix}help`` and ``{prefix}help COMMAND``."""

    def __init__(self, chat: ChatReplier, prefix: str = "") -> None:
        self.chat = chat
        self.prefix = prefix

    async def handle(self, message: RoomMessage) -> HandleResult:
        text = message.body.strip()
        command = f"{self.prefix}help"
        words = text.split()
        if not words or words[0] != command:
            return HandleResult.CONTINUE

        args = words[1:]
        if not args:
            reply = general_help_text(self.prefix)
        elif len(args) == 1:
            reply = "Sorry, unknown command"
        else:
            reply = (
                f'Sorry, that is not possible. Please use "{command}" or '
                f'"{command} COMMAND" for more information.'
            )
        await self.chat.send_message(message.room_id, reply, MSGTYPE_NOTICE)
        return HandleResult.STOP


class BuildSubscriptionHandler:
    """
    Subscribe a room to build results of one package on one OBS instance.

    Accepted: a package URL on this instance
    (``https://build.opensuse.org/package/show/PROJECT/PACKAGE``) or a bare
    ``PROJECT/PACKAGE`` (blanks around the slash are trimmed). Always lets
    the next handler look at the message too.
    """

    def __init__(
        self,
        details: ConnectionDetails,
        registry: SubscriptionRegistry[BuildKey],
        chat: ChatReplier,
        *,
        confirm: bool = False,
    ) -> None:
        self.details = details
        self.registry = registry
        self.chat = chat
        self.confirm = confirm

    @property
    def url_fragment(self) -> str:
        return f"{self.details.domain}/package/"

    def parse(self, text: str) -> tuple[bool, Optional[BuildKey]]:
        """
        Returns ``(matched, key)``. ``(False, None)``: not meant for this
        handler. ``(True, None)``: meant for it but unusable.
        """
        if "://" in text or self.details.domain in text:
            if self.url_fragment not in text:
                return False, None
            words = text.split(self.url_fragment, 1)[1].split()
            tail = words[0].rstrip("/") if words else ""
            try:
                key = build_key_from_path(tail)
            except ValueError:
                return True, None
            return True, key if key.project and key.package else None

        if "/" not in text or "/package/" in text or "/request/" in text:
            return False, None
        key = build_key_from_path(text)
        if not key.project or not key.package:
            return False, None
        # Inner whitespace means prose around a slash ("this and/or that").
        if any(ch.isspace() for ch in key.project + key.package):
            return False, None
        return True, key

    async def handle(self, message: RoomMessage) -> HandleResult:
        unsubscribe, text = _split_unsubscribe(message.body.strip())
        matched, key = self.parse(text)
        if not matched:
            return HandleResult.CONTINUE
        if key is None:
            logger.info(f"Message not parsable as build subscription: {message.body!r}")
            await self.chat.send_message(message.room_id, BUILD_USAGE, MSGTYPE_TEXT)
            return HandleResult.CONTINUE

        # A bare key reaches every server; only the ones holding it answer.
        bare = self.url_fragment not in text
        await _apply(
            self, key, message, unsubscribe, what=f"builds of {key}", quiet_miss=bare
        )
        return HandleResult.CONTINUE


class RequestSubscriptionHandler:
    """Subscribe a room to one submit request, given its URL on this instance."""

    def __init__(
        self,
        details: ConnectionDetails,
        registry: SubscriptionRegistry[RequestKey],
        chat: ChatReplier,
        *,
        confirm: bool = False,
    ) -> None:
        self.details = details
        self.registry = registry
        self.chat = chat
        self.confirm = confirm

    @property
    def url_fragment(self) -> str:
        return f"{self.details.domain}/request/"

    def parse(self, text: str) -> tuple[bool, Optional[RequestKey]]:
        if self.url_fragment not in text:
            return False, None
        _, tail = text.split(self.url_fragment, 1)
        words = tail.split()
        path = (self.url_fragment + (words[0] if words else "")).rstrip("/")
        if len(path.split("/")) < 3:
            return True, None
        key = request_key_from_path(path)
        return True, key if key.number.isdigit() else None

    async def handle(self, message: RoomMessage) -> HandleResult:
        unsubscribe, text = _split_unsubscribe(message.body.strip())
        matched, key = self.parse(text)
        if not matched:
            return HandleResult.CONTINUE
        if key is None:
            logger.info(f"Message not parsable as request subscription: {message.body!r}")
            await self.chat.send_message(message.room_id, REQUEST_USAGE, MSGTYPE_TEXT)
            return HandleResult.CONTINUE

        await _apply(self, key, message, unsubscribe, what=f"request {key}")
        return HandleResult.CONTINUE


async def _apply(
    handler: BuildSubscriptionHandler | RequestSubscriptionHandler,
    key: BuildKey | RequestKey,
    message: RoomMessage,
    unsubscribe: bool,
    *,
    what: str,
    quiet_miss: bool = False,
) -> None:
    domain = handler.details.domain
    if unsubscribe:
        removed = handler.registry.unsubscribe(key, message.room_id)
        logger.info(f"Unsubscribing room {message.room_id} from {key!r} on {domain} ({removed})")
        if not removed and quiet_miss:
            return
        if removed:
            reply = f"Unsubscribed from {what} on {domain}"
        else:
            reply = f"This room was not subscribed to {what} on {domain}"
        await handler.chat.send_message(message.room_id, reply, MSGTYPE_TEXT)
        return

    handler.registry.subscribe(key, message.room_id)
    logger.info(f"Subscribing room {message.room_id} to {key!r} on {domain}")
    if handler.confirm:
        await handler.chat.send_message(
            message.room_id, f"Subscribed to {what} on {domain}", MSGTYPE_TEXT
        )


class MessageRouter:
    """Runs handlers in order until one of them returns ``STOP``."""

    def __init__(self, handlers: Sequence[MessageHandler]) -> None:
        self.handlers = list(handlers)

    async def dispatch(self, message: RoomMessage) -> None:
        for handler in self.handlers:
            try:
                result = await handler.handle(message)
            except Exception:
                logger.exception(f"{type(handler).__name__} failed on message in {message.room_id}")
                continue
            if result is HandleResult.STOP:
                break
