"""Matrix client-server API, just enough for a notification bot."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

CLIENT_API = "/_matrix/client/v3"
HTTP_TIMEOUT_SECONDS = 15
SYNC_RETRY_SECONDS = 5

MSGTYPE_TEXT = "m.text"
MSGTYPE_NOTICE = "m.notice"
HTML_FORMAT = "org.matrix.custom.html"

JSONDict = dict[str, Any]


class MatrixError(RuntimeError):
    """Raised when the homeserver answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Matrix error: {status_code} {body}")
        self.status_code = status_code


@dataclass(frozen=True)
class RoomMessage:
    room_id: str
    sender: str
    body: str


MessageCallback = Callable[[RoomMessage], Awaitable[None]]


def _room_path(room_id: str) -> str:
    return quote(room_id, safe="")


def iter_room_messages(sync: JSONDict, own_user_id: str = "") -> Iterator[RoomMessage]:
    """Text messages from the joined rooms of one ``/sync`` response."""
    joined = (sync.get("rooms") or {}).get("join") or {}
    for room_id, room in joined.items():
        events = ((room or {}).get("timeline") or {}).get("events") or []
        for event in events:
            if event.get("type") != "m.room.message":
                continue
            sender = event.get("sender") or ""
            if own_user_id and sender == own_user_id:
                continue
            content = event.get("content") or {}
            body = content.get("body")
            if content.get("msgtype") not in (MSGTYPE_TEXT, MSGTYPE_NOTICE):
                continue
            if not isinstance(body, str) or not body:
                continue
            yield RoomMessage(room_id=room_id, sender=sender, body=body)


def iter_invites(sync: JSONDict) -> Iterator[str]:
    invited = (sync.get("rooms") or {}).get("invite") or {}
    yield from invited.keys()


class MatrixClient:
    """
    Thin async wrapper around the homeserver HTTP API.

    One ``httpx.AsyncClient`` per call; ``transport`` is forwarded so tests
    can plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        homeserver_url: str,
        *,
        user: str = "",
        password: str = "",
        access_token: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.homeserver_url = homeserver_url.rstrip("/")
        self.user = user
        self._password = password
        self.access_token = access_token
        self.user_id = ""
        self._transport = transport
        self._closed = False

    def _client(self, timeout: float = HTTP_TIMEOUT_SECONDS) -> httpx.AsyncClient:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return httpx.AsyncClient(
            base_url=self.homeserver_url + CLIENT_API,
            headers=headers,
            timeout=timeout,
            transport=self._transport,
        )

    @staticmethod
    def _check(resp: httpx.Response) -> JSONDict:
        if resp.status_code >= 300:
            raise MatrixError(resp.status_code, resp.text)
        return resp.json()

    async def login(self) -> JSONDict:
        """Password login; stores the access token and the bot's user id."""
        payload: JSONDict = {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": self.user},
            "password": self._password,
            "initial_device_display_name": "obs-relay",
        }
        async with self._client() as client:
            r = await client.post("/login", json=payload)
        data = self._check(r)
        self.access_token = data["access_token"]
        self.user_id = data.get("user_id", "")
        logger.info(f"Logged in to {self.homeserver_url} as {self.user_id}")
        return data

    async def whoami(self) -> str:
        async with self._client() as client:
            r = await client.get("/account/whoami")
        self.user_id = self._check(r).get("user_id", "")
        return self.user_id

    async def ensure_logged_in(self) -> None:
        if self.access_token:
            await self.whoami()
        else:
            await self.login()

    async def _send(self, room_id: str, content: JSONDict) -> JSONDict:
        txn_id = uuid.uuid4().hex
        path = f"/rooms/{_room_path(room_id)}/send/m.room.message/{txn_id}"
        async with self._client() as client:
            r = await client.put(path, json=content)
        return self._check(r)

    async def send_message(
        self, room_id: str, text: str, msgtype: str = MSGTYPE_TEXT
    ) -> JSONDict:
        return await self._send(room_id, {"msgtype": msgtype, "body": text})

    async def send_html_message(
        self,
        room_id: str,
        plain: str,
        html: str,
        msgtype: str = MSGTYPE_TEXT,
    ) -> JSONDict:
        """Send a message with a plain-text fallback and an HTML body."""
        content: JSONDict = {
            "msgtype": msgtype,
            "body": plain,
            "format": HTML_FORMAT,
            "formatted_body": html,
        }
        return await self._send(room_id, content)

    async def join(self, room_id: str) -> JSONDict:
        async with self._client() as client:
            r = await client.post(f"/join/{_room_path(room_id)}", json={})
        data = self._check(r)
        logger.info(f"Joined room {room_id}")
        return data

    async def sync(self, since: Optional[str] = None, timeout_ms: int = 0) -> JSONDict:
        params: dict[str, Any] = {"timeout": timeout_ms}
        if since:
            params["since"] = since
        # Long-poll: the HTTP timeout has to outlast the server-side one.
        async with self._client(timeout=HTTP_TIMEOUT_SECONDS + timeout_ms / 1000) as client:
            r = await client.get("/sync", params=params)
        return self._check(r)

    def close(self) -> None:
        self._closed = True

    async def sync_forever(
        self,
        on_message: MessageCallback,
        *,
        timeout_ms: int = 30000,
    ) -> None:
        """
        Receive loop: accept invites and feed new text messages to ``on_message``.

        Messages already present at the first sync are skipped. Failures of
        the callback are logged and do not stop the loop.
        """
        since: Optional[str] = None
        while not self._closed:
            try:
                data = await self.sync(since, timeout_ms if since else 0)
            except (httpx.HTTPError, MatrixError) as exc:
                logger.warning(f"Sync failed: {exc}. Retrying in {SYNC_RETRY_SECONDS}s")
                await asyncio.sleep(SYNC_RETRY_SECONDS)
                continue

            first = since is None
            since = data.get("next_batch") or since

            for room_id in iter_invites(data):
                try:
                    await self.join(room_id)
                except (httpx.HTTPError, MatrixError) as exc:
                    logger.warning(f"Could not join {room_id}: {exc}")

            if first:
                continue

            for message in iter_room_messages(data, self.user_id):
                try:
                    await on_message(message)
                except Exception:
                    logger.exception(f"Handling message in {message.room_id} failed")
