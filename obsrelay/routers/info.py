"""Ruter Ingfo?"""

from __future__ import annotations

from textwrap import dedent

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from obsrelay.config import settings
from obsrelay.utils import SUBSCRIBE_HELP

router = APIRouter()

HTTP_HELP_TEXT = dedent(
    f"""
OBS → Matrix Relay (HTTP Help)

Endpoints
---------
- GET  /       : Health check
- GET  /help   : This text
- GET  /stats  : Subscriptions and recent relays (needs ?key= if ADMIN_HTTP_KEY is set)

Chat
----
{SUBSCRIBE_HELP}

Notes
-----
- Servers: {", ".join(settings.servers)}
- Exchange: {settings.exchange_name}
- Run: uvicorn obsrelay.app:app --host 127.0.0.1 --port 8000
"""
).strip()


@router.get("/", response_class=PlainTextResponse)
def health() -> str:
    return "ok"


@router.get("/help", response_class=PlainTextResponse)
def http_help() -> str:
    return HTTP_HELP_TEXT
