"""Relay settings and static server descriptors."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ConnectionDetails:
    """One OBS instance: where its web UI lives and how to reach its broker."""

    domain: str
    login: str
    buildprefix: str
    rabbitprefix: str
    rabbitscope: str


OPENSUSE_CONNECTION = ConnectionDetails(
    domain="opensuse.org",
    login="opensuse:opensuse",
    buildprefix="build",
    rabbitprefix="rabbit",
    rabbitscope="opensuse",
)

SUSE_CONNECTION = ConnectionDetails(
    domain="suse.de",
    login="suse:suse",
    buildprefix="build",
    rabbitprefix="rabbit",
    rabbitscope="suse",
)

KNOWN_SERVERS: dict[str, ConnectionDetails] = {
    "opensuse": OPENSUSE_CONNECTION,
    "suse": SUSE_CONNECTION,
}


@dataclass(frozen=True)
class Settings:
    """App Settings"""

    db_url: str = os.getenv("DB_URL", "sqlite:///./obs_relay.sqlite3")
    timezone: str = os.getenv("TIMEZONE", "Europe/Berlin")
    admin_http_key: str = os.getenv("ADMIN_HTTP_KEY", "")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    matrix_homeserver_url: str = os.getenv("MATRIX_HOMESERVER_URL", "https://matrix.org")
    matrix_user: str = os.getenv("MATRIX_USER", "")
    matrix_password: str = os.getenv("MATRIX_PASSWORD", "")
    matrix_access_token: str = os.getenv("MATRIX_ACCESS_TOKEN", "")
    matrix_sync_timeout_ms: int = int(os.getenv("MATRIX_SYNC_TIMEOUT_MS", "30000"))
    command_prefix: str = os.getenv("COMMAND_PREFIX", "")

    servers: tuple[str, ...] = tuple(
        s.strip().lower()
        for s in os.getenv("RELAY_SERVERS", "opensuse,suse").split(",")
        if s.strip()
    )
    exchange_name: str = os.getenv("RELAY_EXCHANGE", "pubsub")
    confirm_subscriptions: bool = _env_flag("RELAY_CONFIRM_SUBSCRIPTIONS")
    dedupe_subscriptions: bool = _env_flag("RELAY_DEDUPE_SUBSCRIPTIONS")
    reject_malformed: bool = _env_flag("RELAY_REJECT_MALFORMED")
    autostart: bool = _env_flag("RELAY_AUTOSTART", "true")


settings = Settings()


def resolve_servers(names: tuple[str, ...] | list[str]) -> list[ConnectionDetails]:
    """Map configured server names to their descriptors.

    Raises
    ------
    ValueError
        If a name is not one of ``KNOWN_SERVERS``.
    """
    unknown = [n for n in names if n not in KNOWN_SERVERS]
    if unknown:
        raise ValueError(
            f"Unknown server(s) in RELAY_SERVERS: {', '.join(unknown)}. "
            f"Known: {', '.join(sorted(KNOWN_SERVERS))}"
        )
    return [KNOWN_SERVERS[n] for n in names]
