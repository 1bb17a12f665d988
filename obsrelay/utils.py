"""the beautiful world start from here."""

from __future__ import annotations

SUBSCRIBE_HELP = """Subscribe this room by posting:
- PROJECT/PACKAGE, or a package URL, to get build results
- a submit request URL, to get request state changes
Prefix any of these with "unsubscribe " to stop notifications."""


def general_help_text(prefix: str = "") -> str:
    """Text of the bare help command."""
    lines = [
        "Hi, I'm a friendly robot and provide these options:",
        f"{prefix}help         - Print this help",
        f"{prefix}help COMMAND - Print add. help for one of the commands below",
        "",
        SUBSCRIBE_HELP,
    ]
    return "\n".join(lines)


def mask_room_id(room_id: str | None) -> str:
    """
    Hide most of a Matrix room id for public pages.

    Example
    -------
    '!abcdefgh:example.org' → '!abc…:example.org'
    """
    if not room_id:
        return "-"
    local, sep, server = room_id.partition(":")
    if len(local) <= 4:
        return room_id
    return f"{local[:4]}…{sep}{server}"
