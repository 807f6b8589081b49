"""Formatting and parsing of chatrelay protocol lines.

Every function here is pure. Parsing never raises: free-form chat text is
valid input and anything that is not a recognized command is reported as
such through the return value.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple

from .constants import (
    CMD_COORDINATOR,
    CMD_MEMBERS,
    CMD_MESSAGE,
    CMD_NAMEACCEPTED,
    CMD_SUBMITNAME,
    NO_COORDINATOR,
    PM_CLOSE,
    PM_PREFIX,
    QUIT_PREFIX,
)


class PrivateMessage(NamedTuple):
    target: str
    body: str


def encode_submit_name() -> str:
    return CMD_SUBMITNAME


def encode_name_accepted(name: str) -> str:
    return f"{CMD_NAMEACCEPTED} {name}"


def encode_message(text: str) -> str:
    return f"{CMD_MESSAGE} {text}"


def encode_coordinator(name: str | None) -> str:
    return f"{CMD_COORDINATOR} {name if name is not None else NO_COORDINATOR}"


def render_members(names: Iterable[str]) -> str:
    return "[" + ", ".join(sorted(names)) + "]"


def encode_members(names: Iterable[str]) -> str:
    return f"{CMD_MEMBERS} {render_members(names)}"


def parse_private(line: str) -> tuple[bool, PrivateMessage | None]:
    """Recognize a ``/[name]body`` private message.

    Returns ``(False, None)`` for lines that are not private-message commands,
    ``(True, None)`` when the command is malformed (no closing bracket), and
    ``(True, PrivateMessage)`` otherwise.
    """
    if not line.startswith(PM_PREFIX):
        return False, None

    end = line.find(PM_CLOSE, len(PM_PREFIX))
    if end < 0:
        return True, None

    # The target is taken exactly as written, so it must match a name verbatim.
    target = line[len(PM_PREFIX) : end]
    body = line[end + len(PM_CLOSE) :]
    return True, PrivateMessage(target, body)


def parse_quit(line: str) -> bool:
    return line.lower().startswith(QUIT_PREFIX)


# Display text carried in MESSAGE lines.


def joined_text(name: str, t: str) -> str:
    return f"{name} has joined ({t})"


def first_member_text(t: str) -> str:
    return f"You are the first to join and the coordinator of this chat ({t})"


def chat_text(name: str, t: str, text: str) -> str:
    return f"{name}({t}): {text}"


def private_text(sender: str, t: str, body: str) -> str:
    return f"{sender}(pm)({t}): {body}"


def private_echo_text(target: str, t: str, body: str) -> str:
    return f"pm to {target}({t}): {body}"


def wrong_command_text(t: str) -> str:
    return f"Wrong use of command! ({t})"


def left_text(name: str, t: str) -> str:
    return f"{name} has left ({t})"


def left_new_coordinator_text(name: str, coordinator: str | None, t: str) -> str:
    shown = coordinator if coordinator is not None else NO_COORDINATOR
    return f"{name} has left. The new coordinator is: {shown}({t})"
