from __future__ import annotations

import os
import time

from .constants import NAME_MAX_CHARS, START_TIME_FORMAT, TIME_FORMAT


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def now_hhmm() -> str:
    return time.strftime(TIME_FORMAT)


def now_stamp() -> str:
    return time.strftime(START_TIME_FORMAT)


def normalize_name(value, *, max_chars: int = NAME_MAX_CHARS) -> str | None:
    if not isinstance(value, str):
        return None

    # Names are used verbatim; "bob" and "bob " are different members.
    if not value:
        return None

    if max_chars and len(value) > int(max_chars):
        return None

    # Names end up inside single protocol lines; keep line breaks and NUL out.
    if "\n" in value or "\r" in value or "\x00" in value:
        return None

    return value
