from __future__ import annotations

from dataclasses import asdict, dataclass, replace

from .constants import (
    DEFAULT_HOST,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PORT,
    NAME_MAX_CHARS,
    WRITE_TIMEOUT_S,
)


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_workers: int = DEFAULT_MAX_WORKERS
    name_max_chars: int = NAME_MAX_CHARS
    write_timeout_s: float = WRITE_TIMEOUT_S
    activity_log_path: str | None = None
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_INT_KEYS = ("port", "max_workers", "name_max_chars")
_FLOAT_KEYS = ("write_timeout_s",)
_OPTIONAL_STR_KEYS = ("activity_log_path", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: RelayRuntimeConfig, data: dict) -> RelayRuntimeConfig:
    relay = data.get("relay") if isinstance(data, dict) else None
    if isinstance(relay, dict):
        data = {**data, **relay}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped = {
            field: log_table.get(key)
            for key, field in _LOGGING_KEYS.items()
            if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the file was read from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _INT_KEYS:
        if key in updates:
            try:
                updates[key] = int(updates[key])
            except (TypeError, ValueError) as e:
                raise ValueError(f"{key} must be an integer: {updates[key]!r}") from e

    for key in _FLOAT_KEYS:
        if key in updates:
            try:
                updates[key] = float(updates[key])
            except (TypeError, ValueError) as e:
                raise ValueError(f"{key} must be a number: {updates[key]!r}") from e

    if "log_console" in updates:
        updates["log_console"] = bool(updates["log_console"])

    for key in _OPTIONAL_STR_KEYS:
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(base, **updates) if updates else base


def load_config_file(base: RelayRuntimeConfig, path: str) -> RelayRuntimeConfig:
    return apply_config_data(base, load_toml(path))
