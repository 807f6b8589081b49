from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

import tomlkit

from .config import RelayRuntimeConfig, load_config_file
from .logging_config import configure_logging
from .service import RelayService
from .util import expand_path


def relay_home() -> Path:
    """Directory for the config and activity log: $CHATRELAY_HOME, else ~/.chatrelay."""
    return Path(expand_path(os.environ.get("CHATRELAY_HOME") or "~/.chatrelay"))


def default_config_document(activity_log_path: str) -> tomlkit.TOMLDocument:
    defaults = RelayRuntimeConfig()

    doc = tomlkit.document()
    doc.add(tomlkit.comment("chatrelay configuration (TOML)"))
    doc.add(tomlkit.comment(""))
    doc.add(tomlkit.comment("This file was created on first run."))
    doc.add(tomlkit.comment("Edit it, then start chatrelay again."))
    doc.add(tomlkit.nl())

    relay = tomlkit.table()
    relay.add(tomlkit.comment("Address and TCP port to listen on."))
    relay.add("host", defaults.host)
    relay.add("port", defaults.port)
    relay.add(tomlkit.nl())
    relay.add(tomlkit.comment("Connections served concurrently; further clients wait for a free worker."))
    relay.add("max_workers", defaults.max_workers)
    relay.add(tomlkit.nl())
    relay.add(tomlkit.comment("Maximum accepted display name length (characters). 0 disables the limit."))
    relay.add("name_max_chars", defaults.name_max_chars)
    relay.add(tomlkit.nl())
    relay.add(tomlkit.comment("Seconds one line may take to reach a client before it is disconnected. 0 waits forever."))
    relay.add("write_timeout_s", defaults.write_timeout_s)
    relay.add(tomlkit.nl())
    relay.add(tomlkit.comment("Append-only record of joins, leaves and messages. Empty disables it."))
    relay.add("activity_log_path", activity_log_path)
    doc.add("relay", relay)

    logging_table = tomlkit.table()
    logging_table.add(tomlkit.comment("Log level for chatrelay itself."))
    logging_table.add("level", defaults.log_level)
    logging_table.add(tomlkit.comment("Log to stderr (systemd/journald friendly)."))
    logging_table.add("console", defaults.log_console)
    logging_table.add(tomlkit.comment("Optional file path for logs (leave empty to disable)."))
    logging_table.add("file", "")
    logging_table.add(tomlkit.comment("Log format and optional date format."))
    logging_table.add("format", defaults.log_format)
    logging_table.add("datefmt", "")
    doc.add("logging", logging_table)

    return doc


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        os.makedirs(cfg_dir, exist_ok=True)
        try:
            os.chmod(cfg_dir, 0o700)
        except OSError:
            pass

    doc = default_config_document(str(relay_home() / "activity.log"))
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(tomlkit.dumps(doc))


def _ensure_first_run_files(config_path: str) -> bool:
    if os.path.exists(config_path):
        return False
    _write_default_config(config_path)
    return True


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chatrelay", description="Run a chatrelay server")

    p.add_argument(
        "--config",
        default=str(relay_home() / "chatrelay.toml"),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="Listen address (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help="Listen port (default: 59001)")
    p.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Number of connections served concurrently",
    )
    p.add_argument(
        "--name-max-chars",
        type=int,
        default=None,
        help="Maximum display name length (0 disables)",
    )
    p.add_argument(
        "--write-timeout",
        type=float,
        default=None,
        help="Seconds a write to one client may block before it is dropped (0 disables)",
    )
    p.add_argument(
        "--activity-log",
        default=None,
        help="Activity log path override (empty disables). Default comes from config.",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> RelayRuntimeConfig:
    config_path = str(args.config)

    cfg = RelayRuntimeConfig(config_path=config_path)
    if config_path and os.path.exists(config_path):
        cfg = load_config_file(cfg, config_path)

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.max_workers is not None:
        cfg = replace(cfg, max_workers=int(args.max_workers))
    if args.name_max_chars is not None:
        cfg = replace(cfg, name_max_chars=int(args.name_max_chars))
    if args.write_timeout is not None:
        cfg = replace(cfg, write_timeout_s=float(args.write_timeout))
    if args.activity_log is not None:
        cfg = replace(cfg, activity_log_path=str(args.activity_log) or None)

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) or None)

    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if _ensure_first_run_files(config_path):
        print(
            "Created default chatrelay config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run chatrelay.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = build_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = RelayService(cfg)
    svc.start()
    svc.run_forever()


if __name__ == "__main__":
    main()
