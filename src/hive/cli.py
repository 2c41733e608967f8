"""Command-line launcher for the hive listeners."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Final, Optional, Sequence

from hive.bootstrap import serve_forever
from hive.config import HiveSettings
from hive.errors import ConfigurationError, FatalCommand

LOGGER = logging.getLogger(__name__)

LOG_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the hive worker and operator listeners.")
    parser.add_argument("--worker-host", default=None, help="Worker bind address (overrides settings/env).")
    parser.add_argument("--worker-port", type=int, default=None, help="Worker port (overrides settings/env).")
    parser.add_argument("--operator-host", default=None, help="Operator bind address (overrides settings/env).")
    parser.add_argument("--operator-port", type=int, default=None, help="Operator port (overrides settings/env).")
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        default=None,
        help="Log level for hive output (overrides settings/env).",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI colours in operator output.",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> HiveSettings:
    overrides: dict[str, Any] = {
        "worker_host": args.worker_host,
        "worker_port": args.worker_port,
        "operator_host": args.operator_host,
        "operator_port": args.operator_port,
        "log_level": args.log_level,
    }
    if args.no_color:
        overrides["color"] = False
    return HiveSettings(**{key: value for key, value in overrides.items() if value is not None})


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    settings = build_settings(args)

    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)
    if settings.config_path:
        LOGGER.info("Loaded hive settings from %s", settings.config_path)

    try:
        asyncio.run(serve_forever(settings))
    except ConfigurationError as exc:
        raise SystemExit(str(exc)) from exc
    except FatalCommand as exc:
        LOGGER.info("Hive stopped: %s", exc)
        sys.exit(exc.exit_code)
    except KeyboardInterrupt:
        LOGGER.info("Hive interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
