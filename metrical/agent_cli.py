"""Command line entry point of the metrics agent."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import time
from collections.abc import Sequence

from metrical.agent import Agent
from metrical.agent_config import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REPORT_INTERVAL,
    DEFAULT_SERVER_URL,
    AgentConfig,
    ConfigError,
)

VERSION = "dev"

_SHUTDOWN_GRACE = 1.0
_DEFAULT_POLL_SECONDS = int(DEFAULT_POLL_INTERVAL)
_DEFAULT_REPORT_SECONDS = int(DEFAULT_REPORT_INTERVAL)

_DESCRIPTION = """\
Metrics collection agent that polls runtime metrics and sends them to a server.

Environment variables:
  ADDRESS: HTTP server endpoint address
  POLL_INTERVAL: Poll interval in seconds
  REPORT_INTERVAL: Report interval in seconds"""

log = logging.getLogger("metrical.agent_cli")


class UsageError(ValueError):
    """Raised for bad command line arguments or an invalid configuration."""


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def get_env_or_default(key: str, default: str) -> str:
    """Return the environment variable if set (even empty), else ``default``."""
    return os.environ.get(key, default)


def get_env_int_or_default(key: str, default: int) -> int:
    """Return the environment variable as int if set and valid, else ``default``."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def get_final_value(env_key: str, flag_value: str, default_value: str) -> str:
    """Resolve a string setting: environment, then flag, then default."""
    if env_key in os.environ:
        return os.environ[env_key]
    if flag_value and flag_value != default_value:
        return flag_value
    return default_value


def get_final_int_value(env_key: str, flag_value: int, default_value: int) -> int:
    """Resolve an integer setting: valid environment value, then flag, then default."""
    env_value = os.environ.get(env_key)
    if env_value is not None:
        try:
            return int(env_value)
        except ValueError:
            pass
    if flag_value != default_value:
        return flag_value
    return default_value


def _build_parser() -> _Parser:
    parser = _Parser(
        prog="agent",
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-a",
        "--a",
        dest="server_url",
        default=get_env_or_default("ADDRESS", DEFAULT_SERVER_URL),
        help="HTTP server endpoint address",
    )
    parser.add_argument(
        "-p",
        "--p",
        dest="poll_interval",
        type=int,
        default=get_env_int_or_default("POLL_INTERVAL", _DEFAULT_POLL_SECONDS),
        help="Poll interval in seconds",
    )
    parser.add_argument(
        "-r",
        "--r",
        dest="report_interval",
        type=int,
        default=get_env_int_or_default("REPORT_INTERVAL", _DEFAULT_REPORT_SECONDS),
        help="Report interval in seconds",
    )
    parser.add_argument(
        "-v", "--v", dest="verbose", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument("extra", nargs="*", help=argparse.SUPPRESS)
    return parser


def build_config(argv: Sequence[str] | None = None) -> AgentConfig:
    """Parse arguments and the environment into a validated AgentConfig."""
    args = _build_parser().parse_args(argv)
    if args.extra:
        raise UsageError(f"unknown arguments: [{' '.join(args.extra)}]")

    config = AgentConfig(
        server_url=get_final_value("ADDRESS", args.server_url, DEFAULT_SERVER_URL),
        poll_interval=get_final_int_value(
            "POLL_INTERVAL", args.poll_interval, _DEFAULT_POLL_SECONDS
        ),
        report_interval=get_final_int_value(
            "REPORT_INTERVAL", args.report_interval, _DEFAULT_REPORT_SECONDS
        ),
        verbose_logging=args.verbose,
    )
    try:
        config.validate()
    except ConfigError as exc:
        raise UsageError(f"invalid configuration: {exc}") from exc
    return config


def main(argv: Sequence[str] | None = None) -> int:
    """Run the agent until SIGINT or SIGTERM; return the exit status."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    log.info("Starting metrics agent v%s", VERSION)

    try:
        config = build_config(argv)
    except UsageError as exc:
        log.error("Error: %s", exc)
        return 1

    log.info(
        "Agent configuration: server=%s, poll=%ss, report=%ss, verbose=%s",
        config.server_url,
        config.poll_interval,
        config.report_interval,
        config.verbose_logging,
    )

    agent = Agent(config, logging.getLogger("metrical.agent"))

    def _on_signal(signum: int, _frame: object) -> None:
        log.info("Received signal: %s", signal.Signals(signum).name)
        agent.stop()

    previous = {
        sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        log.info(
            "Starting metrics agent with config: server=%s, poll=%ss, report=%ss",
            config.server_url,
            config.poll_interval,
            config.report_interval,
        )
        agent.run()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    time.sleep(_SHUTDOWN_GRACE)
    log.info("Agent shutdown completed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())