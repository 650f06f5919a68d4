"""Command line parsing and address validation for the metrics server."""

from __future__ import annotations

import argparse
import logging
import os
import re
import socket
import sys
from collections.abc import Sequence
from dataclasses import dataclass

VERSION = "dev"

DEFAULT_ADDRESS = "localhost:8080"
DEFAULT_STORE_INTERVAL = 300
DEFAULT_FILE_STORAGE_PATH = "/tmp/metrics-db.json"
DEFAULT_RESTORE = True

_DESCRIPTION = """\
HTTP сервер для приема метрик от агентов по протоколу HTTP.

Environment variables:
  ADDRESS: адрес эндпоинта HTTP-сервера
  STORE_INTERVAL: интервал сохранения метрик в секундах (по умолчанию 300)
  FILE_STORAGE_PATH: путь к файлу для сохранения метрик
  RESTORE: загружать ли метрики при старте (true/false)"""

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_RESTORE_PREFIXES = ("--restore=", "-r=")

_SIGNED_PORT = re.compile(r"([+-]?)(\d+)", re.ASCII)
_PADDED_PORT = re.compile(r"[ \t\n\v\f\r]*\+?(\d+)", re.ASCII)
_INT = re.compile(r"[+-]?\d+", re.ASCII)

log = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Settings the server is started with."""

    address: str = DEFAULT_ADDRESS
    store_interval: int = DEFAULT_STORE_INTERVAL
    file_storage_path: str = DEFAULT_FILE_STORAGE_PATH
    restore: bool = DEFAULT_RESTORE


class HelpRequestedError(Exception):
    """Raised when the help text was requested instead of a run."""

    def __init__(self) -> None:
        super().__init__("help requested")


class VersionRequestedError(Exception):
    """Raised when the version was requested instead of a run."""

    def __init__(self) -> None:
        super().__init__("version requested")


class InvalidAddressError(ValueError):
    """Raised when the server address cannot be used."""

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"некорректный адрес '{address}': {reason}")


class UnknownArgumentsError(ValueError):
    """Raised when positional arguments are given to the server."""

    def __init__(self, arguments: Sequence[str]) -> None:
        self.arguments = list(arguments)
        super().__init__(f"неизвестные аргументы: [{' '.join(self.arguments)}]")


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise ValueError(message)


def _split_host_port(hostport: str) -> tuple[str, str]:
    """Split "host:port" or "[host]:port"; raise ValueError when malformed."""
    i = hostport.rfind(":")
    if i < 0:
        raise ValueError("missing port in address")
    j = k = 0
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError("missing ']' in address")
        if end + 1 == len(hostport):
            raise ValueError("missing port in address")
        if end + 1 != i:
            if hostport[end + 1] == ":":
                raise ValueError("too many colons in address")
            raise ValueError("missing port in address")
        host = hostport[1:end]
        j, k = 1, end + 1
    else:
        host = hostport[:i]
        if ":" in host:
            raise ValueError("too many colons in address")
    if "[" in hostport[j:]:
        raise ValueError("unexpected '[' in address")
    if "]" in hostport[k:]:
        raise ValueError("unexpected ']' in address")
    return host, hostport[i + 1 :]


def _lookup_port(service: str) -> int:
    """Resolve a TCP port given as a number or a service name."""
    if service == "":
        port = 0
    elif (match := _SIGNED_PORT.fullmatch(service)) is not None:
        port = int(match.group(2))
        if match.group(1) == "-":
            port = -port
    elif (match := _PADDED_PORT.fullmatch(service)) is not None:
        port = int(match.group(1))
    else:
        try:
            port = socket.getservbyname(service, "tcp")
        except (OSError, ValueError, UnicodeError) as exc:
            raise ValueError(f"unknown port {service!r}") from exc
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"invalid port {service!r}")
    return port


def validate_address(addr: str) -> int:
    """Check ``addr`` ("host:port" or a bare port) and return its port number."""
    if addr == "":
        raise InvalidAddressError(addr, "адрес не может быть пустым")

    try:
        host, port = _split_host_port(addr)
    except ValueError:
        try:
            return _lookup_port(addr)
        except ValueError:
            raise InvalidAddressError(addr, "некорректный формат адреса") from None

    if host == "" and port == "":
        raise InvalidAddressError(addr, "адрес должен содержать хост или порт")
    if port == "":
        raise InvalidAddressError(addr, "порт не может быть пустым")
    try:
        return _lookup_port(port)
    except ValueError:
        raise InvalidAddressError(addr, "некорректный порт") from None


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean {text!r}")


def _parse_int(text: str) -> int:
    if _INT.fullmatch(text) is None:
        raise ValueError(f"invalid integer {text!r}")
    return int(text)


def get_final_value(env_key: str, flag_value: str, default_value: str) -> str:
    """Resolve a string setting: non-empty environment value, then flag, then default."""
    env_value = os.environ.get(env_key, "")
    if env_value:
        return env_value
    if flag_value != default_value:
        return flag_value
    return default_value


def get_final_int_value(env_key: str, flag_value: int, default_value: int) -> int:
    """Resolve an integer setting: valid non-empty environment value, else the flag."""
    env_value = os.environ.get(env_key, "")
    if env_value:
        try:
            return _parse_int(env_value)
        except ValueError:
            pass
    return flag_value


def get_final_bool_value(env_key: str, flag_value: bool, default_value: bool) -> bool:
    """Resolve a boolean setting: valid non-empty environment value, else the flag."""
    env_value = os.environ.get(env_key, "")
    if env_value:
        try:
            return _parse_bool(env_value)
        except ValueError:
            pass
    return flag_value


def _extract_restore(argv: Sequence[str]) -> tuple[list[str], bool | None]:
    """Pull "--restore=VALUE" style tokens out of argv."""
    remaining: list[str] = []
    restore: bool | None = None
    tokens = iter(argv)
    for token in tokens:
        if token == "--":
            remaining.append(token)
            remaining.extend(tokens)
            break
        prefix = next((p for p in _RESTORE_PREFIXES if token.startswith(p)), None)
        if prefix is None:
            remaining.append(token)
            continue
        value = token[len(prefix) :]
        try:
            restore = _parse_bool(value)
        except ValueError:
            raise ValueError(
                f'invalid argument "{value}" for "-r, --restore" flag'
            ) from None
    return remaining, restore


def _build_parser() -> _Parser:
    parser = _Parser(
        prog="server",
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "-a", "--address", default=DEFAULT_ADDRESS, help="адрес эндпоинта HTTP-сервера"
    )
    parser.add_argument(
        "-i",
        "--interval",
        dest="store_interval",
        type=_parse_int,
        default=DEFAULT_STORE_INTERVAL,
        help="интервал сохранения метрик в секундах (0 для синхронного сохранения)",
    )
    parser.add_argument(
        "-f",
        "--file",
        dest="file_storage_path",
        default=DEFAULT_FILE_STORAGE_PATH,
        help="путь к файлу для сохранения метрик",
    )
    parser.add_argument(
        "-r",
        "--restore",
        action="store_true",
        default=DEFAULT_RESTORE,
        help="загружать ли метрики при старте",
    )
    parser.add_argument("-h", "--help", action="store_true", help="help for server")
    parser.add_argument("-v", "--version", action="store_true", help="version for server")
    parser.add_argument("extra", nargs="*", help=argparse.SUPPRESS)
    return parser


def parse_flags(argv: Sequence[str] | None = None) -> ServerConfig:
    """Parse arguments and the environment into a validated ServerConfig."""
    if argv is None:
        argv = sys.argv[1:]
    tokens, restore_override = _extract_restore(argv)
    parser = _build_parser()
    args = parser.parse_intermixed_args(tokens)

    if args.help:
        parser.print_help()
        raise HelpRequestedError()
    if args.version:
        print(f"server version {VERSION}")
        raise VersionRequestedError()
    if args.extra:
        raise UnknownArgumentsError(args.extra)

    restore = args.restore if restore_override is None else restore_override
    config = ServerConfig(
        address=get_final_value("ADDRESS", args.address, DEFAULT_ADDRESS),
        store_interval=get_final_int_value(
            "STORE_INTERVAL", args.store_interval, DEFAULT_STORE_INTERVAL
        ),
        file_storage_path=get_final_value(
            "FILE_STORAGE_PATH", args.file_storage_path, DEFAULT_FILE_STORAGE_PATH
        ),
        restore=get_final_bool_value("RESTORE", restore, DEFAULT_RESTORE),
    )
    validate_address(config.address)
    return config


def handle_error(err: BaseException | None) -> int | None:
    """Log ``err`` and return the exit status it calls for; None when there is no error."""
    if err is None:
        return None
    if isinstance(err, (HelpRequestedError, VersionRequestedError)):
        return 0
    if isinstance(err, InvalidAddressError):
        log.error("configuration error: %s", err)
        return 1
    log.error("fatal error: %s", err)
    return 1