"""Server application configuration built from an address string."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AppConfig:
    """Where the server listens and how it persists metrics."""

    addr: str
    port: str
    file_storage_path: str = ""
    restore: bool = False
    store_interval: int = 0

    @property
    def address(self) -> str:
        """The "host:port" string the server binds to."""
        return f"{self.addr}:{self.port}"


def parse_addr(addr: str) -> tuple[str, str]:
    """Split at the first colon; a string without one is a port on localhost."""
    if ":" in addr:
        host, _, port = addr.partition(":")
        return host, port
    return "localhost", addr


def new_config(
    addr: str, store_interval: int, file_storage_path: str, restore: bool
) -> AppConfig:
    """Build an AppConfig from an address string and storage settings."""
    host, port = parse_addr(addr)
    return AppConfig(
        addr=host,
        port=port,
        file_storage_path=file_storage_path,
        restore=restore,
        store_interval=store_interval,
    )