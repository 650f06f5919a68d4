"""Agent configuration: server address and polling/reporting intervals."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SERVER_URL = "http://localhost:8080"
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_REPORT_INTERVAL = 10.0
DEFAULT_HTTP_TIMEOUT = 10.0


class ConfigError(ValueError):
    """Raised when an agent configuration is not usable."""


@dataclass
class AgentConfig:
    """Settings for the metrics agent. Intervals are in seconds."""

    server_url: str = DEFAULT_SERVER_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    report_interval: float = DEFAULT_REPORT_INTERVAL
    verbose_logging: bool = False

    @classmethod
    def with_url(cls, server_url: str) -> AgentConfig:
        """Build a default configuration that targets ``server_url``."""
        return cls(server_url=server_url)

    def validate(self) -> None:
        """Raise ConfigError if any setting is invalid."""
        if not self.server_url:
            raise ConfigError("server URL cannot be empty")
        if self.poll_interval <= 0:
            raise ConfigError("poll interval must be positive")
        if self.report_interval <= 0:
            raise ConfigError("report interval must be positive")

    def is_valid(self) -> bool:
        """Return True when validate() would not raise."""
        try:
            self.validate()
        except ConfigError:
            return False
        return True