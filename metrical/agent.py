"""Metrics agent: polls runtime statistics and reports them to a server."""

from __future__ import annotations

import gzip
import json
import logging
import threading
from typing import Any

from metrical.agent_config import DEFAULT_HTTP_TIMEOUT, AgentConfig
from metrical.http_client import (
    HTTPClient,
    HTTPRequest,
    RequestError,
    RetryHTTPClient,
    UrllibHTTPClient,
)
from metrical.metrics import (
    Metric,
    Metrics,
    MetricType,
    fill_additional_metrics,
    fill_runtime_metrics,
    read_mem_stats,
    update_counter_metrics,
)

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 0.1


class MetricSendError(Exception):
    """Raised when a metric could not be delivered to the server."""


class Agent:
    """Collects metrics on one interval and reports them on another."""

    def __init__(
        self,
        config: AgentConfig,
        logger: logging.Logger | None = None,
        http_client: HTTPClient | None = None,
    ) -> None:
        self.config = config
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.metrics = Metrics()
        if http_client is None:
            http_client = RetryHTTPClient(
                UrllibHTTPClient(DEFAULT_HTTP_TIMEOUT),
                DEFAULT_MAX_RETRIES,
                DEFAULT_RETRY_DELAY,
                self.logger,
            )
        self.http_client = http_client
        self.done = threading.Event()
        self._lock = threading.Lock()

    def stop(self) -> None:
        """Ask the polling and reporting loops to finish."""
        self.logger.info("stopping agent")
        self.done.set()

    def run(self) -> None:
        """Start polling and reporting; block until stop() is called."""
        workers = (
            threading.Thread(target=self._poll_loop, name="metrics-poll", daemon=True),
            threading.Thread(target=self._report_loop, name="metrics-report", daemon=True),
        )
        for worker in workers:
            worker.start()
        self.done.wait()
        self.logger.info("agent stopped gracefully")

    def _poll_loop(self) -> None:
        while not self.done.wait(self.config.poll_interval):
            self.collect_metrics()
        self.logger.info("polling stopped")

    def _report_loop(self) -> None:
        while not self.done.wait(self.config.report_interval):
            self.send_metrics()
        self.logger.info("reporting stopped")

    def collect_metrics(self) -> None:
        """Refresh runtime gauges, the random gauge and the poll counter."""
        with self._lock:
            fill_runtime_metrics(self.metrics, read_mem_stats())
            fill_additional_metrics(self.metrics)
            update_counter_metrics(self.metrics)
            gauges = len(self.metrics.gauges)
            counters = len(self.metrics.counters)

        total = gauges + counters
        if self.config.verbose_logging:
            self.logger.info(
                "collected metrics: total=%d gauges=%d counters=%d", total, gauges, counters
            )
        else:
            self.logger.info("collected metrics: total=%d", total)

    def send_metrics(self) -> tuple[int, int]:
        """Send every metric; return the counts of successes and failures."""
        with self._lock:
            snapshot = self.metrics.all_metrics()

        sent = failed = 0
        for name, value in snapshot.items():
            try:
                self.send_single_metric_json(name, value)
            except (TypeError, MetricSendError) as exc:
                failed += 1
                if self.config.verbose_logging:
                    self.logger.error("error sending metric %s: %s", name, exc)
            else:
                sent += 1

        if failed:
            self.logger.warning("sent metrics with errors: successful=%d failed=%d", sent, failed)
        else:
            self.logger.info("successfully sent metrics: count=%d", sent)
        return sent, failed

    def send_single_metric_json(self, name: str, value: Any) -> None:
        """Send one metric as gzip-compressed JSON."""
        metric = self.prepare_metric_json(name, value)
        try:
            self.send_json_request(metric)
        except MetricSendError as exc:
            raise MetricSendError(f"failed to send metric {name}: {exc}") from exc
        if self.config.verbose_logging:
            self.logger.debug(
                "sent metric successfully: name=%s type=%s status=200", metric.id, metric.mtype
            )

    def prepare_metric_json(self, name: str, value: Any) -> Metric:
        """Turn a float into a gauge and an int into a counter."""
        if isinstance(value, float):
            return Metric(id=name, mtype=MetricType.GAUGE.value, value=value)
        if isinstance(value, int) and not isinstance(value, bool):
            return Metric(id=name, mtype=MetricType.COUNTER.value, delta=value)
        raise TypeError(f"unknown metric type for {name}: {type(value).__name__}")

    def compress_data(self, data: bytes) -> bytes:
        """Return ``data`` compressed with gzip."""
        return gzip.compress(data)

    def send_json_request(self, metric: Metric) -> None:
        """POST the metric to the server's /update endpoint."""
        server_url = self.config.server_url
        if not server_url.startswith(("http://", "https://")):
            server_url = "http://" + server_url
        url = f"{server_url}/update"

        payload = json.dumps(metric.to_dict(), separators=(",", ":")).encode("utf-8")
        request = HTTPRequest(
            "POST",
            url,
            self.compress_data(payload),
            {
                "Content-Type": "application/json",
                "Content-Encoding": "gzip",
                "Accept-Encoding": "gzip",
            },
        )

        try:
            response = self.http_client.do(request)
        except RequestError as exc:
            raise MetricSendError(f"failed to send HTTP request with retry: {exc}") from exc
        try:
            status = response.status_code
        finally:
            response.body.close()

        if status != 200:
            raise MetricSendError(f"server returned status {status}")