"""HTTP clients used by the agent, including one that retries server errors."""

from __future__ import annotations

import io
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field, replace
from typing import BinaryIO, Callable, Protocol

from metrical.agent_config import DEFAULT_HTTP_TIMEOUT

_BODY_PREVIEW_SIZE = 1024


class RequestError(Exception):
    """Raised when a request could not be completed successfully."""


@dataclass
class HTTPRequest:
    """An outgoing HTTP request."""

    method: str
    url: str
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class HTTPResponse:
    """A received HTTP response with a readable body stream."""

    status_code: int
    body: BinaryIO = field(default_factory=io.BytesIO)
    headers: dict[str, str] = field(default_factory=dict)


class HTTPClient(Protocol):
    """Minimal interface the agent needs from an HTTP client."""

    def do(self, request: HTTPRequest) -> HTTPResponse:
        """Send ``request`` and return the response."""

    def post(self, url: str, content_type: str, body: bytes) -> HTTPResponse:
        """POST ``body`` to ``url`` with the given content type."""


class UrllibHTTPClient:
    """HTTP client on top of urllib; non-2xx statuses are returned, not raised."""

    def __init__(self, timeout: float = DEFAULT_HTTP_TIMEOUT) -> None:
        self.timeout = timeout

    def do(self, request: HTTPRequest) -> HTTPResponse:
        raw = urllib.request.Request(
            request.url,
            data=request.body or None,
            headers=dict(request.headers),
            method=request.method,
        )
        try:
            with urllib.request.urlopen(raw, timeout=self.timeout) as resp:
                return HTTPResponse(resp.status, io.BytesIO(resp.read()), dict(resp.headers))
        except urllib.error.HTTPError as exc:
            with exc:
                return HTTPResponse(exc.code, io.BytesIO(exc.read()), dict(exc.headers or {}))
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise RequestError(f"{request.method} {request.url}: {exc}") from exc

    def post(self, url: str, content_type: str, body: bytes) -> HTTPResponse:
        return self.do(HTTPRequest("POST", url, body, {"Content-Type": content_type}))


def read_response_body(response: HTTPResponse, logger: logging.Logger | None = None) -> str:
    """Read up to 1 KiB of the body for diagnostics; read errors are appended."""
    chunks: list[bytes] = []
    remaining = _BODY_PREVIEW_SIZE
    error: Exception | None = None
    try:
        while remaining > 0:
            chunk = response.body.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
    except (OSError, ValueError) as exc:
        error = exc
    text = b"".join(chunks).decode("utf-8", errors="replace")
    if error is not None:
        if logger is not None:
            logger.warning("failed to read response body: %s", error)
        text += f" (read error: {error})"
    return text


class RetryHTTPClient:
    """Wraps another client and retries network failures and 5xx responses."""

    def __init__(
        self,
        client: HTTPClient,
        max_retries: int,
        retry_delay: float,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = logger

    def do(self, request: HTTPRequest) -> HTTPResponse:
        return self._with_retry(
            lambda: self.client.do(replace(request, headers=dict(request.headers)))
        )

    def post(self, url: str, content_type: str, body: bytes) -> HTTPResponse:
        return self._with_retry(lambda: self.client.post(url, content_type, body))

    def _with_retry(self, send: Callable[[], HTTPResponse]) -> HTTPResponse:
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            is_last = attempt == self.max_retries
            try:
                response = send()
            except (RequestError, OSError) as exc:
                last_error = exc
                if is_last:
                    raise RequestError(
                        f"failed after {self.max_retries} attempts: {exc}"
                    ) from exc
                time.sleep(self.retry_delay)
                continue

            status = response.status_code
            if status == 200:
                return response

            body_text = read_response_body(response, self.logger)
            response.body.close()

            if 500 <= status < 600:
                if is_last:
                    raise RequestError(
                        f"server error after {self.max_retries} attempts: "
                        f"status {status}: {body_text}"
                    )
                time.sleep(self.retry_delay)
                continue

            raise RequestError(f"client error: status {status}: {body_text}")

        raise RequestError(
            f"failed to send request after {self.max_retries} attempts: {last_error}"
        )