"""Sender - Performs one network exchange per finalized request.

The Sender is the only component that touches the network. The Pooler hands
it a RequestDescriptor and a callback; the Sender invokes the callback exactly
once with (data, TransportResponse, error).

HttpxSender is the default implementation. Exchanges run on a thread pool so
send() returns immediately; the callback fires on the worker thread.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Any, Callable, Protocol

import httpx

from qwikhttp.errors import TransportError
from qwikhttp.models import CachePolicy, RequestDescriptor, TransportResponse

logger = logging.getLogger(__name__)

SenderCallback = Callable[[bytes | None, TransportResponse | None, Exception | None], None]

# Cache-Control values sent for each policy. httpx has no cache of its own, so
# the policy is expressed to intermediaries and the origin instead.
_CACHE_CONTROL: dict[CachePolicy, str | None] = {
    CachePolicy.USE_PROTOCOL: None,
    CachePolicy.RELOAD_IGNORING_CACHE: "no-cache",
    CachePolicy.RETURN_CACHE_ELSE_LOAD: "max-stale",
    CachePolicy.RETURN_CACHE_DONT_LOAD: "only-if-cached",
}


class Sender(Protocol):
    """Capability that performs one exchange and calls back exactly once."""

    def send(self, descriptor: RequestDescriptor, callback: SenderCallback) -> None: ...


def _sanitize_header_value(value: str) -> str:
    """Replace non-ASCII characters in a header value with '?'.

    HTTP headers must contain only ASCII characters per RFC 7230.
    """
    return value.encode("ascii", errors="replace").decode("ascii")


class HttpxSender:
    """Sends requests with httpx on a background thread pool.

    Usage:
        sender = HttpxSender()
        try:
            sender.send(descriptor, callback)
        finally:
            sender.close()

    Or with context manager:
        with HttpxSender() as sender:
            sender.send(descriptor, callback)
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        max_workers: int = 8,
    ) -> None:
        """Initialize the sender.

        Args:
            client: httpx client to use. Created lazily when None.
            max_workers: Size of the worker pool running exchanges.
        """
        self._client = client
        self._owns_client = client is None
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._lock = Lock()

    def __enter__(self) -> "HttpxSender":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Wait for in-flight exchanges, then close the client if we created it.

        Uses try/finally so the client is closed even if pool shutdown raises.
        """
        with self._lock:
            pool, self._pool = self._pool, None
            client = self._client if self._owns_client else None
            if self._owns_client:
                self._client = None
        try:
            if pool is not None:
                pool.shutdown(wait=True)
        finally:
            if client is not None:
                client.close()

    def send(self, descriptor: RequestDescriptor, callback: SenderCallback) -> None:
        """Schedule the exchange; callback runs on a worker thread."""
        pool = self._get_pool()
        future = pool.submit(self._exchange, descriptor, callback)
        future.add_done_callback(_log_callback_failure)

    def _get_pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="qwikhttp"
                )
            return self._pool

    def _get_client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(follow_redirects=True)
            return self._client

    def _exchange(self, descriptor: RequestDescriptor, callback: SenderCallback) -> None:
        try:
            data, response = self.perform(descriptor)
        except TransportError as e:
            callback(None, None, e)
            return
        callback(data, response, None)

    def perform(self, descriptor: RequestDescriptor) -> tuple[bytes, TransportResponse]:
        """Run the exchange synchronously on the calling thread.

        Returns:
            Tuple of (response body, transport metadata).

        Raises:
            TransportError: If the request fails (connection error, timeout, etc.).
        """
        headers = {
            key: _sanitize_header_value(value) for key, value in descriptor.headers.items()
        }
        cache_control = _CACHE_CONTROL.get(descriptor.cache_policy)
        if cache_control and "cache-control" not in {k.lower() for k in headers}:
            headers["Cache-Control"] = cache_control

        client = self._get_client()
        try:
            http_response = client.request(
                method=descriptor.method.value,
                url=descriptor.url,
                headers=headers,
                content=descriptor.body,
                timeout=descriptor.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request error: {e}") from e
        except UnicodeEncodeError as e:
            raise TransportError(
                f"Encoding error: non-ASCII characters in request "
                f"(header key or URL). Character: {e.object[e.start:e.end]!r} "
                f"at position {e.start}. HTTP requires ASCII for these fields."
            ) from e

        return http_response.content, self._convert_response(http_response)

    def _convert_response(self, response: httpx.Response) -> TransportResponse:
        """Convert an httpx Response to TransportResponse (lowercase header keys)."""
        headers: dict[str, str] = {}
        for key, value in response.headers.multi_items():
            key_lower = key.lower()
            if key_lower in headers:
                headers[key_lower] = f"{headers[key_lower]}, {value}"
            else:
                headers[key_lower] = value

        return TransportResponse(
            status_code=response.status_code,
            headers=headers,
            url=str(response.url),
        )


def _log_callback_failure(future: Future) -> None:
    """Surface exceptions raised by handlers on worker threads."""
    error = future.exception()
    if error is not None:
        logger.error("Response handler raised on sender thread", exc_info=error)
