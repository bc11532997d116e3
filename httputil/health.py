"""HTTP health checks.

A health check sends a single GET request and treats anything other than
200 OK as unhealthy. The response body is always drained, so the connection
can be reused, and always closed. Cancelling the request context, or reaching
its deadline, shuts down the connection of a check that is in flight.
"""

import socket
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Iterator

import requests
from requests.adapters import HTTPAdapter

from .context import RequestContext
from .errors import (
    ContextError,
    DeadlineExceededError,
    HealthCheckError,
    ResponseCloseError,
    UnhealthyStatusError,
)
from .request_builder import get
from .utils.logger import HealthCheckLogContext, get_logger

logger = get_logger(__name__)

# urllib3 rejects a zero timeout
MIN_TIMEOUT = 0.001
DRAIN_CHUNK_SIZE = 8192


class AbortableAdapter(HTTPAdapter):
    """HTTP adapter whose open connections can be shut down from another thread.

    Connections are tracked as they connect. abort() shuts down the socket of
    every tracked connection, which wakes a thread blocked reading from it,
    and any connection made afterwards is shut down as soon as it connects.
    """

    def __init__(self, **kwargs: Any):
        self._lock = threading.Lock()
        self._connections: "weakref.WeakSet[Any]" = weakref.WeakSet()
        self.aborted = False
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        """Initialize the connection pool with connection classes that report to this adapter."""
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            scheme: self._tracking_pool_class(pool_cls)
            for scheme, pool_cls in self.poolmanager.pool_classes_by_scheme.items()
        }

    def _tracking_pool_class(self, pool_cls: type) -> type:
        adapter = self

        class TrackingConnection(pool_cls.ConnectionCls):  # type: ignore[name-defined]
            def connect(self) -> None:
                super().connect()
                adapter._track(self)

        return type(pool_cls.__name__, (pool_cls,), {"ConnectionCls": TrackingConnection})

    def _track(self, conn: Any) -> None:
        with self._lock:
            self._connections.add(conn)
            aborted = self.aborted
        if aborted:
            _shutdown(conn)

    def abort(self) -> None:
        with self._lock:
            self.aborted = True
            connections = list(self._connections)
        for conn in connections:
            _shutdown(conn)


def _shutdown(conn: Any) -> None:
    sock = getattr(conn, "sock", None)
    if sock is None:
        return
    try:
        # Bypass the TLS layer so a reader blocked inside it is woken up too.
        socket.socket.shutdown(sock, socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("connection_shutdown_failed", error=str(e))


def _close(response: requests.Response) -> OSError | None:
    try:
        response.close()
    except OSError as e:
        return e
    return None


@contextmanager
def released(response: requests.Response) -> Iterator[requests.Response]:
    """Close the response on every exit path.

    A failure to close never hides the error that is already propagating: both
    messages are merged into a ResponseCloseError chained to the original error.

    Raises:
        ResponseCloseError: If closing the response fails
    """
    try:
        yield response
    except Exception as e:
        close_error = _close(response)
        if close_error is None:
            raise
        raise ResponseCloseError(
            f"{e}; failed to close response body: {close_error}",
            url=response.url,
        ) from e
    except BaseException:
        close_error = _close(response)
        if close_error is not None:
            logger.warning("response_close_failed", url=response.url, error=str(close_error))
        raise

    close_error = _close(response)
    if close_error is not None:
        raise ResponseCloseError(
            f"failed to close response body: {close_error}",
            url=response.url,
        ) from close_error


def _drain(ctx: RequestContext, response: requests.Response) -> None:
    for _ in response.iter_content(chunk_size=DRAIN_CHUNK_SIZE):
        ctx.raise_if_done()
    ctx.raise_if_done()


def _transport_cause(
    ctx: RequestContext,
    exc: requests.RequestException,
    aborted: bool = False,
) -> BaseException:
    """Attribute a transport failure to the context when the context caused it."""
    context_error = ctx.error()
    if context_error is None and ctx.deadline is not None and (aborted or isinstance(exc, requests.Timeout)):
        # Every timeout on the wire, and every abort not caused by
        # cancellation, comes from the context deadline.
        context_error = DeadlineExceededError("context deadline exceeded")
    if context_error is None:
        return exc
    context_error.__cause__ = exc
    return context_error


def health_check(ctx: RequestContext, url: str) -> None:
    """Send a GET request to url, raising if the response status code is not 200.

    Args:
        ctx: Context bounding the round trip, including reading the body
        url: Target URL

    Raises:
        HealthCheckError: If the request could not be built or sent, or the
            context ended before the response was read. The cause chain keeps
            the underlying error; use errors.caused_by to test for
            DeadlineExceededError or ContextCancelledError.
        UnhealthyStatusError: If the target answered with a non-200 status
        ResponseCloseError: If the response body could not be closed
    """
    with HealthCheckLogContext(logger, url) as log_ctx:
        try:
            request = get(ctx, url)
        except (requests.RequestException, TypeError, ValueError) as e:
            raise HealthCheckError(f"constructing health check request for target {url} failed", url=url) from e

        context_error = ctx.error()
        if context_error is not None:
            raise HealthCheckError(f"health check of {url} failed", url=url) from context_error

        timeout = ctx.remaining()
        if timeout is not None:
            timeout = max(timeout, MIN_TIMEOUT)

        adapter = AbortableAdapter()
        with requests.Session() as session:
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            stop = ctx.after_done(adapter.abort)
            try:
                _check(ctx, session, adapter, request.prepare(), url, timeout, log_ctx)
            finally:
                stop()


def _check(
    ctx: RequestContext,
    session: requests.Session,
    adapter: AbortableAdapter,
    prepared: requests.PreparedRequest,
    url: str,
    timeout: float | None,
    log_ctx: HealthCheckLogContext,
) -> None:
    try:
        response = session.send(prepared, timeout=timeout, stream=True)
    except requests.RequestException as e:
        cause = _transport_cause(ctx, e, adapter.aborted)
        raise HealthCheckError(f"health check of {url} failed", url=url) from cause

    with released(response):
        log_ctx.set_status_code(response.status_code)
        try:
            _drain(ctx, response)
        except requests.RequestException as e:
            raise HealthCheckError(
                f"reading health check response from {url} failed", url=url
            ) from _transport_cause(ctx, e, adapter.aborted)
        except ContextError as e:
            raise HealthCheckError(f"reading health check response from {url} failed", url=url) from e

        if adapter.aborted:
            # The connection was shut down under a body that happened to end cleanly.
            cause = ctx.error() or DeadlineExceededError("context deadline exceeded")
            raise HealthCheckError(f"reading health check response from {url} failed", url=url) from cause

        if response.status_code != 200:
            raise UnhealthyStatusError(
                f"health check of {url} returned a non-200 status code ({response.status_code})",
                url=url,
                status_code=response.status_code,
            )
