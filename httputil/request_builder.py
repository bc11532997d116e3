"""Builders for outbound requests bound to a request context.

Thin wrappers around requests.Request that standardize the method, the
Content-Type header and the context a request belongs to.
"""

from typing import IO, Any, Iterable

import requests

from .context import RequestContext

Body = IO[bytes] | IO[str] | Iterable[bytes] | bytes | str


class ContextRequest(requests.Request):
    """A requests.Request bound to the RequestContext it is executed under."""

    def __init__(self, context: RequestContext, method: str, url: str, **kwargs: Any):
        if not isinstance(context, RequestContext):
            raise TypeError(f"expected a RequestContext, got {type(context).__name__}")
        self.context = context
        super().__init__(method=method, url=url, **kwargs)

    def __repr__(self) -> str:
        return f"<ContextRequest [{self.method}] {self.url}>"


def _build(
    ctx: RequestContext,
    method: str,
    url: str,
    content_type: str | None = None,
    body: Body | None = None,
) -> ContextRequest:
    headers = {"Content-Type": content_type} if content_type is not None else None
    request = ContextRequest(ctx, method, url, headers=headers, data=body)
    # Preparing validates the URL without reading a streamed body.
    request.prepare()
    return request


def get(ctx: RequestContext, url: str) -> ContextRequest:
    """Build a GET request.

    Raises:
        TypeError: If ctx is not a RequestContext
        requests.exceptions.RequestException: If the URL is malformed
    """
    return _build(ctx, "GET", url)


def post(ctx: RequestContext, url: str, content_type: str, body: Body) -> ContextRequest:
    """Build a POST request with the Content-Type header set.

    The body is attached as given; file-like objects and iterators are
    streamed when the request is sent, not buffered here.
    """
    return _build(ctx, "POST", url, content_type, body)


def put(ctx: RequestContext, url: str, content_type: str, body: Body) -> ContextRequest:
    """Build a PUT request with the Content-Type header set."""
    return _build(ctx, "PUT", url, content_type, body)
