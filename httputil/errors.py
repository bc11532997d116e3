"""Exceptions raised by httputil and the shared error templates.

Errors raised by ``requests``, ``ssl`` and the filesystem are propagated as-is.
Errors raised here wrap them with the operation and target, chaining the
original cause so callers can inspect it with :func:`caused_by`.
"""

ENV_VARIABLE_NOT_DEFINED_TEMPLATE = "env variable {name} not defined"


class HTTPUtilError(Exception):
    """Base exception for httputil errors."""

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message)


class EnvVariableNotDefinedError(HTTPUtilError):
    """A required environment variable is unset or empty."""

    def __init__(self, message: str, name: str):
        self.name = name
        super().__init__(message)


class HealthCheckError(HTTPUtilError):
    """A health check could not be performed or the target is unhealthy."""

    pass


class UnhealthyStatusError(HealthCheckError):
    """The target answered, but not with 200 OK."""

    def __init__(self, message: str, url: str, status_code: int):
        self.status_code = status_code
        super().__init__(message, url=url)


class ResponseCloseError(HealthCheckError):
    """Closing a response body failed."""

    pass


class ContextError(HTTPUtilError):
    """Base exception for a request context that is done."""

    pass


class DeadlineExceededError(ContextError, TimeoutError):
    """The request context deadline passed."""

    pass


class ContextCancelledError(ContextError):
    """The request context was cancelled."""

    pass


def env_variable_not_defined(name: str) -> EnvVariableNotDefinedError:
    """Return an error stating that the given env variable is not defined."""
    return EnvVariableNotDefinedError(ENV_VARIABLE_NOT_DEFINED_TEMPLATE.format(name=name), name=name)


def caused_by(exc: BaseException | None, exc_type: type[BaseException]) -> bool:
    """Check whether an exception or anything in its cause chain is an instance of exc_type.

    Args:
        exc: The exception to inspect
        exc_type: Exception class to look for

    Returns:
        True if exc, its __cause__ or its __context__ chain contains exc_type
    """
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, exc_type):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ if exc.__cause__ is not None else exc.__context__
    return False
