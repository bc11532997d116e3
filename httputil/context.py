"""Request contexts carrying a deadline and a cancellation signal.

A context is bound to every request built by httputil. Blocking operations
bound their timeouts by the context's remaining time, refuse to start once
the context is done, and register done callbacks that abort them in flight.
"""

import threading
import time
from typing import Any, Callable

from .errors import ContextCancelledError, ContextError, DeadlineExceededError


class RequestContext:
    """Deadline and cancellation signal for outbound requests.

    Contexts form a tree: a derived context inherits the parent's deadline and
    is cancelled whenever the parent is.
    """

    def __init__(self, deadline: float | None = None, parent: "RequestContext | None" = None):
        """Initialize the context.

        Args:
            deadline: Absolute deadline on the time.monotonic() clock, or None
            parent: Context this one is derived from
        """
        self._deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @classmethod
    def background(cls) -> "RequestContext":
        """Return a context with no deadline that is never cancelled by a parent."""
        return cls()

    def with_timeout(self, seconds: float) -> "RequestContext":
        """Derive a child context that expires after the given number of seconds."""
        return RequestContext(deadline=time.monotonic() + seconds, parent=self)

    def with_cancel(self) -> "RequestContext":
        """Derive a child context that can be cancelled independently."""
        return RequestContext(parent=self)

    @property
    def deadline(self) -> float | None:
        deadlines = [self._deadline]
        if self._parent is not None:
            deadlines.append(self._parent.deadline)
        known = [d for d in deadlines if d is not None]
        return min(known) if known else None

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def cancel(self) -> None:
        """Cancel the context and run its done callbacks in the calling thread."""
        with self._lock:
            self._cancelled.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def after_done(self, fn: Callable[[], None]) -> Callable[[], bool]:
        """Arrange for fn to run once when this context is cancelled or its deadline passes.

        fn runs in the thread that cancels the context (this one, if the
        context is already done) or in a timer thread when the deadline
        passes. Cancelling a parent also triggers fn.

        Returns:
            A stop function. Calling it unregisters fn and returns True if
            fn had not run yet, False otherwise.
        """
        state_lock = threading.Lock()
        fired = False

        def run() -> None:
            nonlocal fired
            with state_lock:
                if fired:
                    return
                fired = True
            fn()

        stops: list[Callable[[], Any]] = []

        with self._lock:
            self._callbacks.append(run)
        stops.append(lambda: self._discard(run))

        if self._parent is not None:
            stops.append(self._parent.after_done(run))

        if self._deadline is not None:
            timer = threading.Timer(max(self._deadline - time.monotonic(), 0.0), run)
            timer.daemon = True
            timer.start()
            stops.append(timer.cancel)

        if self.done():
            run()

        def stop() -> bool:
            nonlocal fired
            for undo in stops:
                undo()
            with state_lock:
                if fired:
                    return False
                fired = True
                return True

        return stop

    def _discard(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def remaining(self) -> float | None:
        """Seconds left until the deadline, or None when there is no deadline."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(deadline - time.monotonic(), 0.0)

    def error(self) -> ContextError | None:
        """Return the reason this context is done, or None while it is still live."""
        if self.cancelled:
            return ContextCancelledError("context cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            return DeadlineExceededError("context deadline exceeded")
        return None

    def done(self) -> bool:
        return self.error() is not None

    def raise_if_done(self) -> None:
        error = self.error()
        if error is not None:
            raise error

    def __enter__(self) -> "RequestContext":
        return self

    def __exit__(self, *args: Any) -> None:
        self.cancel()

    def __repr__(self) -> str:
        return f"RequestContext(remaining={self.remaining()!r}, cancelled={self.cancelled!r})"
