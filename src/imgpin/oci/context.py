"""Cancellation and deadline carrier for registry calls.

A ResolveContext travels with each resolve call. Registry lookups are run
through :meth:`ResolveContext.run`, which returns as soon as the call
finishes, the context is cancelled, or the deadline passes. The resolver
adds no timeout of its own.

Example:
    >>> from imgpin.oci.context import ResolveContext
    >>> ctx = ResolveContext(timeout=30.0)
    >>> descriptor = ctx.run(transport.get_descriptor, ref, timeout=ctx.remaining())
    >>> ctx.cancel()  # from another thread; pending run() calls raise promptly
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, wait
from typing import Any, TypeVar

import structlog

from imgpin.oci.errors import ResolutionCancelledError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

POLL_INTERVAL_SECONDS = 0.05
"""How often run() re-checks the cancel flag while waiting."""


class ResolveContext:
    """Cancellation flag plus optional deadline.

    A context may be shared by many concurrent resolutions; cancelling it
    aborts all of them.

    Attributes:
        deadline: Monotonic time after which calls fail, or None.
    """

    def __init__(
        self,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize ResolveContext.

        Args:
            timeout: Seconds from now until the deadline, or None for no deadline.
            cancel_event: Existing event to share, e.g. with a signal handler.
        """
        self._cancel_event = cancel_event or threading.Event()
        self.deadline: float | None = None if timeout is None else time.monotonic() + timeout

    @classmethod
    def background(cls) -> ResolveContext:
        """Return a context that is never cancelled and has no deadline."""
        return cls()

    def cancel(self) -> None:
        """Cancel every pending and future call made through this context."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called."""
        return self._cancel_event.is_set()

    def remaining(self) -> float | None:
        """Return seconds until the deadline (never negative), or None."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise if the context can no longer be used.

        Raises:
            ResolutionCancelledError: If cancelled or past the deadline.
        """
        if self.cancelled:
            raise ResolutionCancelledError("cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise ResolutionCancelledError("deadline exceeded")

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking call under this context.

        The call executes on a daemon thread. If the context is cancelled or
        the deadline passes first, the call is abandoned and this method
        raises immediately; its eventual result is discarded.

        Args:
            func: Callable to run.
            *args: Positional arguments for func.
            **kwargs: Keyword arguments for func.

        Returns:
            Whatever func returns.

        Raises:
            ResolutionCancelledError: If cancelled or past the deadline.
            Exception: Any exception raised by func, unchanged.
        """
        self.check()

        future: Future[T] = Future()

        def _target() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(func(*args, **kwargs))
            except BaseException as e:
                future.set_exception(e)

        worker = threading.Thread(target=_target, name="imgpin-resolve", daemon=True)
        worker.start()

        while True:
            interval = POLL_INTERVAL_SECONDS
            remaining = self.remaining()
            if remaining is not None:
                interval = min(interval, remaining)
            done, _pending = wait([future], timeout=interval)
            if done:
                return future.result()
            try:
                self.check()
            except ResolutionCancelledError as e:
                logger.debug("resolve_context_abandoned_call", reason=e.reason)
                raise

    def __repr__(self) -> str:
        return f"ResolveContext(cancelled={self.cancelled}, remaining={self.remaining()})"


__all__ = [
    "ResolveContext",
]
