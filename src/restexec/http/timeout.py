"""Local timeout enforcement for in-flight requests.

A :class:`TimeoutState` is created for every call just before the transport
operation is issued.  Two parties touch it: the :class:`TimeoutGuard` timer
callback, which marks it timed out and cancels the transport future, and the
completion path, which reads the flag to tell a timeout from an abort.  A
cancelled transport future alone is ambiguous; the flag decides.

Every read or write of the flag and of the stored handle happens under the
state's own lock.  States are never shared between calls.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Optional

from restexec.output import get_output


class TimeoutState:
    """Per-call record coordinating the timer callback and the completion path."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timed_out = False
        self._aborted = False
        self._handle: Optional[asyncio.Future] = None

    @property
    def timed_out(self) -> bool:
        with self._lock:
            return self._timed_out

    @property
    def handle(self) -> Optional[asyncio.Future]:
        with self._lock:
            return self._handle

    def attach(self, handle: asyncio.Future) -> None:
        """Store the cancellable transport future.

        If the timer fired or the call was aborted before the operation
        started, the future is cancelled straight away.
        """
        with self._lock:
            self._handle = handle
            if self._timed_out or self._aborted:
                handle.cancel()

    def expire(self) -> None:
        """Mark the call timed out and cancel the transport future, if any.

        Does nothing once the transport future has settled: a response that
        arrived before the timer fired is never reported as timed out.
        """
        with self._lock:
            if self._handle is not None and self._handle.done():
                return
            self._timed_out = True
            if self._handle is not None:
                self._handle.cancel()

    def abort(self) -> None:
        """Cancel the transport future without marking the call timed out."""
        with self._lock:
            self._aborted = True
            if self._handle is not None:
                self._handle.cancel()


class TimeoutGuard:
    """One-shot timer that expires a :class:`TimeoutState`.

    A timeout of 0 disables the guard.  Once the call resolves the guard is
    superseded: its pending timer is dropped and firing it later would only
    touch a state nobody reads any more.

    Args:
        timeout_ms: Timeout in milliseconds.
        state: The call's timeout state.

    Example::

        state = TimeoutState()
        with TimeoutGuard(spec.timeout, state):
            ...  # issue the request, attach the future to ``state``
    """

    def __init__(self, timeout_ms: int, state: TimeoutState) -> None:
        self._timeout_ms = timeout_ms
        self._state = state
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def arm(self) -> None:
        """Start the timer on the running event loop."""
        if self._timeout_ms <= 0 or self._timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._timeout_ms / 1000, self._on_timeout)

    def supersede(self) -> None:
        """Drop the pending timer, if it has not fired yet."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        self._timer = None
        get_output().debug(f"Timeout of {self._timeout_ms} ms elapsed; cancelling request")
        self._state.expire()

    def __enter__(self) -> TimeoutGuard:
        self.arm()
        return self

    def __exit__(self, *args: object) -> None:
        self.supersede()
