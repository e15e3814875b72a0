"""Clock, cancellation and fixed-interval polling helpers.

Poll loops never call ``time.sleep`` directly; they iterate
``poll_intervals`` with an injected Clock so tests can drive them without
waiting on the wall clock.
"""

from __future__ import annotations

import signal
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from ..errors import OperationCancelledError


class Clock(Protocol):
    """Time source used by every wait in the installer."""

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float, cancel: CancellationToken | None = None) -> None: ...


class CancellationToken:
    """Cooperative cancellation flag shared by the runner and poll loops."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, seconds: float) -> bool:
        """Block up to ``seconds``; True when cancelled meanwhile."""
        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError()


class SystemClock:
    """Wall-clock implementation; sleeping wakes early on cancellation."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel: CancellationToken | None = None) -> None:
        if seconds <= 0:
            return
        if cancel is None:
            time.sleep(seconds)
            return
        if cancel.wait(seconds):
            raise OperationCancelledError()


def poll_intervals(
    clock: Clock,
    *,
    interval: float,
    timeout: float,
    cancel: CancellationToken | None = None,
) -> Iterator[float]:
    """Yield elapsed seconds once per attempt until the timeout is spent.

    The first attempt is immediate. Between attempts the generator sleeps
    ``interval`` seconds through the clock. It stops without raising once
    the next attempt would start past ``timeout``; callers treat falling
    out of the loop as a timeout.

    Raises:
        OperationCancelledError: If the token is cancelled between attempts
    """
    start = clock.monotonic()
    while True:
        if cancel is not None:
            cancel.raise_if_cancelled()
        elapsed = clock.monotonic() - start
        yield elapsed
        if elapsed + interval > timeout:
            return
        clock.sleep(interval, cancel)


@contextmanager
def cancel_on_interrupt(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route the first Ctrl-C to the token; a second one interrupts hard."""
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum: int, frame: Any) -> None:
        if token.cancelled:
            raise KeyboardInterrupt
        token.cancel()

    signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
