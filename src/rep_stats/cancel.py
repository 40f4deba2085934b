"""Cooperative cancellation token and signal wiring."""

from __future__ import annotations

import signal
from collections.abc import Callable
from types import FrameType
from typing import Any

from rep_stats.errors import CancelledError

_CANCEL_SIGNALS = ("SIGINT", "SIGTERM", "SIGHUP", "SIGBREAK")
SignalHandler = Callable[[int, FrameType | None], Any] | int | None


class CancellationToken:
    """Flag set by an external source and polled by the scan loop."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        """Return True once cancellation has been requested."""
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation."""
        self._cancelled = True

    def check(self) -> None:
        """Raise CancelledError when cancellation has been requested."""
        if self._cancelled:
            raise CancelledError("Caught signal")


def install_signal_handlers(token: CancellationToken) -> dict[int, SignalHandler]:
    """Route interrupt-style signals to the token; return the replaced handlers."""

    def handler(signum: int, _frame: FrameType | None) -> None:
        signal.signal(signum, signal.SIG_IGN)
        token.cancel()

    previous: dict[int, SignalHandler] = {}
    for name in _CANCEL_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        previous[int(signum)] = signal.signal(signum, handler)
    return previous


def restore_signal_handlers(previous: dict[int, SignalHandler]) -> None:
    """Reinstate handlers returned by install_signal_handlers."""
    for signum, handler in previous.items():
        if handler is not None:
            signal.signal(signum, handler)
