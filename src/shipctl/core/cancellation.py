"""Cancellation token for operator interrupts and termination requests."""

import signal
from contextlib import contextmanager
from typing import Any, Callable, Generator

from shipctl.core.exceptions import OperationCancelled
from shipctl.core.logging import get_logger

logger = get_logger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """Turns SIGINT/SIGTERM into an ``OperationCancelled`` at the blocking call.

    While shielded (rollback in progress) a signal is recorded and handed to
    the listener instead of raising, so failure handling is never interrupted
    by a second signal.
    """

    def __init__(self) -> None:
        self.signum: int | None = None
        self._shield_depth = 0
        self._listener: Callable[[OperationCancelled], Any] | None = None
        self._previous: dict[int, Any] = {}

    @property
    def cancelled(self) -> bool:
        return self.signum is not None

    @property
    def shielded_now(self) -> bool:
        return self._shield_depth > 0

    def set_listener(self, listener: Callable[[OperationCancelled], Any] | None) -> None:
        self._listener = listener

    def install(self) -> None:
        """Install signal handlers, remembering the previous ones."""
        for signum in HANDLED_SIGNALS:
            try:
                self._previous[signum] = signal.signal(signum, self._handle)
            except ValueError:
                # signal.signal only works from the main thread
                logger.debug(f"Cannot install handler for {signum} outside the main thread")

    def uninstall(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def __enter__(self) -> "CancellationToken":
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.uninstall()

    def _handle(self, signum: int, frame: Any) -> None:
        self.deliver(signum)

    def deliver(self, signum: int) -> None:
        """Record a signal and act on it as the current section requires."""
        first = self.signum is None
        if first:
            self.signum = signum
        cancellation = OperationCancelled(signum)
        if self.shielded_now:
            if self._listener is not None:
                self._listener(cancellation)
            return
        if first:
            raise cancellation

    def raise_if_cancelled(self) -> None:
        """Checkpoint used between stages."""
        if self.signum is not None and not self.shielded_now:
            raise OperationCancelled(self.signum)

    @contextmanager
    def shielded(self) -> Generator[None, None, None]:
        """Run a block during which signals never raise."""
        self._shield_depth += 1
        try:
            yield
        finally:
            self._shield_depth -= 1
