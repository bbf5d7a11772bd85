"""Signal-driven shutdown for the delivery pipeline."""

import asyncio
import logging
import signal
import sys
from typing import Optional

from core.logging import get_logger, log_with_context

logger = get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """
    Turns SIGINT/SIGTERM into a single set of the shared shutdown event.

    The delivery pipeline watches the event and stops pulling records once
    it is set. Repeated signals are ignored, as are signals that arrive
    after the run has completed.

    Note: Signal handlers are not supported on Windows; KeyboardInterrupt
    is used there instead.
    """

    def __init__(self, event: asyncio.Event):
        self.event = event
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._requested = False
        self._complete = False

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        if sys.platform == "win32":
            logger.debug("Signal handlers not supported on Windows, using KeyboardInterrupt")
            return

        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))
        self._loop = loop

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for sig in SHUTDOWN_SIGNALS:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def _handle_signal(self, sig: signal.Signals) -> None:
        log_with_context(
            logger,
            logging.INFO,
            "Received signal, initiating graceful shutdown",
            signal=sig.name,
        )
        self.request_shutdown()

    def request_shutdown(self) -> bool:
        """
        Set the shutdown event.

        Returns:
            True if this call set the event, False if it was ignored
        """
        if self._complete:
            logger.debug("Shutdown requested after completion, ignoring")
            return False
        if self._requested:
            logger.warning("Shutdown already in progress, ignoring repeated request")
            return False

        self._requested = True
        self.event.set()
        return True

    def mark_complete(self) -> None:
        """Record that the run finished; later shutdown requests become no-ops."""
        self._complete = True


__all__ = ["SHUTDOWN_SIGNALS", "ShutdownCoordinator"]
