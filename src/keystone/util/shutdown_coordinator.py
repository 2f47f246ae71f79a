import asyncio
import logging
import signal
import sys
from logging import Logger
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from keystone.engine.engine_core import Engine


class ShutdownCoordinator:
    def __init__(self, engine: "Engine", logger: Optional[Logger] = None):
        """
        Coordinate a graceful engine shutdown triggered by signals or code.
        """
        self._engine = engine
        self._logger = logger or logging.getLogger(__name__)
        self._shutdown_event = asyncio.Event()
        self._force_shutdown = False

    def register_signal_handlers(self):
        """
        Register signal handlers for graceful and forced shutdowns.
        """
        signal.signal(signal.SIGINT, self._handle_sigint)

    def _handle_sigint(self, signum, frame):
        """
        First Ctrl+C starts a graceful shutdown, the second exits immediately.
        """
        if self._force_shutdown:
            self._logger.critical("Forced shutdown initiated. Exiting immediately.")
            sys.exit(1)
        else:
            self._logger.warning(
                "Graceful shutdown initiated. Press Ctrl+C again to force exit."
            )
            self._force_shutdown = True
            self.trigger_shutdown()

    def trigger_shutdown(self):
        self._logger.debug("Shutdown event triggered")
        self._shutdown_event.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    async def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the shutdown event. Returns False if ``timeout`` elapsed first.
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            self._logger.warning(f"No shutdown request within {timeout} seconds")
            return False

    async def shutdown_application(self, timeout: float = 10) -> bool:
        """
        Dispose the engine, logging instead of raising on failure.

        Returns True when the engine disposed cleanly.
        """
        self._logger.info("Application shutdown process initiated")

        try:
            await asyncio.wait_for(self._engine.dispose(), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.warning(
                "Timeout while waiting for engine dispose - some services may not have shut down cleanly"
            )
            return False
        except Exception as e:
            self._logger.error(f"Error during application shutdown: {e}")
            return False

        self._logger.debug("Application shutdown completed successfully")
        return True
