"""In-flight request tracking for graceful shutdown."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from src.mailflow.core.logging import get_logger

logger = get_logger(__name__)


class RequestTracker:
    """Counts in-flight requests so shutdown can wait for them to drain."""

    def __init__(self) -> None:
        self._in_flight = 0
        self._shutting_down = False
        self._drained = asyncio.Event()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def in_flight_count(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def track_request(self) -> AsyncGenerator[None]:
        self._in_flight += 1
        try:
            yield
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and self._shutting_down:
                self._drained.set()

    async def start_shutdown(self) -> None:
        self._shutting_down = True
        if self._in_flight == 0:
            self._drained.set()
        logger.info("Shutdown started", in_flight=self._in_flight)

    async def wait_for_drain(self, timeout: float) -> bool:
        """Wait for all in-flight requests to complete.

        Args:
            timeout: Maximum time to wait in seconds

        Returns:
            True if all requests completed within timeout, False otherwise
        """
        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning("Shutdown drain timed out", timeout=timeout, in_flight=self._in_flight)
            return False
        return True

    def reset(self) -> None:
        """Reset tracker state. For testing only."""
        self._in_flight = 0
        self._shutting_down = False
        self._drained = asyncio.Event()


request_tracker = RequestTracker()
