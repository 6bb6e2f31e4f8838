# src/duecheck/checks/periodic.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 0.01


class PeriodicScanner:
    """
    Polling ticker shared by the schedulers.

    start():
    - runs one scan immediately
    - then every interval_seconds spawns a scan, unless the previous one is still running
    stop():
    - cancels the ticker only; a scan already in flight is allowed to finish
    - safe to call repeatedly
    """

    def __init__(
        self,
        name: str,
        scan: Callable[[], Awaitable[Any]],
        *,
        interval_seconds: float = 60.0,
    ) -> None:
        self.name = name
        self._scan = scan
        self._interval = max(MIN_INTERVAL_SECONDS, float(interval_seconds))
        self._ticker: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[None] | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def scan_in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> None:
        # Restarting replaces the previous ticker.
        self.stop()
        self._ticker = asyncio.get_running_loop().create_task(
            self._run(), name=f"{self.name}-ticker"
        )
        logger.info("%s scanner started interval=%.2fs", self.name, self._interval)

    def stop(self) -> None:
        if self._ticker is None:
            return
        self._ticker.cancel()
        self._ticker = None
        logger.info("%s scanner stopped", self.name)

    def tick(self) -> asyncio.Task[None] | None:
        """Spawn one scan unless one is already running. Returns the spawned task."""
        if self.scan_in_flight:
            logger.debug("%s scan still running; tick skipped", self.name)
            return None
        self._in_flight = asyncio.get_running_loop().create_task(
            self._guarded_scan(), name=f"{self.name}-scan"
        )
        return self._in_flight

    async def wait_idle(self) -> None:
        if self._in_flight is not None:
            await self._in_flight

    async def _guarded_scan(self) -> None:
        try:
            await self._scan()
        except Exception:
            logger.exception("%s scan failed", self.name)

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._interval)
