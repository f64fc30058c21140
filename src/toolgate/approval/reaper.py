"""Background sweep that evicts stale approval records to bound memory."""

import asyncio
import logging

from toolgate.approval.registry import ApprovalRegistry

logger = logging.getLogger(__name__)


class Reaper:
    """Runs registry.sweep on a fixed period until stopped."""

    def __init__(
        self,
        registry: ApprovalRegistry,
        interval: float = 60.0,
        max_age: float = 300.0,
    ) -> None:
        self.registry = registry
        self.interval = interval
        self.max_age = max_age
        self._task: asyncio.Task | None = None
        self._running = False
        logger.info(
            "Reaper initialized", extra={"interval": interval, "max_age": max_age}
        )

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop(), name="approval-reaper")
        logger.info("Reaper started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Reaper stopped")

    def sweep_once(self) -> list[str]:
        return self.registry.sweep(self.max_age)

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in reaper loop: %s", e, exc_info=True)
