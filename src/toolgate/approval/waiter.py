"""Resolution waiters: block until an approval reaches a terminal state or times out.

Both strategies always return a PermissionDecision. Timeouts, swept records
and transport failures all end in a deny, never in an exception.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from toolgate.approval.models import SUPERSEDED, PermissionDecision
from toolgate.core.exceptions import CoordinatorUnavailableError

if TYPE_CHECKING:
    from toolgate.approval.registry import ApprovalRegistry
    from toolgate.coordinator.client import CoordinatorClient

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_POLL_INTERVAL_SECONDS = 1.0


class ResolutionWaiter(abc.ABC):
    """Interface shared by the polling and direct-wait strategies."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    @abc.abstractmethod
    async def wait(self, approval_id: str) -> PermissionDecision:
        """Wait for approval_id to be approved or denied."""


class PollingWaiter(ResolutionWaiter):
    """Cross-process strategy: query the coordinator's status route on a fixed interval."""

    def __init__(
        self,
        client: CoordinatorClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(timeout)
        self.client = client
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    async def wait(self, approval_id: str) -> PermissionDecision:
        started = self._clock()
        polls = 0

        def remaining() -> float:
            return self.timeout - (self._clock() - started)

        while remaining() > 0:
            polls += 1
            try:
                # A hung coordinator must not hold the caller past its budget
                result = await asyncio.wait_for(self.client.status(approval_id), timeout=remaining())
            except TimeoutError:
                logger.warning(
                    "Approval status poll did not answer in time: %s", approval_id
                )
            except CoordinatorUnavailableError as e:
                logger.warning(
                    "Error polling approval status, retrying: %s",
                    e.message,
                    extra={"approval_id": approval_id},
                )
            else:
                if not result.found:
                    # Cleaned up or swept underneath us; it will never resolve now
                    logger.info(
                        "Approval no longer known to coordinator, denying: %s", approval_id
                    )
                    return PermissionDecision.timed_out()
                if result.status.is_terminal:
                    return PermissionDecision.from_status(result.status)

            left = remaining()
            if left <= 0:
                break
            await self._sleep(min(self.poll_interval, left))

        logger.info(
            "Permission request timed out: %s", approval_id, extra={"polls": polls}
        )
        return PermissionDecision.timed_out()


class DirectWaiter(ResolutionWaiter):
    """Embedded strategy: await the record's completion slot, raced against the timeout."""

    def __init__(self, registry: ApprovalRegistry, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        super().__init__(timeout)
        self.registry = registry

    async def wait(self, approval_id: str) -> PermissionDecision:
        record = self.registry.get(approval_id)
        if record is None or record.completion.cancelled():
            logger.info("Approval not found, denying: %s", approval_id)
            return PermissionDecision.timed_out()

        try:
            status = await asyncio.wait_for(
                asyncio.wrap_future(record.completion), timeout=self.timeout
            )
        except TimeoutError:
            logger.info("Permission request timed out: %s", approval_id)
            return PermissionDecision.timed_out()
        if status is SUPERSEDED:
            logger.info("Approval replaced by a newer registration, denying: %s", approval_id)
            return PermissionDecision.timed_out()
        return PermissionDecision.from_status(status)
