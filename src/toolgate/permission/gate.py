"""
Approval gates — the requester side of the approval flow.

A gate turns one tool invocation into one PermissionDecision:

    generate id -> register -> post prompt -> wait -> update prompt -> cleanup

Every failure along the way ends in a deny; nothing raises out of require().
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any

from toolgate.approval.models import PermissionDecision
from toolgate.approval.registry import ApprovalRegistry
from toolgate.approval.waiter import DirectWaiter, PollingWaiter, ResolutionWaiter
from toolgate.coordinator.client import CoordinatorClient
from toolgate.core.exceptions import ToolgateError
from toolgate.core.structured_logger import TraceContext, get_logger
from toolgate.notifications.base import ApprovalPrompt, NotificationSink

logger = logging.getLogger(__name__)
audit = get_logger("ApprovalGate")

REGISTRATION_FAILED_MESSAGE = "Failed to register approval request"
REQUEST_ERROR_MESSAGE = "Error occurred while requesting permission"


def new_approval_id() -> str:
    """approval_<epoch-ms>_<random suffix>"""
    return f"approval_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ApprovalGate(ABC):
    """Shared requester flow; subclasses decide where records live."""

    def __init__(self, sink: NotificationSink, waiter: ResolutionWaiter) -> None:
        self.sink = sink
        self.waiter = waiter

    @abstractmethod
    async def _register(self, approval_id: str, tool_name: str, input: dict[str, Any]) -> bool:
        ...

    @abstractmethod
    async def _cleanup(self, approval_id: str) -> None:
        ...

    async def require(
        self,
        tool_name: str,
        input: dict[str, Any] | None = None,
        channel: str | None = None,
        thread_ts: str | None = None,
        user: str | None = None,
    ) -> PermissionDecision:
        """Ask a human whether tool_name may run with input, and wait for the answer."""
        input = input or {}
        approval_id = new_approval_id()

        with TraceContext(approval_id):
            try:
                registered = await self._register(approval_id, tool_name, input)
            except ToolgateError as e:
                logger.error("Failed to register approval: %s", e.message, extra={"error": e.to_dict()})
                registered = False
            if not registered:
                return PermissionDecision.deny(REGISTRATION_FAILED_MESSAGE)

            prompt = ApprovalPrompt(
                approval_id=approval_id,
                tool_name=tool_name,
                input=input,
                channel=channel,
                thread_ts=thread_ts,
                user=user,
            )
            try:
                return await self._run(prompt)
            except Exception as e:
                logger.error("Error handling permission prompt: %s", e, exc_info=True)
                return PermissionDecision.deny(REQUEST_ERROR_MESSAGE)
            finally:
                await self._cleanup(approval_id)

    async def _run(self, prompt: ApprovalPrompt) -> PermissionDecision:
        handle = await self.sink.post_request(prompt)
        decision = await self.waiter.wait(prompt.approval_id)
        if decision.allowed:
            decision = PermissionDecision.allow(decision.message, updated_input=prompt.input)

        if handle is not None:
            try:
                await self.sink.post_result(handle, prompt, decision)
            except Exception as e:
                logger.warning("Failed to update approval message: %s", e)

        audit.info(
            "Permission decided",
            tool_name=prompt.tool_name,
            behavior=decision.behavior,
            reason=decision.message,
        )
        return decision


class RemoteApprovalGate(ApprovalGate):
    """Gate for a worker process talking to a coordinator over HTTP."""

    def __init__(
        self,
        client: CoordinatorClient,
        sink: NotificationSink,
        waiter: ResolutionWaiter | None = None,
    ) -> None:
        super().__init__(sink, waiter or PollingWaiter(client))
        self.client = client

    async def _register(self, approval_id: str, tool_name: str, input: dict[str, Any]) -> bool:
        return await self.client.register(approval_id, tool_name, input)

    async def _cleanup(self, approval_id: str) -> None:
        await self.client.cleanup(approval_id)


class EmbeddedApprovalGate(ApprovalGate):
    """Gate running in the coordinator's own process, waiting on the registry directly."""

    def __init__(
        self,
        registry: ApprovalRegistry,
        sink: NotificationSink,
        timeout: float = 300.0,
    ) -> None:
        super().__init__(sink, DirectWaiter(registry, timeout=timeout))
        self.registry = registry

    async def _register(self, approval_id: str, tool_name: str, input: dict[str, Any]) -> bool:
        self.registry.register(approval_id, tool_name, input)
        return True

    async def _cleanup(self, approval_id: str) -> None:
        self.registry.delete(approval_id)
