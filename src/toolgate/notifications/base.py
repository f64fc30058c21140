"""
Notification sink interface

A sink shows a pending approval to a human and, once the gate has a
decision, updates what it showed. Sinks never resolve approvals themselves;
resolution always goes through the coordination endpoint.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from toolgate.approval.models import PermissionDecision

logger = logging.getLogger(__name__)


@dataclass
class ApprovalPrompt:
    """What the human is being asked to approve, and where to ask."""

    approval_id: str
    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)
    channel: str | None = None
    thread_ts: str | None = None
    user: str | None = None


@dataclass(frozen=True)
class MessageHandle:
    """Reference to a posted prompt, used to update it with the outcome."""

    channel: str
    ts: str


class NotificationSink(ABC):
    """Abstract base for places an approval prompt can be shown."""

    @abstractmethod
    async def post_request(self, prompt: ApprovalPrompt) -> MessageHandle | None:
        """Show the prompt. Raise on failure; the gate denies the request."""

    @abstractmethod
    async def post_result(
        self,
        handle: MessageHandle,
        prompt: ApprovalPrompt,
        decision: PermissionDecision,
    ) -> None:
        """Replace the prompt with the final decision."""


class LoggingNotificationSink(NotificationSink):
    """Sink for headless deployments; approvals come from the CLI or HTTP."""

    async def post_request(self, prompt: ApprovalPrompt) -> MessageHandle | None:
        logger.info(
            "Approval required for %s (id=%s); resolve with `toolgate approve %s` or `toolgate deny %s`",
            prompt.tool_name,
            prompt.approval_id,
            prompt.approval_id,
            prompt.approval_id,
        )
        return None

    async def post_result(
        self,
        handle: MessageHandle,
        prompt: ApprovalPrompt,
        decision: PermissionDecision,
    ) -> None:
        logger.info(
            "Approval %s for %s: %s (%s)",
            prompt.approval_id,
            prompt.tool_name,
            decision.behavior,
            decision.message,
        )
