"""
Unit tests for toolgate.permission.gate — the requester flow.

Every failure must end in a deny decision; cleanup must always run.
"""

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from toolgate.approval.models import ApprovalStatus, PermissionDecision
from toolgate.approval.registry import ApprovalRegistry
from toolgate.approval.waiter import PollingWaiter
from toolgate.coordinator.client import CoordinatorClient
from toolgate.coordinator.server import create_app
from toolgate.core.exceptions import CoordinatorUnavailableError, NotificationError
from toolgate.notifications.base import LoggingNotificationSink, MessageHandle
from toolgate.permission.gate import (
    REGISTRATION_FAILED_MESSAGE,
    REQUEST_ERROR_MESSAGE,
    EmbeddedApprovalGate,
    RemoteApprovalGate,
    new_approval_id,
)

HANDLE = MessageHandle(channel="C123", ts="1700000000.000100")


def _remote_gate(decision=None, register=True, sink=None):
    client = MagicMock(spec=CoordinatorClient)
    if isinstance(register, Exception):
        client.register = AsyncMock(side_effect=register)
    else:
        client.register = AsyncMock(return_value=register)
    client.cleanup = AsyncMock()

    waiter = MagicMock()
    waiter.wait = AsyncMock(return_value=decision or PermissionDecision.allow())

    if sink is None:
        sink = MagicMock()
        sink.post_request = AsyncMock(return_value=HANDLE)
        sink.post_result = AsyncMock()
    return RemoteApprovalGate(client, sink, waiter), client, sink, waiter


def test_approval_id_format():
    approval_id = new_approval_id()
    assert re.fullmatch(r"approval_\d{13}_[0-9a-f]{9}", approval_id)
    assert new_approval_id() != approval_id


# ---------------------------------------------------------------------------
# Remote gate (mocked collaborators)
# ---------------------------------------------------------------------------


class TestRemoteGate:
    @pytest.mark.asyncio
    async def test_allow_flow(self):
        gate, client, sink, waiter = _remote_gate()

        decision = await gate.require("bash", {"cmd": "ls"}, channel="C123", thread_ts="1.2", user="U1")

        assert decision.allowed
        assert decision.updated_input == {"cmd": "ls"}
        approval_id = client.register.await_args.args[0]
        assert approval_id.startswith("approval_")
        client.register.assert_awaited_once_with(approval_id, "bash", {"cmd": "ls"})

        prompt = sink.post_request.await_args.args[0]
        assert prompt.approval_id == approval_id
        assert (prompt.channel, prompt.thread_ts, prompt.user) == ("C123", "1.2", "U1")
        waiter.wait.assert_awaited_once_with(approval_id)
        sink.post_result.assert_awaited_once_with(HANDLE, prompt, decision)
        client.cleanup.assert_awaited_once_with(approval_id)

    @pytest.mark.asyncio
    async def test_deny_flow_has_no_updated_input(self):
        gate, client, sink, _ = _remote_gate(decision=PermissionDecision.deny())

        decision = await gate.require("bash", {"cmd": "rm -rf /"})

        assert decision.to_dict() == {"behavior": "deny", "message": "Denied by user"}
        client.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_registration_rejected_denies_without_posting(self):
        gate, client, sink, waiter = _remote_gate(register=False)

        decision = await gate.require("bash", {})

        assert decision == PermissionDecision.deny(REGISTRATION_FAILED_MESSAGE)
        sink.post_request.assert_not_awaited()
        waiter.wait.assert_not_awaited()
        client.cleanup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_coordinator_unreachable_denies(self):
        gate, _, sink, _ = _remote_gate(register=CoordinatorUnavailableError("connection refused"))

        decision = await gate.require("bash", {})

        assert decision.message == REGISTRATION_FAILED_MESSAGE
        sink.post_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_post_failure_denies_and_cleans_up(self):
        sink = MagicMock()
        sink.post_request = AsyncMock(side_effect=NotificationError("channel_not_found"))
        sink.post_result = AsyncMock()
        gate, client, _, waiter = _remote_gate(sink=sink)

        decision = await gate.require("bash", {})

        assert decision == PermissionDecision.deny(REQUEST_ERROR_MESSAGE)
        waiter.wait.assert_not_awaited()
        client.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_failure_still_returns_decision(self):
        gate, client, sink, _ = _remote_gate()
        sink.post_result.side_effect = RuntimeError("message_not_found")

        decision = await gate.require("bash", {"cmd": "ls"})

        assert decision.allowed
        client.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_handle_skips_update(self):
        gate, _, _, _ = _remote_gate(sink=LoggingNotificationSink())
        decision = await gate.require("bash", {})
        assert decision.allowed

    @pytest.mark.asyncio
    async def test_waiter_crash_denies(self):
        gate, client, _, waiter = _remote_gate()
        waiter.wait.side_effect = RuntimeError("boom")

        decision = await gate.require("bash", {})

        assert decision.message == REQUEST_ERROR_MESSAGE
        client.cleanup.assert_awaited_once()


# ---------------------------------------------------------------------------
# End to end through the real app (ASGI transport, no sockets)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_remote_gate_against_app_approved_via_http():
    registry = ApprovalRegistry()
    transport = httpx.ASGITransport(app=create_app(registry))
    client = CoordinatorClient("http://coordinator.test", transport=transport)

    class ApproveOnPost(LoggingNotificationSink):
        async def post_request(self, prompt):
            asyncio.get_running_loop().call_later(0.05, registry.resolve, prompt.approval_id, True)
            return None

    gate = RemoteApprovalGate(
        client, ApproveOnPost(), PollingWaiter(client, poll_interval=0.05, timeout=5.0)
    )
    try:
        decision = await gate.require("bash", {"cmd": "ls"})
    finally:
        await client.aclose()

    assert decision.allowed
    assert decision.to_dict()["updatedInput"] == {"cmd": "ls"}
    assert len(registry) == 0


# ---------------------------------------------------------------------------
# Embedded gate
# ---------------------------------------------------------------------------


class TestEmbeddedGate:
    @pytest.mark.asyncio
    async def test_denied_by_human(self):
        registry = ApprovalRegistry()

        class DenyOnPost(LoggingNotificationSink):
            async def post_request(self, prompt):
                assert registry.get_status(prompt.approval_id) is ApprovalStatus.PENDING
                asyncio.get_running_loop().call_later(0.01, registry.resolve, prompt.approval_id, False)
                return None

        decision = await EmbeddedApprovalGate(registry, DenyOnPost(), timeout=5.0).require("bash", {})

        assert decision.behavior == "deny"
        assert decision.message == "Denied by user"
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_times_out(self):
        registry = ApprovalRegistry()
        gate = EmbeddedApprovalGate(registry, LoggingNotificationSink(), timeout=0.05)

        decision = await gate.require("bash", {})

        assert decision.message == "Permission request timed out"
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_empty_tool_name_fails_registration(self):
        registry = ApprovalRegistry()
        gate = EmbeddedApprovalGate(registry, LoggingNotificationSink(), timeout=0.05)

        decision = await gate.require("", {})

        assert decision.message == REGISTRATION_FAILED_MESSAGE
