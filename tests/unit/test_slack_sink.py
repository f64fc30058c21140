"""
Unit tests for toolgate.notifications.slack — message rendering and
chat.postMessage / chat.update calls against a mocked AsyncWebClient.
"""

from unittest.mock import AsyncMock

import pytest
from slack_sdk.errors import SlackApiError

from toolgate.approval.models import PermissionDecision
from toolgate.core.exceptions import NotificationError
from toolgate.notifications.base import ApprovalPrompt, MessageHandle
from toolgate.notifications.slack import (
    MAX_INPUT_CHARS,
    TRUNCATION_MARKER,
    SlackNotificationSink,
    build_request_blocks,
    build_result_blocks,
    format_tool_input,
)


def _prompt(**overrides) -> ApprovalPrompt:
    fields = {"approval_id": "approval_1_abc", "tool_name": "bash", "input": {"cmd": "ls"}}
    fields.update(overrides)
    return ApprovalPrompt(**fields)


# ──────────────────────────────────────────────────────────────────────────────
# Rendering
# ──────────────────────────────────────────────────────────────────────────────


def test_format_short_input_untouched():
    assert format_tool_input({"cmd": "ls"}) == '{\n  "cmd": "ls"\n}'


def test_format_long_input_truncated():
    rendered = format_tool_input({"data": "x" * 5000})
    assert len(rendered) == MAX_INPUT_CHARS + len(TRUNCATION_MARKER)
    assert rendered.endswith("... (truncated)")


def test_request_blocks_carry_buttons():
    blocks = build_request_blocks(_prompt(user="U42"))

    section, actions, context = blocks
    assert "`bash`" in section["text"]["text"]
    assert '"cmd": "ls"' in section["text"]["text"]
    approve, deny = actions["elements"]
    assert (approve["action_id"], approve["value"], approve["style"]) == ("approve_tool", "approval_1_abc", "primary")
    assert (deny["action_id"], deny["value"], deny["style"]) == ("deny_tool", "approval_1_abc", "danger")
    assert "<@U42>" in context["elements"][0]["text"]


def test_result_blocks_have_no_buttons():
    blocks = build_result_blocks(_prompt(), PermissionDecision.deny())
    assert [b["type"] for b in blocks] == ["section", "context"]
    assert "Denied" in blocks[0]["text"]["text"]
    assert "Denied by user" in blocks[1]["elements"][0]["text"]


# ──────────────────────────────────────────────────────────────────────────────
# Destination selection
# ──────────────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("channel", "user", "expected"),
    [
        ("C1", "U1", "C1"),
        (None, "U1", "U1"),
        (None, None, "general"),
    ],
)
def test_destination_fallbacks(mock_slack_client, channel, user, expected):
    sink = SlackNotificationSink(client=mock_slack_client)
    assert sink.destination(_prompt(channel=channel, user=user)) == expected


def test_default_channel_is_configurable(mock_slack_client):
    sink = SlackNotificationSink(client=mock_slack_client, default_channel="approvals")
    assert sink.destination(_prompt()) == "approvals"


# ──────────────────────────────────────────────────────────────────────────────
# Slack API calls
# ──────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_post_request_threads_and_returns_handle(mock_slack_client):
    sink = SlackNotificationSink(client=mock_slack_client)

    handle = await sink.post_request(_prompt(channel="C123", thread_ts="1699.0001"))

    assert handle == MessageHandle(channel="C123", ts="1700000000.000100")
    kwargs = mock_slack_client.chat_postMessage.await_args.kwargs
    assert kwargs["channel"] == "C123"
    assert kwargs["thread_ts"] == "1699.0001"
    assert kwargs["text"] == "Permission request for bash"
    assert kwargs["blocks"][1]["type"] == "actions"


@pytest.mark.asyncio
async def test_post_request_without_ts_returns_none(mock_slack_client):
    mock_slack_client.chat_postMessage.return_value = {"ok": True}
    sink = SlackNotificationSink(client=mock_slack_client)
    assert await sink.post_request(_prompt()) is None


@pytest.mark.asyncio
async def test_post_request_api_error_becomes_notification_error(mock_slack_client):
    mock_slack_client.chat_postMessage.side_effect = SlackApiError(
        "channel_not_found", {"ok": False, "error": "channel_not_found"}
    )
    sink = SlackNotificationSink(client=mock_slack_client)

    with pytest.raises(NotificationError, match="channel_not_found"):
        await sink.post_request(_prompt())


@pytest.mark.asyncio
async def test_post_result_updates_original_message(mock_slack_client):
    sink = SlackNotificationSink(client=mock_slack_client)
    handle = MessageHandle(channel="C123", ts="1700000000.000100")
    decision = PermissionDecision.allow(updated_input={"cmd": "ls"})

    await sink.post_result(handle, _prompt(), decision)

    mock_slack_client.chat_update.assert_awaited_once()
    kwargs = mock_slack_client.chat_update.await_args.kwargs
    assert kwargs["channel"] == "C123"
    assert kwargs["ts"] == "1700000000.000100"
    assert kwargs["text"] == "Permission approved for bash"
    assert "Approved" in kwargs["blocks"][0]["text"]["text"]
