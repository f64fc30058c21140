"""
Slack notification sink

Posts approval prompts with Approve / Deny buttons via chat.postMessage and
rewrites them with the outcome via chat.update.

Requires:
  SLACK_BOT_TOKEN (or TOOLGATE_SLACK__BOT_TOKEN) — Bot User OAuth Token (xoxb-...)

Button clicks arrive at the coordinator's /slack/actions route.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from toolgate.approval.models import PermissionDecision
from toolgate.coordinator.slack_actions import APPROVE_ACTION_ID, DENY_ACTION_ID
from toolgate.core.exceptions import NotificationError
from toolgate.notifications.base import ApprovalPrompt, MessageHandle, NotificationSink

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 1500
TRUNCATION_MARKER = "\n... (truncated)"


def format_tool_input(input: dict[str, Any]) -> str:
    """Pretty-print tool input, cut to MAX_INPUT_CHARS for display."""
    rendered = json.dumps(input, indent=2, default=str)
    if len(rendered) > MAX_INPUT_CHARS:
        return rendered[:MAX_INPUT_CHARS] + TRUNCATION_MARKER
    return rendered


def build_request_blocks(prompt: ApprovalPrompt) -> list[dict[str, Any]]:
    rendered = format_tool_input(prompt.input)
    requested_by = f"<@{prompt.user}>" if prompt.user else "unknown"
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    ":lock: *Permission Request*\n\n"
                    f"The agent wants to use the tool: `{prompt.tool_name}`\n\n"
                    f"*Tool Parameters:*\n```json\n{rendered}\n```"
                ),
            },
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": ":white_check_mark: Approve", "emoji": True},
                    "style": "primary",
                    "action_id": APPROVE_ACTION_ID,
                    "value": prompt.approval_id,
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": ":x: Deny", "emoji": True},
                    "style": "danger",
                    "action_id": DENY_ACTION_ID,
                    "value": prompt.approval_id,
                },
            ],
        },
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"Requested by: {requested_by} | Tool: {prompt.tool_name}"}
            ],
        },
    ]


def build_result_blocks(prompt: ApprovalPrompt, decision: PermissionDecision) -> list[dict[str, Any]]:
    rendered = format_tool_input(prompt.input)
    verdict = ":white_check_mark: Approved" if decision.allowed else ":x: Denied"
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f":lock: *Permission Request* - {verdict}\n\n"
                    f"Tool: `{prompt.tool_name}`\n\n"
                    f"*Tool Parameters:*\n```json\n{rendered}\n```"
                ),
            },
        },
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"{decision.message} | Tool: {prompt.tool_name}"}
            ],
        },
    ]


class SlackNotificationSink(NotificationSink):
    """Slack Web API sink."""

    def __init__(
        self,
        token: str | None = None,
        default_channel: str = "general",
        client: AsyncWebClient | None = None,
    ) -> None:
        self.client = client or AsyncWebClient(token=token)
        self.default_channel = default_channel

    def destination(self, prompt: ApprovalPrompt) -> str:
        return prompt.channel or prompt.user or self.default_channel

    async def post_request(self, prompt: ApprovalPrompt) -> MessageHandle | None:
        channel = self.destination(prompt)
        try:
            response = await self.client.chat_postMessage(
                channel=channel,
                thread_ts=prompt.thread_ts,
                blocks=build_request_blocks(prompt),
                text=f"Permission request for {prompt.tool_name}",
            )
        except SlackApiError as e:
            raise NotificationError(
                f"Slack rejected approval request: {e.response.get('error', 'unknown_error')}",
                details={"approval_id": prompt.approval_id, "channel": channel},
            ) from e
        logger.info(
            "Sent permission request to Slack",
            extra={"approval_id": prompt.approval_id, "tool_name": prompt.tool_name, "channel": channel},
        )

        ts = response.get("ts")
        if not ts:
            return None
        return MessageHandle(channel=response.get("channel") or channel, ts=ts)

    async def post_result(
        self,
        handle: MessageHandle,
        prompt: ApprovalPrompt,
        decision: PermissionDecision,
    ) -> None:
        state = "approved" if decision.allowed else "denied"
        await self.client.chat_update(
            channel=handle.channel,
            ts=handle.ts,
            blocks=build_result_blocks(prompt, decision),
            text=f"Permission {state} for {prompt.tool_name}",
        )
