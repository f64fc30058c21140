"""
Permission prompt MCP server

Runs as a short-lived stdio worker next to the agent. Each permission_prompt
call registers an approval with the coordinator, posts it to Slack and polls
until a human answers or the request times out.

Environment:
  SLACK_CONTEXT           — JSON {"channel", "threadTs", "user"} set by the agent host
  PERMISSION_SERVER_PORT  — coordinator port (legacy alias of TOOLGATE_COORDINATOR__PORT)
  SLACK_BOT_TOKEN         — bot token (legacy alias of TOOLGATE_SLACK__BOT_TOKEN)
  TOOLGATE_CONFIG         — optional YAML config path
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from mcp.server.fastmcp import FastMCP

from toolgate.approval.waiter import PollingWaiter
from toolgate.config.settings import Settings, apply_legacy_env, load_settings
from toolgate.coordinator.client import CoordinatorClient
from toolgate.core.structured_logger import configure_logging
from toolgate.notifications.base import LoggingNotificationSink, NotificationSink
from toolgate.notifications.slack import SlackNotificationSink
from toolgate.permission.gate import RemoteApprovalGate

logger = logging.getLogger(__name__)

mcp = FastMCP("permission-prompt")

_gate: RemoteApprovalGate | None = None


def parse_slack_context(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        context = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring invalid SLACK_CONTEXT: %s", e)
        return {}
    if not isinstance(context, dict):
        logger.warning("Ignoring SLACK_CONTEXT that is not a JSON object")
        return {}
    return context


def build_gate(settings: Settings) -> RemoteApprovalGate:
    coordinator = settings.coordinator
    client = CoordinatorClient(coordinator.base_url, timeout=coordinator.request_timeout_seconds)

    sink: NotificationSink
    if settings.slack.bot_token:
        sink = SlackNotificationSink(
            token=settings.slack.bot_token,
            default_channel=settings.slack.default_channel,
        )
    else:
        logger.warning("No Slack bot token configured; approval prompts are only logged")
        sink = LoggingNotificationSink()

    waiter = PollingWaiter(
        client,
        poll_interval=coordinator.poll_interval_seconds,
        timeout=coordinator.approval_timeout_seconds,
    )
    return RemoteApprovalGate(client, sink, waiter)


def get_gate() -> RemoteApprovalGate:
    global _gate
    if _gate is None:
        _gate = build_gate(apply_legacy_env(load_settings(os.getenv("TOOLGATE_CONFIG"))))
    return _gate


@mcp.tool()
async def permission_prompt(
    tool_name: str,
    input: dict[str, Any],
    channel: str | None = None,
    thread_ts: str | None = None,
    user: str | None = None,
) -> str:
    """
    Request user permission for tool execution via Slack button.

    Args:
        tool_name: Name of the tool requesting permission
        input: Input parameters for the tool
        channel: Slack channel ID (defaults to SLACK_CONTEXT)
        thread_ts: Slack thread timestamp (defaults to SLACK_CONTEXT)
        user: User ID requesting permission (defaults to SLACK_CONTEXT)

    Returns:
        JSON string {"behavior": "allow"|"deny", "message": ...}
    """
    context = parse_slack_context(os.getenv("SLACK_CONTEXT"))
    decision = await get_gate().require(
        tool_name,
        input,
        channel=channel or context.get("channel"),
        thread_ts=thread_ts or context.get("threadTs"),
        user=user or context.get("user"),
    )
    return json.dumps(decision.to_dict())


def run(settings: Settings | None = None) -> None:
    """Serve permission_prompt over stdio until the agent closes the pipe."""
    global _gate
    settings = settings or apply_legacy_env(load_settings(os.getenv("TOOLGATE_CONFIG")))
    configure_logging(settings.logging)
    _gate = build_gate(settings)
    logger.info("Permission MCP server started")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run()
