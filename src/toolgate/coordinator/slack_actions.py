"""
Slack interactivity endpoint

Lets the Approve / Deny buttons on an approval message resolve the record
directly on the coordinator.

Setup:
  1. Enable Interactivity on the Slack App
  2. Set the Request URL to https://your-domain/slack/actions
  3. Export TOOLGATE_SLACK__SIGNING_SECRET (Basic Information > Signing Secret)
"""

import hashlib
import hmac
import json
import logging
import time
from urllib.parse import parse_qs

from fastapi import FastAPI, HTTPException, Request

from toolgate.approval.models import ResolveOutcome
from toolgate.approval.registry import ApprovalRegistry

logger = logging.getLogger(__name__)

APPROVE_ACTION_ID = "approve_tool"
DENY_ACTION_ID = "deny_tool"

SIGNATURE_MAX_AGE_SECONDS = 300


def sign_slack_request(signing_secret: str, timestamp: str, body: bytes) -> str:
    sig_basestring = b"v0:" + timestamp.encode() + b":" + body
    return (
        "v0="
        + hmac.new(
            signing_secret.encode(),
            sig_basestring,
            hashlib.sha256,
        ).hexdigest()
    )


def verify_slack_signature(
    signing_secret: str,
    body: bytes,
    timestamp: str,
    signature: str,
    now: float | None = None,
) -> bool:
    """Verify Slack request signature to prevent spoofing."""
    if not signature:
        return False

    try:
        parsed_timestamp = int(timestamp)
    except (TypeError, ValueError):
        logger.warning("Invalid Slack signature timestamp", extra={"timestamp": timestamp})
        return False

    current = time.time() if now is None else now
    if abs(current - parsed_timestamp) > SIGNATURE_MAX_AGE_SECONDS:
        return False

    expected = sign_slack_request(signing_secret, str(parsed_timestamp), body)
    return hmac.compare_digest(expected, signature)


def _parse_action(body: bytes) -> tuple[str, str, str]:
    """Return (action_id, approval_id, user_id) from an interactivity payload."""
    form = parse_qs(body.decode("utf-8"))
    raw = form.get("payload", [""])[0]
    payload = json.loads(raw)
    action = payload["actions"][0]
    user = payload.get("user") or {}
    return action["action_id"], action["value"], user.get("id", "")


def register_slack_action_routes(app: FastAPI, registry: ApprovalRegistry, signing_secret: str) -> None:
    """Register /slack/actions on the coordinator app."""

    @app.post("/slack/actions")
    async def slack_actions(request: Request):
        body = await request.body()

        timestamp = request.headers.get("X-Slack-Request-Timestamp", "0")
        signature = request.headers.get("X-Slack-Signature", "")
        if not verify_slack_signature(signing_secret, body, timestamp, signature):
            raise HTTPException(status_code=403, detail="Invalid Slack signature")

        try:
            action_id, approval_id, user_id = _parse_action(body)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Malformed Slack action payload: %s", e)
            raise HTTPException(status_code=400, detail="Malformed action payload") from e

        if action_id not in (APPROVE_ACTION_ID, DENY_ACTION_ID):
            logger.debug("Ignoring Slack action %s", action_id)
            return {"ok": True}

        approved = action_id == APPROVE_ACTION_ID
        outcome = registry.resolve(approval_id, approved=approved)
        logger.info(
            "Slack action %s on %s: %s",
            action_id,
            approval_id,
            outcome.value,
            extra={"slack_user": user_id},
        )
        return {"ok": outcome is ResolveOutcome.RESOLVED, "outcome": outcome.value}

    logger.info("Slack action endpoint registered: /slack/actions")
