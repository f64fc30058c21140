"""Notification sinks that present approval prompts to humans."""

from toolgate.notifications.base import (
    ApprovalPrompt,
    LoggingNotificationSink,
    MessageHandle,
    NotificationSink,
)
from toolgate.notifications.slack import SlackNotificationSink

__all__ = [
    'ApprovalPrompt',
    'LoggingNotificationSink',
    'MessageHandle',
    'NotificationSink',
    'SlackNotificationSink',
]
