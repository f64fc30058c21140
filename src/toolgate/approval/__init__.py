"""
Approval coordination core
==========================

- models:   approval records, statuses, decisions
- registry: the single source of truth for pending approvals
- waiter:   polling and direct-wait resolution strategies
- reaper:   periodic eviction of stale records
"""

from toolgate.approval.models import (
    ApprovalRecord,
    ApprovalStatus,
    PermissionDecision,
    ResolveOutcome,
)
from toolgate.approval.reaper import Reaper
from toolgate.approval.registry import ApprovalRegistry
from toolgate.approval.waiter import DirectWaiter, PollingWaiter, ResolutionWaiter

__all__ = [
    'ApprovalRecord',
    'ApprovalRegistry',
    'ApprovalStatus',
    'DirectWaiter',
    'PermissionDecision',
    'PollingWaiter',
    'Reaper',
    'ResolutionWaiter',
    'ResolveOutcome',
]
