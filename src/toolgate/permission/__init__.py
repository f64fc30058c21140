"""Requester side of the approval flow: gates and the MCP permission worker."""

from toolgate.permission.gate import (
    ApprovalGate,
    EmbeddedApprovalGate,
    RemoteApprovalGate,
    new_approval_id,
)

__all__ = ['ApprovalGate', 'EmbeddedApprovalGate', 'RemoteApprovalGate', 'new_approval_id']
