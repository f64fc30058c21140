"""Approval records, statuses and the decision handed back to the tool framework."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

TIMEOUT_MESSAGE = "Permission request timed out"
APPROVED_MESSAGE = "Approved by user"
DENIED_MESSAGE = "Denied by user"

# Completion value for a record replaced by a re-registration of its id
SUPERSEDED = None


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"

    @property
    def is_terminal(self) -> bool:
        return self is not ApprovalStatus.PENDING


class ResolveOutcome(Enum):
    """Result of a resolve call against the registry."""

    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    ALREADY_RESOLVED = "already_resolved"


@dataclass
class ApprovalRecord:
    """Stored state for one permission decision."""

    approval_id: str
    tool_name: str
    input: dict[str, Any]
    status: ApprovalStatus = ApprovalStatus.PENDING
    registered_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    resolved_at: datetime | None = None
    # One-slot completion signal; set exactly once, by the registry, under its lock.
    # Holds the terminal status, or SUPERSEDED if the id was registered again.
    completion: Future = field(default_factory=Future, repr=False, compare=False)

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(tz=UTC)
        return (now - self.registered_at).total_seconds()


@dataclass(frozen=True)
class PermissionDecision:
    """Terminal answer for a gated tool call: allow or deny, with a reason."""

    behavior: str
    message: str
    updated_input: dict[str, Any] | None = None

    @property
    def allowed(self) -> bool:
        return self.behavior == "allow"

    @classmethod
    def allow(cls, message: str = APPROVED_MESSAGE, updated_input: dict[str, Any] | None = None) -> PermissionDecision:
        return cls(behavior="allow", message=message, updated_input=updated_input)

    @classmethod
    def deny(cls, message: str = DENIED_MESSAGE) -> PermissionDecision:
        return cls(behavior="deny", message=message)

    @classmethod
    def timed_out(cls) -> PermissionDecision:
        return cls(behavior="deny", message=TIMEOUT_MESSAGE)

    @classmethod
    def from_status(cls, status: ApprovalStatus) -> PermissionDecision:
        if status is ApprovalStatus.APPROVED:
            return cls.allow()
        if status is ApprovalStatus.DENIED:
            return cls.deny()
        raise ValueError(f"Status {status.value!r} is not terminal")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"behavior": self.behavior, "message": self.message}
        if self.updated_input is not None:
            payload["updatedInput"] = self.updated_input
        return payload
