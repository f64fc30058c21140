"""Process-local registry of approval records and their state transitions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from toolgate.approval.models import SUPERSEDED, ApprovalRecord, ApprovalStatus, ResolveOutcome
from toolgate.core.exceptions import ValidationError

if TYPE_CHECKING:
    from toolgate.observability.metrics import ApprovalMetrics

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class ApprovalRegistry:
    """
    Mapping from approval id to approval record.

    Every read and mutation goes through one lock, so a resolve racing a
    duplicate resolve, a cleanup or a sweep always sees a consistent record.
    Nothing here blocks on I/O; the lock is only ever held for a dict
    operation and a field assignment.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        metrics: ApprovalMetrics | None = None,
    ) -> None:
        self._records: dict[str, ApprovalRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.metrics = metrics

    def register(self, approval_id: str, tool_name: str, input: dict[str, Any] | None = None) -> ApprovalRecord:
        """Store a new pending record, replacing any record with the same id."""
        if not approval_id:
            raise ValidationError("approval id is required")
        if not tool_name:
            raise ValidationError("toolName is required", details={"approval_id": approval_id})

        record = ApprovalRecord(
            approval_id=approval_id,
            tool_name=tool_name,
            input=dict(input or {}),
            registered_at=self._clock(),
        )
        with self._lock:
            previous = self._records.get(approval_id)
            self._records[approval_id] = record
            if previous is not None and not previous.completion.done():
                # Release anyone still waiting on the replaced record; no human answered it
                previous.completion.set_result(SUPERSEDED)
            size = len(self._records)

        if previous is not None:
            logger.warning("Approval id re-registered, previous record replaced: %s", approval_id)
        logger.info(
            "Approval registered: %s", approval_id, extra={"tool_name": tool_name}
        )
        if self.metrics:
            self.metrics.record_registered(tool_name)
            self.metrics.set_records_held(size)
        return replace(record)

    def get(self, approval_id: str) -> ApprovalRecord | None:
        """Return a copy of the record, or None if unknown."""
        with self._lock:
            record = self._records.get(approval_id)
            return replace(record) if record is not None else None

    def get_status(self, approval_id: str) -> ApprovalStatus | None:
        with self._lock:
            record = self._records.get(approval_id)
            return record.status if record is not None else None

    def resolve(self, approval_id: str, approved: bool) -> ResolveOutcome:
        """
        Move a pending record to approved or denied.

        The first resolution wins. Later calls are no-ops reporting
        ALREADY_RESOLVED, so a double button press can neither flip the
        outcome nor signal the waiter twice.
        """
        with self._lock:
            record = self._records.get(approval_id)
            if record is None:
                outcome = ResolveOutcome.NOT_FOUND
            elif record.status.is_terminal:
                outcome = ResolveOutcome.ALREADY_RESOLVED
                current = record.status
            else:
                record.status = ApprovalStatus.APPROVED if approved else ApprovalStatus.DENIED
                record.resolved_at = self._clock()
                if not record.completion.done():
                    record.completion.set_result(record.status)
                outcome = ResolveOutcome.RESOLVED

        if outcome is ResolveOutcome.NOT_FOUND:
            logger.warning("Approval not found: %s", approval_id)
        elif outcome is ResolveOutcome.ALREADY_RESOLVED:
            logger.warning(
                "Approval already processed: %s", approval_id, extra={"status": current.value}
            )
        else:
            logger.info("Approval %s: %s", "granted" if approved else "denied", approval_id)
        if self.metrics:
            self.metrics.record_resolution(outcome, approved)
        return outcome

    def delete(self, approval_id: str) -> bool:
        """Remove a record unconditionally. Returns whether anything was removed."""
        with self._lock:
            removed = self._records.pop(approval_id, None) is not None
            size = len(self._records)
        if removed:
            logger.debug("Approval cleaned up: %s", approval_id)
        if self.metrics:
            self.metrics.set_records_held(size)
        return removed

    def sweep(self, max_age_seconds: float) -> list[str]:
        """Remove every record registered more than max_age_seconds ago, whatever its status."""
        now = self._clock()
        with self._lock:
            stale = [
                approval_id
                for approval_id, record in self._records.items()
                if record.age_seconds(now) > max_age_seconds
            ]
            for approval_id in stale:
                del self._records[approval_id]
            size = len(self._records)

        for approval_id in stale:
            logger.debug("Swept stale approval: %s", approval_id)
        if stale:
            logger.info("Swept %s stale approvals", len(stale))
        if self.metrics:
            self.metrics.record_swept(len(stale))
            self.metrics.set_records_held(size)
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            statuses = [r.status for r in self._records.values()]
        return {
            "total": len(statuses),
            "pending": sum(1 for s in statuses if s is ApprovalStatus.PENDING),
            "approved": sum(1 for s in statuses if s is ApprovalStatus.APPROVED),
            "denied": sum(1 for s in statuses if s is ApprovalStatus.DENIED),
        }
