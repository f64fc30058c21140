"""Prometheus metrics for the approval coordinator — counters, gauge and /metrics handler."""

import logging

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

from toolgate.approval.models import ResolveOutcome
from toolgate.config.settings import _project_version

logger = logging.getLogger(__name__)


class ApprovalMetrics:
    """
    Metrics for one coordinator instance.

    Each instance owns its CollectorRegistry so several coordinators (or
    test apps) can live in one process without duplicate-timeseries errors.
    """

    def __init__(self, service_name: str = "toolgate", registry: CollectorRegistry | None = None) -> None:
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.service_info = Info("toolgate_service", "Service information", registry=self.registry)
        self.service_info.info({"service": service_name, "version": _project_version()})

        self.registered_total = Counter(
            "toolgate_approvals_registered_total",
            "Total approval requests registered",
            ["tool_name"],
            registry=self.registry,
        )
        self.resolutions_total = Counter(
            "toolgate_approval_resolutions_total",
            "Resolve calls by outcome",
            ["outcome", "decision"],
            registry=self.registry,
        )
        self.swept_total = Counter(
            "toolgate_approvals_swept_total",
            "Approval records evicted by the reaper",
            registry=self.registry,
        )
        self.records_held = Gauge(
            "toolgate_approval_records",
            "Approval records currently held by the registry",
            registry=self.registry,
        )
        logger.info("ApprovalMetrics initialized")

    def record_registered(self, tool_name: str) -> None:
        self.registered_total.labels(tool_name=tool_name).inc()

    def record_resolution(self, outcome: ResolveOutcome, approved: bool) -> None:
        self.resolutions_total.labels(
            outcome=outcome.value, decision="approve" if approved else "deny"
        ).inc()

    def record_swept(self, count: int) -> None:
        if count:
            self.swept_total.inc(count)

    def set_records_held(self, count: int) -> None:
        self.records_held.set(count)

    def get_metrics_handler(self):
        async def metrics() -> Response:
            return Response(content=generate_latest(self.registry), media_type=CONTENT_TYPE_LATEST)

        return metrics


def register_metrics_endpoint(app, metrics: ApprovalMetrics) -> None:
    """Register /metrics endpoint with a FastAPI app."""
    app.add_api_route("/metrics", metrics.get_metrics_handler(), methods=["GET"], include_in_schema=False)
    logger.info("Metrics endpoint registered: /metrics")
