"""
Tests for toolgate.observability.metrics
=========================================

ApprovalMetrics counters/gauge and the /metrics endpoint. Every test builds
its own ApprovalMetrics, which owns a private CollectorRegistry, so tests
never collide with the global Prometheus REGISTRY or with each other.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from toolgate.approval.models import ResolveOutcome
from toolgate.config.settings import _project_version
from toolgate.observability.metrics import ApprovalMetrics, register_metrics_endpoint


class TestApprovalMetrics:
    def test_instances_do_not_share_registries(self):
        first = ApprovalMetrics()
        second = ApprovalMetrics()
        assert first.registry is not second.registry
        assert first.registry is not REGISTRY

    def test_service_info(self, metrics):
        sample = metrics.registry.get_sample_value(
            "toolgate_service_info", {"service": "toolgate-test", "version": _project_version()}
        )
        assert sample == 1.0

    def test_record_registered(self, metrics):
        metrics.record_registered("bash")
        metrics.record_registered("bash")
        metrics.record_registered("python")
        sample = metrics.registry.get_sample_value
        assert sample("toolgate_approvals_registered_total", {"tool_name": "bash"}) == 2
        assert sample("toolgate_approvals_registered_total", {"tool_name": "python"}) == 1

    @pytest.mark.parametrize(
        ("outcome", "approved", "labels"),
        [
            (ResolveOutcome.RESOLVED, True, {"outcome": "resolved", "decision": "approve"}),
            (ResolveOutcome.NOT_FOUND, False, {"outcome": "not_found", "decision": "deny"}),
            (ResolveOutcome.ALREADY_RESOLVED, True, {"outcome": "already_resolved", "decision": "approve"}),
        ],
    )
    def test_record_resolution(self, metrics, outcome, approved, labels):
        metrics.record_resolution(outcome, approved)
        assert metrics.registry.get_sample_value("toolgate_approval_resolutions_total", labels) == 1

    def test_record_swept_ignores_zero(self, metrics):
        metrics.record_swept(0)
        metrics.record_swept(3)
        assert metrics.registry.get_sample_value("toolgate_approvals_swept_total") == 3

    def test_records_held_gauge_overwrites(self, metrics):
        metrics.set_records_held(5)
        metrics.set_records_held(2)
        assert metrics.registry.get_sample_value("toolgate_approval_records") == 2


class TestMetricsEndpoint:
    def test_register_metrics_endpoint(self, metrics):
        app = FastAPI()
        register_metrics_endpoint(app, metrics)
        metrics.record_registered("bash")

        resp = TestClient(app).get("/metrics")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "toolgate_approvals_registered_total" in resp.text

    @pytest.mark.asyncio
    async def test_get_metrics_handler(self, metrics):
        handler = metrics.get_metrics_handler()
        response = await handler()
        assert b"toolgate_approval_records" in response.body
