"""Observability: Prometheus metrics for the approval coordinator."""

from toolgate.observability.metrics import ApprovalMetrics, register_metrics_endpoint

__all__ = ['ApprovalMetrics', 'register_metrics_endpoint']
