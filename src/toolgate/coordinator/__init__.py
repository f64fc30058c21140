"""Coordination endpoint: FastAPI server, httpx client and Slack action route."""

from toolgate.coordinator.client import CoordinatorClient, StatusResult
from toolgate.coordinator.server import CoordinatorServer, create_app

__all__ = ['CoordinatorClient', 'CoordinatorServer', 'StatusResult', 'create_app']
