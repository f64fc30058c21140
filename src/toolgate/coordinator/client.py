"""HTTP client for the coordination endpoint, used by short-lived worker processes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from toolgate.approval.models import ApprovalStatus, ResolveOutcome
from toolgate.core.exceptions import CoordinatorUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusResult:
    """Answer to GET /status/{id}; found=False covers unknown, cleaned up and swept alike."""

    found: bool
    status: ApprovalStatus | None = None
    tool_name: str | None = None


_RESOLVE_OUTCOMES = {
    200: ResolveOutcome.RESOLVED,
    404: ResolveOutcome.NOT_FOUND,
    409: ResolveOutcome.ALREADY_RESOLVED,
}


class CoordinatorClient:
    """Thin async wrapper over the coordinator routes."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> CoordinatorClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> tuple[int, dict[str, Any]]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise CoordinatorUnavailableError(
                f"Approval coordinator unreachable at {self.base_url}: {e}",
                details={"path": path},
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise CoordinatorUnavailableError(
                "Approval coordinator returned a non-JSON response",
                details={"path": path, "status_code": response.status_code},
            ) from e
        if not isinstance(data, dict):
            raise CoordinatorUnavailableError(
                "Approval coordinator returned an unexpected payload",
                details={"path": path, "status_code": response.status_code},
            )
        return response.status_code, data

    @staticmethod
    def _path(route: str, approval_id: str) -> str:
        return f"/{route}/{quote(approval_id, safe='')}"

    async def register(self, approval_id: str, tool_name: str, input: dict[str, Any]) -> bool:
        """
        Register an approval with the coordinator.

        Returns False when the coordinator rejects the request; raises
        CoordinatorUnavailableError when it cannot be reached at all.
        """
        _, data = await self._request(
            "POST",
            self._path("register", approval_id),
            json={"toolName": tool_name, "input": input},
        )
        if not data.get("success"):
            logger.error(
                "Coordinator rejected approval registration: %s",
                data.get("error", "unknown error"),
                extra={"approval_id": approval_id},
            )
            return False
        return True

    async def status(self, approval_id: str) -> StatusResult:
        status_code, data = await self._request("GET", self._path("status", approval_id))
        if status_code == 404:
            return StatusResult(found=False)
        if status_code != 200 or not data.get("success"):
            raise CoordinatorUnavailableError(
                f"Unexpected status response ({status_code})",
                details={"approval_id": approval_id, "body": data},
            )
        try:
            status = ApprovalStatus(data.get("status"))
        except ValueError as e:
            raise CoordinatorUnavailableError(
                f"Unknown approval status {data.get('status')!r}",
                details={"approval_id": approval_id},
            ) from e
        return StatusResult(found=True, status=status, tool_name=data.get("toolName"))

    async def _resolve(self, route: str, approval_id: str) -> ResolveOutcome:
        status_code, data = await self._request("POST", self._path(route, approval_id))
        outcome = _RESOLVE_OUTCOMES.get(status_code)
        if outcome is None:
            raise CoordinatorUnavailableError(
                f"Unexpected {route} response ({status_code})",
                details={"approval_id": approval_id, "body": data},
            )
        return outcome

    async def approve(self, approval_id: str) -> ResolveOutcome:
        return await self._resolve("approve", approval_id)

    async def deny(self, approval_id: str) -> ResolveOutcome:
        return await self._resolve("deny", approval_id)

    async def cleanup(self, approval_id: str) -> None:
        """Best-effort removal; the reaper collects anything this misses."""
        try:
            await self._request("POST", self._path("cleanup", approval_id))
        except CoordinatorUnavailableError as e:
            logger.debug("Ignoring cleanup failure for %s: %s", approval_id, e.message)

    async def health(self) -> dict[str, Any]:
        _, data = await self._request("GET", "/health")
        return data
