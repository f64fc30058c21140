"""Toolgate coordination endpoint — the HTTP API sibling processes use to
register, inspect and resolve approvals."""

from __future__ import annotations

import asyncio
import errno
import logging
import socket
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from toolgate.approval.models import ResolveOutcome
from toolgate.approval.registry import ApprovalRegistry
from toolgate.config.settings import Settings
from toolgate.coordinator.slack_actions import register_slack_action_routes
from toolgate.core.exceptions import (
    ApprovalAlreadyResolvedError,
    ApprovalNotFoundError,
    PortInUseError,
    ToolgateError,
    ValidationError,
)
from toolgate.observability.metrics import register_metrics_endpoint

logger = logging.getLogger(__name__)

_STARTUP_TIMEOUT_SECONDS = 5.0


class RegisterRequest(BaseModel):
    tool_name: str = Field(alias="toolName", min_length=1)
    input: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True)


def _describe_validation_error(exc: PydanticValidationError) -> str:
    first = exc.errors(include_url=False)[0]
    if first["type"] == "json_invalid":
        return "Invalid JSON"
    location = ".".join(str(part) for part in first["loc"]) or "body"
    return f"{location}: {first['msg']}"


def _error_response(status_code: int, exc: ToolgateError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": exc.message})


def create_app(registry: ApprovalRegistry, settings: Settings | None = None) -> FastAPI:
    """Build the coordination endpoint around an explicitly constructed registry."""
    settings = settings or Settings()
    app = FastAPI(title="Toolgate Approval Coordinator", version=settings.version)
    app.state.registry = registry
    app.state.settings = settings

    _register_exception_handlers(app)
    _register_middleware(app)
    _register_routes(app, registry)

    if registry.metrics is not None:
        register_metrics_endpoint(app, registry.metrics)
    if settings.slack.signing_secret:
        register_slack_action_routes(app, registry, settings.slack.signing_secret)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error_response(400, exc)

    @app.exception_handler(ApprovalNotFoundError)
    async def not_found_handler(request: Request, exc: ApprovalNotFoundError):
        return _error_response(404, exc)

    @app.exception_handler(ApprovalAlreadyResolvedError)
    async def already_resolved_handler(request: Request, exc: ApprovalAlreadyResolvedError):
        return _error_response(409, exc)

    @app.exception_handler(ToolgateError)
    async def toolgate_error_handler(request: Request, exc: ToolgateError):
        logger.error("Unhandled coordinator error: %s", exc.message, extra={"error": exc.to_dict()})
        return _error_response(500, exc)


def _register_middleware(app: FastAPI) -> None:
    # Reachable from browser-rendered approval UIs as well as sibling processes
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )


def _register_routes(app: FastAPI, registry: ApprovalRegistry) -> None:
    @app.get("/health")
    async def health():
        return {"status": "ok", "pendingApprovals": len(registry)}

    @app.post("/register/{approval_id}")
    async def register(approval_id: str, request: Request):
        body = await request.body()
        try:
            payload = RegisterRequest.model_validate_json(body or b"{}")
        except PydanticValidationError as e:
            raise ValidationError(_describe_validation_error(e)) from e
        registry.register(approval_id, payload.tool_name, payload.input)
        return {"success": True, "id": approval_id}

    @app.get("/status/{approval_id}")
    async def status(approval_id: str):
        record = registry.get(approval_id)
        if record is None:
            raise ApprovalNotFoundError(approval_id)
        return {"success": True, "status": record.status.value, "toolName": record.tool_name}

    @app.post("/approve/{approval_id}")
    async def approve(approval_id: str):
        _check_outcome(approval_id, registry.resolve(approval_id, approved=True))
        return {"success": True, "message": "Approved"}

    @app.post("/deny/{approval_id}")
    async def deny(approval_id: str):
        _check_outcome(approval_id, registry.resolve(approval_id, approved=False))
        return {"success": True, "message": "Denied"}

    @app.post("/cleanup/{approval_id}")
    async def cleanup(approval_id: str):
        registry.delete(approval_id)
        return {"success": True}


def _check_outcome(approval_id: str, outcome: ResolveOutcome) -> None:
    if outcome is ResolveOutcome.NOT_FOUND:
        raise ApprovalNotFoundError(approval_id)
    if outcome is ResolveOutcome.ALREADY_RESOLVED:
        raise ApprovalAlreadyResolvedError(approval_id)


class CoordinatorServer:
    """
    Serves the coordination app on one fixed host/port.

    The socket is bound up front so a port conflict surfaces as
    PortInUseError from start() instead of a log line from a background task.
    """

    def __init__(self, app: FastAPI, host: str, port: int) -> None:
        self.app = app
        self.host = host
        self.port = port
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None

    @property
    def serve_task(self) -> asyncio.Task | None:
        return self._serve_task

    @property
    def started(self) -> bool:
        return bool(self._server and self._server.started)

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                logger.error("Port %s already in use. Cannot start approval server.", self.port)
                raise PortInUseError(self.host, self.port) from e
            raise
        return sock

    async def start(self) -> None:
        if self._serve_task is not None:
            logger.warning("Approval HTTP server already running")
            return

        sock = self._bind()
        config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(
            self._server.serve(sockets=[sock]), name="coordinator-server"
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + _STARTUP_TIMEOUT_SECONDS
        while not self._server.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise RuntimeError("Approval HTTP server exited during startup")
            if loop.time() > deadline:
                raise RuntimeError("Approval HTTP server did not start in time")
            await asyncio.sleep(0.05)
        logger.info("Approval HTTP server listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self._server is None or self._serve_task is None:
            return
        self._server.should_exit = True
        try:
            await self._serve_task
        finally:
            self._server = None
            self._serve_task = None
            logger.info("Approval HTTP server stopped")
