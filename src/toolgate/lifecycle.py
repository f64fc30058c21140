"""Lifecycle Management — bootstrap, signal handling, and graceful shutdown for the coordinator."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass

from toolgate.approval.reaper import Reaper
from toolgate.approval.registry import ApprovalRegistry
from toolgate.config.settings import Settings, load_settings
from toolgate.coordinator.server import CoordinatorServer, create_app
from toolgate.core.structured_logger import get_logger
from toolgate.observability.metrics import ApprovalMetrics

logger = get_logger("Lifecycle")


@dataclass
class RuntimeContext:
    """DI container holding all initialized coordinator components."""

    settings: Settings
    registry: ApprovalRegistry
    metrics: ApprovalMetrics
    server: CoordinatorServer
    reaper: Reaper


class Runtime:
    """Runtime orchestrator — bootstrap, signal handling, graceful shutdown."""

    def __init__(
        self,
        config_path: str | None = None,
        settings: Settings | None = None,
        shutdown_timeout: float = 10.0,
        install_signal_handlers: bool = True,
    ):
        self.config_path = config_path
        self.settings = settings
        self.shutdown_timeout = shutdown_timeout
        self.install_signal_handlers = install_signal_handlers
        self.context: RuntimeContext | None = None
        self._shutdown_event = asyncio.Event()
        self._initialized = False
        self._shutdown_in_progress = False

    async def bootstrap(self) -> RuntimeContext:
        """Bootstrap the coordinator and return RuntimeContext.

        Raises PortInUseError if the fixed coordination port is taken.
        """
        if self._initialized:
            logger.warning("Runtime already initialized")
            return self.context

        logger.info("Bootstrapping toolgate coordinator")
        settings = self.settings or load_settings(self.config_path)
        coordinator = settings.coordinator

        metrics = ApprovalMetrics(service_name=settings.project_name.lower())
        registry = ApprovalRegistry(metrics=metrics)
        app = create_app(registry, settings)

        server = CoordinatorServer(app, coordinator.host, coordinator.port)
        await server.start()

        reaper = Reaper(
            registry,
            interval=coordinator.reaper_interval_seconds,
            max_age=coordinator.stale_after_seconds,
        )
        await reaper.start()

        if self.install_signal_handlers:
            self._setup_signal_handlers()

        self.context = RuntimeContext(
            settings=settings,
            registry=registry,
            metrics=metrics,
            server=server,
            reaper=reaper,
        )
        self._initialized = True
        logger.info(
            "Runtime bootstrap completed",
            host=coordinator.host,
            port=coordinator.port,
            slack_actions_enabled=bool(settings.slack.signing_secret),
        )
        return self.context

    def _setup_signal_handlers(self):
        """Setup OS signal handlers for graceful shutdown."""

        def signal_handler(signum, _frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating graceful shutdown")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)
        logger.debug("Signal handlers registered")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def wait_for_shutdown(self):
        """Wait for a shutdown request or for the HTTP server to exit on its own."""
        waiters = [asyncio.ensure_future(self._shutdown_event.wait())]
        serve_task = self.context.server.serve_task if self.context else None
        if serve_task is not None:
            waiters.append(serve_task)
        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        if waiters[0] in pending:
            waiters[0].cancel()

    async def shutdown(self):
        """Graceful shutdown: stop accepting HTTP requests, then stop the reaper."""
        if not self._initialized:
            logger.warning("Runtime not initialized, nothing to shutdown")
            return
        if self._shutdown_in_progress:
            logger.warning("Shutdown already in progress")
            return

        self._shutdown_in_progress = True
        shutdown_start = asyncio.get_running_loop().time()
        logger.info("Starting graceful shutdown", timeout_seconds=self.shutdown_timeout)

        try:
            for name, component in [
                ("server", self.context.server),
                ("reaper", self.context.reaper),
            ]:
                try:
                    logger.info(f"Stopping {name}")
                    await asyncio.wait_for(component.stop(), timeout=self.shutdown_timeout)
                except TimeoutError:
                    logger.error(f"Timed out stopping {name}")
                except Exception as e:
                    logger.error(f"Error stopping {name}: {e}")

            shutdown_duration = asyncio.get_running_loop().time() - shutdown_start
            self._initialized = False
            logger.info(
                "Shutdown completed",
                duration_seconds=shutdown_duration,
                records=self.context.registry.get_stats(),
            )
        finally:
            self._shutdown_in_progress = False

    async def run(self) -> None:
        """Bootstrap, serve until shutdown is requested, then shut down."""
        await self.bootstrap()
        try:
            await self.wait_for_shutdown()
        finally:
            await self.shutdown()
