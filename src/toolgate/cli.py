"""
Toolgate CLI — toolgate serve | permission-server | status | approve | deny
"""
import asyncio
import sys

import click

from toolgate.approval.models import ResolveOutcome
from toolgate.config.settings import Settings, _project_version, apply_legacy_env, load_settings
from toolgate.coordinator.client import CoordinatorClient
from toolgate.core.exceptions import ConfigurationError, CoordinatorUnavailableError, PortInUseError
from toolgate.core.structured_logger import configure_logging


def _load(config_path: str | None) -> Settings:
    try:
        return load_settings(config_path)
    except (ConfigurationError, ValueError, FileNotFoundError) as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        raise SystemExit(1)


def _client(settings: Settings) -> CoordinatorClient:
    coordinator = settings.coordinator
    return CoordinatorClient(coordinator.base_url, timeout=coordinator.request_timeout_seconds)


@click.group()
@click.version_option(version=_project_version(), prog_name="toolgate")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    envvar="TOOLGATE_CONFIG",
    default=None,
    help="YAML config file (defaults to environment only)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """Toolgate — human approval for agent tool calls."""
    ctx.obj = {"config_path": config_path}


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the approval coordinator until SIGINT/SIGTERM."""
    from toolgate.lifecycle import Runtime

    settings = _load(ctx.obj["config_path"])
    configure_logging(settings.logging)
    try:
        asyncio.run(Runtime(settings=settings).run())
    except PortInUseError as e:
        click.echo(e.message, err=True)
        raise SystemExit(1)


@cli.command("permission-server")
@click.pass_context
def permission_server(ctx: click.Context) -> None:
    """Run the permission_prompt MCP server over stdio."""
    from toolgate.permission.mcp_server import run

    run(apply_legacy_env(_load(ctx.obj["config_path"])))


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Health check the running coordinator."""
    settings = _load(ctx.obj["config_path"])

    async def _health() -> dict:
        async with _client(settings) as client:
            return await client.health()

    try:
        health = asyncio.run(_health())
    except CoordinatorUnavailableError as e:
        click.echo(e.message, err=True)
        sys.exit(1)
    click.echo(f"status: {health.get('status')}")
    click.echo(f"pending approvals: {health.get('pendingApprovals')}")


def _resolve(config_path: str | None, approval_id: str, approved: bool) -> None:
    settings = _load(config_path)

    async def _call() -> ResolveOutcome:
        async with _client(settings) as client:
            if approved:
                return await client.approve(approval_id)
            return await client.deny(approval_id)

    try:
        outcome = asyncio.run(_call())
    except CoordinatorUnavailableError as e:
        click.echo(e.message, err=True)
        sys.exit(1)

    if outcome is ResolveOutcome.RESOLVED:
        click.echo(f"{approval_id}: {'approved' if approved else 'denied'}")
    elif outcome is ResolveOutcome.ALREADY_RESOLVED:
        click.echo(f"{approval_id}: already resolved", err=True)
        sys.exit(1)
    else:
        click.echo(f"{approval_id}: not found", err=True)
        sys.exit(1)


@cli.command()
@click.argument("approval_id")
@click.pass_context
def approve(ctx: click.Context, approval_id: str) -> None:
    """Approve a pending tool call."""
    _resolve(ctx.obj["config_path"], approval_id, approved=True)


@cli.command()
@click.argument("approval_id")
@click.pass_context
def deny(ctx: click.Context, approval_id: str) -> None:
    """Deny a pending tool call."""
    _resolve(ctx.obj["config_path"], approval_id, approved=False)


if __name__ == "__main__":
    cli()
