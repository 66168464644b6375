"""Command line interface for the IaC deployment orchestrator."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Coroutine
from typing import Any, TypeVar

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from iac_orchestrator.api.dependencies.services import ServiceContainer
from iac_orchestrator.config import get_settings
from iac_orchestrator.domain.errors import (
    ConfigurationError,
    OrchestratorError,
    PlanValidationError,
    StateStoreError,
)
from iac_orchestrator.domain.models.configuration import MAX_RETRIES, RunOptions
from iac_orchestrator.domain.models.deployment import DeploymentResult, DeploymentState
from iac_orchestrator.domain.models.repository import (
    MAX_CACHE_TTL_SECONDS,
    MIN_CACHE_TTL_SECONDS,
    RepositoryEntry,
)
from iac_orchestrator.domain.models.stage import StageName
from iac_orchestrator.domain.services.context import CancellationToken
from iac_orchestrator.infrastructure.observability.logging import setup_logging
from iac_orchestrator.infrastructure.observability.tracing import setup_tracing


logger = structlog.get_logger(__name__)

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2

T = TypeVar("T")

STATUS_STYLES = {
    "Completed": "green",
    "CompletedWithWarnings": "yellow",
    "PartiallyCompleted": "yellow",
    "DryRunCompleted": "cyan",
    "Failed": "red",
    "Synced": "green",
    "Registered": "dim",
    "CloneFailed": "red",
}


def _styled(value: str) -> str:
    style = STATUS_STYLES.get(value, "white")
    return f"[{style}]{value}[/{style}]"


async def _run_cancellable(coro: Coroutine[Any, Any, T], token: CancellationToken) -> T:
    """Await ``coro`` with SIGINT/SIGTERM requesting cancellation between stages."""
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available off the main thread or on Windows event loops.
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")
            installed.append(sig)
    try:
        return await coro
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _print_result(result: DeploymentResult) -> None:
    table = Table(title="Stages")
    table.add_column("Stage", style="bold")
    table.add_column("Result")
    table.add_column("Attempts", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Detail")
    for stage_result in result.stage_results:
        if stage_result.skipped:
            outcome = "[cyan]skipped[/cyan]"
        elif stage_result.success:
            outcome = "[green]ok[/green]"
        elif stage_result.verification_failed:
            outcome = "[yellow]checks failed[/yellow]"
        else:
            outcome = "[red]failed[/red]"
        table.add_row(
            stage_result.stage.value,
            outcome,
            str(stage_result.attempts),
            f"{stage_result.duration_seconds:.1f}s",
            stage_result.error or "",
        )
    console.print(table)

    lines = [
        f"[bold]Deployment:[/bold] {result.deployment_id}",
        f"[bold]Status:[/bold] {_styled(result.status.value)}",
        f"[bold]Completed:[/bold] {', '.join(s.value for s in result.completed_stages) or '-'}",
        f"[bold]Duration:[/bold] {result.duration_seconds:.1f}s",
    ]
    if result.resumed_from:
        lines.append(
            f"[bold]Resumed from:[/bold] {result.resumed_from.checkpoint} "
            f"of {result.resumed_from.deployment_id}"
        )
    if result.failure_reason:
        lines.append(f"[bold red]Failure:[/bold red] {result.failure_reason}")
    lines.extend(f"[red]error:[/red] {error}" for error in result.errors)
    lines.extend(f"[yellow]warning:[/yellow] {warning}" for warning in result.warnings)
    border = "green" if result.success else "red"
    console.print(Panel("\n".join(lines), title="Result", border_style=border))


def _print_repositories(entries: list[RepositoryEntry]) -> None:
    table = Table(title="Repositories")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Branch")
    table.add_column("Last sync")
    table.add_column("TTL", justify="right")
    table.add_column("Tags")
    table.add_column("URL", overflow="fold")
    for entry in entries:
        table.add_row(
            entry.name,
            _styled(entry.status.value),
            entry.branch,
            entry.last_sync_time.isoformat(timespec="seconds") if entry.last_sync_time else "never",
            f"{entry.cache_ttl}s",
            ", ".join(entry.tags),
            entry.url,
        )
    console.print(table)


def _print_state(state: DeploymentState) -> None:
    lines = [
        f"[bold]Deployment:[/bold] {state.id}",
        f"[bold]Configuration:[/bold] {state.configuration_name} ({state.configuration_path})",
        f"[bold]Status:[/bold] {_styled(state.display_status)}",
        f"[bold]Started:[/bold] {state.start_time.isoformat(timespec='seconds')}",
        f"[bold]Completed:[/bold] {', '.join(s.value for s in state.completed_stages) or '-'}",
        f"[bold]Checkpoints:[/bold] {', '.join(state.checkpoints) or '-'}",
    ]
    if state.end_time:
        lines.append(f"[bold]Ended:[/bold] {state.end_time.isoformat(timespec='seconds')}")
    if state.failure_reason:
        lines.append(f"[bold red]Failure:[/bold red] {state.failure_reason}")
    lines.extend(f"[red]error:[/red] {error}" for error in state.errors)
    lines.extend(f"[yellow]warning:[/yellow] {warning}" for warning in state.warnings)
    console.print(Panel("\n".join(lines), title="Deployment state"))

    if state.outputs:
        table = Table(title="Outputs")
        table.add_column("Name", style="bold")
        table.add_column("Value", overflow="fold")
        for name, value in sorted(state.outputs.items()):
            table.add_row(name, value)
        console.print(table)


@click.group()
@click.version_option(version="1.0.0")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Staged, resumable OpenTofu deployments from cached template repositories."""
    settings = get_settings()
    setup_logging(
        "DEBUG" if verbose else settings.observability.log_level,
        json_format=settings.observability.log_json,
    )
    setup_tracing(settings.observability)


@cli.command("start-deployment")
@click.argument("config_path", type=click.Path(dir_okay=False))
@click.option("--repository", help="Deploy from this registered repository instead")
@click.option("--dry-run", is_flag=True, help="Run without Apply; nothing is changed")
@click.option(
    "--stage",
    type=click.Choice([s.value for s in StageName], case_sensitive=False),
    help="Run only this stage",
)
@click.option("--checkpoint", help="Resume after this checkpoint, e.g. after-Plan")
@click.option("--deployment-id", help="Earlier deployment to resume or take artifacts from")
@click.option("--max-retries", type=click.IntRange(0, MAX_RETRIES), default=None)
@click.option("--force", is_flag=True, help="Continue past failed stages")
@click.option("--skip-pre-checks", is_flag=True, help="Skip repository refresh and tool checks")
@click.pass_context
def start_deployment(
    ctx: click.Context,
    config_path: str,
    repository: str | None,
    dry_run: bool,
    stage: str | None,
    checkpoint: str | None,
    deployment_id: str | None,
    max_retries: int | None,
    force: bool,
    skip_pre_checks: bool,
) -> None:
    """Deploy the configuration at CONFIG_PATH."""
    container = ServiceContainer.get_instance()
    if max_retries is None:
        max_retries = container.settings.execution.default_max_retries
    options = RunOptions(
        dry_run=dry_run,
        stage=stage,
        checkpoint=checkpoint,
        deployment_id=deployment_id,
        max_retries=max_retries,
        force=force,
        skip_pre_checks=skip_pre_checks,
        repository=repository,
    )

    token = CancellationToken()
    try:
        result = asyncio.run(_run_cancellable(
            container.orchestrator.start_deployment(config_path, options, token), token
        ))
    except (ConfigurationError, PlanValidationError) as e:
        console.print(f"[red]Invalid configuration or plan:[/red] {e}")
        ctx.exit(EXIT_INVALID)
    except StateStoreError as e:
        console.print(f"[red]State could not be persisted:[/red] {e}")
        ctx.exit(EXIT_FAILED)

    _print_result(result)
    ctx.exit(EXIT_OK if result.success else EXIT_FAILED)


@cli.command("register-repository")
@click.argument("url")
@click.argument("name")
@click.option("--branch", default="main", show_default=True)
@click.option(
    "--cache-ttl",
    type=click.IntRange(MIN_CACHE_TTL_SECONDS, MAX_CACHE_TTL_SECONDS),
    default=None,
    help="Seconds a sync stays fresh",
)
@click.option("--credential-ref", help="Name of the credential holding the access token")
@click.option("--auto-sync", is_flag=True, help="Clone immediately after registering")
@click.option("--tags", multiple=True, help="Tag(s); comma separated or repeated")
@click.option("--update", is_flag=True, help="Replace an existing registration")
@click.pass_context
def register_repository(
    ctx: click.Context,
    url: str,
    name: str,
    branch: str,
    cache_ttl: int | None,
    credential_ref: str | None,
    auto_sync: bool,
    tags: tuple[str, ...],
    update: bool,
) -> None:
    """Register the template repository at URL under NAME."""
    container = ServiceContainer.get_instance()
    tag_list = [t.strip() for value in tags for t in value.split(",") if t.strip()]
    try:
        entry = asyncio.run(container.repository_cache.register(
            name=name,
            url=url,
            branch=branch,
            credential_ref=credential_ref,
            cache_ttl=cache_ttl,
            auto_sync=auto_sync,
            tags=tag_list,
            update=update,
        ))
    except ConfigurationError as e:
        console.print(f"[red]Invalid repository settings:[/red] {e}")
        ctx.exit(EXIT_INVALID)
    except OrchestratorError as e:
        console.print(f"[red]Registration failed:[/red] {e}")
        ctx.exit(EXIT_FAILED)

    console.print(f"[green]Registered[/green] {entry.name} -> {entry.local_path}")
    for warning in entry.validation_warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    _print_repositories([entry])


@cli.command("sync-repository")
@click.argument("names", nargs=-1)
@click.option("--force", is_flag=True, help="Fetch even if the cache is still fresh")
@click.pass_context
def sync_repository(ctx: click.Context, names: tuple[str, ...], force: bool) -> None:
    """Sync NAMES, or every registered repository when none are given."""
    container = ServiceContainer.get_instance()
    results = asyncio.run(container.repository_cache.sync_many(list(names) or None, force=force))

    failed = False
    synced: list[RepositoryEntry] = []
    for name, outcome in results.items():
        if isinstance(outcome, OrchestratorError):
            failed = True
            console.print(f"[red]{name}:[/red] {outcome}")
        else:
            synced.append(outcome)
            for warning in outcome.validation_warnings:
                console.print(f"[yellow]{name}: warning:[/yellow] {warning}")
    if synced:
        _print_repositories(synced)
    ctx.exit(EXIT_FAILED if failed else EXIT_OK)


@cli.command("list-repositories")
@click.option("--tag", help="Only repositories carrying this tag")
def list_repositories(tag: str | None) -> None:
    """List registered repositories."""
    container = ServiceContainer.get_instance()
    entries = asyncio.run(container.repository_cache.list_repositories(tag=tag))
    if not entries:
        console.print("[dim]No repositories registered.[/dim]")
        return
    _print_repositories(entries)


@cli.command("remove-repository")
@click.argument("name")
@click.option("--purge", is_flag=True, help="Also delete the local mirror")
@click.pass_context
def remove_repository(ctx: click.Context, name: str, purge: bool) -> None:
    """Unregister repository NAME."""
    container = ServiceContainer.get_instance()
    try:
        asyncio.run(container.repository_cache.remove(name, purge=purge))
    except OrchestratorError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(EXIT_FAILED)
    console.print(f"[green]Removed[/green] {name}")


@cli.command("show-deployment")
@click.argument("deployment_id")
@click.pass_context
def show_deployment(ctx: click.Context, deployment_id: str) -> None:
    """Show the persisted state of a deployment."""
    container = ServiceContainer.get_instance()
    try:
        state = asyncio.run(container.state_store.load(deployment_id))
    except (ValueError, StateStoreError) as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(EXIT_FAILED)
    if state is None:
        console.print(f"[red]Deployment {deployment_id} not found[/red]")
        ctx.exit(EXIT_FAILED)
    _print_state(state)


@cli.command("list-deployments")
@click.option("--limit", type=click.IntRange(1, 500), default=20, show_default=True)
def list_deployments(limit: int) -> None:
    """List recent deployments."""
    container = ServiceContainer.get_instance()
    states = asyncio.run(container.state_store.list_states(limit=limit))
    table = Table(title="Deployments")
    table.add_column("ID", style="bold")
    table.add_column("Configuration")
    table.add_column("Status")
    table.add_column("Started")
    for state in states:
        table.add_row(
            state.id,
            state.configuration_name,
            _styled(state.display_status),
            state.start_time.isoformat(timespec="seconds"),
        )
    console.print(table)


@cli.command("list-checkpoints")
@click.argument("deployment_id")
@click.pass_context
def list_checkpoints(ctx: click.Context, deployment_id: str) -> None:
    """List the checkpoints a deployment can be resumed from."""
    container = ServiceContainer.get_instance()
    try:
        checkpoints = asyncio.run(container.state_store.list_checkpoints(deployment_id))
    except (ValueError, StateStoreError) as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(EXIT_FAILED)
    table = Table(title=f"Checkpoints of {deployment_id}")
    table.add_column("Name", style="bold")
    table.add_column("Stage")
    table.add_column("Written")
    for checkpoint in checkpoints:
        table.add_row(
            checkpoint.name,
            checkpoint.stage.value,
            checkpoint.timestamp.isoformat(timespec="seconds"),
        )
    console.print(table)


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to settings)")
@click.option("--port", type=int, default=None, help="Port (defaults to settings)")
def serve(host: str | None, port: int | None) -> None:
    """Serve the HTTP API."""
    from iac_orchestrator.main import run_server

    run_server(host=host, port=port)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
