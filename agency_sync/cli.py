"""agency-sync CLI - run syncs, inspect progress, merge duplicates."""

import asyncio
import json
import logging

import typer
from rich.console import Console
from rich.table import Table

from .config import settings
from .database import build_engine, build_session_factory, init_db
from .integrations.registry import UnknownAdapterError, create_adapter, list_adapters
from .sync.engine import SyncAlreadyRunning, SyncEngine, expire_stale_runs, list_imports
from .sync.rate_limit import build_rate_limiters

app = typer.Typer(
    name="agency-sync",
    help="Agency data sync and entity resolution",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {"completed": "green", "failed": "red", "running": "yellow"}


def get_session_factory():
    """Sessions for one command. Each command runs its own event loop, so nothing is pooled."""
    return build_session_factory(build_engine(settings.database_url, settings.echo_sql, pooled=False))


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("init-db")
def init_db_command():
    """Create all tables."""
    asyncio.run(init_db())
    console.print("[green]Database initialized[/green]")


@app.command("adapters")
def adapters():
    """List available provider:resource adapters."""
    table = Table(title="Sync Adapters")
    table.add_column("Provider", style="cyan")
    table.add_column("Resource", style="white")
    for name in list_adapters():
        provider, resource = name.split(":", 1)
        table.add_row(provider, resource)
    console.print(table)


@app.command("sync")
def sync(
    provider: str = typer.Argument(..., help="Provider, e.g. hubspot"),
    resource: str = typer.Argument(..., help="Resource, e.g. deals"),
    json_output: bool = typer.Option(False, "--json", help="Print progress as JSON"),
):
    """Run one sync to completion."""
    session_factory = get_session_factory()
    try:
        adapter = create_adapter(provider, resource, session_factory, build_rate_limiters(settings), settings)
    except UnknownAdapterError as e:
        console.print(f"[red]{e}[/red]")
        console.print(f"[dim]Available: {', '.join(list_adapters())}[/dim]")
        raise typer.Exit(1)

    engine = SyncEngine(session_factory, settings)
    try:
        progress = asyncio.run(engine.run(adapter, triggered_by="cli"))
    except SyncAlreadyRunning as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(1)

    if json_output:
        console.print_json(progress.model_dump_json())
    else:
        style = STATUS_STYLES.get(progress.status, "white")
        console.print(f"[bold]{adapter.name}[/bold]: [{style}]{progress.status}[/{style}]")
        console.print(
            f"  found {progress.records_found}, synced {progress.records_synced}, "
            f"failed {progress.records_failed}"
        )
        if progress.current_step:
            console.print(f"  [dim]{progress.current_step}[/dim]")
        for error in progress.errors[:10]:
            console.print(f"  [red]{error}[/red]")
    if progress.status == "failed":
        raise typer.Exit(1)


@app.command("status")
def status(limit: int = typer.Option(20, "--limit", "-n", help="Number of runs to show")):
    """Show recent sync runs (stale running records are expired first)."""

    async def _load():
        async with get_session_factory()() as db:
            await expire_stale_runs(db, settings.sync_stale_after_seconds)
            return await list_imports(db, limit=limit)

    runs = asyncio.run(_load())
    if not runs:
        console.print("[dim]No sync runs yet[/dim]")
        return

    table = Table(title="Sync Runs")
    table.add_column("Started", style="dim")
    table.add_column("Adapter", style="cyan")
    table.add_column("Status")
    table.add_column("Found", justify="right")
    table.add_column("Synced", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Step")
    for run in runs:
        style = STATUS_STYLES.get(run.status, "white")
        table.add_row(
            run.started_at.strftime("%Y-%m-%d %H:%M") if run.started_at else "",
            f"{run.provider}:{run.resource}",
            f"[{style}]{run.status}[/{style}]",
            str(run.records_found),
            str(run.records_synced),
            str(run.records_failed),
            run.current_step or "",
        )
    console.print(table)


@app.command("merge-duplicates")
def merge_duplicates(
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan merges without applying them"),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
):
    """Fold duplicate clients into their canonical records (two passes)."""
    from .entities.merge import DuplicateMergeResolver, MergeError

    resolver = DuplicateMergeResolver(get_session_factory(), settings=settings)
    try:
        report = asyncio.run(resolver.run(dry_run=dry_run))
    except MergeError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print_json(report.model_dump_json())
        return

    verb = "Would merge" if dry_run else "Merged"
    for label, outcomes in (("Pass 1", report.pass1_merged), ("Pass 2", report.pass2_merged)):
        console.print(f"\n[bold]{label}[/bold]: {verb} {len(outcomes)}")
        for o in outcomes:
            console.print(
                f"  {o.duplicate_name!r} -> {o.primary_name!r} "
                f"[dim]({o.strategy}, {o.repointed} moved, {o.discarded} discarded)[/dim]"
            )
    if report.unmatched:
        console.print(f"\n[yellow]{len(report.unmatched)} without a match[/yellow]")
        for name in report.unmatched:
            console.print(f"  [dim]{name}[/dim]")


@app.command("suggestions")
def suggestions(json_output: bool = typer.Option(False, "--json", help="Print as JSON")):
    """List cross-source client and team member match suggestions."""
    from .entities.suggestions import find_client_suggestions, find_team_member_suggestions

    async def _load():
        async with get_session_factory()() as db:
            return await find_client_suggestions(db), await find_team_member_suggestions(db)

    clients, members = asyncio.run(_load())
    if json_output:
        console.print_json(json.dumps({
            "clients": [s.model_dump(mode="json") for s in clients],
            "team_members": [s.model_dump(mode="json") for s in members],
        }))
        return

    table = Table(title="Client Suggestions")
    table.add_column("A", style="cyan")
    table.add_column("B", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Status")
    for s in clients:
        table.add_row(
            f"{s.client_a_name} [dim]({s.client_a_source})[/dim]",
            f"{s.client_b_name} [dim]({s.client_b_source})[/dim]",
            f"{s.confidence}%",
            s.status,
        )
    console.print(table)

    table = Table(title="Team Member Suggestions")
    table.add_column("A", style="cyan")
    table.add_column("B", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Match")
    for s in members:
        table.add_row(s.member_a_name, s.member_b_name, f"{s.confidence}%", s.match_type)
    console.print(table)


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Launch the sync API."""
    import uvicorn

    console.print(f"[bold cyan]Starting Agency Sync at http://{host}:{port}[/bold cyan]")
    uvicorn.run("agency_sync.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
