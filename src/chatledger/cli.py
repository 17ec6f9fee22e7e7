"""
chatledger CLI - command-line interface for harvesting and inspecting sessions.

Every command opens the configured database (or the one given with
--db-url), so the CLI and the API server can share one store file.
"""

import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from chatledger import __version__
from chatledger.exceptions import ChatLedgerError
from chatledger.logging_config import setup_logging

app = typer.Typer(
    name="chatledger",
    help="chatledger - canonical, versioned storage for AI chat sessions",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    db_url: Optional[str] = typer.Option(
        None,
        "--db-url",
        envvar="CHATLEDGER_DB_URL",
        help="SQLAlchemy database URL (defaults to the configured database)",
    ),
) -> None:
    """chatledger command group."""
    ctx.obj = {"db_url": db_url}


def _open_store(ctx: typer.Context):
    """Create tables if needed and open a store on the selected database."""
    from chatledger.db.connection import create_db_engine, get_engine, init_db
    from chatledger.db.store import Store

    db_url = (ctx.obj or {}).get("db_url")
    engine = create_db_engine(db_url) if db_url else get_engine()
    init_db(engine)
    return Store(engine)


def _parse_uuid(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Invalid {what} id: {value}")
        raise typer.Exit(2)


@app.command("init-db")
def init_db_command(ctx: typer.Context) -> None:
    """Create the database schema (tables and full-text indexes)."""
    setup_logging(context="cli")
    store = _open_store(ctx)
    console.print(f"[green]✓ Database ready:[/green] {store.engine.url!r}")


@app.command()
def harvest(
    ctx: typer.Context,
    providers: list[str] = typer.Argument(
        ..., help="Provider adapters to run (e.g. codex json-export)"
    ),
    path: Optional[Path] = typer.Option(
        None, "--path", "-p", help="Read sources from this file or directory"
    ),
    workspace: Optional[str] = typer.Option(
        None, "--workspace", "-w", help="Workspace path (defaults to --path)"
    ),
    workspace_name: Optional[str] = typer.Option(
        None, "--workspace-name", help="Display name for a new workspace"
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", help="Parallel extraction threads"
    ),
    no_branching: bool = typer.Option(
        False,
        "--no-branching",
        help="Treat divergent history as an error instead of creating a branch",
    ),
) -> None:
    """
    Harvest sessions from one or more providers.

    Unchanged sources are skipped without writes; edited history is kept
    as new branches. A source that fails to parse is reported and skipped.
    """
    from chatledger.pipeline.harvest import harvest as run_harvest
    from chatledger.pipeline.harvest import resolve_workspace
    from chatledger.pipeline.normalizer import Normalizer
    from chatledger.providers import get_default_registry

    setup_logging(context="cli")
    registry = get_default_registry()

    adapters = []
    for name in providers:
        try:
            adapter = registry.get(name)
        except KeyError as e:
            console.print(f"[bold red]Error:[/bold red] {e.args[0]}")
            raise typer.Exit(2)
        if path is not None:
            for_root = getattr(adapter, "for_root", None)
            if not callable(for_root):
                console.print(
                    f"[bold red]Error:[/bold red] Provider {name!r} "
                    f"does not read from a path"
                )
                raise typer.Exit(2)
            if not path.exists():
                console.print(f"[bold red]Error:[/bold red] Path not found: {path}")
                raise typer.Exit(1)
            adapter = for_root(path)
        adapters.append(adapter)

    store = _open_store(ctx)
    workspace_path = workspace or (str(path) if path is not None else None)
    workspace_id = resolve_workspace(
        store,
        workspace_path,
        provider=providers[0] if len(providers) == 1 else None,
        name=workspace_name,
    )

    console.print(f"[bold blue]Harvesting:[/bold blue] {', '.join(providers)}")
    summary = run_harvest(
        store,
        adapters,
        workspace_id=workspace_id,
        max_workers=workers,
        normalizer=Normalizer(store, allow_branching=False) if no_branching else None,
    )

    table = Table(title="Sources")
    table.add_column("Provider")
    table.add_column("Source", overflow="fold")
    table.add_column("Status")
    table.add_column("Sessions", justify="right")
    colors = {"ok": "green", "partial": "yellow", "failed": "red"}
    for source in summary.sources:
        color = colors[source.status]
        status = f"[{color}]{source.status}[/{color}]"
        table.add_row(
            source.provider, source.location, status, str(len(source.sessions))
        )
    if summary.sources:
        console.print(table)

    for failure in summary.failures:
        console.print(f"[red]✗[/red] {failure.location}: {failure.error}")

    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Sources ok: {summary.sources_ok}")
    console.print(f"  Sources partial: {summary.sources_partial}")
    console.print(f"  Sources failed: {summary.sources_failed}")
    console.print(f"  Sessions created: {summary.sessions_created}")
    console.print(f"  Sessions updated: {summary.sessions_updated}")
    console.print(f"  Sessions unchanged: {summary.sessions_unchanged}")
    console.print(f"  Messages added: {summary.messages_added}")
    console.print(f"  Branches created: {summary.branches_created}")
    console.print(f"  Version: {summary.version_before} -> {summary.version_after}")

    if summary.sources_failed or summary.sources_partial:
        raise typer.Exit(1)


@app.command()
def version(ctx: typer.Context) -> None:
    """Show the package version and the store's sync version."""
    store = _open_store(ctx)
    console.print(f"chatledger {__version__}")
    console.print(f"Sync version: {store.sync.current_version()}")


@app.command()
def checkpoint(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session id"),
    name: str = typer.Argument(..., help="Checkpoint name"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    git_commit: Optional[str] = typer.Option(None, "--git-commit"),
    git_branch: Optional[str] = typer.Option(None, "--git-branch"),
) -> None:
    """Snapshot a session's current state."""
    from chatledger.checkpoints import CheckpointService

    setup_logging(context="cli")
    service = CheckpointService(_open_store(ctx))
    try:
        created = service.create(
            _parse_uuid(session_id, "session"),
            name,
            description=description,
            git_commit=git_commit,
            git_branch=git_branch,
            actor="cli",
        )
    except ChatLedgerError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print(
        f"[green]✓ Checkpoint created[/green] {created.id} "
        f"(version {created.version}, {created.message_count} messages)"
    )


@app.command()
def checkpoints(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session id"),
) -> None:
    """List a session's checkpoints, oldest first."""
    from chatledger.checkpoints import CheckpointService

    service = CheckpointService(_open_store(ctx))
    try:
        rows = service.list_for_session(_parse_uuid(session_id, "session"))
    except ChatLedgerError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)

    if not rows:
        console.print("[yellow]No checkpoints[/yellow]")
        return
    table = Table(title=f"Checkpoints for {session_id}")
    table.add_column("Version", justify="right")
    table.add_column("Name")
    table.add_column("Messages", justify="right")
    table.add_column("Created")
    for row in rows:
        table.add_row(
            str(row.version), row.name, str(row.message_count), str(row.created_at)
        )
    console.print(table)
    console.print(f"{len(rows)} checkpoint(s)")


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search terms"),
    kind: str = typer.Option("message", help="message, document or memory"),
    limit: int = typer.Option(20, help="Maximum hits"),
) -> None:
    """Full-text search over stored content."""
    from chatledger.services.search_service import SEARCH_KINDS, SearchService

    if kind not in SEARCH_KINDS:
        console.print(f"[bold red]Error:[/bold red] Unknown kind {kind!r}")
        raise typer.Exit(2)
    hits = SearchService(_open_store(ctx)).search(kind, query, limit)
    if not hits:
        console.print("[yellow]No matches[/yellow]")
        return
    table = Table(title=f"{kind} matches for {query!r}")
    table.add_column("Id")
    table.add_column("Score", justify="right")
    table.add_column("Snippet", overflow="fold")
    for hit in hits:
        table.add_row(hit.entity_id, f"{hit.score:.3f}", hit.entity["snippet"])
    console.print(table)
    console.print(f"{len(hits)} match(es)")


@app.command()
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, help="Host to bind to"),
    port: Optional[int] = typer.Option(None, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """
    Start the API server.

    Serves the sync endpoints (/sync/...) plus sessions and search.
    """
    import uvicorn

    from chatledger.config import settings

    host = host or settings.api_host
    port = port or settings.api_port
    console.print("[bold green]Starting chatledger API server...[/bold green]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Reload: {reload}")
    console.print(f"\n  API docs: http://{host}:{port}/docs")

    db_url = (ctx.obj or {}).get("db_url")
    if db_url:
        from chatledger.api.app import create_app

        # An explicit database needs its own app object (no reload)
        uvicorn.run(create_app(_open_store(ctx)), host=host, port=port)
        return
    uvicorn.run("chatledger.api.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
