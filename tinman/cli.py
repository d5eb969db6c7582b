"""Tinman CLI: Typer + Rich terminal interface.

Commands: serve, demo, compat, replay, models, sessions, documents.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from tinman import __version__
from tinman.keys import PROVIDERS, has_key, load_keys_env
from tinman.providers.registry import load_app_config, load_models, load_roles
from tinman.schemas.config import AppConfig, StoreBackend
from tinman.schemas.documents import ArtifactKind
from tinman.schemas.session import SessionStatus

# Load API keys from ~/.tinman/keys.env and .env on startup
load_keys_env()

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="tinman",
    help="Resumable streaming chat sessions with live artifacts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

models_app = typer.Typer(
    name="models",
    help="Inspect the model registry.",
    no_args_is_help=True,
)
app.add_typer(models_app, name="models")

sessions_app = typer.Typer(
    name="sessions",
    help="Query session history.",
    no_args_is_help=True,
)
app.add_typer(sessions_app, name="sessions")

documents_app = typer.Typer(
    name="documents",
    help="Inspect persisted documents.",
    no_args_is_help=True,
)
app.add_typer(documents_app, name="documents")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"tinman {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log debug output.",
    ),
) -> None:
    """Tinman: resumable streaming chat sessions with live artifacts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


# ── Helpers ──────────────────────────────────────────────────────

def _load_config() -> AppConfig:
    """Load stream config, exit on error."""
    try:
        return load_app_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _status_text(status: SessionStatus) -> Text:
    return {
        SessionStatus.ACTIVE: Text("ACTIVE", style="yellow"),
        SessionStatus.COMPLETED: Text("OK", style="green"),
        SessionStatus.ABORTED: Text("ABORTED", style="red"),
    }[status]


async def _with_db(config: AppConfig, fn: Any) -> Any:
    from tinman.persistence.database import close_db, init_db

    db = await init_db(config.stream.db_path)
    try:
        return await fn(db)
    finally:
        await close_db(db)


# ── tinman serve ────────────────────────────────────────────────


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    store: str = typer.Option(
        None, "--store", help="Override the stream store backend (redis or memory)",
    ),
) -> None:
    """Run the HTTP server."""
    try:
        import uvicorn
    except ImportError:
        console.print("[red]The server requires uvicorn.[/red] Install with: pip install uvicorn")
        raise typer.Exit(1) from None

    from tinman.server import create_app

    config = _load_config()
    if store:
        try:
            config.stream.store_backend = StoreBackend(store)
        except ValueError:
            console.print(f"[red]Unknown store backend:[/red] {store}")
            raise typer.Exit(1) from None

    console.print(Panel(
        f"Listening on [cyan]http://{host}:{port}[/cyan]\n"
        f"Stream store: [bold]{config.stream.store_backend}[/bold]",
        title="[bold]Tinman[/bold]",
        border_style="bright_blue",
    ))
    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


# ── tinman demo ─────────────────────────────────────────────────


@app.command()
def demo(
    delay: float = typer.Option(
        0.15, "--delay", help="Seconds between scripted increments",
    ),
) -> None:
    """Run a scripted session with a dropped connection and a resume."""
    from tinman.demo import run_demo

    asyncio.run(run_demo(console, delay=delay))


# ── tinman compat ───────────────────────────────────────────────


@app.command()
def compat(
    iterations: int = typer.Option(
        200, "--iterations", "-n", help="Validation rounds for the timing comparison",
    ),
) -> None:
    """Check the shipped schemas against the legacy validator."""
    from tinman.validation.compat import assess_compatibility

    report = assess_compatibility(iterations=iterations)

    table = Table(title="Schema Compatibility", show_lines=True)
    table.add_column("Schema", style="bold cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim", max_width=60)
    for check in report.tested_schemas:
        status = Text("OK", style="green") if check.compatible else Text("FAIL", style="red")
        table.add_row(check.name, status, check.error or "")
    console.print(table)

    if report.performance is not None:
        perf = report.performance
        console.print(
            f"\nCurrent: [cyan]{perf.current_seconds:.4f}s[/cyan]  "
            f"Legacy: [cyan]{perf.legacy_seconds:.4f}s[/cyan]  "
            f"Improvement: [bold]{perf.improvement:.1f}%[/bold]"
        )
    for issue in report.issues:
        console.print(f"[yellow]![/yellow] {issue}")
    console.print(f"\n[bold]Recommendation:[/bold] {report.recommendation}")

    if not report.compatible:
        raise typer.Exit(1)


# ── tinman replay ───────────────────────────────────────────────


@app.command()
def replay(
    session_id: str = typer.Argument(..., help="Session ID"),
    after: int = typer.Option(0, "--after", help="Replay events after this sequence number"),
) -> None:
    """Print the stored events of a session from the configured stream store."""
    from tinman.streaming.hub import create_store

    config = _load_config()

    async def _read():
        store = create_store(config.stream)
        try:
            status = await store.get_status(session_id)
            events = await store.read_from(session_id, after) if status else []
            return status, events
        finally:
            await store.close()

    status, events = asyncio.run(_read())
    if status is None:
        console.print(f"[red]Session not found or expired:[/red] {session_id}")
        raise typer.Exit(1) from None

    table = Table(title=f"Session {session_id} ({status})")
    table.add_column("Seq", justify="right", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Data", max_width=80)
    for event in events:
        table.add_row(str(event.seq), event.kind.value, Text(json.dumps(event.data, default=str)))
    console.print(table)


# ── tinman models ───────────────────────────────────────────────

@models_app.command("list")
def models_list() -> None:
    """Show all registered models and role assignments."""
    try:
        registry = load_models()
        roles = load_roles()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading models:[/red] {e}")
        raise typer.Exit(1) from None

    assigned: dict[str, list[str]] = {}
    for role, key in roles.items():
        assigned.setdefault(key, []).append(role.value)

    table = Table(title="Registered Models", show_lines=True)
    table.add_column("Key", style="bold cyan")
    table.add_column("Display Name")
    table.add_column("Provider", style="dim")
    table.add_column("Tools", justify="center")
    table.add_column("JSON", justify="center")
    table.add_column("Images", justify="center")
    table.add_column("Key Set", justify="center")
    table.add_column("Roles", style="dim")

    def _flag(value: bool) -> str:
        return "[green]yes[/green]" if value else "[dim]-[/dim]"

    for key, cfg in sorted(registry.items()):
        table.add_row(
            key,
            cfg.display_name,
            cfg.provider,
            _flag(cfg.supports_tools),
            _flag(cfg.supports_structured),
            _flag(cfg.supports_images),
            _flag(has_key(cfg.api_key_env)),
            ", ".join(sorted(assigned.get(key, []))) or "-",
        )

    console.print(table)
    configured = sum(1 for env_var, _ in PROVIDERS if has_key(env_var))
    console.print(
        f"\n[dim]{len(registry)} models registered, "
        f"{configured}/{len(PROVIDERS)} provider keys set[/dim]"
    )


# ── tinman sessions ─────────────────────────────────────────────

@sessions_app.command("list")
def sessions_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Max sessions to show"),
    chat_id: str = typer.Option(None, "--chat", help="Filter by chat id"),
    status: str = typer.Option(None, "--status", help="Filter by status"),
    since: str = typer.Option(None, "--since", help="Filter sessions after date"),
) -> None:
    """Show recent sessions."""
    from tinman.persistence.session import SessionStore
    from tinman.schemas.session import SessionQuery

    config = _load_config()
    try:
        query = SessionQuery(limit=limit, chat_id=chat_id, status=status, since=since)
    except ValueError as e:
        console.print(f"[red]Invalid filter:[/red] {e}")
        raise typer.Exit(1) from None

    async def _list(db):
        return await SessionStore(db).list_sessions(query)

    summaries = asyncio.run(_with_db(config, _list))

    if not summaries:
        console.print("[dim]No sessions found.[/dim]")
        return

    table = Table(title=f"Sessions ({len(summaries)} shown)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Chat", style="dim", no_wrap=True)
    table.add_column("Transcript", max_width=40)
    table.add_column("Status")
    table.add_column("Events", justify="right")
    table.add_column("Docs", justify="right")
    table.add_column("Duration", justify="right")

    for s in summaries:
        table.add_row(
            s.session_id[:8],
            s.chat_id[:8],
            s.transcript_preview[:40],
            _status_text(s.status),
            str(s.event_count),
            str(s.document_count),
            f"{s.duration_seconds:.1f}s",
        )

    console.print(table)


@sessions_app.command("show")
def sessions_show(
    session_id: str = typer.Argument(..., help="Session ID or prefix (min 4 chars)"),
) -> None:
    """Show full session details."""
    from tinman.persistence.documents import DocumentStore
    from tinman.persistence.session import SessionStore

    config = _load_config()

    async def _get(db):
        record = await SessionStore(db).get_session(session_id)
        documents = []
        if record is not None:
            documents = await DocumentStore(db).get_documents_by_session(record.session_id)
        return record, documents

    record, documents = asyncio.run(_with_db(config, _get))

    if not record:
        console.print(f"[red]Session not found:[/red] {session_id}")
        raise typer.Exit(1) from None

    meta = Table(title=f"Session: {record.session_id}", show_header=False, show_lines=True)
    meta.add_column("Field", style="bold")
    meta.add_column("Value")
    meta.add_row("Chat", record.chat_id)
    meta.add_row("Model", record.model or "-")
    meta.add_row("Started", record.created_at.isoformat())
    if record.completed_at:
        meta.add_row("Completed", record.completed_at.isoformat())
    meta.add_row("Duration", f"{record.duration_seconds:.1f}s")
    meta.add_row("Events", str(record.event_count))
    meta.add_row("Status", _status_text(record.status))
    if record.abort_reason:
        meta.add_row("Abort Reason", record.abort_reason)
    console.print(meta)

    if record.transcript:
        console.print(Panel(record.transcript, title="Transcript", border_style="dim"))

    if documents:
        docs_table = Table(title="Documents")
        docs_table.add_column("ID", style="cyan")
        docs_table.add_column("Kind")
        docs_table.add_column("Title")
        docs_table.add_column("Version", justify="right")
        for document in documents:
            docs_table.add_row(
                document.id, document.kind.value, document.title, str(document.version),
            )
        console.print(docs_table)


# ── tinman documents ────────────────────────────────────────────

@documents_app.command("show")
def documents_show(
    document_id: str = typer.Argument(..., help="Document ID"),
    all_versions: bool = typer.Option(False, "--all", help="Show every version"),
) -> None:
    """Show the latest version of a document, or all of them."""
    from tinman.persistence.documents import DocumentStore

    config = _load_config()

    async def _get(db):
        store = DocumentStore(db)
        if all_versions:
            return await store.get_documents_by_id(document_id)
        latest = await store.get_document_by_id(document_id)
        return [latest] if latest else []

    documents = asyncio.run(_with_db(config, _get))

    if not documents:
        console.print(f"[red]Document not found:[/red] {document_id}")
        raise typer.Exit(1) from None

    for document in documents:
        title = f"{document.title} [dim](v{document.version}, {document.kind.value})[/dim]"
        if document.kind is ArtifactKind.CODE:
            body: Any = Syntax(document.content, "python", line_numbers=True)
        elif document.kind is ArtifactKind.IMAGE:
            body = Text(f"<base64 image, {len(document.content)} chars>", style="dim")
        else:
            body = Text(document.content)
        console.print(Panel(body, title=title, border_style="cyan"))
