"""Scripted end-to-end demo of a resumable session.

Runs one session against a ScriptedProvider: the assistant says hello,
creates a code document, and streams it in two snapshots. Halfway through,
the demo client disconnects and reconnects with the last sequence number
it saw, showing that the resumed stream has no gap and no duplicate.
No API keys or network access are needed.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from tinman.persistence.database import close_db, init_db
from tinman.persistence.documents import DocumentStore
from tinman.persistence.session import SessionStore
from tinman.providers.scripted import ScriptedProvider
from tinman.schemas.config import AppConfig
from tinman.schemas.events import DeltaEvent, EventKind
from tinman.schemas.streaming import (
    FinishIncrement,
    ObjectIncrement,
    TextIncrement,
    ToolCallIncrement,
)
from tinman.streaming.hub import StreamHub
from tinman.streaming.store import InMemoryStreamStore

# ── Constants ────────────────────────────────────────────────────

DEMO_CHAT_ID = "demo-chat"

# Stored event after which the demo client drops its connection
DISCONNECT_AFTER = 3

_KIND_STYLE: dict[EventKind, str] = {
    EventKind.TEXT_DELTA: "white",
    EventKind.ARTIFACT_CREATE: "bold cyan",
    EventKind.ARTIFACT_UPDATE: "bold cyan",
    EventKind.ARTIFACT_CHUNK: "cyan",
    EventKind.ARTIFACT_CLEAR: "yellow",
    EventKind.ARTIFACT_FINISH: "dim cyan",
    EventKind.TOOL_CALL: "dim",
    EventKind.TOOL_RESULT: "dim",
    EventKind.TOOL_ERROR: "yellow",
    EventKind.ERROR: "bold red",
    EventKind.FINISH: "bold green",
}


def demo_provider(delay: float = 0.15) -> ScriptedProvider:
    """Provider scripted with a greeting and one two-step code document."""
    return ScriptedProvider(
        text_scripts=[[
            TextIncrement(text="Hello"),
            ToolCallIncrement(
                tool_call_id="call_demo",
                tool_name="create_document",
                arguments={"title": "demo", "kind": "code"},
            ),
            FinishIncrement(),
        ]],
        object_scripts=[[
            ObjectIncrement(value={"code": "print(1)"}),
            ObjectIncrement(value={"code": "print(1)\nprint(2)"}),
            FinishIncrement(),
        ]],
        delay=delay,
    )


def _describe(event: DeltaEvent) -> str:
    data = event.data
    if event.kind is EventKind.TEXT_DELTA:
        return repr(data.get("text", ""))
    if event.kind is EventKind.ARTIFACT_CHUNK:
        return f"delta={data.get('delta', '')!r}"
    if event.kind in (EventKind.ARTIFACT_CREATE, EventKind.ARTIFACT_UPDATE):
        return f"{data.get('kind')} '{data.get('title', '')}'"
    if event.kind in (EventKind.TOOL_CALL, EventKind.TOOL_RESULT, EventKind.TOOL_ERROR):
        return str(data.get("tool_name", ""))
    if event.kind in (EventKind.FINISH, EventKind.ERROR):
        return str(data.get("reason", ""))
    return ""


def _print_event(console: Console, event: DeltaEvent, note: str = "") -> None:
    seq = f"{event.seq:>3}" if event.seq is not None else "  ~"
    style = _KIND_STYLE.get(event.kind, "white")
    suffix = f"  [dim]{note}[/dim]" if note else ""
    console.print(
        f"  [dim]{seq}[/dim]  [{style}]{event.kind.value:<16}[/{style}] {escape(_describe(event))}{suffix}"
    )


# ── Demo runner ──────────────────────────────────────────────────


async def run_demo(console: Console, *, db_path: str = ":memory:", delay: float = 0.15) -> str:
    """Run the scripted demo session and render it.

    Returns:
        The demo session id.
    """
    console.print()
    console.print(Panel(
        "[bold]Tinman Demo[/bold]: one scripted session with a code artifact,\n"
        "a dropped connection, and a gap-free resume.",
        border_style="bright_blue",
    ))

    db = await init_db(db_path)
    store = InMemoryStreamStore()
    documents = DocumentStore(db)
    hub = StreamHub(
        store,
        documents=documents,
        sessions=SessionStore(db),
        config=AppConfig(),
    )
    try:
        coordinator = hub.start(
            chat_id=DEMO_CHAT_ID,
            messages=[{"role": "user", "content": "Write me a tiny program"}],
            provider=demo_provider(delay),
            model="scripted",
        )
        session_id = coordinator.session_id
        console.print(f"\n[bold]Session[/bold] [cyan]{session_id}[/cyan]\n")

        # ── First connection ─────────────────────────────────────
        subscriber = await coordinator.attach()
        async for event in subscriber:
            _print_event(console, event)
            if event.seq is not None and event.seq >= DISCONNECT_AFTER:
                hub.detach(subscriber)
                break
        last_seen = subscriber.last_seq
        console.print(f"\n  [yellow]connection dropped after seq {last_seen}[/yellow]\n")

        # ── Reconnect ────────────────────────────────────────────
        resumed = await hub.resume(session_id, last_seen)
        seen: list[int] = []
        async for event in resumed:
            _print_event(console, event, note="resumed")
            if event.seq is not None:
                seen.append(event.seq)
        await hub.wait(session_id)

        expected = list(range(last_seen + 1, last_seen + 1 + len(seen)))
        if seen == expected:
            console.print("\n  [green]resume was gap-free and duplicate-free[/green]")
        else:
            console.print(f"\n  [red]unexpected sequence after resume: {seen}[/red]")

        # ── Persisted result ─────────────────────────────────────
        saved = await documents.get_documents_by_session(session_id)
        table = Table(title="Persisted documents")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Kind")
        table.add_column("Title")
        table.add_column("Version", justify="right")
        for document in saved:
            table.add_row(document.id[:8], document.kind.value, document.title, str(document.version))
        console.print()
        console.print(table)
        for document in saved:
            console.print(Syntax(document.content, "python", line_numbers=True))

        stored = await store.read_from(session_id)
        console.print(
            f"\n[dim]{len(stored)} stored events, status "
            f"{await store.get_status(session_id)}[/dim]\n"
        )
        return session_id
    finally:
        await hub.shutdown()
        await close_db(db)