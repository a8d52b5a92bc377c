"""
Typer CLI for the v2e-notes learning engine.

Commands:
    v2e-notes db init                  - Create tables
    v2e-notes db migrate               - Create tables and back-fill legacy rows
    v2e-notes bookmark add             - Bookmark a catalog item (auto-creates a card)
    v2e-notes bookmark list            - List bookmarks, optionally by learning state
    v2e-notes bookmark show ID         - Show one bookmark with its cards
    v2e-notes bookmark state ID STATE  - Change learning state
    v2e-notes bookmark delete ID       - Soft-delete a bookmark
    v2e-notes bookmark stats ID        - Show or bump view/study counters
    v2e-notes bookmark history ID      - Show the audit log
    v2e-notes bookmark revert ID       - Revert learning state
    v2e-notes card list                - List memory cards
    v2e-notes card review ID RATING    - Review a card (again/hard/good/easy)
    v2e-notes card status ID STATUS    - Move a card through its lifecycle
    v2e-notes card due                 - Cards due for review
    v2e-notes note add|list|delete     - Manage notes
    v2e-notes xref add|list            - Manage cross references

Usage:
    v2e-notes bookmark add g-1 CVE CVE-2024-0001 --title "Heap overflow"
    v2e-notes card review 1 good --version 1
    v2e-notes bookmark revert 1 --at 2024-05-01T12:00:00Z
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from config import get_settings
from src.core.errors import NotesError
from src.core.log_setup import configure_logging

app = typer.Typer(
    help="v2e-notes: bookmarks, notes and spaced-repetition cards for security items",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    """Learning engine for CVE, CWE, CAPEC and ATT&CK items."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """Lazily builds the service container so `--help` never touches the store."""

    def __init__(self):
        self.settings = get_settings()
        self._services = None

    @property
    def services(self):
        if self._services is None:
            from src.learning.container import LearningServices

            self._services = LearningServices.create()
        return self._services


@contextmanager
def _reporting_errors() -> Iterator[None]:
    """Print engine errors in red with their kind and exit 1."""
    try:
        yield
    except NotesError as e:
        console.print(f"[red]✗ {e.kind}:[/red] {escape(e.message)}")
        raise typer.Exit(code=1) from e


# ========================================
# DB Commands
# ========================================

db_app = typer.Typer(help="Database management (init, migrate)")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from src.db.database import init_db

    with _reporting_errors():
        init_db()
    rprint("[green]✓[/green] Database initialized!")


@db_app.command("migrate")
def db_migrate() -> None:
    """Create missing tables and back-fill URNs, FSM state and legacy statuses."""
    from src.db.database import get_engine, get_session_factory
    from src.db.migrations import migrate

    logger.info("Running migration")
    with _reporting_errors():
        report = migrate(get_engine(), get_session_factory())

    table = Table(title="Migration Results", show_header=True)
    table.add_column("Back-fill", style="cyan")
    table.add_column("Rows", justify="right")
    table.add_row("Card URNs", str(report.card_urns_backfilled))
    table.add_row("Note URNs", str(report.note_urns_backfilled))
    table.add_row("Card FSM state", str(report.card_states_backfilled))
    table.add_row("Note FSM state", str(report.note_states_backfilled))
    table.add_row("Legacy statuses", str(report.statuses_normalized))
    console.print(table)
    rprint(f"[green]✓[/green] Migration complete ({report.total} rows updated)")


# ========================================
# Bookmark Commands
# ========================================

bookmark_app = typer.Typer(help="Bookmarks, stats, history and revert")
app.add_typer(bookmark_app, name="bookmark")


@bookmark_app.command("add")
def bookmark_add(
    global_item_id: str = typer.Argument(..., help="Cross-source item identifier"),
    item_type: str = typer.Argument(..., help="CVE, CWE, CAPEC or ATT&CK"),
    item_id: str = typer.Argument(..., help="Item identifier, e.g. CVE-2024-0001"),
    title: str = typer.Option(..., "--title", "-t", help="Card front"),
    description: str = typer.Option("", "--description", "-d", help="Card back"),
) -> None:
    """Bookmark an item. Re-adding a bookmarked item returns the existing bookmark."""
    ctx = CLIContext()
    with _reporting_errors():
        bookmark, card = ctx.services.bookmarks.create_bookmark(
            global_item_id, item_type, item_id, title, description
        )

    if card is None:
        rprint(f"[yellow]Bookmark {bookmark.id} already exists[/yellow] ({escape(bookmark.urn)})")
        return
    rprint(f"[green]✓[/green] Created bookmark {bookmark.id} ({escape(bookmark.urn)})")
    rprint(f"  Memory card {card.id} ({card.urn})")


@bookmark_app.command("list")
def bookmark_list(
    state: str | None = typer.Option(None, "--state", "-s", help="Filter by learning state"),
    offset: int = typer.Option(0, "--offset"),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Page size (default: from config)"),
) -> None:
    """List live bookmarks."""
    ctx = CLIContext()
    page_size = limit if limit is not None else ctx.settings.default_page_size
    with _reporting_errors():
        bookmarks, total = ctx.services.bookmarks.list_bookmarks(state, offset, page_size)

    table = Table(title=f"Bookmarks ({len(bookmarks)} of {total})", show_header=True)
    table.add_column("ID", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Item")
    table.add_column("State")
    table.add_column("Mastery", justify="right")
    for b in bookmarks:
        table.add_row(str(b.id), b.item_type, b.item_id, b.learning_state, f"{b.mastery_level:.2f}")
    console.print(table)


@bookmark_app.command("show")
def bookmark_show(bookmark_id: int = typer.Argument(...)) -> None:
    """Show a bookmark and its memory cards."""
    ctx = CLIContext()
    with _reporting_errors():
        bookmark = ctx.services.bookmarks.get_bookmark(bookmark_id)
        cards = ctx.services.cards.list_by_bookmark(bookmark_id)

    rprint(f"[bold]{escape(bookmark.title)}[/bold]")
    rprint(f"  URN:      {escape(bookmark.urn)}")
    rprint(f"  State:    {bookmark.learning_state}")
    rprint(f"  Mastery:  {bookmark.mastery_level:.2f}")
    for card in cards:
        rprint(
            f"  Card {card.id}: {card.status} v{card.version} "
            f"interval={card.interval}d ease={card.ease_factor}"
        )


@bookmark_app.command("state")
def bookmark_state(
    bookmark_id: int = typer.Argument(...),
    state: str = typer.Argument(..., help="to-review, learning, mastered or archived"),
) -> None:
    """Change a bookmark's learning state (always recorded in history)."""
    ctx = CLIContext()
    with _reporting_errors():
        bookmark = ctx.services.bookmarks.update_learning_state(bookmark_id, state)
    rprint(f"[green]✓[/green] Bookmark {bookmark.id} is now {bookmark.learning_state}")


@bookmark_app.command("delete")
def bookmark_delete(bookmark_id: int = typer.Argument(...)) -> None:
    """Soft-delete a bookmark."""
    ctx = CLIContext()
    with _reporting_errors():
        ctx.services.bookmarks.delete_bookmark(bookmark_id)
    rprint(f"[green]✓[/green] Deleted bookmark {bookmark_id}")


@bookmark_app.command("stats")
def bookmark_stats(
    bookmark_id: int = typer.Argument(...),
    views: int = typer.Option(0, "--views", help="Add to view_count"),
    studies: int = typer.Option(0, "--studies", help="Add to study_sessions"),
    touch: bool = typer.Option(False, "--touch", help="Refresh last_viewed without counting"),
) -> None:
    """Show bookmark stats, or update them when a delta or --touch is given."""
    ctx = CLIContext()
    with _reporting_errors():
        if views or studies or touch:
            stats = ctx.services.bookmarks.update_stats(bookmark_id, views, studies)
        else:
            stats = ctx.services.bookmarks.get_stats(bookmark_id)

    table = Table(title=f"Bookmark {bookmark_id} stats", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in sorted(stats):
        table.add_row(key, str(stats[key]))
    console.print(table)


@bookmark_app.command("history")
def bookmark_history(bookmark_id: int = typer.Argument(...)) -> None:
    """Show the audit log, newest first."""
    ctx = CLIContext()
    with _reporting_errors():
        entries = ctx.services.history.get_history(bookmark_id)

    table = Table(title=f"Bookmark {bookmark_id} history", show_header=True)
    table.add_column("When")
    table.add_column("Action", style="cyan")
    table.add_column("Old")
    table.add_column("New")
    for entry in entries:
        table.add_row(
            entry.timestamp.isoformat(timespec="seconds"),
            entry.action,
            escape(entry.old_value),
            escape(entry.new_value),
        )
    console.print(table)


@bookmark_app.command("revert")
def bookmark_revert(
    bookmark_id: int = typer.Argument(...),
    at: str | None = typer.Option(None, "--at", help="ISO-8601 target time (default: undo last change)"),
) -> None:
    """Restore the learning state recorded at or before a point in time."""
    ctx = CLIContext()
    with _reporting_errors():
        bookmark = ctx.services.history.revert(bookmark_id, at)
    rprint(f"[green]✓[/green] Bookmark {bookmark.id} reverted to {bookmark.learning_state}")


# ========================================
# Card Commands
# ========================================

card_app = typer.Typer(help="Memory cards and reviews")
app.add_typer(card_app, name="card")


def _cards_table(title: str, cards) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("ID", justify="right")
    table.add_column("Bookmark", justify="right")
    table.add_column("Front")
    table.add_column("Status", style="cyan")
    table.add_column("Ver", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Ease", justify="right")
    for card in cards:
        table.add_row(
            str(card.id),
            str(card.bookmark_id),
            escape(card.front[:40]),
            card.status,
            str(card.version),
            f"{card.interval}d",
            f"{card.ease_factor:.2f}",
        )
    return table


@card_app.command("list")
def card_list(
    bookmark_id: int | None = typer.Option(None, "--bookmark", "-b"),
    status: str | None = typer.Option(None, "--status", "-s"),
    offset: int = typer.Option(0, "--offset"),
    limit: int | None = typer.Option(None, "--limit", "-l"),
) -> None:
    """List memory cards."""
    ctx = CLIContext()
    page_size = limit if limit is not None else ctx.settings.default_page_size
    with _reporting_errors():
        cards, total = ctx.services.cards.list(
            bookmark_id=bookmark_id, status=status, offset=offset, limit=page_size
        )
    console.print(_cards_table(f"Memory cards ({len(cards)} of {total})", cards))


@card_app.command("review")
def card_review(
    card_id: int = typer.Argument(...),
    rating: str = typer.Argument(..., help="again, hard, good or easy"),
    version: int | None = typer.Option(None, "--version", help="Expected card version"),
) -> None:
    """Review a card and reschedule it with SM-2."""
    ctx = CLIContext()
    with _reporting_errors():
        card = ctx.services.cards.apply_review(card_id, rating, expected_version=version)
    next_review = card.next_review.date().isoformat() if card.next_review else "-"
    rprint(
        f"[green]✓[/green] Card {card.id}: {card.status}, next review {next_review} "
        f"(interval {card.interval}d, ease {card.ease_factor:.2f}, v{card.version})"
    )


@card_app.command("status")
def card_status(
    card_id: int = typer.Argument(...),
    status: str = typer.Argument(..., help="new, learning, due, reviewed, mastered or archived"),
    version: int | None = typer.Option(None, "--version", help="Expected card version"),
) -> None:
    """Move a card to another lifecycle status."""
    ctx = CLIContext()
    with _reporting_errors():
        card = ctx.services.cards.transition_status(card_id, status, expected_version=version)
    rprint(f"[green]✓[/green] Card {card.id} is now {card.status} (v{card.version})")


@card_app.command("due")
def card_due() -> None:
    """Cards of bookmarks in 'learning' whose next review has come."""
    ctx = CLIContext()
    with _reporting_errors():
        cards = ctx.services.cards.list_due()
    console.print(_cards_table(f"Due cards ({len(cards)})", cards))


# ========================================
# Note Commands
# ========================================

note_app = typer.Typer(help="Rich-text notes on bookmarks")
app.add_typer(note_app, name="note")


@note_app.command("add")
def note_add(
    bookmark_id: int = typer.Argument(...),
    text: str = typer.Argument(..., help="Plain text, or a rich-text JSON document with --json"),
    as_json: bool = typer.Option(False, "--json", help="TEXT is already a rich-text document"),
    author: str | None = typer.Option(None, "--author"),
    private: bool = typer.Option(False, "--private"),
) -> None:
    """Attach a note to a bookmark."""
    from src.core.richtext import document_from_text

    ctx = CLIContext()
    body = text if as_json else document_from_text(text)
    with _reporting_errors():
        note = ctx.services.notes.add_note(bookmark_id, body, author=author, is_private=private)
    rprint(f"[green]✓[/green] Added note {note.id} ({note.urn})")


@note_app.command("list")
def note_list(bookmark_id: int = typer.Argument(...)) -> None:
    """List a bookmark's notes as plain text."""
    from src.core.richtext import extract_text

    ctx = CLIContext()
    with _reporting_errors():
        notes = ctx.services.notes.list_notes(bookmark_id)
        rows = [(note, extract_text(note.content).strip()) for note in notes]

    table = Table(title=f"Notes on bookmark {bookmark_id}", show_header=True)
    table.add_column("ID", justify="right")
    table.add_column("Author")
    table.add_column("Text")
    for note, body in rows:
        table.add_row(str(note.id), escape(note.author or ""), escape(body))
    console.print(table)


@note_app.command("delete")
def note_delete(note_id: int = typer.Argument(...)) -> None:
    """Delete a note permanently."""
    ctx = CLIContext()
    with _reporting_errors():
        ctx.services.notes.delete_note(note_id)
    rprint(f"[green]✓[/green] Deleted note {note_id}")


# ========================================
# Cross Reference Commands
# ========================================

xref_app = typer.Typer(help="Cross references between catalog items")
app.add_typer(xref_app, name="xref")


@xref_app.command("add")
def xref_add(
    source: str = typer.Argument(..., help="Source item URN"),
    target: str = typer.Argument(..., help="Target item URN"),
    source_type: str = typer.Option(..., "--source-type"),
    target_type: str = typer.Option(..., "--target-type"),
    relationship: str = typer.Option("related-to", "--type", help="Relationship type"),
    strength: float = typer.Option(1.0, "--strength"),
    description: str | None = typer.Option(None, "--description"),
) -> None:
    """Record a directed relationship between two items."""
    ctx = CLIContext()
    with _reporting_errors():
        ref = ctx.services.cross_references.create(
            source, target, source_type, target_type, relationship, strength, description
        )
    rprint(f"[green]✓[/green] Cross reference {ref.id}: {escape(source)} -> {escape(target)}")


@xref_app.command("list")
def xref_list(
    item: str = typer.Argument(..., help="Item URN"),
    incoming: bool = typer.Option(False, "--incoming", help="List references pointing at ITEM"),
) -> None:
    """List cross references from (or to) an item."""
    ctx = CLIContext()
    with _reporting_errors():
        if incoming:
            refs = ctx.services.cross_references.by_target(item)
        else:
            refs = ctx.services.cross_references.by_source(item)

    table = Table(title=f"Cross references ({len(refs)})", show_header=True)
    table.add_column("ID", justify="right")
    table.add_column("Source")
    table.add_column("Relationship", style="cyan")
    table.add_column("Target")
    table.add_column("Strength", justify="right")
    for ref in refs:
        table.add_row(
            str(ref.id),
            escape(ref.source_item_id),
            ref.relationship_type,
            escape(ref.target_item_id),
            f"{ref.strength:.2f}",
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
