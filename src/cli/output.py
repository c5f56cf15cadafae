"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json
from collections import Counter

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from src.models.messages import Message
from src.services.log_ingestion import IngestOutcome

console = Console()

OUTCOME_COLORS = {
    IngestOutcome.STORED: "green",
    IngestOutcome.ANALYSIS_TRIGGERED: "cyan",
    IngestOutcome.DROPPED_INVALID_TIMESTAMP: "yellow",
    IngestOutcome.DROPPED_FUTURE: "yellow",
    IngestOutcome.DROPPED_STALE: "yellow",
    IngestOutcome.FAILED: "red",
}

ROLE_COLORS = {
    "USER": "white",
    "ASSISTANT": "cyan",
}

# Characters of message content shown per history row
PREVIEW_LENGTH = 120


def _render(table: Table) -> str:
    with console.capture() as capture:
        console.print(table)
    return capture.get()


def preview_content(content: str | None, length: int = PREVIEW_LENGTH) -> str:
    """Single-line preview of message content.

    Args:
        content: Stored message text.
        length: Maximum characters kept.

    Returns:
        Content with newlines flattened, cut to ``length`` with an ellipsis.
    """
    if not content:
        return "—"
    flat = " ".join(content.split())
    if len(flat) <= length:
        return flat
    return flat[:length] + "…"


def format_history(
    conversation_id: str, messages: list[Message], as_json: bool = False
) -> str:
    """Format a conversation window as a Rich table or JSON.

    Args:
        conversation_id: Jenkins job name the messages belong to.
        messages: Messages in chronological order.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(
            [
                {
                    "role": m.role.value,
                    "content": m.content,
                    "metadata": m.metadata.to_dict(),
                }
                for m in messages
            ],
            indent=2,
        )

    if not messages:
        return f"No messages stored for {conversation_id}."

    table = Table(title=f"Conversation: {escape(conversation_id)}", show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Role")
    table.add_column("Build", justify="right", style="cyan")
    table.add_column("Content", style="white")

    for i, message in enumerate(messages, start=1):
        color = ROLE_COLORS.get(message.role.value, "white")
        build = message.build_number
        table.add_row(
            str(i),
            f"[{color}]{message.role.value}[/{color}]",
            str(build) if build is not None else "—",
            Text(preview_content(message.content)),
        )
    return _render(table)


def format_ingest_summary(outcomes: Counter, as_json: bool = False) -> str:
    """Format ingestion outcome counts as a Rich table or JSON.

    Args:
        outcomes: Counter of IngestOutcome values.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(
            {outcome.value: outcomes.get(outcome, 0) for outcome in IngestOutcome},
            indent=2,
        )

    if not outcomes:
        return "No payloads ingested."

    table = Table(title="Ingestion")
    table.add_column("Outcome")
    table.add_column("Count", justify="right")
    for outcome in IngestOutcome:
        count = outcomes.get(outcome, 0)
        if not count:
            continue
        color = OUTCOME_COLORS[outcome]
        table.add_row(f"[{color}]{outcome.value}[/{color}]", str(count))
    table.add_row("[bold]total[/bold]", f"[bold]{sum(outcomes.values())}[/bold]")
    return _render(table)


def format_prune_summary(summary: dict[str, int], as_json: bool = False) -> str:
    """Format a retention sweep summary.

    Args:
        summary: Result of ``RetentionWorker.run_once()``.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(summary, indent=2)

    table = Table(title="Retention sweep")
    table.add_column("Conversations", justify="right")
    table.add_column("Pruned", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(
        str(summary.get("conversations", 0)),
        str(summary.get("pruned", 0)),
        str(summary.get("failed", 0)),
    )
    return _render(table)
