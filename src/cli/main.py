"""ci-memory CLI — Jenkins build-log conversation memory.

Unified entry point for schema setup, log ingestion, conversation
inspection and retention.

Usage:
    ci-memory init-db               Create the chat_messages table
    ci-memory ingest logs.jsonl     Ingest pipeline payloads (one per line)
    ci-memory history my-job        Show a job's recent conversation
    ci-memory run                   Ingest from stdin with retention running
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as ConfigValidationError
from rich.console import Console
from rich.markup import escape
from sqlalchemy.exc import SQLAlchemyError

from src.cli.config import LoggingConfig, MemoryServiceConfig, load_config
from src.cli.output import format_history, format_ingest_summary, format_prune_summary
from src.db.connection import create_session_factory
from src.errors import ValidationError
from src.services.chat_memory import DbChatMemory
from src.services.log_ingestion import LogIngestionService
from src.services.retention_worker import RetentionWorker
from src.utils.paths import ensure_dirs_exist, get_default_db_path

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="ci-memory",
    help="Conversation memory for Jenkins build logs",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to ci-memory.yaml config file"
    ),
):
    """ci-memory CLI — chat memory for Jenkins build analysis."""
    global _config_path
    _config_path = config


# --- Helpers ---


def configure_logging(cfg: LoggingConfig) -> None:
    """Configure root logging once for the process.

    Logs go to stderr; stdout carries command output.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if cfg.file:
        log_file = Path(cfg.file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, cfg.level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def _load() -> MemoryServiceConfig:
    """Load config and set up logging, exiting with code 1 on bad config."""
    try:
        cfg = load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except ConfigValidationError as e:
        console.print(f"[red]Config validation failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    configure_logging(cfg.logging)
    return cfg


def _open_memory(cfg: MemoryServiceConfig) -> DbChatMemory:
    url = cfg.database.resolved_url()
    if url == f"sqlite:///{get_default_db_path()}":
        ensure_dirs_exist()
    _log.debug("Using database %s", url)
    return DbChatMemory(
        create_session_factory(url, echo=cfg.database.echo),
        max_messages_per_conversation=cfg.memory.max_messages_per_conversation,
        max_content_length=cfg.memory.max_content_length,
    )


def _ingestion_service(
    cfg: MemoryServiceConfig, memory: DbChatMemory, freshness_check: bool = True
) -> LogIngestionService:
    return LogIngestionService(
        memory,
        max_age_seconds=cfg.ingestion.max_age_seconds if freshness_check else None,
        allowed_future_gap_seconds=cfg.ingestion.allowed_future_gap_seconds,
    )


def _retention_worker(cfg: MemoryServiceConfig, memory: DbChatMemory) -> RetentionWorker:
    return RetentionWorker(
        memory,
        max_messages_per_conversation=cfg.memory.max_messages_per_conversation,
        interval_seconds=cfg.retention.interval_seconds,
        initial_delay_seconds=cfg.retention.initial_delay_seconds,
    )


# --- Version ---


@app.command()
def version():
    """Show ci-memory version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version
    try:
        v = pkg_version("ci-memory")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]ci-memory[/bold] v{v}")


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration."""
    cfg = _load()

    console.print("[bold]Database:[/bold]")
    console.print(f"  url: {cfg.database.resolved_url()}", markup=False)
    console.print(f"  echo: {cfg.database.echo}")

    console.print("\n[bold]Memory:[/bold]")
    console.print(f"  max_messages_per_conversation: {cfg.memory.max_messages_per_conversation}")
    console.print(f"  max_content_length: {cfg.memory.max_content_length}")
    console.print(f"  history_window: {cfg.memory.history_window}")

    console.print("\n[bold]Retention:[/bold]")
    console.print(f"  enabled: {cfg.retention.enabled}")
    console.print(f"  interval_seconds: {cfg.retention.interval_seconds}")
    console.print(f"  initial_delay_seconds: {cfg.retention.initial_delay_seconds}")

    console.print("\n[bold]Ingestion:[/bold]")
    max_age = cfg.ingestion.max_age_seconds
    console.print(f"  max_age_seconds: {max_age if max_age is not None else 'disabled'}")
    console.print(f"  allowed_future_gap_seconds: {cfg.ingestion.allowed_future_gap_seconds}")

    console.print("\n[bold]Logging:[/bold]")
    console.print(f"  level: {cfg.logging.level}")
    console.print(f"  file: {cfg.logging.file or '—'}")


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate a config file without starting anything."""
    path = config or _config_path
    try:
        cfg = load_config(config_path=path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except ConfigValidationError as e:
        console.print(f"[red]Config validation failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Config loading error ({type(e).__name__}):[/red] {escape(str(e))}")
        raise typer.Exit(1)
    console.print("[green]Config is valid.[/green]")
    console.print(f"  Keep per conversation: {cfg.memory.max_messages_per_conversation}")
    console.print(f"  Retention: {'enabled' if cfg.retention.enabled else 'disabled'}")


# --- Storage commands ---


@app.command("init-db")
def init_db_command():
    """Create the chat_messages table if it does not exist."""
    cfg = _load()
    try:
        _open_memory(cfg)
    except SQLAlchemyError as e:
        console.print(f"[red]Database error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    console.print("[green]Database ready.[/green]")


@app.command()
def ingest(
    source: str = typer.Argument(help="JSON-lines file of pipeline payloads, or - for stdin"),
    no_freshness_check: bool = typer.Option(
        False, "--no-freshness-check", help="Store payloads regardless of their age"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Ingest pipeline log payloads, one JSON document per line."""
    cfg = _load()
    memory = _open_memory(cfg)
    service = _ingestion_service(cfg, memory, freshness_check=not no_freshness_check)

    if source == "-":
        outcomes = service.ingest_lines(sys.stdin)
    else:
        path = Path(source)
        if not path.exists():
            console.print(f"[red]File not found:[/red] {source}")
            raise typer.Exit(1)
        with open(path, encoding="utf-8") as f:
            outcomes = service.ingest_lines(f)

    typer.echo(format_ingest_summary(outcomes, as_json=json_output))


@app.command()
def history(
    job: str = typer.Argument(help="Jenkins job name"),
    last: Optional[int] = typer.Option(
        None, "--last", "-n", help="Number of recent messages (default: history_window)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the most recent messages of a job's conversation."""
    cfg = _load()
    memory = _open_memory(cfg)
    messages = memory.get(job, last if last is not None else cfg.memory.history_window)
    typer.echo(format_history(job, messages, as_json=json_output))


@app.command()
def ready(
    job: str = typer.Argument(help="Jenkins job name"),
    build: int = typer.Argument(help="Build number"),
):
    """Check whether both build logs of a build are stored (exit 0 if so)."""
    cfg = _load()
    memory = _open_memory(cfg)
    try:
        complete = memory.has_two_build_logs(job, build)
    except ValidationError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(2)
    if complete:
        console.print(f"[green]{job} #{build}: build logs complete[/green]")
        return
    console.print(f"[yellow]{job} #{build}: build logs incomplete[/yellow]")
    raise typer.Exit(1)


@app.command()
def clear(
    job: str = typer.Argument(help="Jenkins job name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every stored message of a job."""
    if not yes:
        typer.confirm(f"Delete all stored messages for {job}?", abort=True)
    cfg = _load()
    memory = _open_memory(cfg)
    deleted = memory.clear(job)
    console.print(f"[yellow]Deleted {deleted} message(s) for {job}.[/yellow]")


@app.command()
def prune(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Run one retention sweep over every conversation."""
    cfg = _load()
    memory = _open_memory(cfg)
    summary = _retention_worker(cfg, memory).run_once()
    typer.echo(format_prune_summary(summary, as_json=json_output))
    if summary["failed"]:
        raise typer.Exit(1)


@app.command()
def run():
    """Ingest payloads from stdin until EOF, with the retention worker running."""
    cfg = _load()
    memory = _open_memory(cfg)
    service = _ingestion_service(cfg, memory)
    worker = _retention_worker(cfg, memory) if cfg.retention.enabled else None

    if worker is not None:
        worker.start()
    _log.info("Reading pipeline payloads from stdin")
    try:
        outcomes = service.ingest_lines(sys.stdin)
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")
        raise typer.Exit(130)
    finally:
        if worker is not None:
            worker.stop()
    typer.echo(format_ingest_summary(outcomes))


if __name__ == "__main__":
    app()
