"""Main Typer application.

Entry point: ``auditbus`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from auditbus.config import AuditConfig
from auditbus.core.errors import AuditBusError
from auditbus.models.records import IndexRecord
from auditbus.models.rules import TargetKind
from auditbus.service import AuditService

app = typer.Typer(
    name="auditbus",
    help="Auditbus: audit-event routing, archival and indexing.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

console = Console()


def configure_logging(level: str) -> None:
    """Route stdlib logging through Rich at *level*."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def _main(
    ctx: typer.Context,
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", help="Directory holding the archive, index and log."
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (defaults to AUDITBUS_LOG_LEVEL)."
    ),
) -> None:
    overrides: dict[str, Any] = {}
    if data_dir is not None:
        overrides["data_dir"] = data_dir
    if log_level is not None:
        overrides["log_level"] = log_level
    try:
        config = AuditConfig(**overrides)
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    configure_logging(config.log_level)
    ctx.obj = config


def _service(ctx: typer.Context) -> AuditService:
    try:
        return AuditService(ctx.obj)
    except AuditBusError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc


def _records_table(title: str, records: list[IndexRecord]) -> Table:
    table = Table(title=title)
    table.add_column("Event ID", style="cyan")
    table.add_column("Entity Type")
    table.add_column("Entity ID")
    table.add_column("Operation")
    table.add_column("Author")
    table.add_column("Ts", justify="right")
    table.add_column("S3 Key", style="dim")
    for r in records:
        table.add_row(
            r.event_id, r.entity_type, r.entity_id, r.operation, r.author, str(r.ts), r.s3_key
        )
    return table


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command(name="publish", help="Publish events from a JSON file ('-' for stdin).")
def publish_cmd(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="JSON file with one envelope or an array."),
) -> None:
    """Publish one or more event envelopes onto the pipeline."""
    try:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        console.print(f"[red]Cannot read {escape(source)}:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc

    service = _service(ctx)
    raws = payload if isinstance(payload, list) else [payload]
    try:
        reports = service.publish_batch(raws)
    except AuditBusError as exc:
        console.print(f"[red]Publish failed:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc

    table = Table(title="Dispatch Report")
    table.add_column("Event ID", style="cyan")
    table.add_column("Rule")
    table.add_column("Target")
    table.add_column("Status", justify="center")
    for report in reports:
        for outcome in report.delivered:
            table.add_row(report.event_id, outcome.rule_name, outcome.target_id, "[green]OK[/green]")
        for failure in report.failures:
            status = f"[red]FAILED[/red] {failure.step} {failure.error_type}".strip()
            table.add_row(report.event_id, failure.rule_name, failure.target_id, status)
    console.print(table)

    for notification in service.notifier.flush():
        console.print(f"[bold]{notification.topic}[/bold]: {escape(notification.message)}")

    if any(not report.ok for report in reports):
        raise typer.Exit(code=1)


@app.command(name="get", help="Look up an indexed event by id.")
def get_cmd(ctx: typer.Context, event_id: str = typer.Argument(...)) -> None:
    record = _service(ctx).index.get(event_id)
    if record is None:
        console.print(f"[yellow]No index record for {escape(event_id)}[/yellow]")
        raise typer.Exit(code=1)
    console.print_json(data=record.model_dump(by_alias=True))


@app.command(name="by-entity", help="List indexed events for an entity, oldest first.")
def by_entity_cmd(
    ctx: typer.Context,
    entity_id: str = typer.Argument(...),
    since: Optional[int] = typer.Option(None, help="Inclusive lower bound (epoch ms)."),
    until: Optional[int] = typer.Option(None, help="Inclusive upper bound (epoch ms)."),
    limit: Optional[int] = typer.Option(None, help="Maximum rows."),
) -> None:
    records = _service(ctx).index.query_by_entity(
        entity_id, since=since, until=until, limit=limit
    )
    console.print(_records_table(f"Events for entity {entity_id}", records))


@app.command(name="by-author", help="List indexed events by author, oldest first.")
def by_author_cmd(
    ctx: typer.Context,
    author: str = typer.Argument(...),
    since: Optional[int] = typer.Option(None, help="Inclusive lower bound (epoch ms)."),
    until: Optional[int] = typer.Option(None, help="Inclusive upper bound (epoch ms)."),
    limit: Optional[int] = typer.Option(None, help="Maximum rows."),
) -> None:
    records = _service(ctx).index.query_by_author(
        author, since=since, until=until, limit=limit
    )
    console.print(_records_table(f"Events by {author}", records))


@app.command(name="payload", help="Print the archived payload of an indexed event.")
def payload_cmd(ctx: typer.Context, event_id: str = typer.Argument(...)) -> None:
    payload = _service(ctx).fetch_payload(event_id)
    if payload is None:
        console.print(f"[yellow]No archived payload for {escape(event_id)}[/yellow]")
        raise typer.Exit(code=1)
    console.print_json(data=payload)


@app.command(name="rules", help="Show the loaded routing rules.")
def rules_cmd(ctx: typer.Context) -> None:
    engine = _service(ctx).engine
    table = Table(title="Routing Rules")
    table.add_column("Name", style="cyan")
    table.add_column("Predicate")
    table.add_column("Targets", style="green")
    table.add_column("Description", style="dim")
    for rule in engine.rules:
        targets = ", ".join(
            f"{t.target_id}" + (" (template)" if t.kind == TargetKind.NOTIFICATION else "")
            for t in rule.targets
        )
        table.add_row(rule.name, engine.describe(rule.name), targets, rule.description)
    console.print(table)


@app.command(name="resources", help="Show the resource names for this environment.")
def resources_cmd(ctx: typer.Context) -> None:
    config: AuditConfig = ctx.obj
    table = Table(title=f"Resources ({config.logical_env})")
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    for kind, name in config.resource_names().items():
        table.add_row(kind, name)
    table.add_row("archive_path", str(config.resolved_archive_path))
    table.add_row("index_path", str(config.resolved_index_path))
    table.add_row("log_sink_path", str(config.resolved_log_sink_path))
    console.print(table)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
