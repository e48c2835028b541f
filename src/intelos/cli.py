"""Typer-based CLI for Intelligence OS."""

import json
import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .analysis import ANALYSES_SCHEMA
from .config import IntelConfig, repo_config_path
from .errors import IntelError, ValidationError
from .models.ledger import LedgerRecord, Severity
from .models.results import UnitResult
from .orchestrator import UNIT_ORDER, normalize_selection
from .service import IntelligenceOS

app = typer.Typer(
    name="intelos",
    help="Intelligence OS - batch intelligence pipeline over an append-only ledger",
    add_completion=False,
)

console = Console()

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
    Severity.INFO: "dim",
}


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    db: str = typer.Option(
        None,
        "--db",
        help="Path to the ledger sqlite file (default: INTELOS_DB env, config.toml or state/intelos.sqlite)",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Verbose logging",
    ),
):
    """Intelligence OS command line."""
    _setup_logging(debug)
    ctx.obj = {"db": db}


def _fail(message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]")
    raise typer.Exit(code=1)


def _load_config(ctx: typer.Context) -> IntelConfig:
    db = (ctx.obj or {}).get("db")
    try:
        return IntelConfig.from_env(cli_db_path=db)
    except ValidationError as e:
        _fail(str(e))


def _load_service(ctx: typer.Context) -> IntelligenceOS:
    config = _load_config(ctx)
    try:
        return IntelligenceOS(config)
    except (IntelError, OSError, sqlite3.Error) as e:
        _fail(f"Cannot open ledger at {config.db_path}: {e}")


def _print_result(result: UnitResult, title: Optional[str] = None) -> None:
    """Render a unit result; exits 1 when the unit reported failures."""
    table = Table(title=title or f"{result.unit} run")
    table.add_column("Count", style="cyan")
    table.add_column("Value", style="magenta", justify="right")
    for kind, value in result.counts.items():
        table.add_row(kind, str(value))
    console.print(table)

    if result.success:
        console.print(f"[bold green]{result.unit} complete[/bold green] [dim](lambda {result.resonance})[/dim]")
        return
    for error in result.errors:
        console.print(f"[red]  - {escape(error)}[/red]")
    _fail(f"{result.unit} finished with {len(result.errors)} error(s)")


def _entries_table(title: str, entries: list[LedgerRecord], full: bool = False) -> None:
    if not entries:
        console.print("[dim]No entries[/dim]")
        return

    if full:
        console.print(f"[bold]{title}[/bold]\n")
        for i, entry in enumerate(entries, 1):
            style = SEVERITY_STYLES[entry.severity]
            console.print(f"[cyan]Entry {i}/{len(entries)}[/cyan]")
            console.print(f"  [dim]ID:[/dim]         {entry.id}")
            console.print(f"  [dim]Created:[/dim]    {entry.created_at.strftime('%Y-%m-%d %H:%M:%S')} UTC")
            console.print(f"  [dim]Module:[/dim]     {entry.module.value}")
            console.print(f"  [dim]Type:[/dim]       [magenta]{entry.type}[/magenta]")
            console.print(f"  [dim]Severity:[/dim]   [{style}]{entry.severity.value}[/{style}]")
            console.print(f"  [dim]Reviewed:[/dim]   {'yes' if entry.processed else 'no'}")
            console.print("  [dim]Payload:[/dim]")
            payload = entry.to_api_dict()["payload"]
            text = json.dumps(payload, indent=2) if not isinstance(payload, str) else payload
            for line in text.split("\n"):
                console.print(f"    {line}", markup=False)
            console.print()
        return

    table = Table(title=title)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Created (UTC)", style="cyan", no_wrap=True)
    table.add_column("Module", style="yellow")
    table.add_column("Type", style="magenta")
    table.add_column("Severity")
    table.add_column("Reviewed")
    table.add_column("Payload", style="dim")

    for entry in entries:
        payload_str = entry.data
        if len(payload_str) > 60:
            payload_str = payload_str[:57] + "..."
        style = SEVERITY_STYLES[entry.severity]
        table.add_row(
            str(entry.id),
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.module.value,
            entry.type,
            f"[{style}]{entry.severity.value}[/{style}]",
            "yes" if entry.processed else "no",
            escape(payload_str),
        )
    console.print(table)


@app.command()
def init(
    ctx: typer.Context,
    analyses_schema: bool = typer.Option(
        False,
        "--analyses-schema",
        help="Also create an empty analyses table (local setups without the upstream analysis store)",
    ),
):
    """Create the ledger database and a repo-local config file.

    This command is idempotent - it will not overwrite existing data.
    """
    config = _load_config(ctx)
    existed = config.db_path.exists()
    service = _load_service(ctx)

    if existed:
        console.print(f"[dim]Ledger already exists: {config.db_path}[/dim]")
    else:
        console.print(f"[green]+[/green] Created ledger: {config.db_path}")

    config_file = repo_config_path()
    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(config.to_toml_str())
        console.print(f"[green]+[/green] Created config: {config_file}")
    else:
        console.print(f"[dim]Config already exists: {config_file}[/dim]")

    if analyses_schema:
        target = config.analyses_db_path or config.db_path
        target.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(target))
        try:
            conn.executescript(ANALYSES_SCHEMA)
            conn.commit()
        finally:
            conn.close()
        console.print(f"[green]+[/green] Ensured analyses table in: {target}")

    console.print()
    console.print("[bold green]Intelligence OS initialized![/bold green]")
    console.print(f"[dim]Entries in ledger:[/dim] {service.store.count()}")


@app.command()
def status(ctx: typer.Context):
    """Show ledger totals by module and severity."""
    service = _load_service(ctx)
    report = service.status()

    console.print(f"[bold]Total entries:[/bold] {report.total_entries}  [dim](lambda {report.resonance})[/dim]")

    by_module = Table(title="By module")
    by_module.add_column("Module", style="yellow")
    by_module.add_column("Entries", justify="right")
    for module, count in report.by_module.items():
        by_module.add_row(module, str(count))
    console.print(by_module)

    by_severity = Table(title="By severity")
    by_severity.add_column("Severity")
    by_severity.add_column("Entries", justify="right")
    for severity, count in report.by_severity.items():
        style = SEVERITY_STYLES[Severity(severity)]
        by_severity.add_row(f"[{style}]{severity}[/{style}]", str(count))
    console.print(by_severity)


ledger_app = typer.Typer(help="Ledger commands")
app.add_typer(ledger_app, name="ledger")


@ledger_app.command("tail")
def ledger_tail(
    ctx: typer.Context,
    n: int = typer.Option(20, "--n", help="Number of recent entries to display"),
    module: str = typer.Option(None, "--module", "-m", help="Only entries from this module"),
    severity: str = typer.Option(None, "--severity", "-s", help="Only entries with this severity"),
    full: bool = typer.Option(False, "--full", help="Show full payloads with JSON pretty-print"),
):
    """Display the newest N ledger entries."""
    service = _load_service(ctx)
    try:
        listing = service.ledger(module=module, severity=severity, limit=n)
    except ValidationError as e:
        _fail(str(e))
    _entries_table(f"Last {listing.count} Ledger Entr{'y' if listing.count == 1 else 'ies'}", listing.entries, full)


@ledger_app.command("review")
def ledger_review(
    ctx: typer.Context,
    record_id: int = typer.Argument(..., help="Ledger entry id to mark reviewed"),
):
    """Mark a ledger entry reviewed (idempotent)."""
    service = _load_service(ctx)
    try:
        changed = service.review(record_id)
    except IntelError as e:
        _fail(str(e))
    if changed:
        console.print(f"[green]+[/green] Entry #{record_id} marked reviewed")
    else:
        console.print(f"[dim]Entry #{record_id} was already reviewed[/dim]")


@app.command()
def mine(
    ctx: typer.Context,
    since: str = typer.Option(None, "--since", help="Only report changes after this ISO-8601 instant"),
):
    """Run the Miner over its discovery sources."""
    service = _load_service(ctx)
    config = service.miner.default_config
    if since:
        try:
            config = replace(config, last_mine_time=datetime.fromisoformat(since))
        except ValueError as e:
            _fail(f"--since must be ISO-8601: {e}")
    _print_result(service.miner.run(config))


@app.command()
def reap(
    ctx: typer.Context,
    batch_size: int = typer.Option(None, "--batch-size", help="Analyses to extract (default from config)"),
    analysis_id: str = typer.Option(None, "--analysis-id", help="Extract a single analysis"),
):
    """Run the Reaper over recent analyses."""
    service = _load_service(ctx)
    if analysis_id:
        _print_result(service.reaper.extract(analysis_id))
        return
    config = service.reaper.default_config
    if batch_size is not None:
        config = replace(config, max_batch_size=batch_size)
    _print_result(service.reaper.run(config))


@app.command()
def hunt(
    ctx: typer.Context,
    drift_threshold: float = typer.Option(None, "--drift-threshold", help="Drift above this is an anomaly"),
    pattern: str = typer.Option(None, "--pattern", "-p", help="Hunt analyses reporting this pattern instead"),
):
    """Run the Hunter's anomaly scans (or a pattern hunt)."""
    service = _load_service(ctx)
    config = service.hunter.default_config
    if drift_threshold is not None:
        config = replace(config, drift_threshold=drift_threshold)
    if pattern is not None:
        _print_result(service.hunter.hunt_patterns(pattern, config), title=f"pattern hunt: {pattern}")
        return
    _print_result(service.hunter.run(config))


@app.command()
def seek(
    ctx: typer.Context,
    min_similarity: float = typer.Option(None, "--min-similarity", help="Pair similarity threshold in [0, 1]"),
    max_relationships: int = typer.Option(None, "--max-relationships", help="Stop after this many pairs"),
):
    """Run the Seeker's relationship and cluster mapping."""
    service = _load_service(ctx)
    config = service.seeker.default_config
    if min_similarity is not None:
        config = replace(config, min_similarity=min_similarity)
    if max_relationships is not None:
        config = replace(config, max_relationships=max_relationships)
    _print_result(service.seeker.run(config))


sin_eater_app = typer.Typer(help="Sin-Eater witness commands")
app.add_typer(sin_eater_app, name="sin-eater")


@sin_eater_app.command("scan")
def sin_eater_scan(
    ctx: typer.Context,
    scan_limit: int = typer.Option(None, "--scan-limit", help="Newest ledger rows to check for corruption"),
):
    """Scan for payload corruption and pipeline dissonance."""
    service = _load_service(ctx)
    config = service.sin_eater.default_config
    if scan_limit is not None:
        config = replace(config, scan_limit=scan_limit)
    _print_result(service.sin_eater.run(config))


@sin_eater_app.command("log")
def sin_eater_log(
    ctx: typer.Context,
    error_type: str = typer.Argument(..., help="Error type, e.g. MANUAL_REPORT"),
    details: str = typer.Option("{}", "--details", "-d", help="JSON object with error details"),
    severity: str = typer.Option("MEDIUM", "--severity", "-s", help="CRITICAL, HIGH, MEDIUM, LOW or INFO"),
):
    """Witness an error for later review."""
    service = _load_service(ctx)
    try:
        details_data = json.loads(details)
    except json.JSONDecodeError as e:
        _fail(f"--details is not valid JSON: {e}")
    if not isinstance(details_data, dict):
        _fail("--details must be a JSON object")
    _print_result(service.sin_eater.log_error(error_type, details_data, severity))


@sin_eater_app.command("unreviewed")
def sin_eater_unreviewed(
    ctx: typer.Context,
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum entries to show"),
):
    """List witness records awaiting review, most urgent first."""
    service = _load_service(ctx)
    try:
        listing = service.unreviewed(limit=limit)
    except ValidationError as e:
        _fail(str(e))
    _entries_table(f"{listing.count} Unreviewed Witness Record(s)", listing.entries)


analyst_app = typer.Typer(help="Analyst synthesis commands")
app.add_typer(analyst_app, name="analyst")


@analyst_app.command("briefing")
def analyst_briefing(
    ctx: typer.Context,
    days: int = typer.Option(None, "--days", help="Briefing window in days"),
):
    """Write a strategic briefing over recent ledger activity."""
    service = _load_service(ctx)
    config = service.analyst.default_config
    if days is not None:
        config = replace(config, briefing_days=days)
    _print_result(service.analyst.generate_briefing(config), title="strategic briefing")


@analyst_app.command("timeline")
def analyst_timeline(
    ctx: typer.Context,
    days: int = typer.Option(None, "--days", help="Timeline window in days"),
):
    """Write a day-by-day timeline of ledger events."""
    service = _load_service(ctx)
    config = service.analyst.default_config
    if days is not None:
        config = replace(config, timeline_days=days)
    _print_result(service.analyst.create_timeline(config), title="timeline")


@app.command()
def cycle(
    ctx: typer.Context,
    only: Optional[list[str]] = typer.Option(None, "--only", help="Run only these units (repeatable)"),
    skip: Optional[list[str]] = typer.Option(None, "--skip", help="Skip these units (repeatable)"),
):
    """Run the selected units once each, in pipeline order."""
    if only and skip:
        _fail("Use --only or --skip, not both")
    service = _load_service(ctx)
    try:
        if only:
            selection = normalize_selection(only)
        else:
            skipped = set(normalize_selection(skip or []))
            selection = [name for name in UNIT_ORDER if name not in skipped]
        result = service.cycle(selection)
    except ValidationError as e:
        _fail(str(e))

    table = Table(title=f"Cycle ({result.elapsed_ms} ms)")
    table.add_column("Unit", style="yellow")
    table.add_column("Status")
    table.add_column("Counts", style="dim")
    table.add_column("Errors", justify="right")
    for name, unit_result in result.per_unit_results.items():
        counts = ", ".join(f"{k}={v}" for k, v in unit_result.counts.items())
        state = "[green]ok[/green]" if unit_result.success else "[red]failed[/red]"
        table.add_row(name, state, counts, str(len(unit_result.errors)))
    console.print(table)

    if not result.success:
        for name, unit_result in result.per_unit_results.items():
            for error in unit_result.errors:
                console.print(f"[red]  - {name}: {escape(error)}[/red]")
        _fail("cycle finished with errors")
    console.print(f"[bold green]Cycle complete[/bold green] [dim](lambda {result.resonance})[/dim]")


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: int = typer.Option(None, "--port", help="Port (default from config or PORT env)"),
):
    """Serve the dashboard HTTP API."""
    from .api import serve as serve_api

    service = _load_service(ctx)
    bind_host = host or service.config.api_host
    bind_port = port or service.config.api_port
    console.print(f"[green]Intelligence API on[/green] http://{bind_host}:{bind_port}/api/intelligence")
    serve_api(service, bind_host, bind_port)


@app.command()
def version():
    """Show Intelligence OS version."""
    from . import __version__
    console.print(f"Intelligence OS v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
