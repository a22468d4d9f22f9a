"""Typer CLI entrypoint for estate-ingest."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .config import SourceConfig
from .errors import ConflictError, IngestError, InvalidStateError, NotFoundError
from .logging_conf import (
    available_source_logs,
    configure_logging,
    main_log_file,
    source_log_file,
    tail_log,
)
from .records import IngestionJob, OptOutRequest, OptOutStatus, SourceRecord
from .runtime import Runtime, build_runtime
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="estate-ingest command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
source_app = typer.Typer(
    name="source",
    help="Source registry commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)
optout_app = typer.Typer(
    name="optout",
    help="Opt-out review commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log viewing commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    runtime: Runtime
    scheduler: APSchedulerAdapter


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    runtime = build_runtime()
    return AppState(runtime=runtime, scheduler=APSchedulerAdapter())


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _render_sources_table(sources: Sequence[SourceRecord], stats: dict[str, dict]) -> Table:
    table = Table(title=f"Sources · {len(sources)} total", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Active", style="green")
    table.add_column("Listings", justify="right")
    table.add_column("Last fetch", style="yellow")
    for source in sources:
        row = stats.get(source.name, {})
        table.add_row(
            source.name,
            source.config.source_type.value,
            "yes" if source.is_active else "no",
            str(row.get("total_listings", 0)),
            str(row.get("last_fetch") or "-"),
        )
    return table


def _render_jobs_table(jobs: Iterable[IngestionJob], title: str = "Ingestion jobs") -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Job ID", style="cyan", no_wrap=True)
    table.add_column("Source", style="magenta")
    table.add_column("Status")
    table.add_column("Stage", style="dim")
    table.add_column("Found", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Dup", justify="right")
    table.add_column("Err", justify="right", style="red")
    table.add_column("Created", style="dim")
    table.add_column("Error", overflow="fold")
    for job in jobs:
        counters = job.counters
        table.add_row(
            job.id,
            job.source_name,
            job.status.value,
            job.stage.value,
            str(counters.found),
            str(counters.new),
            str(counters.duplicate),
            str(counters.errored),
            job.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            job.error or "",
        )
    return table


def _render_optouts_table(requests: Sequence[OptOutRequest]) -> Table:
    table = Table(title=f"Opt-out requests · {len(requests)}", box=box.SIMPLE_HEAD)
    table.add_column("Request ID", style="cyan", no_wrap=True)
    table.add_column("Listing", style="magenta", no_wrap=True)
    table.add_column("Status")
    table.add_column("Email")
    table.add_column("Reason", overflow="fold")
    table.add_column("Created", style="dim")
    for request in requests:
        table.add_row(
            request.id,
            request.listing_id,
            request.status.value,
            request.email or "",
            request.reason or "",
            request.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def _fail(message: str) -> None:
    console.print(message, style="red", markup=False)
    raise typer.Exit(code=1)


app.add_typer(source_app, name="source", help="Manage sources (list/add/import/activate/deactivate)")
app.add_typer(optout_app, name="optout", help="Review opt-out requests")
app.add_typer(log_app, name="log", help="Inspect log files")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)
    ctx.call_on_close(ctx.obj.runtime.close)


# ----------------------------------------------------------------------
# Sources
# ----------------------------------------------------------------------
@source_app.command("list", help="List registered sources with listing totals.")
def source_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    sources = state.runtime.registry.list_sources()
    if not sources:
        console.print("No sources registered. Use `estate-ingest source add` or `source import`.", style="yellow")
        raise typer.Exit(code=0)
    stats = {row["name"]: row for row in state.runtime.registry.source_stats()}
    console.print(_render_sources_table(sources, stats))


@source_app.command("add", help="Register a source from a YAML/JSON definition file.")
def source_add(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Path to the source definition file."),
    inactive: bool = typer.Option(False, "--inactive", help="Register the source deactivated.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    runtime = state.runtime
    try:
        config = runtime.repository.load_source_file(path)
    except FileNotFoundError as exc:
        _fail(str(exc))
    except (ValidationError, ValueError) as exc:
        _fail(f"Invalid source definition: {exc}")
    if inactive:
        config = config.model_copy(update={"is_active": False})
    try:
        runtime.registry.create(config)
    except ConflictError as exc:
        _fail(str(exc))
    saved = runtime.repository.save_source_file(config)
    console.print(f"Source `{config.name}` registered ({config.source_type.value}).", style="green")
    console.print(f"Definition stored at {saved}", style="dim")


@source_app.command("import", help="Register every definition found in the sources directory.")
def source_import(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    runtime = state.runtime
    try:
        definitions: list[SourceConfig] = runtime.repository.list_source_definitions()
    except (ValidationError, ValueError) as exc:
        _fail(f"Invalid source definition: {exc}")
    created, skipped = runtime.registry.import_configs(definitions)
    for name in created:
        console.print(f"+ {name}", style="green")
    for name in skipped:
        console.print(f"= {name} (already registered)", style="dim")
    console.print(f"Imported {len(created)} source(s), skipped {len(skipped)}.")


@source_app.command("activate", help="Mark a source active so it is scheduled.")
def source_activate(ctx: typer.Context, name: str = typer.Argument(..., help="Source name.")) -> None:
    state = _get_state(ctx)
    try:
        state.runtime.orchestrator.activate_source(name)
    except NotFoundError as exc:
        _fail(str(exc))
    console.print(f"Source `{name}` activated.", style="green")


@source_app.command("deactivate", help="Stop scheduling a source and cancel its running job.")
def source_deactivate(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name."),
    cascade: bool = typer.Option(
        False, "--cascade", help="Also remove the source's active listings.", is_flag=True
    ),
) -> None:
    state = _get_state(ctx)
    try:
        outcome = state.runtime.orchestrator.deactivate_source(name, cascade=cascade)
    except NotFoundError as exc:
        _fail(str(exc))
    console.print(f"Source `{name}` deactivated.", style="green")
    if outcome["cancelled"]:
        console.print("In-flight job flagged for cancellation.", style="yellow")
    if cascade:
        console.print(f"Removed {outcome['removed']} active listing(s).", style="yellow")


# ----------------------------------------------------------------------
# Jobs
# ----------------------------------------------------------------------
@app.command("run", help="Run ingestion now for every eligible source, or for one source.")
def run(
    ctx: typer.Context,
    source: Optional[str] = typer.Option(None, "--source", help="Only run this source."),
) -> None:
    state = _get_state(ctx)
    orchestrator = state.runtime.orchestrator
    if source:
        try:
            job = orchestrator.run_source(source)
        except NotFoundError as exc:
            _fail(str(exc))
        if job is None:
            console.print(f"Source `{source}` is inactive or already has a job in flight.", style="yellow")
            raise typer.Exit(code=0)
        finished = [job]
    else:
        admitted = orchestrator.run_eligible_sources(wait=True)
        if not admitted:
            console.print("No eligible sources (all inactive or busy).", style="yellow")
            raise typer.Exit(code=0)
        finished = [state.runtime.jobs.get(job.id) for job in admitted]
    console.print(_render_jobs_table(finished, title="Run results"))
    if any(job.error for job in finished):
        raise typer.Exit(code=1)


@app.command("jobs", help="Show the most recent ingestion jobs, newest first.")
def jobs(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", help="Number of jobs to show."),
    source: Optional[str] = typer.Option(None, "--source", help="Filter by source."),
) -> None:
    state = _get_state(ctx)
    effective_limit = limit if isinstance(limit, int) and limit > 0 else state.runtime.global_config.job_list_limit
    rows = state.runtime.orchestrator.recent_jobs(limit=effective_limit, source_name=source)
    if not rows:
        console.print("No jobs recorded yet.", style="dim")
        return
    console.print(_render_jobs_table(rows))


@app.command("cancel", help="Request cancellation of a source's in-flight job.")
def cancel(ctx: typer.Context, name: str = typer.Argument(..., help="Source name.")) -> None:
    state = _get_state(ctx)
    if state.runtime.orchestrator.cancel_source(name):
        console.print(f"Cancellation requested for `{name}`.", style="green")
    else:
        console.print(f"`{name}` has no job in flight.", style="yellow")


@app.command("serve", help="Run the scheduler loop, optionally with the HTTP API.")
def serve(
    ctx: typer.Context,
    http: bool = typer.Option(False, "--http", help="Also serve the HTTP API.", is_flag=True),
    host: str = typer.Option("127.0.0.1", "--host", help="HTTP bind address."),
    port: int = typer.Option(8000, "--port", help="HTTP port."),
    run_now: bool = typer.Option(False, "--run-now", help="Fire one round before the first tick.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    runtime = state.runtime
    orchestrator = runtime.orchestrator
    recovered = orchestrator.recover_stale_jobs()
    if recovered:
        console.print(f"Marked {len(recovered)} abandoned job(s) as failed.", style="yellow")

    state.scheduler.schedule_runner(runtime.global_config, orchestrator.run_eligible_sources)
    state.scheduler.start()
    if run_now:
        orchestrator.run_eligible_sources()
    console.print("Scheduler started. Press Ctrl+C to stop.", style="green")
    try:
        if http:
            import uvicorn

            from .web import create_app

            uvicorn.run(create_app(runtime), host=host, port=port)
        else:
            while True:
                time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping...", style="yellow")
    finally:
        state.scheduler.shutdown()


# ----------------------------------------------------------------------
# Opt-outs
# ----------------------------------------------------------------------
@optout_app.command("list", help="List opt-out requests.")
def optout_list(
    ctx: typer.Context,
    status: Optional[OptOutStatus] = typer.Option(None, "--status", help="Filter by status."),
    limit: int = typer.Option(100, "--limit", help="Maximum number of requests."),
) -> None:
    state = _get_state(ctx)
    requests = state.runtime.optouts.list_requests(status=status, limit=limit)
    if not requests:
        console.print("No opt-out requests.", style="dim")
        return
    console.print(_render_optouts_table(requests))


@optout_app.command("approve", help="Approve a request and remove its listing.")
def optout_approve(ctx: typer.Context, request_id: str = typer.Argument(..., help="Request ID.")) -> None:
    state = _get_state(ctx)
    try:
        request = state.runtime.optouts.approve(request_id)
    except (NotFoundError, InvalidStateError) as exc:
        _fail(str(exc))
    console.print(f"Request {request.id} approved; listing {request.listing_id} removed.", style="green")


@optout_app.command("reject", help="Reject a request; the listing stays visible.")
def optout_reject(
    ctx: typer.Context,
    request_id: str = typer.Argument(..., help="Request ID."),
    reason: Optional[str] = typer.Option(None, "--reason", help="Decision note."),
) -> None:
    state = _get_state(ctx)
    try:
        request = state.runtime.optouts.reject(request_id, reason)
    except (NotFoundError, InvalidStateError) as exc:
        _fail(str(exc))
    console.print(f"Request {request.id} rejected.", style="green")


# ----------------------------------------------------------------------
# Logs
# ----------------------------------------------------------------------
@log_app.command("list", help="List available source log files.")
def log_list() -> None:
    logs = list(available_source_logs())
    console.print("Log files:", style="cyan")
    if not logs:
        console.print("No source logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the tail of a log file.")
def log_show(
    name: Optional[str] = typer.Option(None, "--source", help="Source name (global log when omitted)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
) -> None:
    path = source_log_file(name) if name else main_log_file()
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    header = f"{'Source log' if name else 'Global log'} · last {len(lines)} lines"
    console.print(header, style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    try:
        app()
    except IngestError as exc:
        console.print(f"Error: {exc}", style="red")
        raise SystemExit(1) from exc


if __name__ == "__main__":  # pragma: no cover
    cli()
