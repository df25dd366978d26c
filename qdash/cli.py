"""QDash CLI.

Commands:
- init: Initialize database schema
- ingest: Import a spreadsheet into an upload domain (CSV/XLSX)
- uploads: Show upload history for a domain
- pareto: Defect-type Pareto table for a domain
- groups: Process-quality totals by part type / customer / model / product
- set-target: Set an annual PPM target
- check-db: Report missing tables and columns
- serve: Run the web API
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from qdash.config import get_config
from qdash.db.connection import close_db, get_session, init_db
from qdash.db.schema_check import check_schema
from qdash.db.store import RecordStore
from qdash.errors import EmptyFileError, PersistenceError, UnsupportedFileError
from qdash.ingestion.domains import DOMAINS, DomainKind, get_domain
from qdash.ingestion.uploads import ingest_upload, list_uploads, month_range
from qdash.metrics.ppm import MetricKind, set_annual_target
from qdash.reporting.aggregation import defect_type_shares, group_by, pareto_series

app = typer.Typer(
    name="qdash",
    help="QDash - Quality dashboard ingestion and analysis",
    no_args_is_help=True,
)

console = Console()


def _run(coro):
    async def _with_cleanup():
        try:
            return await coro
        finally:
            await close_db()

    return asyncio.run(_with_cleanup())


def _fail(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(code=1)


def _persistence_failure(e: PersistenceError) -> None:
    console.print(f"[red]✗[/red] Database error ({e.kind.value}): {e.message}")
    console.print(f"  {e.remediation}", style="dim")
    raise typer.Exit(code=1)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def ingest(
    domain: str = typer.Argument(..., help=f"Upload domain ({', '.join(DOMAINS)})"),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Spreadsheet (CSV/XLSX)"),
    month: str | None = typer.Option(None, "--month", "-m", help="Replace this month (YYYY-MM)"),
):
    """Import a spreadsheet into an upload domain."""
    try:
        spec = get_domain(domain)
    except ValueError as e:
        _fail(str(e))

    console.print(f"[bold]Ingesting {spec.label}:[/bold] {file.name}" + (f" [{month}]" if month else ""))

    async def _ingest():
        async with get_session() as session:
            return await ingest_upload(
                RecordStore(session), spec.name, file.read_bytes(), file.name, target_month=month
            )

    try:
        result = _run(_ingest())
    except (EmptyFileError, UnsupportedFileError, ValueError) as e:
        _fail(str(e))
    except PersistenceError as e:
        _persistence_failure(e)

    console.print(f"  [green]✓[/green] {result.records_inserted} records inserted")
    if result.records_updated:
        console.print(f"  [green]✓[/green] {result.records_updated} records updated")
    if result.records_deleted:
        console.print(f"  [yellow]⚠[/yellow] {result.records_deleted} records replaced")
    console.print(f"[bold green]✓[/bold green] Upload {result.upload_id}")


@app.command()
def uploads(
    domain: str = typer.Argument(..., help="Upload domain"),
):
    """Show upload history for a domain."""
    async def _list():
        async with get_session() as session:
            return await list_uploads(RecordStore(session), domain)

    try:
        history = _run(_list())
    except ValueError as e:
        _fail(str(e))
    except PersistenceError as e:
        _persistence_failure(e)

    table = Table(title=f"Uploads: {domain}")
    table.add_column("Date", style="cyan")
    table.add_column("File")
    table.add_column("Records", justify="right", style="green")
    table.add_column("ID", style="dim")

    for upload in history:
        uploaded = upload.upload_date.strftime("%Y-%m-%d %H:%M") if upload.upload_date else "-"
        table.add_row(uploaded, upload.filename, str(upload.record_count), str(upload.id))

    console.print(table)


@app.command()
def pareto(
    domain: str = typer.Argument(..., help="Defect-type domain"),
    top: int | None = typer.Option(None, "--top", "-n", help="Number of defect types"),
    month: str | None = typer.Option(None, "--month", "-m", help="Limit to one month (YYYY-MM)"),
):
    """Defect-type Pareto table for a domain."""
    try:
        spec = get_domain(domain)
    except ValueError as e:
        _fail(str(e))
    if spec.kind is not DomainKind.DEFECT_TYPE:
        _fail(f"{domain} has no defect-type breakdown")

    top = top or get_config().reporting.pareto_top_n

    async def _select():
        async with get_session() as session:
            filters = {"data_date": month_range(month)} if month else None
            return await RecordStore(session).select(spec.collection, filters)

    try:
        records = _run(_select())
    except ValueError as e:
        _fail(str(e))
    except PersistenceError as e:
        _persistence_failure(e)

    points = pareto_series(defect_type_shares(records), top)

    table = Table(title=f"{spec.label} Pareto (top {top}, {len(records)} records)")
    table.add_column("Defect Type", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("%", justify="right")
    table.add_column("Cumulative %", justify="right", style="green")

    for point in points:
        table.add_row(
            point.defect_type,
            f"{point.count:,.0f}",
            f"{point.percentage:.1f}",
            f"{point.cumulative_percentage:.1f}",
        )

    console.print(table)


@app.command()
def groups(
    by: str = typer.Option("part_type", "--by", help="part_type | customer | vehicle_model | product_name"),
    month: str | None = typer.Option(None, "--month", "-m", help="Limit to one month (YYYY-MM)"),
):
    """Process-quality totals per group."""
    if by not in ("part_type", "customer", "vehicle_model", "product_name"):
        _fail(f"Cannot group by '{by}'")

    config = get_config()

    async def _select():
        async with get_session() as session:
            filters = {"data_date": month_range(month)} if month else None
            return await RecordStore(session).select("process_quality", filters)

    try:
        records = _run(_select())
    except ValueError as e:
        _fail(str(e))
    except PersistenceError as e:
        _persistence_failure(e)

    order = config.load_reference_data().part_type_order if by == "part_type" else None

    table = Table(title=f"Process quality by {by}")
    table.add_column("Group", style="cyan")
    table.add_column("Production", justify="right")
    table.add_column("Defects", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Rate %", justify="right", style="green")

    for summary in group_by(records, by, order=order):
        table.add_row(
            summary.key,
            f"{summary.total_production:,.0f}",
            f"{summary.total_defects:,.0f}",
            f"{summary.total_amount:,.0f}",
            f"{summary.defect_rate:.2f}",
        )

    console.print(table)


@app.command(name="set-target")
def set_target_cmd(
    kind: MetricKind = typer.Argument(..., help="customer | supplier | outgoing"),
    year: int = typer.Argument(..., help="Target year"),
    target: float = typer.Argument(..., help="Target PPM"),
    dimension: str | None = typer.Option(None, "--dimension", "-d", help="Customer or supplier name"),
):
    """Set the same PPM target on every month of a year."""
    if kind.dimension_field and not dimension:
        _fail(f"{kind.value} targets need --dimension")

    async def _save():
        async with get_session() as session:
            return await set_annual_target(RecordStore(session), kind, year, target, dimension=dimension)

    if not _run(_save()):
        _fail("Saving targets failed (see logs)")

    label = f"{dimension} " if dimension else ""
    console.print(f"[bold green]✓[/bold green] {label}{year} target set to {target:g} PPM")


@app.command(name="check-db")
def check_db():
    """Report missing tables and columns."""
    async def _check():
        async with get_session() as session:
            return await check_schema(session)

    try:
        report = _run(_check())
    except PersistenceError as e:
        _persistence_failure(e)

    for table in report.existing_tables:
        missing = report.missing_columns.get(table)
        if missing:
            console.print(f"  [yellow]⚠[/yellow] {table}: missing columns {', '.join(missing)}")
        else:
            console.print(f"  [green]✓[/green] {table}")
    for table in report.missing_tables:
        console.print(f"  [red]✗[/red] {table}")

    if not report.ok:
        console.print("Run [bold]qdash init[/bold] to create missing tables.")
        raise typer.Exit(code=1)
    console.print("[bold green]✓[/bold green] Schema OK")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI web API."""
    import uvicorn

    typer.echo(f"Starting QDash API on http://{host}:{port}")
    uvicorn.run("qdash.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
