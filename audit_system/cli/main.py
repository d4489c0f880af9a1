"""Operator CLI for the audit pipeline using Typer and Rich."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from audit_system import __version__
from audit_system.config.logging import get_logger
from audit_system.config.settings import settings
from audit_system.data_management.schemas import Product, StageId
from audit_system.errors import AuditError
from audit_system.services import AuditServices

# Initialize CLI app
app = typer.Typer(
    help="Audit System CLI - staged product-claim audits",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")


def _services() -> AuditServices:
    return AuditServices.from_settings(settings)


def _run(coro_factory):
    """Run one async operation against freshly wired services."""
    services = _services()

    async def runner():
        try:
            return await coro_factory(services)
        finally:
            await services.close()

    try:
        return asyncio.run(runner())
    except AuditError as e:
        console.print(f"[red]✗[/red] {e.code.value}: {e}")
        raise typer.Exit(1)


@app.command()
def status(product_id: Optional[str] = typer.Argument(None, help="Product to inspect")) -> None:
    """
    Display configuration, or the stage states of one product.
    """
    if product_id is None:
        table = Table(title="Audit System Status", show_header=True, header_style="bold magenta")
        table.add_column("Component", style="cyan", width=20)
        table.add_column("Status", style="green", width=15)
        table.add_column("Details", style="yellow")

        python_version = f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
        table.add_row("Environment", "✓ Ready", python_version)

        api_status = "✓ Configured" if settings.gemini_api_key else "⚠ Not Configured"
        table.add_row("Gemini API", api_status, f"{settings.gemini_model} (RPM: {settings.max_rpm})")

        store = settings.store_path or "memory only"
        table.add_row("Store", "✓ Active", store)
        table.add_row(
            "Refresh",
            "✓ Active",
            f"batch {settings.refresh_batch_size}, stale after {settings.refresh_stale_days}d",
        )
        table.add_row("Logging", "✓ Active", f"Level: {settings.log_level}, Format: {settings.log_format}")
        console.print(table)
        return

    records = _run(lambda s: s.orchestrator.get_status(product_id))

    table = Table(title=f"Stages for {product_id}", show_header=True, header_style="bold magenta")
    table.add_column("Stage", style="cyan")
    table.add_column("Status")
    table.add_column("Updated", style="dim")
    table.add_column("Error", style="red")
    for stage, record in records.items():
        error = f"{record.error.code.value}: {record.error.reason}" if record.error else ""
        table.add_row(stage.key, record.status.value, record.updated_at.isoformat(), error)
    console.print(table)


@app.command("import-products")
def import_products(path: Path = typer.Argument(..., exists=True, readable=True)) -> None:
    """Load products from a JSON file (a list of product objects)."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    products = [Product.model_validate(item) for item in raw]

    async def load(services: AuditServices) -> int:
        for product in products:
            await services.products.upsert(product)
        return len(products)

    count = _run(load)
    console.print(f"[green]✓[/green] Imported {count} products")


@app.command("run-stage")
def run_stage(
    product_id: str = typer.Argument(..., help="Product identifier"),
    stage: str = typer.Argument(..., help="Stage number (1-4)"),
    force: bool = typer.Option(False, "--force", help="Recompute even if cached"),
) -> None:
    """Run one stage for one product."""
    try:
        stage_id = StageId.parse(stage)
    except ValueError:
        console.print(f"[red]✗[/red] Unknown stage: {stage}")
        raise typer.Exit(2)

    logger.info(f"Running {stage_id.key} for {product_id}")
    outcome = _run(lambda s: s.orchestrator.run_stage(product_id, stage_id, force_redo=force))

    if outcome.ok:
        label = "cached" if outcome.cached else "done"
        console.print(Panel(
            json.dumps(outcome.output, indent=2)[:2000],
            title=f"{stage_id.key} ({label})",
            border_style="green",
        ))
    else:
        console.print(f"[red]✗[/red] {outcome.error.value}: {outcome.detail}")
        raise typer.Exit(1)


@app.command()
def enqueue(
    product_id: str = typer.Argument(..., help="Product identifier"),
    force: bool = typer.Option(False, "--force", help="Recompute cached stages"),
) -> None:
    """Queue a background audit run."""
    run = _run(lambda s: s.worker.enqueue(product_id, force_redo=force))
    console.print(f"[green]✓[/green] Run {run.run_id} ({run.status.value}, cursor {run.cursor})")


@app.command()
def work(steps: int = typer.Option(1, "--steps", min=1, help="Worker activations to run")) -> None:
    """Run worker activations, one stage each, until idle or steps run out."""

    async def drain(services: AuditServices):
        await services.worker.release_stale_claims()
        results = []
        for _ in range(steps):
            result = await services.worker.process_next()
            results.append(result)
            if result.idle:
                break
        return results

    for result in _run(drain):
        if result.idle:
            console.print("[dim]No queued work[/dim]")
        elif result.claim_lost:
            console.print(
                f"[yellow]![/yellow] {result.run.run_id}: claim expired, run is held by another worker"
            )
        elif result.ok:
            console.print(
                f"[green]✓[/green] {result.run.run_id} stage {result.stage.value if result.stage else '-'}"
                f" -> {result.run.status.value}"
            )
        else:
            console.print(f"[red]✗[/red] {result.run.run_id}: {result.run.error}")


@app.command()
def sweep(
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
    stale_days: Optional[int] = typer.Option(None, "--stale-days", min=0),
) -> None:
    """Run one refresh sweep over stale products."""
    report = _run(lambda s: s.scheduler.sweep(batch_size=batch_size, stale_days=stale_days))

    table = Table(title=f"Refresh sweep ({report.processed} processed)", header_style="bold magenta")
    table.add_column("Product", style="cyan")
    table.add_column("Result")
    for result in report.results:
        style = "green" if result.ok else "red"
        table.add_row(result.product_id, f"[{style}]{result.status}[/{style}]")
    console.print(table)

    if report.failed:
        raise typer.Exit(1)


@app.command()
def integrity(slug: str = typer.Argument(..., help="Product slug")) -> None:
    """Read-only freshness check for one product."""
    report = _run(lambda s: s.freshness.check(slug))

    table = Table(title=f"Integrity: {slug}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in report.to_response().items():
        if key == "ok":
            continue
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def version() -> None:
    """Display version information."""
    console.print("[bold]Audit System[/bold]")
    console.print(f"Version: {__version__}")


if __name__ == "__main__":
    app()
