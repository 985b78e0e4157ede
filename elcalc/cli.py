"""elcalc CLI.

Commands:
- init: Initialize database schema
- interpret: Show what the interpreter extracts from a description
- analyze: Run the full estimation pipeline
- collect-feedback: Create feedback rows for completed projects
- calibrate: Propose (and optionally record) time calibrations
- metrics: Show learning metrics
- status: Show feedback pipeline health
- risk-buffer: Suggest a risk buffer for a complexity score
"""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from elcalc.calculation import CalculationParameters, format_currency, format_hours
from elcalc.config import get_config
from elcalc.core.logging import configure_logging
from elcalc.db.calculations import load_templates
from elcalc.db.connection import close_db, display_url, get_session, init_db
from elcalc.interpreter import interpret
from elcalc.learning import FeedbackRepository, LearningEngine
from elcalc.matching.catalog import load_catalog
from elcalc.offers import get_template_library, reload_template_library
from elcalc.pipeline import analyze_project

app = typer.Typer(
    name="elcalc",
    help="elcalc - Self-calibrating electrical offer estimation",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main():
    """Configure logging once for every command."""
    configure_logging()


def _engine_for(session) -> LearningEngine:
    learning = get_config().learning
    repository = FeedbackRepository(session, learning.batch_size, learning.max_rows)
    return LearningEngine(repository, learning)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {display_url(config.db.url)}")

    async def _init():
        if drop:
            console.print("[yellow]Dropping existing tables...[/yellow]")
        tables = await init_db(drop=drop)
        await close_db()
        return tables

    tables = asyncio.run(_init())
    console.print(f"[bold green]✓[/bold green] Database initialized ({len(tables)} tables)")


@app.command(name="interpret")
def interpret_cmd(
    description: str = typer.Argument(..., help="Project description"),
):
    """Show the structured interpretation of a description."""
    interpretation, confidence, warnings = interpret(description)

    table = Table(title="Interpretation")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Building type", interpretation.building_type.value)
    table.add_row("Size (m²)", str(interpretation.building_size_m2 or "-"))
    table.add_row("Age (years)", str(interpretation.building_age_years or "-"))
    table.add_row("Rooms", ", ".join(room.name for room in interpretation.rooms))
    table.add_row(
        "Points",
        ", ".join(f"{kind}={count}" for kind, count in interpretation.electrical_points.items()),
    )
    table.add_row("Panel upgrade", str(interpretation.panel_requirements.upgrade_needed))
    table.add_row("Complexity score", str(interpretation.complexity_score))
    table.add_row("Risk score", str(interpretation.risk_score))
    table.add_row("Confidence", f"{confidence:.0%}")
    console.print(table)

    for warning in warnings:
        console.print(f"[yellow]⚠[/yellow] {warning}")


@app.command()
def analyze(
    description: str = typer.Argument(..., help="Project description"),
    margin: float | None = typer.Option(None, "--margin", help="Margin percentage"),
    risk_buffer: float | None = typer.Option(None, "--risk-buffer", help="Risk buffer percentage"),
    hourly_rate: float | None = typer.Option(None, "--hourly-rate", help="Hourly rate (DKK)"),
    templates: Path | None = typer.Option(None, "--templates", help="Offer text templates (YAML)"),
    calibrated: bool = typer.Option(
        False, "--calibrated", help="Use database catalog, templates and recorded calibrations"
    ),
    customer: str | None = typer.Option(None, "--customer", help="Customer name on the offer"),
    address: str | None = typer.Option(None, "--address", help="Project address on the offer"),
    show_offer: bool = typer.Option(False, "--show-offer", help="Print the full offer document"),
):
    """Run the full estimation pipeline on a description."""
    config = get_config()
    parameters = CalculationParameters.from_config(config)
    if hourly_rate is not None:
        parameters = dataclasses.replace(parameters, hourly_rate=hourly_rate)

    templates_path = templates or config.offers.templates_path
    library = reload_template_library(templates_path) if templates_path else get_template_library()
    template_list = list(library)
    catalog = None

    if calibrated:

        async def _load():
            async with get_session() as session:
                loaded_catalog = await load_catalog(session)
                stored = await load_templates(session)
                learned = await _engine_for(session).load_parameters(parameters)
            await close_db()
            return loaded_catalog, stored, learned

        catalog, stored_templates, parameters = asyncio.run(_load())
        template_list.extend(stored_templates)

    result = analyze_project(
        description,
        catalog=catalog,
        parameters=parameters,
        templates=template_list,
        margin_percentage=margin,
        risk_buffer_percentage=risk_buffer,
        customer_name=customer,
        project_address=address,
        locale=config.locale,
    )

    if not result.success:
        console.print(f"[bold red]✗ Analysis failed:[/bold red] {result.error}")
        raise typer.Exit(1)

    calculation = result.calculation
    table = Table(title="Components")
    table.add_column("Code", style="cyan")
    table.add_column("Name")
    table.add_column("Qty", justify="right")
    table.add_column("Min/unit", justify="right")
    table.add_column("Source")
    for component in calculation.components:
        table.add_row(
            component.code,
            component.name,
            f"{component.quantity:g}",
            f"{component.unit_time_minutes:g}",
            component.source.value,
        )
    console.print(table)

    price = calculation.price
    console.print("\n[bold]Summary:[/bold]")
    console.print(f"  Time: {format_hours(calculation.time.total_hours)}")
    console.print(f"  Materials: {format_currency(price.material_cost, config.locale)}")
    console.print(f"  Labour: {format_currency(price.labor_cost, config.locale)}")
    console.print(f"  Total: {format_currency(price.total_price, config.locale)}")
    console.print(f"  Risk level: {result.risk_analysis.overall_risk_level.value}")
    console.print(f"  Margin: {result.margin_recommendation.reason}")

    if result.offer_content.technical_scope:
        console.print("\n[bold]Offer text:[/bold]")
        for text in result.offer_content.technical_scope:
            console.print(f"  {text}")
    for point in result.offer_content.obs_points:
        console.print(f"  [yellow]OBS:[/yellow] {point}")

    console.print(f"\n[bold]Price:[/bold] {result.price_explanation.summary}")
    for category in result.price_explanation.categories:
        console.print(
            f"  {category.name}: {format_currency(category.amount, config.locale)} "
            f"({category.percentage:.0f}%)"
        )
    if result.risk_analysis.requires_inspection:
        console.print("[yellow]Inspection recommended before order confirmation[/yellow]")

    if show_offer:
        console.print()
        console.print(result.offer_document.full_text, markup=False, highlight=False)

    for warning in result.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning}")


@app.command(name="collect-feedback")
def collect_feedback_cmd():
    """Create feedback rows for completed projects (idempotent)."""

    async def _collect():
        async with get_session() as session:
            result = await _engine_for(session).collect_feedback_from_projects()
        await close_db()
        return result

    result = asyncio.run(_collect())
    console.print(
        f"[bold green]✓[/bold green] {result.processed} projects processed, "
        f"{result.inserted} feedback rows created, {result.skipped} skipped"
    )
    for error in result.errors:
        console.print(f"  {error}", style="dim")


@app.command()
def calibrate(
    apply: bool = typer.Option(False, "--apply", help="Record proposed adjustments"),
    applied_by: str = typer.Option("cli", "--by", help="Recorded as applied_by"),
):
    """Propose time calibrations; record them with --apply."""

    async def _calibrate():
        async with get_session() as session:
            engine = _engine_for(session)
            proposals = await engine.auto_calibrate()
            if apply:
                for adjustment in proposals:
                    await engine.record_adjustment(adjustment, applied_by=applied_by)
        await close_db()
        return proposals

    proposals = asyncio.run(_calibrate())
    if not proposals:
        console.print("[yellow]No calibration proposals[/yellow]")
        return

    table = Table(title="Calibration proposals")
    table.add_column("Component", style="cyan")
    table.add_column("Current (min)", justify="right")
    table.add_column("Suggested (min)", justify="right")
    table.add_column("Reason")
    for adjustment in proposals:
        table.add_row(
            adjustment.target,
            f"{adjustment.old_value:g}",
            f"{adjustment.new_value:g}",
            adjustment.reason,
        )
    console.print(table)

    if apply:
        console.print(f"[bold green]✓[/bold green] {len(proposals)} adjustments recorded")
    else:
        console.print("Run with --apply to record these adjustments")


@app.command()
def metrics():
    """Show learning metrics."""

    async def _metrics():
        async with get_session() as session:
            result = await _engine_for(session).analyze_learning_metrics()
        await close_db()
        return result

    result = asyncio.run(_metrics())

    table = Table(title="Learning metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Feedback rows", str(result.total_calculations))
    table.add_row("Completed projects", str(result.completed_projects))
    table.add_row("Avg hours variance", f"{result.average_hours_variance:+.1f}%")
    table.add_row("Avg material variance", f"{result.average_material_variance:+.1f}%")
    table.add_row("Price accuracy", f"{result.price_accuracy:.1f}%")
    table.add_row("Offer acceptance", f"{result.offer_acceptance_rate:.1f}%")
    table.add_row("Profitability", f"{result.profitability_rate:.1f}%")
    table.add_row("Avg satisfaction", f"{result.average_satisfaction:.1f}")
    table.add_row("Improving", "yes" if result.improving else "no")
    console.print(table)

    for adjustment in result.recent_adjustments:
        console.print(
            f"  {adjustment.type.value} {adjustment.target}: "
            f"{adjustment.old_value:g} -> {adjustment.new_value:g}",
            style="dim",
        )


@app.command()
def status():
    """Show feedback pipeline health and calibration readiness."""

    async def _status():
        async with get_session() as session:
            result = await _engine_for(session).system_status()
        await close_db()
        return result

    result = asyncio.run(_status())
    marker = "[green]✓[/green]" if result.pipeline_healthy else "[red]✗[/red]"
    console.print(f"{marker} Feedback rows: {result.feedback_count}")
    console.print(f"  Completed projects with hours: {result.projects_with_actuals}")
    console.print(f"  Projects without feedback: {result.projects_without_feedback}")
    console.print(f"  Calibrations ready: {result.calibrations_ready}")
    console.print(f"  Calibrations pending: {result.calibrations_pending}")
    console.print(f"  Last calibration: {result.last_calibration_at or '-'}")


@app.command(name="risk-buffer")
def risk_buffer_cmd(
    score: int = typer.Argument(..., min=1, max=5, help="Complexity score (1-5)"),
):
    """Suggest a risk buffer percentage from feedback history."""

    async def _suggest():
        async with get_session() as session:
            result = await _engine_for(session).get_suggested_risk_buffer(score)
        await close_db()
        return result

    console.print(f"Suggested risk buffer for complexity {score}: {asyncio.run(_suggest())}%")


if __name__ == "__main__":
    app()
