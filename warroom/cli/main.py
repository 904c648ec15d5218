"""
Typer CLI for the War Room assessment engine.

Commands:
    warroom stages          - List the six stages
    warroom start           - Create a new assessment
    warroom play ID         - Answer questions interactively
    warroom status ID       - Stage progress and business state
    warroom report ID       - Competency scores and mistake analysis
    warroom list            - Stored assessments
    warroom delete ID       - Remove an assessment
    warroom info            - Show configuration

Usage:
    warroom start
    warroom play 3f9c...
    warroom report 3f9c...
"""

from __future__ import annotations

import sys

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, FloatPrompt, Prompt
from rich.table import Table

from config import get_settings
from warroom import __version__
from warroom.assessment import (
    AssessmentRecord,
    AssessmentStore,
    build_final_report,
    complete_stage,
    get_current_question,
    get_progress,
    start_assessment,
    submit_response,
)
from warroom.core.exceptions import WarRoomError
from warroom.core.stages import StageName
from warroom.grading import get_default_grader
from warroom.mistakes import get_mistake_warning
from warroom.questions import (
    Question,
    QuestionType,
    get_all_stages,
    get_stage_config,
    interpolate_question_text,
    process_scenario_context,
)
from warroom.state import get_state_summary

app = typer.Typer(
    name="warroom",
    help="War Room: staged entrepreneurship assessment",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Color Styles
# =============================================================================

STYLES = {
    "question": "bold cyan",
    "good": "bold green",
    "bad": "bold red",
    "warning": "bold yellow",
    "dim": "dim",
}


def _store() -> AssessmentStore:
    return AssessmentStore()


def _load(store: AssessmentStore, assessment_id: str) -> AssessmentRecord:
    try:
        return store.load(assessment_id)
    except WarRoomError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)


# =============================================================================
# Answer Collection
# =============================================================================


def _render_question(question: Question, record: AssessmentRecord) -> None:
    body = interpolate_question_text(question.text, record.state)
    context = process_scenario_context(question, record.state)
    if context:
        body = f"{context}\n\n{body}"
    if question.help_text:
        body += f"\n\n[dim]{question.help_text}[/dim]"
    title = question.title or question.id
    console.print(Panel(body, title=f"[{STYLES['question']}]{title}[/]", subtitle=question.id))


def _ask_choice(question: Question) -> dict:
    for option in question.options:
        console.print(f"  [bold]{option.id}[/bold]  {option.text}")
    choice = Prompt.ask("Your choice", choices=[o.id for o in question.options])
    return {"type": question.type.value, "selected_option_id": choice}


def _ask_budget(question: Question) -> dict:
    total = question.total_budget
    if total:
        rprint(f"[dim]Total budget: ${total:,.0f}. Allocate percentages summing to 100.[/dim]")
    while True:
        allocations = []
        for category in question.budget_categories:
            percentage = FloatPrompt.ask(f"  {category.name} (%)")
            allocations.append({
                "category_id": category.id,
                "percentage": percentage,
                "amount": total * percentage / 100 if total else None,
            })
        allocated = sum(a["percentage"] for a in allocations)
        if abs(allocated - 100) < 0.01 or Confirm.ask(f"Allocations sum to {allocated:g}%. Submit anyway?"):
            return {"type": "budget", "allocations": allocations}


def _ask_slider(question: Question) -> dict:
    spec = question.slider
    unit = f" {spec.unit}" if spec.unit else ""
    while True:
        value = FloatPrompt.ask(f"Value ({spec.min:g}-{spec.max:g}{unit})")
        if spec.min <= value <= spec.max:
            return {"type": "slider", "value": value}
        rprint(f"[yellow]⚠[/yellow] Enter a value between {spec.min:g} and {spec.max:g}")


def _ask_calculation(question: Question) -> dict:
    unit = question.calculation.unit if question.calculation else None
    result = FloatPrompt.ask(f"Your answer{f' ({unit})' if unit else ''}")
    return {"type": "calculation", "result": result}


def _ask_text(question: Question) -> dict:
    value = Prompt.ask("Your answer")
    return {"type": question.type.value, "value": value}


def _ask_outcome(question: Question) -> dict:
    Prompt.ask("[dim]Press Enter to continue[/dim]", default="", show_default=False)
    return {"type": "outcome", "acknowledged": True}


_ASKERS = {
    QuestionType.CHOICE: _ask_choice,
    QuestionType.SCENARIO: _ask_choice,
    QuestionType.BUDGET: _ask_budget,
    QuestionType.SLIDER: _ask_slider,
    QuestionType.CALCULATION: _ask_calculation,
    QuestionType.TEXT: _ask_text,
    QuestionType.REFLECTION: _ask_text,
    QuestionType.AI_GENERATED: _ask_text,
    QuestionType.OUTCOME: _ask_outcome,
}


# =============================================================================
# Commands
# =============================================================================


@app.command("stages")
def list_stages() -> None:
    """List the assessment stages in order."""
    table = Table(title="Stages")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Title")
    table.add_column("Questions", justify="right")

    for stage in get_all_stages():
        config = get_stage_config(stage["number"])
        table.add_row(str(stage["number"]), stage["name"], stage["title"], str(len(config.questions)))
    console.print(table)


@app.command("start")
def start(
    assessment_id: str = typer.Option(None, "--id", help="Use a specific assessment id"),
) -> None:
    """Create a new assessment."""
    store = _store()
    if assessment_id and store.exists(assessment_id):
        rprint(f"[red]✗[/red] Assessment {assessment_id} already exists")
        raise typer.Exit(code=1)
    record = start_assessment(assessment_id)
    store.save(record)
    rprint(f"[green]✓[/green] Assessment created: [bold]{record.assessment_id}[/bold]")
    rprint(f"  Run [cyan]warroom play {record.assessment_id}[/cyan] to begin")


@app.command("play")
def play(assessment_id: str = typer.Argument(..., help="Assessment id")) -> None:
    """Answer questions until the assessment is complete (Ctrl+C to pause)."""
    store = _store()
    record = _load(store, assessment_id)
    grader = get_default_grader()
    if grader is None:
        rprint("[yellow]⚠[/yellow] AI grading not configured; open answers get a provisional score")

    try:
        while not record.is_complete:
            question = get_current_question(record)
            if question is None:
                record, transition = complete_stage(record)
                store.save(record)
                _show_transition(transition)
                continue

            config = get_stage_config(question.stage)
            progress = get_progress(record)
            console.rule(
                f"{config.name.value} · {progress['answered'] + 1}/{progress['total']}",
                style=STYLES["dim"],
            )
            _render_question(question, record)
            payload = _ASKERS[question.type](question)

            try:
                record, result = submit_response(record, question.id, payload, grader=grader)
            except WarRoomError as e:
                rprint(f"[red]✗[/red] {e}")
                continue
            store.save(record)

            points = result.response.points_awarded
            if result.response.max_points:
                style = STYLES["good"] if points >= result.response.max_points else STYLES["dim"]
                rprint(f"[{style}]Scored {points:g}/{result.response.max_points:g}[/]")
            if result.feedback:
                rprint(f"[dim]{result.feedback}[/dim]")
            if result.mistake_triggered:
                rprint(f"[{STYLES['bad']}]{get_mistake_warning(result.mistake_triggered)}[/]")
    except (KeyboardInterrupt, EOFError):
        rprint(f"\n[yellow]Paused.[/yellow] Resume with [cyan]warroom play {record.assessment_id}[/cyan]")
        raise typer.Exit()

    rprint("[green]✓[/green] Assessment complete!")
    show_report(record.assessment_id)


def _show_transition(transition) -> None:
    name = StageName.for_stage(transition.completed_stage).value
    rprint(f"\n[green]✓[/green] Stage {name} complete")
    if transition.next_stage is None:
        return
    if transition.compounded_cost:
        rprint(f"[{STYLES['warning']}]Earlier decisions cost ${transition.compounded_cost:,.0f} entering this stage[/]")
    if transition.narrative:
        console.print(Panel(transition.narrative, title="Consequences"))
    if transition.critical.get("is_critical"):
        rprint(f"[{STYLES['bad']}]Critical condition:[/]")
        for reason in transition.critical["reasons"]:
            rprint(f"  • {reason}")


@app.command("status")
def show_status(assessment_id: str = typer.Argument(..., help="Assessment id")) -> None:
    """Show stage progress and the simulated business state."""
    record = _load(_store(), assessment_id)

    if record.is_complete:
        rprint(f"[bold]{record.assessment_id}[/bold]: [green]complete[/green]")
    else:
        progress = get_progress(record)
        name = StageName.for_stage(record.current_stage).value
        rprint(
            f"[bold]{record.assessment_id}[/bold]: {name} "
            f"({progress['answered']}/{progress['total']}, {progress['percentage']}%)"
        )

    for section, rows in get_state_summary(record.state).items():
        table = Table(title=section, show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        for row in rows:
            table.add_row(row["label"], str(row["value"]))
        console.print(table)


@app.command("report")
def show_report(assessment_id: str = typer.Argument(..., help="Assessment id")) -> None:
    """Show competency scores, rankings and mistake analysis."""
    record = _load(_store(), assessment_id)
    report = build_final_report(record)
    overall = report["overall"]

    rprint(
        f"\n[bold]Overall:[/bold] {overall['total_score']:g}/{overall['max_score']:g} "
        f"({overall['percentage']}%), level {overall['average_level'].value}"
    )

    table = Table(title="Competencies")
    table.add_column("Code", style="cyan")
    table.add_column("Competency")
    table.add_column("Score", justify="right")
    table.add_column("Level", justify="center")
    table.add_column("Feedback", style="dim")
    for item in report["competencies"]:
        score = item["score"]
        color = score.level_achieved.color
        table.add_row(
            score.code,
            score.name,
            f"{score.percentage_score}%",
            f"[{color}]{score.level_achieved.value}[/{color}]",
            item["feedback"]["headline"],
        )
    console.print(table)

    rankings = report["rankings"]
    rprint(f"[green]Strongest:[/green] {', '.join(rankings['strongest']) or '-'}")
    rprint(f"[red]Weakest:[/red] {', '.join(rankings['weakest']) or '-'}")

    analysis = report["mistakes"]
    rprint(f"\n[bold]Mistakes:[/bold] {analysis['total_mistakes']} (cost ${analysis['total_cost']:,.0f})")
    if analysis["worst_mistake"]:
        rprint(f"  Worst: {analysis['worst_mistake'].name}")
    if analysis["mistake_pattern"]:
        rprint(f"  Pattern: {analysis['mistake_pattern']}")
    if analysis["mistakes_avoided"]:
        rprint(f"  Avoided: {', '.join(analysis['mistakes_avoided'])}")

    if report["manual_review"]:
        rprint(f"[yellow]⚠[/yellow] Pending manual review: {', '.join(report['manual_review'])}")


@app.command("list")
def list_assessments() -> None:
    """List stored assessments, most recently updated first."""
    records = _store().list_records()
    if not records:
        rprint("[dim]No assessments yet[/dim]")
        return

    table = Table(title=f"Assessments ({len(records)})")
    table.add_column("ID", style="cyan")
    table.add_column("Status")
    table.add_column("Stage")
    table.add_column("Updated", style="dim")
    for row in records:
        stage = row["current_stage"]
        table.add_row(
            row["id"],
            row["status"],
            StageName.for_stage(stage).value if stage is not None else "-",
            f"{row['updated_at']:%Y-%m-%d %H:%M}",
        )
    console.print(table)


@app.command("delete")
def delete(
    assessment_id: str = typer.Argument(..., help="Assessment id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a stored assessment."""
    if not yes and not Confirm.ask(f"Delete assessment {assessment_id}?"):
        raise typer.Exit()
    if _store().delete(assessment_id):
        rprint(f"[green]✓[/green] Deleted {assessment_id}")
    else:
        rprint(f"[red]✗[/red] Assessment {assessment_id} not found")
        raise typer.Exit(code=1)


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title=f"War Room v{__version__}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database URL", settings.database_url)
    table.add_row("Gemini API Key", "***" if settings.gemini_api_key else "Not set")
    table.add_row("AI Grading", "enabled" if settings.has_ai_configured() else "fallback scoring")
    table.add_row("AI Model", settings.ai_model)
    table.add_row("Log Level", settings.log_level)
    table.add_row("Log File", settings.log_file or "-")

    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def configure_logging() -> None:
    """Route loguru to stderr at the configured level, plus an optional rotating file."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB")


def main() -> None:
    """CLI entry point."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()
