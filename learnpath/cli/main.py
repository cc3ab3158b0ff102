"""
Typer CLI for the learnpath service.

Commands:
    learnpath db init                 - Initialize database tables
    learnpath path create             - Build a learning path for a topic
    learnpath path show               - Show steps, checkpoints and branches
    learnpath path list               - List a learner's paths
    learnpath path complete           - Complete a step
    learnpath path checkpoint         - Submit checkpoint answers
    learnpath path branch             - Fork a branch at a completed step
    learnpath path switch             - Switch the active branch
    learnpath path adapt              - Adapt the path to performance
    learnpath path delete             - Delete a path
    learnpath prereq resolve          - Resolve prerequisites in order
    learnpath prereq validate         - Check a prerequisite edge for cycles
    learnpath serve                   - Run the REST API

Usage:
    learnpath path create alice "Linear Algebra" --level intermediate
    learnpath path complete <path-id> 0
    learnpath path checkpoint <path-id> <checkpoint-id> -a q1=0 -a q2=0,1
"""

from __future__ import annotations

import sys
from typing import List, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from learnpath import __version__
from learnpath.adaptive.errors import LearningPathError, StaleStateError
from learnpath.adaptive.models import (
    BranchCondition,
    DifficultyFlag,
    LearningPath,
    Level,
    PerformanceSignal,
    Step,
    new_id,
)

app = typer.Typer(help="learnpath CLI: adaptive learning paths with checkpoints and branches")

console = Console()


def _configure_logging(verbose: bool) -> None:
    settings = get_settings()
    level = "DEBUG" if verbose else settings.log_level
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Adaptive learning paths from the terminal."""
    _configure_logging(verbose)


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily builds the learning engine so that `version` and `--help` never
    touch the database.
    """

    def __init__(self, engine=None):
        self._engine = engine

    @property
    def engine(self):
        if self._engine is None:
            from learnpath.adaptive.learning_engine import LearningEngine

            self._engine = LearningEngine.from_settings()
        return self._engine


def _build_context() -> CLIContext:
    return CLIContext()


def _fail(exc: LearningPathError) -> typer.Exit:
    if isinstance(exc, StaleStateError):
        rprint(f"[red]✗[/red] {exc.message}. Refresh the path and try again.")
    else:
        rprint(f"[red]✗[/red] {exc.message}")
    return typer.Exit(code=1)


# ========================================
# Rendering
# ========================================


def _print_path(path: LearningPath) -> None:
    branch = path.active_branch
    rprint(f"[bold]{path.topic}[/bold] ({path.level.value}) for [cyan]{path.owner_id}[/cyan]")
    rprint(f"  id={path.id}  version={path.version}  progress={path.progress}%")
    if path.description:
        rprint(f"  [dim]{path.description}[/dim]")
    rprint(f"  active: [magenta]{branch.branch_name if branch else 'main'}[/magenta]")

    sequence = path.active_sequence
    gates = {c.after_step_order: c for c in sequence.checkpoints}

    table = Table(title="Steps")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("ID", style="dim")

    for step in sequence.ordered_steps():
        status = "[green]done[/green]" if step.completed else "[yellow]todo[/yellow]"
        table.add_row(str(step.order), step.label, step.kind.value, status, step.id)
        checkpoint = gates.get(step.order)
        if checkpoint is not None:
            state = "[green]passed[/green]" if checkpoint.is_passed else "[red]open[/red]"
            best = f" best {checkpoint.best_score:g}" if checkpoint.best_score is not None else ""
            table.add_row(
                "",
                f"[bold]Checkpoint[/bold] (pass {checkpoint.passing_score:g}, {checkpoint.difficulty.value}){best}",
                "",
                state,
                checkpoint.id,
            )
    console.print(table)

    if path.branches:
        branches = Table(title=f"Branches ({len(path.branches)})")
        branches.add_column("Name", style="cyan")
        branches.add_column("Fork at", justify="right")
        branches.add_column("Condition")
        branches.add_column("Steps", justify="right")
        branches.add_column("ID", style="dim")
        for b in path.branches:
            branches.add_row(b.branch_name, str(b.fork_at_step_order), b.condition.value, str(len(b.steps)), b.id)
        console.print(branches)


def _resolve_step_id(path: LearningPath, step: str) -> str:
    """Accept a step id or an order number in the active sequence."""
    if step.isdigit():
        found = path.active_sequence.step_at(int(step))
        if found is not None:
            return found.id
    return step


def _parse_answers(answers: List[str]) -> dict[str, list[str]]:
    parsed = {}
    for item in answers:
        if "=" not in item:
            raise typer.BadParameter(f"Expected QUESTION=OPTION[,OPTION], got '{item}'")
        question_id, options = item.split("=", 1)
        parsed[question_id.strip()] = [o.strip() for o in options.split(",") if o.strip()]
    return parsed


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from learnpath.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# PATH COMMANDS
# ========================================

path_app = typer.Typer(help="Learning path operations")
app.add_typer(path_app, name="path")


@path_app.command("create")
def path_create(
    owner_id: str = typer.Argument(..., help="Learner identifier"),
    topic: str = typer.Argument(..., help="Topic to learn"),
    level: Level = typer.Option(Level.BEGINNER, "--level", "-l", help="Knowledge level"),
) -> None:
    """Build a learning path (returns the existing one for the same owner/topic/level)."""
    ctx = _build_context()
    try:
        path = ctx.engine.create_path(owner_id, topic, level)
    except LearningPathError as e:
        raise _fail(e)
    rprint(f"[green]✓[/green] Path ready: {path.id}")
    _print_path(path)


@path_app.command("show")
def path_show(path_id: str = typer.Argument(...)) -> None:
    """Show a path's active sequence and branches."""
    ctx = _build_context()
    try:
        path = ctx.engine.get_path(path_id)
    except LearningPathError as e:
        raise _fail(e)
    _print_path(path)

    checkpoint = ctx.engine.next_checkpoint(path)
    if checkpoint is not None:
        rprint(f"[yellow]→[/yellow] Checkpoint {checkpoint.id} is ready to take")


@path_app.command("list")
def path_list(
    owner_id: str = typer.Argument(..., help="Learner identifier"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
) -> None:
    """List a learner's paths, newest first."""
    ctx = _build_context()
    paths = ctx.engine.list_paths(owner_id, limit=limit, offset=offset)
    if not paths:
        rprint(f"[yellow]⚠[/yellow] No paths for {owner_id}")
        return

    table = Table(title=f"Paths for {owner_id}")
    table.add_column("ID", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Level")
    table.add_column("Progress", justify="right")
    table.add_column("Version", justify="right")
    for p in paths:
        table.add_row(p.id, p.topic, p.level.value, f"{p.progress}%", str(p.version))
    console.print(table)


@path_app.command("complete")
def path_complete(
    path_id: str = typer.Argument(...),
    step: str = typer.Argument(..., help="Step id or order in the active sequence"),
) -> None:
    """Complete a step."""
    ctx = _build_context()
    engine = ctx.engine
    try:
        step_id = _resolve_step_id(engine.get_path(path_id), step)
        path = engine.run_with_retry(path_id, lambda version: engine.complete_step(path_id, step_id, version))
    except LearningPathError as e:
        raise _fail(e)
    rprint(f"[green]✓[/green] Step completed ({path.progress}% done, version {path.version})")
    checkpoint = engine.next_checkpoint(path)
    if checkpoint is not None:
        rprint(f"[yellow]→[/yellow] Time for checkpoint {checkpoint.id}")


@path_app.command("checkpoint")
def path_checkpoint(
    path_id: str = typer.Argument(...),
    checkpoint_id: str = typer.Argument(...),
    answer: List[str] = typer.Option(..., "--answer", "-a", help="QUESTION=OPTION[,OPTION]"),
) -> None:
    """Submit checkpoint answers."""
    ctx = _build_context()
    engine = ctx.engine
    answers = _parse_answers(answer)
    try:
        outcome = engine.run_with_retry(
            path_id,
            lambda version: engine.take_checkpoint(path_id, checkpoint_id, answers, version),
        )
    except LearningPathError as e:
        raise _fail(e)

    attempt = outcome.attempt
    if attempt.passed:
        rprint(f"[green]✓[/green] Passed with {attempt.score:g}")
    else:
        rprint(f"[red]✗[/red] Scored {attempt.score:g}; {len(attempt.incorrect_question_ids)} incorrect")
    rprint(f"  Recommended adaptation: [magenta]{outcome.recommended_action.value}[/magenta]")


@path_app.command("branch")
def path_branch(
    path_id: str = typer.Argument(...),
    fork_at: int = typer.Argument(..., help="Completed main-sequence step order to fork at"),
    name: str = typer.Argument(..., help="Branch name"),
    step: Optional[List[str]] = typer.Option(None, "--step", "-s", help="Branch step label (generated when omitted)"),
    condition: BranchCondition = typer.Option(BranchCondition.MANUAL, "--condition"),
    activate: bool = typer.Option(False, "--activate", help="Make the branch the active sequence"),
) -> None:
    """Fork a branch."""
    ctx = _build_context()
    engine = ctx.engine
    initial_steps = (
        [Step(id=new_id(), label=label, body="", order=i) for i, label in enumerate(step)] if step else None
    )
    try:
        path = engine.run_with_retry(
            path_id,
            lambda version: engine.create_branch(
                path_id,
                fork_at,
                name,
                version,
                initial_steps=initial_steps,
                condition=condition,
                activate=activate,
            ),
        )
    except LearningPathError as e:
        raise _fail(e)
    branch = path.branches[-1]
    rprint(f"[green]✓[/green] Branch '{branch.branch_name}' created: {branch.id} ({len(branch.steps)} steps)")


@path_app.command("switch")
def path_switch(
    path_id: str = typer.Argument(...),
    branch_id: Optional[str] = typer.Argument(None, help="Branch id; omit to return to the main sequence"),
) -> None:
    """Switch the active branch."""
    ctx = _build_context()
    engine = ctx.engine
    try:
        path = engine.run_with_retry(path_id, lambda version: engine.switch_branch(path_id, branch_id, version))
    except LearningPathError as e:
        raise _fail(e)
    active = path.active_branch
    rprint(f"[green]✓[/green] Active sequence: {active.branch_name if active else 'main'}")


@path_app.command("adapt")
def path_adapt(
    path_id: str = typer.Argument(...),
    score: Optional[List[float]] = typer.Option(None, "--score", help="Checkpoint score (repeatable)"),
    flag: Optional[DifficultyFlag] = typer.Option(None, "--flag", help="Learner difficulty feedback"),
    area: Optional[List[str]] = typer.Option(None, "--area", help="Area needing review (repeatable)"),
) -> None:
    """Adapt the remaining path to performance (scores default to recorded attempts)."""
    ctx = _build_context()
    engine = ctx.engine
    signal = PerformanceSignal(
        checkpoint_scores=list(score) if score else None,
        difficulty_flag=flag,
        areas=list(area) if area else None,
    )
    try:
        outcome = engine.run_with_retry(path_id, lambda version: engine.adapt_path(path_id, signal, version))
    except LearningPathError as e:
        raise _fail(e)

    if outcome.applied:
        rprint(f"[green]✓[/green] Applied {outcome.action.value}: {outcome.reason}")
    else:
        rprint(f"[dim]No change: {outcome.reason}[/dim]")


@path_app.command("delete")
def path_delete(
    path_id: str = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a path and its branches."""
    if not yes:
        typer.confirm(f"Delete path {path_id}?", abort=True)
    ctx = _build_context()
    try:
        ctx.engine.delete_path(path_id)
    except LearningPathError as e:
        raise _fail(e)
    rprint(f"[green]✓[/green] Deleted {path_id}")


# ========================================
# PREREQUISITE COMMANDS
# ========================================

prereq_app = typer.Typer(help="Prerequisite resolution")
app.add_typer(prereq_app, name="prereq")


@prereq_app.command("resolve")
def prereq_resolve(
    topic: str = typer.Argument(...),
    level: Level = typer.Option(Level.BEGINNER, "--level", "-l"),
    required_only: bool = typer.Option(False, "--required-only", help="Skip optional prerequisites"),
) -> None:
    """Resolve prerequisites in dependency order."""
    ctx = _build_context()
    try:
        prerequisites = ctx.engine.resolve_prerequisites(topic, level, include_optional=not required_only)
    except LearningPathError as e:
        raise _fail(e)

    if not prerequisites:
        rprint(f"[green]✓[/green] {topic} has no prerequisites")
        return

    table = Table(title=f"Prerequisites for {topic} ({level.value})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Topic", style="cyan")
    table.add_column("Importance")
    table.add_column("Depends on", style="dim")
    for i, p in enumerate(prerequisites, start=1):
        table.add_row(str(i), p.topic_id, p.importance.value, ", ".join(sorted(p.depends_on)))
    console.print(table)


@prereq_app.command("validate")
def prereq_validate(
    topic: str = typer.Argument(...),
    depends_on: str = typer.Argument(...),
    level: Level = typer.Option(Level.BEGINNER, "--level", "-l"),
) -> None:
    """Check whether TOPIC -> DEPENDS_ON would create a cycle."""
    ctx = _build_context()
    cycle = ctx.engine.check_prerequisite_edge(topic, depends_on, level)
    if cycle:
        rprint(f"[red]✗[/red] Would create a cycle: {' -> '.join(cycle)}")
        raise typer.Exit(code=1)
    rprint("[green]✓[/green] No cycle")


# ========================================
# SERVER & INFO
# ========================================


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Run the REST API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "learnpath.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title="learnpath Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database URL", settings.database_url)
    table.add_row("Generator", settings.generator_url or "templates")
    table.add_row("Generation timeout", f"{settings.generation_timeout_seconds:g}s")
    table.add_row("Prerequisite catalog", settings.prerequisite_catalog or "level defaults")
    table.add_row("Checkpoint interval", str(settings.checkpoint_interval))
    table.add_row("Default passing score", f"{settings.default_passing_score:g}")
    table.add_row("Conflict retries", str(settings.max_conflict_retries))
    table.add_row("Log Level", settings.log_level)
    console.print(table)

    adaptation = Table(title="Adaptation Policy")
    adaptation.add_column("Threshold", style="cyan")
    adaptation.add_column("Value", style="green")
    for key, value in settings.get_adaptation_config().items():
        adaptation.add_row(key, str(value))
    console.print(adaptation)


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]learnpath[/bold] v{__version__}")
    rprint("  Adaptive learning paths with checkpoints and branches")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
