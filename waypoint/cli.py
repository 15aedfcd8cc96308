"""
Typer CLI for the waypoint progression engine.

Commands:
    waypoint db init                       - Initialize database tables
    waypoint content load CATALOG          - Load a JSON catalog into the database
    waypoint content enroll STUDENT COURSE - Enroll a student in a course
    waypoint progress access STUDENT ID    - Check access to a piece of content
    waypoint progress overview STUDENT ID  - Course progress overview
    waypoint progress block STUDENT ID     - Administratively block content
    waypoint progress unblock STUDENT ID   - Lift an administrative block
    waypoint roadmap generate STUDENT      - Generate (or return) the active roadmap
    waypoint roadmap show STUDENT          - Active roadmap with live progress
    waypoint roadmap status STUDENT STATUS - Pause or complete the active roadmap
    waypoint roadmap monitor STUDENT       - Apply pace adjustments
    waypoint serve                         - Run the REST API

Usage:
    waypoint --help
    waypoint progress access s-1 lesson-2 --kind lesson
    waypoint roadmap generate s-1 --skill subnetting --force
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from waypoint import __version__
from waypoint.config import Settings, get_settings
from waypoint.content.catalog import load_catalog
from waypoint.content.models import ContentKind
from waypoint.errors import WaypointError
from waypoint.logs import configure_logging
from waypoint.progress.models import ProgressStatus
from waypoint.roadmap.models import Roadmap, RoadmapStatus
from waypoint.service import ProgressionService

app = typer.Typer(
    help="waypoint CLI: prerequisite-gated progression and adaptive roadmaps",
    no_args_is_help=True,
)

console = Console()

STATUS_STYLES = {
    ProgressStatus.COMPLETED: "green",
    ProgressStatus.IN_PROGRESS: "yellow",
    ProgressStatus.FAILED: "red",
    ProgressStatus.BLOCKED: "red",
    ProgressStatus.NOT_STARTED: "dim",
}


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily builds the engine, session factory and service.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._engine = None
        self._session_factory = None
        self._service: ProgressionService | None = None

    @property
    def engine(self):
        if self._engine is None:
            from waypoint.db.database import create_db_engine

            self._engine = create_db_engine(self.settings.database_url, echo=self.settings.database_echo)
        return self._engine

    @property
    def session_factory(self):
        if self._session_factory is None:
            from waypoint.db.database import create_session_factory

            self._session_factory = create_session_factory(engine=self.engine)
        return self._session_factory

    @property
    def service(self) -> ProgressionService:
        if self._service is None:
            self._service = ProgressionService.from_settings(self.settings, self.session_factory)
        return self._service


def _build_context() -> CLIContext:
    """Build CLI context with dependency injection."""
    return CLIContext()


def _fail(error: WaypointError) -> NoReturn:
    rprint(f"[red]✗[/red] {error.message}")
    logger.debug(f"{error.code}: {error.details}")
    raise typer.Exit(code=1)


def _status_text(status: ProgressStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _print_roadmap(roadmap: Roadmap) -> None:
    table = Table(title=f"Roadmap {roadmap.id[:8]} ({roadmap.status.value})", show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Item", style="cyan")
    table.add_column("Kind")
    table.add_column("Minutes", justify="right")
    table.add_column("Unlocked", justify="center")
    table.add_column("Status")

    for item in roadmap.items:
        title = f"{item.title} [magenta](remedial)[/magenta]" if item.is_remedial else item.title
        table.add_row(
            str(item.order_index),
            title,
            item.content_kind.value,
            str(item.estimated_time),
            "✓" if item.is_unlocked else "-",
            _status_text(item.completion_status),
        )

    table.add_section()
    table.add_row("", "TOTAL", "", str(roadmap.total_estimated_time), "", "", style="bold")
    console.print(table)
    if roadmap.rationale:
        console.print(Panel(roadmap.rationale, title="Rationale", border_style="dim"))


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
    from waypoint.db.database import init_db

    ctx = _build_context()
    init_db(ctx.engine)
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# CONTENT COMMANDS
# ========================================

content_app = typer.Typer(help="Catalog and enrollment management")
app.add_typer(content_app, name="content")


@content_app.command("load")
def content_load(
    catalog: Path = typer.Argument(..., exists=True, dir_okay=False, help="Catalog JSON file"),
) -> None:
    """
    Load courses, lessons and assessments from a JSON catalog.

    A catalog whose lesson prerequisites form a cycle is rejected before
    anything is written.
    """
    from waypoint.content.graph import ContentGraph, InMemoryContentRepository
    from waypoint.db.stores import SqlContentRepository

    try:
        nodes = load_catalog(catalog)
        staged = ContentGraph(InMemoryContentRepository(nodes))
        for course in staged.list_courses():
            staged.check_acyclic(course.id)
    except WaypointError as e:
        _fail(e)

    ctx = _build_context()
    repository = SqlContentRepository(ctx.session_factory)
    counts: dict[str, int] = {}
    for node in nodes:
        repository.add(node)
        counts[node.kind.value] = counts.get(node.kind.value, 0) + 1

    table = Table(title=f"Loaded {catalog.name}")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for kind in ContentKind:
        table.add_row(kind.value, str(counts.get(kind.value, 0)))
    console.print(table)
    logger.info(f"Loaded {len(nodes)} content nodes from {catalog}")


@content_app.command("enroll")
def content_enroll(
    student_id: str = typer.Argument(..., help="Student identifier"),
    course_id: str = typer.Argument(..., help="Course identifier"),
) -> None:
    """Enroll a student in a course."""
    from waypoint.content.graph import ContentGraph
    from waypoint.db.stores import SqlContentRepository, SqlEnrollmentStore

    ctx = _build_context()
    try:
        ContentGraph(SqlContentRepository(ctx.session_factory)).course(course_id)
    except WaypointError as e:
        _fail(e)
    SqlEnrollmentStore(ctx.session_factory).enroll(student_id, course_id)
    rprint(f"[green]✓[/green] {student_id} enrolled in {course_id}")


# ========================================
# PROGRESS COMMANDS
# ========================================

progress_app = typer.Typer(help="Access checks and progress")
app.add_typer(progress_app, name="progress")


@progress_app.command("access")
def progress_access(
    student_id: str = typer.Argument(..., help="Student identifier"),
    content_id: str = typer.Argument(..., help="Content identifier"),
    kind: ContentKind = typer.Option(ContentKind.LESSON, "--kind", "-k", help="Content kind"),
) -> None:
    """Check whether a student can access a piece of content."""
    ctx = _build_context()
    try:
        result = ctx.service.check_access(student_id, content_id, kind)
    except WaypointError as e:
        _fail(e)

    if result.can_access:
        rprint(f"[green]✓[/green] {student_id} can access {kind.value} {content_id}")
    else:
        rprint(f"[red]✗[/red] {result.reason}")
        if result.blocked_by:
            rprint(f"  Blocked by {result.blocked_by.kind.value} [cyan]{result.blocked_by.title}[/cyan]")

    if result.prerequisite_statuses:
        table = Table(title="Prerequisites")
        table.add_column("Lesson", style="cyan")
        table.add_column("Completed", justify="center")
        table.add_column("Score", justify="right")
        table.add_column("Required", justify="right")
        for status in result.prerequisite_statuses:
            table.add_row(
                status.title,
                "✓" if status.completed else "-",
                f"{status.score:.0f}" if status.score is not None else "-",
                f"{status.required_score:.0f}" if status.required_score is not None else "-",
            )
        console.print(table)

    if not result.can_access:
        raise typer.Exit(code=2)


@progress_app.command("overview")
def progress_overview(
    student_id: str = typer.Argument(..., help="Student identifier"),
    course_id: str = typer.Argument(..., help="Course identifier"),
) -> None:
    """Show per-lesson progress for a course."""
    ctx = _build_context()
    try:
        overview = ctx.service.get_course_progress_overview(student_id, course_id)
    except WaypointError as e:
        _fail(e)

    rprint(
        f"\n[bold cyan]{overview.course_title}[/bold cyan]  "
        f"{overview.completed_lessons}/{overview.total_lessons} lessons, {overview.overall_progress}%"
    )

    table = Table(show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Lesson", style="cyan")
    table.add_column("Access", justify="center")
    table.add_column("Status")
    table.add_column("Assessment")
    for entry in overview.lessons:
        status = entry.progress.status if entry.progress else ProgressStatus.NOT_STARTED
        assessment = "-"
        if entry.assessment:
            assessment = "[green]passed[/green]" if entry.assessment.passed else entry.assessment.assessment.title
        table.add_row(
            str(entry.lesson.order_index),
            entry.lesson.title,
            "✓" if entry.can_access else "[red]✗[/red]",
            _status_text(status),
            assessment,
        )
    console.print(table)

    if overview.final_assessment:
        final = overview.final_assessment
        state = "passed" if final.passed else ("available" if final.can_access else "locked")
        rprint(f"  Final assessment: {final.assessment.title} ({state})")
    if overview.is_completed:
        rprint("\n[bold green]✓ Course complete![/bold green]")


@progress_app.command("block")
def progress_block(
    student_id: str = typer.Argument(..., help="Student identifier"),
    content_id: str = typer.Argument(..., help="Content identifier"),
    kind: ContentKind = typer.Option(ContentKind.LESSON, "--kind", "-k", help="Content kind"),
    reason: str = typer.Option("", "--reason", "-r", help="Reason recorded in the logs"),
) -> None:
    """Administratively block content for a student."""
    ctx = _build_context()
    try:
        record = ctx.service.block_progress(student_id, content_id, kind, reason)
    except WaypointError as e:
        _fail(e)
    rprint(f"[yellow]⚠[/yellow] {content_id} is now {_status_text(record.status)} for {student_id}")


@progress_app.command("unblock")
def progress_unblock(
    student_id: str = typer.Argument(..., help="Student identifier"),
    content_id: str = typer.Argument(..., help="Content identifier"),
    kind: ContentKind = typer.Option(ContentKind.LESSON, "--kind", "-k", help="Content kind"),
) -> None:
    """Lift an administrative block."""
    ctx = _build_context()
    try:
        record = ctx.service.unblock_progress(student_id, content_id, kind)
    except WaypointError as e:
        _fail(e)
    rprint(f"[green]✓[/green] {content_id} is now {_status_text(record.status)} for {student_id}")


# ========================================
# ROADMAP COMMANDS
# ========================================

roadmap_app = typer.Typer(help="Personalized learning roadmaps")
app.add_typer(roadmap_app, name="roadmap")


@roadmap_app.command("generate")
def roadmap_generate(
    student_id: str = typer.Argument(..., help="Student identifier"),
    skills: list[str] = typer.Option([], "--skill", "-s", help="Target skill (repeatable)"),
    force: bool = typer.Option(False, "--force", help="Replace the active roadmap"),
) -> None:
    """Generate a roadmap, or show the active one unless --force is given."""
    ctx = _build_context()
    try:
        roadmap = ctx.service.generate_roadmap(student_id, target_skills=skills, force_regenerate=force)
    except WaypointError as e:
        _fail(e)
    _print_roadmap(roadmap)


@roadmap_app.command("show")
def roadmap_show(
    student_id: str = typer.Argument(..., help="Student identifier"),
) -> None:
    """Show the active roadmap with live progress."""
    ctx = _build_context()
    try:
        roadmap = ctx.service.get_roadmap_with_progress(student_id)
    except WaypointError as e:
        _fail(e)
    _print_roadmap(roadmap)


@roadmap_app.command("status")
def roadmap_status(
    student_id: str = typer.Argument(..., help="Student identifier"),
    status: RoadmapStatus = typer.Argument(..., help="paused or completed"),
) -> None:
    """Move the active roadmap to paused or completed."""
    ctx = _build_context()
    try:
        roadmap = ctx.service.update_roadmap_status(student_id, status)
    except WaypointError as e:
        _fail(e)
    rprint(f"[green]✓[/green] Roadmap {roadmap.id[:8]} is now {roadmap.status.value}")


@roadmap_app.command("monitor")
def roadmap_monitor(
    student_id: str = typer.Argument(..., help="Student identifier"),
) -> None:
    """Detect learning patterns and adjust the active roadmap."""
    ctx = _build_context()
    roadmap = ctx.service.monitor_and_adjust(student_id)
    if roadmap is None:
        rprint(f"[yellow]⚠[/yellow] No active roadmap for {student_id}")
        raise typer.Exit(code=1)
    _print_roadmap(roadmap)


# ========================================
# SERVER & INFO
# ========================================


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the REST API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "waypoint.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title="waypoint Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database URL", settings.database_url.split("@")[-1])
    table.add_row("Generation API", settings.generation_api_url or "Not set (rule-based only)")
    table.add_row("Generation timeout", f"{settings.generation_timeout_seconds:g}s")
    table.add_row("Remedial item minutes", str(settings.remedial_item_minutes))
    table.add_row("Log Level", settings.log_level)

    console.print(table)


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]waypoint[/bold] v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()
