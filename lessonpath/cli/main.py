"""
lessonpath CLI - play markdown lessons in the terminal.

Usage:
    lessonpath parse lesson.md                  # Show how a lesson splits into sections
    lessonpath checkpoint lesson.md -s 1        # Generate one section's checkpoint
    lessonpath run lesson.md                    # Walk through the lesson interactively
    lessonpath run lesson.md --offline          # No tutor service; deterministic checkpoints
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path
from typing import Annotated, Optional

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, Prompt
from rich.table import Table

from lessonpath.checkpoint.cache import CheckpointCache, JsonFileCache, MemoryCache
from lessonpath.checkpoint.models import (
    CheckpointError,
    CheckpointLoading,
    CheckpointPayload,
    CheckpointReady,
    CheckpointState,
)
from lessonpath.core.config import Settings, get_settings
from lessonpath.core.logging import configure_logging
from lessonpath.delivery.telemetry import JsonlTelemetry, LoggingTelemetry, TelemetrySink
from lessonpath.delivery.tutor_client import TutorClient
from lessonpath.lesson.content_parser import consolidate_sections, parse_lesson_content
from lessonpath.lesson.models import PHASE_LABELS, LessonContent, LessonPhase, NavigationCommand
from lessonpath.lesson.session import LessonSession

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="lessonpath",
    help="Step-by-step lessons with comprehension checkpoints",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

OPTION_LABELS = "ABCD"
TITLE_PATTERN = re.compile(r"^#\s+(.+)$", re.M)


def _load_lesson(
    path: Path,
    title: Optional[str],
    subject: str,
    grade: str,
) -> LessonContent:
    if not path.exists():
        console.print(f"[red]Error: Lesson not found: {path}[/red]")
        raise typer.Exit(1)

    markdown = path.read_text(encoding="utf-8")
    if title is None:
        match = TITLE_PATTERN.search(markdown)
        title = match.group(1).strip() if match else path.stem.replace("_", " ").title()
    content = parse_lesson_content(markdown, title=title, subject=subject, grade_band=grade)
    content.learn_sections = consolidate_sections(content.learn_sections)
    return content


def _load_practice(path: Optional[Path]) -> list[CheckpointPayload]:
    """Practice questions: a JSON list of {question, options, correctIndex, explanation}."""
    if path is None:
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return [CheckpointPayload.model_validate(item) for item in raw]
    except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
        console.print(f"[red]Error: Could not read practice questions from {path}: {e}[/red]")
        raise typer.Exit(1)


def _build_cache(settings: Settings) -> CheckpointCache:
    if settings.cache_path is not None:
        return JsonFileCache(settings.cache_path)
    return MemoryCache()


def _build_telemetry(settings: Settings) -> Optional[TelemetrySink]:
    if not settings.telemetry_enabled:
        return None
    if settings.telemetry_path is not None:
        return JsonlTelemetry(settings.telemetry_path)
    return LoggingTelemetry()


def _tutor_handoff(text: str) -> None:
    console.print(Panel(text, title="[magenta]Sent to tutor[/magenta]", border_style="magenta"))


async def _check_tutor(client: TutorClient) -> bool:
    """Warn up front when the tutor service does not answer its health check."""
    healthy = await client.health_check()
    if not healthy:
        logger.warning(f"Tutor health check failed: {client.base_url}")
        console.print(
            f"[yellow]Tutor service at {client.base_url} is not answering. "
            "Checkpoints will fall back to the offline generator.[/yellow]"
        )
    return healthy


# =============================================================================
# Rendering
# =============================================================================


def _render_checkpoint(state: Optional[CheckpointState], section_index: int) -> None:
    if state is None:
        return
    if isinstance(state, CheckpointLoading):
        console.print("[dim]Generating checkpoint...[/dim]")
        return
    if isinstance(state, CheckpointError):
        console.print(
            Panel(
                f"[red]{state.message}[/red]\nYou can still continue with the lesson.",
                title="Checkpoint",
                border_style="red",
            )
        )
        return
    if not isinstance(state, CheckpointReady):
        return

    payload = state.payload
    lines = []
    if payload.visual:
        lines.append(f"[dim]{payload.visual}[/dim]\n")
    lines.append(f"[bold]{payload.question}[/bold]\n")
    for idx, option in enumerate(payload.options):
        marker = ""
        if state.selected_index == idx:
            marker = " [green]✓[/green]" if state.is_correct else " [red]✗[/red]"
        lines.append(f"  {idx + 1}. {option}{marker}")

    subtitle = f"{state.intent.value} · {state.source.value}"
    if state.reason is not None:
        subtitle += f" ({state.reason.value})"
    console.print(
        Panel(
            "\n".join(lines),
            title=f"[cyan]Checkpoint · section {section_index + 1}[/cyan]",
            subtitle=f"[dim]{subtitle}[/dim]",
            border_style="cyan",
        )
    )


def _render_header(session: LessonSession) -> None:
    phase = session.phase
    label = PHASE_LABELS[phase]
    if phase == LessonPhase.LEARN:
        label += f" · section {session.section_index + 1}/{session.stepper.total_sections}"
    console.rule(f"[bold cyan]{label}[/bold cyan]  [dim]{session.stepper.progress:.0f}%[/dim]")


# =============================================================================
# Interactive playback
# =============================================================================


async def _play_checkpoint(session: LessonSession) -> Optional[str]:
    """
    Ask the active section's checkpoint until it is passed.

    Returns a navigation choice ("b" or "q") if the learner leaves early.
    """
    orchestrator = session.orchestrator
    index = session.section_index

    while True:
        state = orchestrator.state(index)

        if isinstance(state, CheckpointError):
            _render_checkpoint(state, index)
            if Confirm.ask("Try generating the checkpoint again?", default=False):
                await orchestrator.retry(index)
                continue
            return None

        if not isinstance(state, CheckpointReady) or state.passed:
            return None

        _render_checkpoint(state, index)
        choices = [str(i + 1) for i in range(len(state.payload.options))] + ["h", "t", "e", "b", "q"]
        choice = Prompt.ask(
            "[cyan]Answer[/cyan] [dim](number, h=hint, t=ask tutor, e=explain, b=back, q=quit)[/dim]",
            choices=choices,
            show_choices=False,
        )

        if choice in ("b", "q"):
            return choice
        if choice == "h":
            if orchestrator.toggle_hint(index):
                console.print(f"[yellow]Hint:[/yellow] {orchestrator.hint(index)}")
            continue
        if choice == "t":
            orchestrator.ask_for_hint(index)
            continue
        if choice == "e":
            orchestrator.ask_to_explain(index)
            continue

        updated = orchestrator.select_option(index, int(choice) - 1)
        if updated is None:
            continue
        if updated.is_correct:
            console.print(f"[green]Correct![/green] {updated.payload.explanation}")
            return None

        console.print("[red]Not quite.[/red] Try again.")
        if orchestrator.remediation.is_visible(index):
            _play_quick_review(session)


def _play_quick_review(session: LessonSession) -> None:
    orchestrator = session.orchestrator
    index = session.section_index
    review = orchestrator.quick_review(index)

    while orchestrator.remediation.is_visible(index):
        body = f"{review.prompt}\n\n" + "\n".join(
            f"  {OPTION_LABELS[i]}. {option}" for i, option in enumerate(review.options)
        )
        console.print(Panel(body, title=f"[yellow]{review.title}[/yellow]", border_style="yellow"))
        choice = Prompt.ask("[yellow]Choose[/yellow]", choices=["A", "B"], show_choices=False)
        result = orchestrator.answer_quick_review(index, OPTION_LABELS.index(choice))
        if result is None:
            return
        if result.is_correct:
            console.print("[green]That's it![/green] Now try the checkpoint again.")
        else:
            console.print(f"[yellow]{review.explanation}[/yellow]")


def _play_practice(session: LessonSession, practice: list[CheckpointPayload]) -> None:
    correct = 0
    for number, item in enumerate(practice, start=1):
        body = f"[bold]{item.question}[/bold]\n\n" + "\n".join(
            f"  {i + 1}. {option}" for i, option in enumerate(item.options)
        )
        console.print(Panel(body, title=f"Practice {number}/{len(practice)}"))
        choice = Prompt.ask(
            "[cyan]Answer[/cyan]",
            choices=[str(i + 1) for i in range(len(item.options))],
            show_choices=False,
        )
        if int(choice) - 1 == item.correct_index:
            correct += 1
            console.print("[green]Correct![/green]")
        else:
            console.print(f"[red]The answer was:[/red] {item.correct_option}")
        if item.explanation:
            console.print(f"[dim]{item.explanation}[/dim]")
        session.stepper.update_practice_score(correct, number)
    session.stepper.mark_phase_complete(LessonPhase.PRACTICE)


async def _play(session: LessonSession, practice: list[CheckpointPayload]) -> None:
    content = session.content
    await session.activate()

    while True:
        _render_header(session)
        phase = session.phase

        if phase == LessonPhase.WELCOME:
            welcome = content.welcome
            console.print(f"\n[bold]{welcome.title}[/bold]")
            if welcome.hook:
                console.print(f"[italic]{welcome.hook}[/italic]")
            if welcome.objectives:
                console.print("\n[bold]You will:[/bold]")
                for objective in welcome.objectives:
                    console.print(f"  • {objective}")
            Prompt.ask("\n[dim]Press Enter to start[/dim]", default="", show_default=False)
            await session.handle_command(NavigationCommand.CONFIRM)
            continue

        if phase == LessonPhase.LEARN:
            section = session.current_section
            if section is not None:
                console.print(Panel(Markdown(section.content), title=f"[bold]{section.title}[/bold]"))
            if session.checkpoints_enabled:
                with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console, transient=True) as progress:
                    progress.add_task("Preparing checkpoint...", total=None)
                    await session.activate()
                leave = await _play_checkpoint(session)
                if leave == "q":
                    return
                if leave == "b":
                    await session.handle_command(NavigationCommand.RETREAT)
                    continue

        elif phase == LessonPhase.PRACTICE:
            _play_practice(session, practice)
            score = session.stepper.practice_score
            console.print(f"\n[bold]Practice score:[/bold] {score.correct}/{score.total}")

        elif phase == LessonPhase.REVIEW:
            if content.summary:
                console.print(Panel(Markdown(content.summary), title="Summary"))
            if content.vocabulary:
                table = Table(title="Vocabulary")
                table.add_column("Term", style="cyan")
                table.add_column("Definition")
                for term in content.vocabulary:
                    table.add_row(term.term, term.definition)
                console.print(table)
            Prompt.ask("\n[dim]Press Enter to finish[/dim]", default="", show_default=False)
            await session.handle_command(NavigationCommand.CONFIRM)
            continue

        elif phase == LessonPhase.COMPLETE:
            console.print(f"\n[bold green]Lesson complete: {content.welcome.title}[/bold green]")
            return

        choice = Prompt.ask(
            "[cyan]>_[/cyan] [dim](n=next, b=back, q=quit)[/dim]",
            choices=["n", "b", "q"],
            default="n",
            show_choices=False,
        )
        if choice == "q":
            return
        command = NavigationCommand.ADVANCE if choice == "n" else NavigationCommand.RETREAT
        if not await session.handle_command(command) and command == NavigationCommand.ADVANCE:
            console.print("[yellow]Answer the checkpoint correctly to continue.[/yellow]")


# =============================================================================
# Commands
# =============================================================================


@app.command("parse")
def parse_command(
    lesson: Annotated[Path, typer.Argument(help="Lesson markdown file")],
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Lesson title (default: first # heading)")] = None,
    subject: Annotated[str, typer.Option("--subject", help="Subject, e.g. Math")] = "",
    grade: Annotated[str, typer.Option("--grade", "-g", help="Grade band, e.g. 2")] = "",
) -> None:
    """Show how a lesson splits into welcome, learn sections and review."""
    content = _load_lesson(lesson, title, subject, grade)

    console.print(f"\n[bold cyan]{content.welcome.title}[/bold cyan]")
    if content.welcome.hook:
        console.print(f"  Hook: {content.welcome.hook}")
    for objective in content.welcome.objectives:
        console.print(f"  • {objective}")

    table = Table(title=f"{content.section_count} learn sections")
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Type")
    table.add_column("Chars", justify="right")
    for idx, section in enumerate(content.learn_sections):
        table.add_row(str(idx + 1), section.title, section.type.value, str(len(section.content)))
    console.print(table)

    console.print(
        f"Vocabulary: {len(content.vocabulary)}  Resources: {len(content.resources)}  "
        f"Summary: {'yes' if content.summary else 'no'}"
    )


@app.command("checkpoint")
def checkpoint_command(
    lesson: Annotated[Path, typer.Argument(help="Lesson markdown file")],
    section: Annotated[int, typer.Option("--section", "-s", min=1, help="Section number (1-based)")] = 1,
    lesson_id: Annotated[Optional[int], typer.Option("--lesson-id", help="Lesson id for seeds and cache keys")] = None,
    offline: Annotated[bool, typer.Option("--offline", help="Skip the tutor service")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the payload as JSON")] = False,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Lesson title")] = None,
    subject: Annotated[str, typer.Option("--subject", help="Subject, e.g. Math")] = "",
    grade: Annotated[str, typer.Option("--grade", "-g", help="Grade band, e.g. 2")] = "",
) -> None:
    """Generate (or load from cache) the checkpoint for one section."""
    settings = get_settings()
    content = _load_lesson(lesson, title, subject, grade)
    index = section - 1
    if index >= content.section_count:
        console.print(f"[red]Error: Lesson has only {content.section_count} sections[/red]")
        raise typer.Exit(1)

    async def generate() -> CheckpointState:
        if offline:
            session = LessonSession(
                content,
                lesson_id,
                cache=_build_cache(settings),
                telemetry=_build_telemetry(settings),
                checkpoints_enabled=True,
                settings=settings,
            )
            return await session.orchestrator.ensure_checkpoint(index)

        async with TutorClient.from_settings(settings) as client:
            session = LessonSession(
                content,
                lesson_id,
                client,
                cache=_build_cache(settings),
                telemetry=_build_telemetry(settings),
                checkpoints_enabled=True,
                settings=settings,
            )
            return await session.orchestrator.ensure_checkpoint(index)

    with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console, transient=True) as progress:
        progress.add_task("Generating checkpoint...", total=None)
        state = asyncio.run(generate())

    if as_json:
        if isinstance(state, CheckpointReady):
            console.print_json(
                data={
                    "payload": state.payload.to_dict(),
                    "intent": state.intent.value,
                    "source": state.source.value,
                    "reason": state.reason.value if state.reason else None,
                }
            )
        else:
            console.print_json(data={"error": getattr(state, "message", "unavailable")})
        return

    _render_checkpoint(state, index)
    if isinstance(state, CheckpointReady):
        console.print(f"[dim]Answer: {state.payload.correct_index + 1}. {state.payload.correct_option}[/dim]")
        console.print(f"[dim]{state.payload.explanation}[/dim]")


@app.command("run")
def run_command(
    lesson: Annotated[Path, typer.Argument(help="Lesson markdown file")],
    lesson_id: Annotated[Optional[int], typer.Option("--lesson-id", help="Lesson id for seeds and cache keys")] = None,
    offline: Annotated[bool, typer.Option("--offline", help="Skip the tutor service")] = False,
    practice_file: Annotated[
        Optional[Path], typer.Option("--practice", "-p", help="JSON file of practice questions")
    ] = None,
    checkpoints: Annotated[
        Optional[bool],
        typer.Option("--checkpoints/--no-checkpoints", help="Force checkpoints on or off (default: perimeter pilot)"),
    ] = None,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Lesson title")] = None,
    subject: Annotated[str, typer.Option("--subject", help="Subject, e.g. Math")] = "",
    grade: Annotated[str, typer.Option("--grade", "-g", help="Grade band, e.g. 2")] = "",
) -> None:
    """Walk through a lesson: welcome, learn sections with checkpoints, practice, review."""
    settings = get_settings()
    content = _load_lesson(lesson, title, subject, grade)
    practice = _load_practice(practice_file)

    async def play() -> None:
        options = dict(
            cache=_build_cache(settings),
            telemetry=_build_telemetry(settings),
            checkpoints_enabled=checkpoints,
            has_practice_questions=bool(practice),
            tutor_handoff=_tutor_handoff,
            settings=settings,
        )
        if offline:
            await _play(LessonSession(content, lesson_id, **options), practice)
            return
        async with TutorClient.from_settings(settings) as client:
            await _check_tutor(client)
            await _play(LessonSession(content, lesson_id, client, **options), practice)

    try:
        asyncio.run(play())
    except KeyboardInterrupt:
        console.print("\n[yellow]Lesson interrupted.[/yellow]")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """
    Step-by-step lessons with comprehension checkpoints.

    Configure the tutor service with LESSONPATH_* environment variables or a .env file.
    """
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)
    logger.debug(f"Tutor service: {settings.tutor_api_url}{settings.tutor_endpoint}")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
