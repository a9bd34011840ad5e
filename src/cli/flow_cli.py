"""
Activity Flow CLI

Validate, inspect and play authored learning activities from the terminal.

Usage:
    flow validate activity.json          # Check an activity for authoring errors
    flow show activity.json              # List nodes and connections
    flow play activity.json              # Play with local collaborators
    flow play activity.json --api        # Play against the learning platform
    flow play activity.json --fresh      # Ignore a saved session

Type /quit at any prompt to stop; progress is saved and resumed next time.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config import Settings, get_engine_config, get_settings
from src.flow.engine import ActionOutcome, ActivityEngine, EngineConfig, EngineStatus, OutcomeStatus
from src.flow.errors import CorruptGraphError
from src.flow.graph import ActivityGraph, Node, NodeType
from src.flow.handlers.base import LearnerAction
from src.flow.handlers.quiz import question_id, quiz_questions
from src.flow.retry import RetryPolicy
from src.flow.review import FLASHCARDS, ReviewSession
from src.flow.session import SessionState, create_session_state
from src.flow.session_store import SessionStore
from src.flow.validation import validate_graph
from src.integrations.flow_api_client import FlowApiClient, FlowApiConfig
from src.integrations.offline import offline_collaborators
from src.integrations.services import Collaborators

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="flow",
    help="Activity Flow - play branching learning activities",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

QUIT = "/quit"

SEVERITY_STYLES = {"high": "red", "medium": "yellow", "low": "dim"}


class _Quit(Exception):
    """Learner typed /quit."""


def _configure_logging(verbose: bool, settings: Settings) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "WARNING",
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB", retention=5)


def _load_graph(path: Path) -> ActivityGraph:
    try:
        return ActivityGraph.load(path)
    except FileNotFoundError:
        console.print(f"[red]✗ No such file: {path}[/]")
        raise typer.Exit(code=2)
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]✗ Could not read activity {path.name}:[/] {e}")
        raise typer.Exit(code=2)


def _ask(label: str) -> str:
    answer = Prompt.ask(label, default="", show_default=False, console=console).strip()
    if answer == QUIT:
        raise _Quit()
    return answer


# =============================================================================
# Authoring Commands
# =============================================================================


@app.command()
def validate(
    path: Annotated[Path, typer.Argument(help="Activity JSON file")],
) -> None:
    """
    Check an activity for authoring errors.

    Exits with status 1 when any error is found; warnings alone pass.
    """
    graph = _load_graph(path)
    issues = validate_graph(graph)

    if not issues:
        console.print(f"[green]✓ {path.name}: {len(graph)} nodes, no issues[/]")
        return

    table = Table(title=f"Validation: {path.name}")
    table.add_column("Severity")
    table.add_column("Code", style="cyan")
    table.add_column("Node")
    table.add_column("Message")
    for issue in issues:
        severity = "[red]error[/]" if issue.is_error else "[yellow]warning[/]"
        table.add_row(severity, issue.code, issue.node_id or "-", issue.message)
    console.print(table)

    errors = sum(1 for issue in issues if issue.is_error)
    if errors:
        console.print(f"[red]✗ {errors} error(s), {len(issues) - errors} warning(s)[/]")
        raise typer.Exit(code=1)
    console.print(f"[yellow]⚠ {len(issues)} warning(s)[/]")


@app.command()
def show(
    path: Annotated[Path, typer.Argument(help="Activity JSON file")],
) -> None:
    """List an activity's nodes and where each one leads."""
    graph = _load_graph(path)

    console.print(
        Panel(
            f"[bold cyan]{graph.title or path.stem}[/]\n"
            f"Nodes: {len(graph)}  Connections: {len(graph.connections)}",
            border_style="cyan",
        )
    )

    table = Table()
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Title")
    table.add_column("Next")
    for node in graph.nodes:
        targets = [
            f"{conn.label} → {conn.target}" if conn.label else conn.target
            for conn in graph.outgoing(node.id)
        ]
        table.add_row(node.id, node.type.value, node.title, "\n".join(targets) or "[dim]-[/]")
    console.print(table)


# =============================================================================
# Play
# =============================================================================


@app.command()
def play(
    path: Annotated[Path, typer.Argument(help="Activity JSON file")],
    learner: Annotated[
        str | None, typer.Option("--learner", "-l", help="Learner ID (default from settings)")
    ] = None,
    offline: Annotated[
        bool, typer.Option("--offline/--api", help="Local collaborators or the learning platform")
    ] = True,
    gate_delay: Annotated[
        float | None, typer.Option("--gate-delay", help="Seconds per completion-check retry step")
    ] = None,
    resume: Annotated[
        bool, typer.Option("--resume/--fresh", help="Resume a saved session if there is one")
    ] = True,
    save: Annotated[
        bool, typer.Option("--save/--no-save", help="Save progress between steps")
    ] = True,
) -> None:
    """
    Play an activity in the terminal.

    Examples:
        flow play lesson.json
        flow play lesson.json --learner ana --api
        flow play lesson.json --gate-delay 0 --no-save
    """
    settings = get_settings()
    graph = _load_graph(path)

    if any(issue.is_error for issue in validate_graph(graph)):
        console.print(f"[red]✗ {path.name} has authoring errors. Run 'flow validate {path}' for details.[/]")
        raise typer.Exit(code=1)

    config = get_engine_config(settings)
    if gate_delay is not None:
        config.gate_policy = RetryPolicy(config.gate_policy.max_attempts, gate_delay)

    learner_id = learner or settings.learner_id
    activity_id = graph.id or path.stem
    store = SessionStore(settings.session_dir, settings.session_expiry_hours) if save else None

    session = None
    if store is not None and resume:
        latest = store.get_latest(activity_id)
        if latest is not None and latest.learner_id == learner_id:
            session = latest
            console.print(f"[dim]Resuming saved session from {latest.last_saved_at[:16]}[/]")
    if session is None:
        session = create_session_state(learner_id, activity_id)

    try:
        asyncio.run(_play(graph, session, config, settings, offline, store))
    except CorruptGraphError as e:
        console.print(f"[red]✗ This activity cannot continue: {e}[/]")
        raise typer.Exit(code=1)


async def _play(
    graph: ActivityGraph,
    session: SessionState,
    config: EngineConfig,
    settings: Settings,
    offline: bool,
    store: SessionStore | None,
) -> None:
    result: dict[str, float] = {}

    def on_complete(score: float, active_seconds: int) -> None:
        result["score"] = score
        result["active_seconds"] = active_seconds

    if offline:
        await _run(graph, session, offline_collaborators(), config, store, on_complete)
    else:
        async with FlowApiClient(FlowApiConfig.from_settings(settings)) as api:
            if not await api.health_check():
                console.print("[yellow]⚠ Learning platform unreachable; tutor and analytics calls may fail[/]")
            await _run(graph, session, api.collaborators(), config, store, on_complete)

    if result:
        minutes, seconds = divmod(int(result["active_seconds"]), 60)
        console.print(
            Panel(
                f"[bold green]Activity complete[/]\n"
                f"Score: {result['score']:g}\n"
                f"Active time: {minutes}m {seconds:02d}s",
                border_style="green",
            )
        )


async def _run(
    graph: ActivityGraph,
    session: SessionState,
    services: Collaborators,
    config: EngineConfig,
    store: SessionStore | None,
    on_complete,
) -> None:
    engine = ActivityEngine(graph, session, services, on_complete=on_complete, config=config)
    console.print(
        Panel(
            f"[bold cyan]{graph.title or session.activity_id}[/]\n"
            f"Learner: {session.learner_id}\n"
            f"Steps: {len(graph)}",
            border_style="cyan",
        )
    )

    try:
        _render_outcome(await engine.start())
        while engine.status in (EngineStatus.RUNNING, EngineStatus.REVIEW_REQUIRED):
            try:
                if engine.status == EngineStatus.REVIEW_REQUIRED:
                    _ask("Press Enter once you have reviewed these concepts")
                    with console.status("[cyan]Checking your work...[/]"):
                        outcome = await engine.complete_misconception_review()
                else:
                    action = await _prompt_action(engine.current_node, engine)
                    with console.status("[cyan]Working...[/]"):
                        outcome = await engine.act(action)
            except _Quit:
                message = "Progress saved. Run 'flow play' again to resume." if store else "Stopped."
                console.print(f"[dim]{message}[/]")
                break

            _render_outcome(outcome)
            if store is not None:
                store.save(session)
    finally:
        await engine.close()
        if store is not None:
            store.save(session)


async def _prompt_action(node: Node, engine: ActivityEngine) -> LearnerAction:
    console.print(
        Panel(
            node.description or "",
            title=f"[bold]{node.title or node.id}[/] · {node.type.value}",
            subtitle=f"{engine.progress_percent:.0f}% · score {engine.session.score:g}",
            border_style="blue",
        )
    )

    if node.type == NodeType.START:
        _ask("Press Enter to begin")
        return LearnerAction.proceed()

    if node.type in (NodeType.VIDEO, NodeType.DOCUMENT):
        source = node.config.get("url") or node.config.get("video_url") or node.config.get("document_url")
        if source:
            console.print(f"[dim]{source}[/]")
        if node.config.get("content"):
            console.print(str(node.config["content"]))
        _ask("Press Enter when you are done")
        return LearnerAction.acknowledge()

    if node.type == NodeType.QUIZ:
        return _prompt_quiz(node)

    if node.type == NodeType.AI_CHAT:
        prompt = node.config.get("prompt") or node.config.get("ai_prompt")
        if prompt and node.id not in engine.session.transcripts:
            console.print(f"[magenta]{prompt}[/]")
        text = _ask("You [dim](Enter to move on)[/]")
        return LearnerAction.message(text) if text else LearnerAction.proceed()

    if node.type == NodeType.REVIEW:
        return await _prompt_review(node, engine)

    if node.type == NodeType.END:
        return LearnerAction.proceed()

    # Condition and free-text steps
    prompt = node.config.get("prompt") or node.config.get("instructions")
    if prompt:
        console.print(str(prompt))
    return LearnerAction.submit(_ask("Your response"))


def _option_text(option) -> str:
    return option.get("text", "") if isinstance(option, dict) else str(option)


def _prompt_quiz(node: Node) -> LearnerAction:
    answers: dict[str, str] = {}
    for index, question in enumerate(quiz_questions(node)):
        console.print(f"\n[bold]{index + 1}. {question.get('question', '')}[/]")
        options = question.get("options") or []
        for number, option in enumerate(options, 1):
            console.print(f"  [cyan]{number}[/]. {_option_text(option)}")
        if question.get("type") == "true_false":
            console.print("  [dim]true / false[/]")

        answer = _ask("Answer")
        # Option numbers are 1-based on screen
        if options and answer.isdigit() and 1 <= int(answer) <= len(options):
            answer = _option_text(options[int(answer) - 1])
        answers[question_id(question, index)] = answer
    return LearnerAction.submit(answers=answers)


async def _prompt_review(node: Node, engine: ActivityEngine) -> LearnerAction:
    review = ReviewSession(
        node,
        engine.session.learner_id,
        engine.session.activity_id,
        engine.services.review_analyzer,
    )
    label = "Definition" if review.review_type == FLASHCARDS else "Response"
    for index, item in enumerate(review.items):
        console.print(f"\n[bold]{item}[/]")
        text = _ask(label)
        while not text:
            console.print("[yellow]⚠ An answer is required[/]")
            text = _ask(label)
        review.record(index, text)

    with console.status("[cyan]Analyzing your responses...[/]"):
        completion = await review.finish()
    return LearnerAction.review_complete(completion)


def _render_outcome(outcome: ActionOutcome) -> None:
    if outcome.reply:
        console.print(Panel(outcome.reply, title="Tutor", border_style="magenta"))

    if outcome.status == OutcomeStatus.REJECTED:
        console.print(f"[yellow]⚠ {outcome.message}[/]")
    elif outcome.status == OutcomeStatus.ERROR:
        console.print(f"[red]✗ {outcome.message}[/]")
    elif outcome.status == OutcomeStatus.REVIEW_REQUIRED:
        table = Table(title=outcome.message or "Concepts to review")
        table.add_column("Concept", style="cyan")
        table.add_column("Severity")
        table.add_column("What to revisit")
        for item in outcome.misconceptions:
            style = SEVERITY_STYLES.get(item.severity, "")
            table.add_row(
                item.concept,
                f"[{style}]{item.severity}[/]" if style else item.severity,
                item.correct_understanding or item.description,
            )
        console.print(table)
    elif outcome.message:
        console.print(f"[green]{outcome.message}[/]")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
) -> None:
    """
    Activity Flow - play branching learning activities

    \b
    Quick Start:
      flow validate lesson.json    # Check authoring
      flow show lesson.json        # See the graph
      flow play lesson.json        # Play it
    """
    _configure_logging(verbose, get_settings())


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
