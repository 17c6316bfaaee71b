"""
Typer CLI for the xfactor viral growth core.

Commands:
    xfactor trigger     - Run one raw user trigger through the pipeline
    xfactor session     - Summarize a session transcript and run agentic actions
    xfactor stats       - Show registered loops, actions and agent health

Usage:
    xfactor trigger results_page_view --persona student --subject Algebra --age 15
    xfactor trigger streak_at_risk --meta current_streak=12 --meta streak_expires_at=2026-01-01T10:00:00Z
    xfactor session transcript.txt --persona tutor --subject Algebra
    xfactor stats
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from .config import get_settings
from .core.events import ViralEvent
from .core.types import Persona, UserTrigger
from .pipeline import TriggerContext, TriggerPipeline, build_pipeline
from .services.summary import SummaryService

app = typer.Typer(help="xfactor: trigger-to-invite viral growth pipeline", no_args_is_help=True)
console = Console()


def _parse_meta(pairs: list[str]) -> dict[str, object]:
    """Parse repeated key=value options; integers and floats are converted."""
    metadata: dict[str, object] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--meta")
        value: object = raw
        for convert in (int, float):
            try:
                value = convert(raw)
                break
            except ValueError:
                continue
        metadata[key.strip()] = value
    return metadata


def _print_events(pipeline: TriggerPipeline) -> None:
    table = Table(title="Events", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Timestamp", style="dim")
    table.add_column("Payload")

    event: ViralEvent
    for event in pipeline.event_bus.get_history():
        payload = ", ".join(f"{k}={v}" for k, v in event.payload.items() if v is not None)
        table.add_row(event.event_type, event.timestamp, payload)
    console.print(table)


@app.command("trigger")
def trigger_command(
    trigger: UserTrigger = typer.Argument(..., help="User trigger that happened"),
    user_id: str = typer.Option("demo-user", "--user", "-u", help="Acting user id"),
    persona: Persona = typer.Option(Persona.STUDENT, "--persona", "-p", help="Acting user's persona"),
    subject: str | None = typer.Option(None, "--subject", "-s"),
    age: int | None = typer.Option(None, "--age"),
    grade: str | None = typer.Option(None, "--grade"),
    score: float | None = typer.Option(None, "--score", help="Practice or test score"),
    email: str | None = typer.Option(None, "--email"),
    device_id: str | None = typer.Option(None, "--device"),
    meta: list[str] = typer.Option([], "--meta", "-m", help="Loop detail as key=value (repeatable)"),
    show_events: bool = typer.Option(False, "--events", help="Print the published event trail"),
) -> None:
    """
    Run one raw trigger and print the resulting invites.

    Examples:
        xfactor trigger results_page_view --subject Algebra --age 15
        xfactor trigger session_rated --persona tutor --meta session_rating=5
    """
    pipeline = build_pipeline()
    context = TriggerContext(
        subject=subject,
        age=age,
        grade=grade,
        score=score,
        email=email,
        device_id=device_id,
        metadata=_parse_meta(meta),
    )

    rprint(f"\n[bold cyan]{trigger.value}[/bold cyan] for {persona.value} [dim]{user_id}[/dim]\n")
    results = asyncio.run(pipeline.process_trigger(user_id, trigger, persona, context))

    if not results:
        rprint("[yellow]No loops executed[/yellow]")
    else:
        table = Table(title="Loop Results", show_header=True)
        table.add_column("Loop", style="cyan")
        table.add_column("OK", justify="center")
        table.add_column("Short Code", style="green")
        table.add_column("Rationale")
        for result in results:
            data = result.to_dict()
            table.add_row(
                str(data["loop_id"]),
                "[green]✓[/green]" if result.success else "[red]✗[/red]",
                result.invite.short_code if result.invite else "-",
                result.rationale,
            )
        console.print(table)

        for result in results:
            if result.invite:
                rprint(f"\n[bold]{result.invite.link}[/bold]\n{result.invite.message}")

    if show_events:
        _print_events(pipeline)


@app.command("session")
def session_command(
    transcript: Path = typer.Argument(..., exists=True, readable=True, help="Transcript text file"),
    user_id: str = typer.Option("demo-user", "--user", "-u", help="Acting user id"),
    persona: Persona = typer.Option(Persona.STUDENT, "--persona", "-p", help="Acting user's persona"),
    session_id: str = typer.Option("demo-session", "--session-id"),
    subject: str | None = typer.Option(None, "--subject", "-s"),
    topic: str | None = typer.Option(None, "--topic", "-t"),
    show_events: bool = typer.Option(False, "--events", help="Print the published event trail"),
) -> None:
    """Summarize a session transcript and run the agentic actions for it."""
    pipeline = build_pipeline()
    summary = SummaryService().generate_summary(
        transcript.read_text(encoding="utf-8"),
        session_id=session_id,
        user_id=user_id,
        subject=subject,
        topic=topic,
    )

    rprint(f"\n[bold cyan]Session summary[/bold cyan] {session_id}")
    rprint(f"  {summary.summary}\n")

    results = asyncio.run(pipeline.process_summary(summary, user_id, persona, session_id))
    if not results:
        rprint("[yellow]No agentic actions triggered[/yellow]")
    else:
        table = Table(title="Agentic Actions", show_header=True)
        table.add_column("Action", style="cyan")
        table.add_column("OK", justify="center")
        table.add_column("Loop")
        table.add_column("Invite", justify="center")
        table.add_column("Message")
        for result in results:
            table.add_row(
                result.action_type,
                "[green]✓[/green]" if result.success else "[red]✗[/red]",
                result.viral_loop_triggered.value if result.viral_loop_triggered else "-",
                result.invite_code or "-",
                result.message or result.rationale,
            )
        console.print(table)

    if show_events:
        _print_events(pipeline)


@app.command("stats")
def stats_command() -> None:
    """Show registered loops and actions by persona, plus agent health."""
    pipeline = build_pipeline()
    stats = asyncio.run(pipeline.get_stats())

    loops = Table(title=f"Loops ({stats['loops']['total_loops']})", show_header=True)
    loops.add_column("Loop", style="cyan")
    loops.add_column("Name")
    loops.add_column("Personas", style="green")
    for loop in stats["loops"]["loops"]:
        loops.add_row(loop["id"], loop["name"], ", ".join(loop["personas"]))
    console.print(loops)

    actions = Table(title=f"Agentic Actions ({stats['actions']['total_actions']})", show_header=True)
    actions.add_column("Action", style="cyan")
    actions.add_column("Name")
    actions.add_column("Personas", style="green")
    for action in stats["actions"]["actions"]:
        actions.add_row(action["id"], action["name"], ", ".join(action["personas"]))
    console.print(actions)

    agents = Table(title="Agents", show_header=True)
    agents.add_column("Agent", style="cyan")
    agents.add_column("Healthy", justify="center")
    agents.add_column("Circuit")
    for name, health in stats["agents"].items():
        agents.add_row(
            name,
            "[green]✓[/green]" if health["healthy"] else "[red]✗[/red]",
            health["circuit_breaker_state"],
        )
    console.print(agents)


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
