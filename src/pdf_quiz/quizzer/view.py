"""Rich console front-end for a :class:`QuizSession`.

The loop renders whatever phase the session is in, reads one command from
``input_provider`` and applies it. Gateway calls run under a Rich status
spinner; everything else is synchronous.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..gateway.documents import Document, format_size, load_document
from .session import Phase, QuizSession

InputProvider = Callable[[], str]
DocumentLoader = Callable[[Path], Document]
CommandType = Literal[
    "start",
    "add",
    "remove",
    "select",
    "next",
    "more",
    "restart",
    "new",
    "quit",
]

_BAND_STYLES = {
    "excellent": "bold green",
    "good": "bold blue",
    "fair": "bold yellow",
    "needs-work": "bold red",
}

_STATUS_STYLES = {
    "pending": "dim",
    "uploading": "cyan",
    "uploaded": "green",
    "error": "red",
}


@dataclass(frozen=True)
class PlayCommand:
    """Normalized user command parsed from console input."""

    type: CommandType
    argument: str | None = None


@dataclass(frozen=True)
class PlayResult:
    """Return value from ``run_play_session``."""

    score: int
    total: int
    percentage: int
    phase: Phase


def parse_play_command(raw: str | None, phase: Phase) -> PlayCommand | None:
    """Parse raw input into a command valid for ``phase``."""

    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    head, _, rest = text.partition(" ")
    lowered = head.lower()
    argument = rest.strip() or None
    if lowered in {"q", "quit", "exit"}:
        return PlayCommand("quit")

    if phase is Phase.COLLECTING_FILES:
        if lowered in {"s", "start"}:
            return PlayCommand("start")
        if lowered in {"a", "add"} and argument:
            return PlayCommand("add", argument)
        if lowered in {"r", "rm", "remove"} and argument:
            return PlayCommand("remove", argument)
        return None

    if phase is Phase.ANSWERING:
        if lowered in {"n", "next"}:
            return PlayCommand("next")
        if head.isdigit():
            return PlayCommand("select", head)
        return None

    if phase is Phase.FINISHED:
        if lowered in {"m", "more"}:
            return PlayCommand("more")
        if lowered in {"r", "restart"}:
            return PlayCommand("restart")
        if lowered in {"u", "new", "upload"}:
            return PlayCommand("new")
    return None


async def run_play_session(
    session: QuizSession,
    console: Console,
    input_provider: InputProvider,
    *,
    loader: DocumentLoader = load_document,
) -> PlayResult:
    """Run the interactive loop until the user quits or input ends."""

    while True:
        render_session(console, session)
        try:
            raw = input_provider()
        except (EOFError, KeyboardInterrupt, StopIteration):
            console.print("\n[bold yellow]Session interrupted.[/]")
            break
        command = parse_play_command(raw, session.state.phase)
        if command is None:
            console.print("[red]Unrecognized command. Try again.[/]")
            continue
        if command.type == "quit":
            break
        await _apply_command(command, session, console, loader)

    state = session.state
    return PlayResult(
        score=state.score,
        total=state.total_questions,
        percentage=session.percentage,
        phase=state.phase,
    )


async def _apply_command(
    command: PlayCommand,
    session: QuizSession,
    console: Console,
    loader: DocumentLoader,
) -> None:
    if command.type == "start":
        with console.status("Uploading files and generating questions..."):
            await session.start_quiz()
        return
    if command.type == "add" and command.argument:
        path = Path(command.argument).expanduser()
        if not path.is_file():
            console.print(f"[red]No such file: {path}[/red]")
            return
        session.stage_files([loader(path)])
        return
    if command.type == "remove" and command.argument:
        documents = session.state.documents
        position = _position(command.argument, len(documents))
        if position is None:
            console.print(
                f"[red]'{command.argument}' is not a listed file number.[/red]"
            )
            return
        session.remove_file(documents[position].id)
        return
    if command.type == "select" and command.argument:
        options = session.options_for_view()
        position = _position(command.argument, len(options))
        if position is None:
            console.print(
                f"[red]'{command.argument}' is not a valid choice for this "
                "question.[/red]"
            )
            return
        session.select_option(options[position])
        return
    if command.type == "next":
        if not session.advance():
            console.print("[red]Choose an answer first.[/red]")
        return
    if command.type == "more":
        with console.status("Generating more questions..."):
            await session.more_questions()
        return
    if command.type == "restart":
        with console.status("Generating a fresh quiz..."):
            await session.restart_from_files()
        return
    if command.type == "new":
        session.reset()


def _position(raw: str, count: int) -> int | None:
    try:
        number = int(raw)
    except ValueError:
        return None
    if 1 <= number <= count:
        return number - 1
    return None


def render_session(console: Console, session: QuizSession) -> None:
    phase = session.state.phase
    if phase is Phase.ANSWERING:
        _render_question(console, session)
    elif phase is Phase.FINISHED:
        _render_summary(console, session)
    else:
        _render_files(console, session)


def _render_error(console: Console, message: str | None) -> None:
    if message:
        console.print(
            Panel(Text(message, style="red"), border_style="red", box=box.ROUNDED)
        )


def _render_files(console: Console, session: QuizSession) -> None:
    state = session.state
    console.print()
    console.rule(Text("AI Quiz Generator", style="bold cyan"))
    if state.documents:
        table = Table(box=box.SIMPLE, expand=True)
        table.add_column("#", justify="right", style="cyan")
        table.add_column("File")
        table.add_column("Size", justify="right")
        table.add_column("Status")
        for number, doc in enumerate(state.documents, start=1):
            status = Text(doc.status, style=_STATUS_STYLES.get(doc.status, ""))
            table.add_row(
                str(number),
                doc.name,
                format_size(doc.document.size),
                status,
            )
        console.print(table)
    else:
        console.print(Text("No PDF files selected.", style="dim"))
    _render_error(console, state.error)
    console.print(
        Text(
            "Commands: add <path>, remove <n>, start, quit",
            style="dim",
        )
    )


def _render_question(console: Console, session: QuizSession) -> None:
    state = session.state
    question = session.current_question
    if question is None:
        return
    header = Text.assemble(
        (f"Question {state.index + 1}", "bold cyan"),
        (f" of {state.total_questions}", "dim"),
        (f"  Score: {state.score}", "dim"),
    )
    console.print()
    console.rule(header)
    console.print(Text(question.question, style="bold"))

    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Key", justify="center", style="cyan")
    table.add_column("Option")
    for number, option in enumerate(session.options_for_view(), start=1):
        row = Text(option.option)
        if state.answered:
            if option.correct:
                row.stylize("bold green")
                row.append("  ✓ Correct", style="green")
            elif option == state.selected:
                row.stylize("bold red")
                row.append("  ✗ Incorrect", style="red")
        table.add_row(str(number), row)
    console.print(table)

    if state.answered:
        label = "finish" if state.is_last else "next question"
        hint = f"Commands: n ({label}), quit"
    else:
        hint = "Commands: choose an option number, quit"
    console.print(Text(hint, style="dim"))


def _render_summary(console: Console, session: QuizSession) -> None:
    state = session.state
    band = session.performance_band
    body = Text.assemble(
        (f"{state.score}/{state.total_questions}\n", "bold cyan"),
        (f"{session.percentage}% correct\n", ""),
        (band.message, _BAND_STYLES.get(band.name, "bold")),
    )
    console.print()
    console.print(
        Panel(
            body,
            title="Quiz Complete!",
            border_style="cyan",
            box=box.ROUNDED,
        )
    )
    _render_error(console, state.error)
    console.print(
        Text(
            "Commands: more (new questions), restart, upload (new files), quit",
            style="dim",
        )
    )
