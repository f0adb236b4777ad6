"""``pdf-quiz play``: take a quiz in the terminal."""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console

from ..api.server import build_gateways
from ..core.ai import load_client
from ..core.config import ConfigError, QuizConfig, load_config
from ..core.logging import configure_logger
from ..core.workspace import WorkspaceError, ensure_workspace
from ..gateway.documents import load_document
from .backend import HttpQuizBackend, LocalQuizBackend, QuizBackend
from .session import QuizSession
from .view import InputProvider, PlayResult, run_play_session


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-quiz play",
        description="Generate a quiz from PDF files and take it here.",
    )
    parser.add_argument(
        "files",
        nargs="*",
        type=Path,
        help="PDF files to stage before the session starts.",
    )
    parser.add_argument(
        "--api",
        metavar="URL",
        help="Use a running `pdf-quiz serve` instead of calling OpenAI "
        "directly.",
    )
    parser.add_argument("--config", type=Path, help="Path to pdf_quiz.toml.")
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for option shuffling (useful for reproducible runs).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Mirror logs to stderr at DEBUG level.",
    )
    return parser


def build_backend(
    config: QuizConfig,
    *,
    logger: logging.Logger,
    api_url: str | None = None,
) -> QuizBackend:
    if api_url:
        return HttpQuizBackend(api_url)
    client = load_client(
        api_base=config.openai.api_base,
        timeout=config.openai.request_timeout_seconds,
    )
    upload, generation = build_gateways(config, client, logger)
    return LocalQuizBackend(upload, generation)


async def play(
    session: QuizSession,
    backend: QuizBackend,
    console: Console,
    input_provider: InputProvider,
) -> PlayResult:
    try:
        return await run_play_session(session, console, input_provider)
    finally:
        await backend.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    missing = [path for path in args.files if not path.is_file()]
    if missing:
        for path in missing:
            sys.stderr.write(f"Error: file not found: {path}\n")
        return 2

    try:
        config = load_config(explicit_path=args.config)
        layout = ensure_workspace()
    except (ConfigError, WorkspaceError) as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2

    logger, _ = configure_logger(
        "pdf_quiz",
        log_dir=layout.path_for("logs"),
        level=config.logging.level,
        verbose=args.verbose or config.logging.verbose,
        filename="play.log",
    )
    try:
        backend = build_backend(config, logger=logger, api_url=args.api)
    except RuntimeError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 1

    session = QuizSession(
        backend,
        allowed_extensions=config.limits.allowed_extensions,
        logger=logger.getChild("session"),
        rng=random.Random(args.seed),
    )
    if args.files:
        session.stage_files(load_document(path) for path in args.files)

    console = Console()
    result = asyncio.run(
        play(
            session,
            backend,
            console,
            lambda: console.input("[bold cyan]> [/]"),
        )
    )
    if result.total:
        console.print(
            f"Final score: {result.score}/{result.total} ({result.percentage}%)"
        )
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation guard
    raise SystemExit(main())
