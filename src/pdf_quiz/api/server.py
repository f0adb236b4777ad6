"""``pdf-quiz serve``: run the HTTP API under uvicorn."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

import uvicorn
from fastapi import FastAPI

from ..core.ai import load_client
from ..core.config import ConfigError, QuizConfig, load_config
from ..core.logging import configure_logger
from ..core.workspace import WorkspaceError, ensure_workspace
from ..gateway.generation import QuestionGenerationGateway
from ..gateway.upload import UploadGateway
from .app import create_app

__all__ = ["build_gateways", "build_application", "main"]


def build_gateways(
    config: QuizConfig,
    client: Any,
    logger: logging.Logger,
) -> tuple[UploadGateway, QuestionGenerationGateway]:
    """Wire both gateways to one shared provider client."""

    upload = UploadGateway(
        client,
        limits=config.limits,
        store=config.store,
        polling=config.polling,
        logger=logger.getChild("upload"),
    )
    generation = QuestionGenerationGateway(
        client,
        provider=config.openai,
        generation=config.generation,
        polling=config.polling,
        logger=logger.getChild("generation"),
    )
    return upload, generation


def build_application(
    config: QuizConfig,
    *,
    logger: logging.Logger,
    client: Any = None,
) -> FastAPI:
    if client is None:
        client = load_client(
            api_base=config.openai.api_base,
            timeout=config.openai.request_timeout_seconds,
        )
    upload, generation = build_gateways(config, client, logger)
    return create_app(
        config,
        upload_gateway=upload,
        generation_gateway=generation,
        logger=logger.getChild("api"),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-quiz serve",
        description="Serve the upload and quiz generation API.",
    )
    parser.add_argument("--config", type=Path, help="Path to pdf_quiz.toml.")
    parser.add_argument("--host", help="Bind address (overrides config).")
    parser.add_argument(
        "--port", type=int, help="Listen port (overrides config)."
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Mirror logs to stderr at DEBUG level.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(explicit_path=args.config)
        layout = ensure_workspace()
    except (ConfigError, WorkspaceError) as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2

    logger, log_path = configure_logger(
        "pdf_quiz",
        log_dir=layout.path_for("logs"),
        level=config.logging.level,
        verbose=args.verbose or config.logging.verbose,
        filename="server.log",
    )
    try:
        app = build_application(config, logger=logger)
    except RuntimeError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 1

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info(
        "Starting server",
        extra={"host": host, "port": port, "log_path": str(log_path)},
    )
    uvicorn.run(app, host=host, port=port)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation guard
    raise SystemExit(main())
