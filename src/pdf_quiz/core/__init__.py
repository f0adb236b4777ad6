"""Core shared helpers for the pdf_quiz server and client."""

from __future__ import annotations

from .ai import load_client
from .config import (
    ConfigError,
    QuizConfig,
    default_config,
    load_config,
)
from .errors import (
    GenerationFailedError,
    NotFoundError,
    OperationTimeoutError,
    QuizError,
    SchemaValidationError,
    UnexpectedError,
    UploadFailedError,
    ValidationError,
    error_from_payload,
    translate_provider_error,
)
from .logging import JsonLogFormatter, configure_logger
from .polling import poll_until
from .workspace import (
    DATA_HOME_ENV,
    WorkspaceError,
    WorkspaceLayout,
    ensure_workspace,
)

__all__ = [
    "load_client",
    "ConfigError",
    "QuizConfig",
    "default_config",
    "load_config",
    "QuizError",
    "ValidationError",
    "NotFoundError",
    "UploadFailedError",
    "GenerationFailedError",
    "SchemaValidationError",
    "OperationTimeoutError",
    "UnexpectedError",
    "error_from_payload",
    "translate_provider_error",
    "configure_logger",
    "JsonLogFormatter",
    "poll_until",
    "DATA_HOME_ENV",
    "WorkspaceError",
    "WorkspaceLayout",
    "ensure_workspace",
]
