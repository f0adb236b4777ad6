"""Quiz session state machine and its terminal front-end."""

from .backend import (
    HttpQuizBackend,
    LocalQuizBackend,
    QuizBackend,
    UploadOutcome,
)
from .session import (
    PERFORMANCE_BANDS,
    PerformanceBand,
    Phase,
    QuizSession,
    QuizSessionState,
    StagedDocument,
    performance_band,
    score_percentage,
)
from .view import PlayCommand, PlayResult, parse_play_command, run_play_session

__all__ = [
    "HttpQuizBackend",
    "LocalQuizBackend",
    "QuizBackend",
    "UploadOutcome",
    "PERFORMANCE_BANDS",
    "PerformanceBand",
    "Phase",
    "QuizSession",
    "QuizSessionState",
    "StagedDocument",
    "performance_band",
    "score_percentage",
    "PlayCommand",
    "PlayResult",
    "parse_play_command",
    "run_play_session",
]
