"""Shared testing fixtures for the pdf_quiz test suite."""

from .backend import FakeBackend, completed_outcome, questions  # noqa: F401
from .openai import FakeOpenAI, ProviderError, quiz_dict  # noqa: F401
from .workspace import WorkspaceBuilder, build_tree, pdf_bytes  # noqa: F401

__all__ = [
    "FakeBackend",
    "completed_outcome",
    "questions",
    "FakeOpenAI",
    "ProviderError",
    "WorkspaceBuilder",
    "build_tree",
    "pdf_bytes",
    "quiz_dict",
]
