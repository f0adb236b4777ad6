from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
ROOT = TESTS_DIR.parent
for extra in (TESTS_DIR, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import FakeOpenAI, WorkspaceBuilder  # noqa: E402
from pdf_quiz.core.config import QuizConfig, default_config  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    """Scriptable client exposing the OpenAI surface the gateways use."""

    return FakeOpenAI()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> QuizConfig:
    """Defaults with tight polling ceilings so timeouts stay cheap."""

    base = default_config()
    return replace(
        base,
        polling=replace(
            base.polling,
            upload_timeout_seconds=10,
            generation_timeout_seconds=10,
        ),
    )


@pytest.fixture
def test_logger(request: pytest.FixtureRequest) -> logging.Logger:
    """Propagating logger so ``caplog`` sees gateway records."""

    logger = logging.getLogger(f"tests.{request.node.name}")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a helper bound to pytest's per-test tmp directory."""

    return WorkspaceBuilder(tmp_path)


@pytest.fixture
def data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the data home at a temp dir and clear config overrides."""

    home = tmp_path / "data-home"
    monkeypatch.setenv("PDF_QUIZ_DATA_HOME", str(home))
    monkeypatch.delenv("PDF_QUIZ_CONFIG", raising=False)
    yield home


@pytest.fixture(autouse=True)
def _reset_app_logger() -> Iterator[None]:
    """Drop handlers that CLI entry points attach to the shared logger."""

    yield
    logger = logging.getLogger("pdf_quiz")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
