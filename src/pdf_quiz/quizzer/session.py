"""Quiz session state machine.

A session moves through ``collecting-files -> uploading -> generating ->
answering -> finished``. From ``finished`` the user may ask for more
questions (appended, with earlier question texts excluded) or restart from
the same files (the list is replaced). ``reset`` returns to file selection
from any phase.

Gateway calls are awaited. While one is outstanding the triggering
operation is busy and repeated triggers are ignored. ``reset`` bumps the
generation epoch, and a call that started under an older epoch drops its
result instead of applying it.
"""

from __future__ import annotations

import logging
import math
import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Literal, Optional, Sequence

from ..core.errors import QuizError, UnexpectedError
from ..gateway.documents import Document
from ..gateway.schema import Option, Question
from .backend import QuizBackend

__all__ = [
    "Phase",
    "StagedDocument",
    "PerformanceBand",
    "PERFORMANCE_BANDS",
    "performance_band",
    "score_percentage",
    "QuizSessionState",
    "QuizSession",
]

DocumentStatus = Literal["pending", "uploading", "uploaded", "error"]

PDF_MEDIA_TYPE = "application/pdf"

NO_VALID_FILES = "Please select at least one valid PDF file."
NO_FILES_STAGED = "Please select at least one PDF file first."
NO_QUESTIONS_FRESH = (
    "No questions could be generated from these PDFs, or the data format "
    "was unexpected."
)
NO_QUESTIONS_MORE = (
    "The API returned no new questions from the PDFs, or the format was "
    "unexpected."
)


class Phase(str, Enum):
    COLLECTING_FILES = "collecting-files"
    UPLOADING = "uploading"
    GENERATING = "generating"
    ANSWERING = "answering"
    FINISHED = "finished"


@dataclass
class StagedDocument:
    """A selected file plus its upload status."""

    id: str
    document: Document
    status: DocumentStatus = "pending"
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.document.name


@dataclass(frozen=True)
class PerformanceBand:
    name: str
    minimum: int
    message: str


PERFORMANCE_BANDS: tuple[PerformanceBand, ...] = (
    PerformanceBand("excellent", 90, "Excellent work!"),
    PerformanceBand("good", 70, "Good job!"),
    PerformanceBand(
        "fair", 50, "Not bad, but there's room for improvement."
    ),
    PerformanceBand("needs-work", 0, "Keep studying and try again!"),
)


def score_percentage(score: int, total: int) -> int:
    """Round ``100 * score / total`` half up; 0 when there are no questions."""

    if total <= 0:
        return 0
    return int(math.floor(100 * score / total + 0.5))


def performance_band(percentage: int) -> PerformanceBand:
    clamped = max(0, min(100, percentage))
    for band in PERFORMANCE_BANDS:
        if clamped >= band.minimum:
            return band
    return PERFORMANCE_BANDS[-1]


@dataclass
class QuizSessionState:
    """Everything the front-end renders. Lives only in memory."""

    phase: Phase = Phase.COLLECTING_FILES
    documents: list[StagedDocument] = field(default_factory=list)
    store_handle: Optional[str] = None
    pending_batch_id: Optional[str] = None
    pending_document_ids: frozenset[str] = frozenset()
    questions: list[Question] = field(default_factory=list)
    index: int = 0
    selected: Optional[Option] = None
    answered: bool = False
    score: int = 0
    error: Optional[str] = None
    epoch: int = 0

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current(self) -> Optional[Question]:
        if 0 <= self.index < len(self.questions):
            return self.questions[self.index]
        return None

    @property
    def is_last(self) -> bool:
        return self.index >= len(self.questions) - 1


class QuizSession:
    """Drive one quiz session against a :class:`QuizBackend`."""

    def __init__(
        self,
        backend: QuizBackend,
        *,
        allowed_extensions: Sequence[str] = (".pdf",),
        logger: logging.Logger | None = None,
        rng: random.Random | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._backend = backend
        self._extensions = tuple(ext.lower() for ext in allowed_extensions)
        self._logger = logger or logging.getLogger("pdf_quiz.quizzer")
        self._rng = rng or random.Random()
        self._new_id = id_factory or (lambda: uuid.uuid4().hex[:9])
        self._state = QuizSessionState()
        self._busy: dict[str, int] = {}
        self._view_serial = 0
        self._view_key: Optional[tuple[int, int]] = None
        self._view_options: list[Option] = []

    @property
    def state(self) -> QuizSessionState:
        return self._state

    @property
    def busy(self) -> frozenset[str]:
        return frozenset(self._busy)

    @property
    def percentage(self) -> int:
        return score_percentage(self._state.score, self._state.total_questions)

    @property
    def performance_band(self) -> PerformanceBand:
        return performance_band(self.percentage)

    @property
    def current_question(self) -> Optional[Question]:
        return self._state.current

    # File selection -----------------------------------------------------

    def stage_files(self, documents: Iterable[Document]) -> list[StagedDocument]:
        """Add PDFs to the selection; anything else is skipped."""

        state = self._state
        if state.phase is not Phase.COLLECTING_FILES:
            return []
        staged = [
            StagedDocument(id=self._new_id(), document=document)
            for document in documents
            if self._is_pdf(document)
        ]
        if not staged:
            state.error = NO_VALID_FILES
            return []
        state.documents.extend(staged)
        state.error = None
        return staged

    def remove_file(self, document_id: str) -> bool:
        state = self._state
        if state.phase is not Phase.COLLECTING_FILES:
            return False
        remaining = [doc for doc in state.documents if doc.id != document_id]
        removed = len(remaining) != len(state.documents)
        state.documents = remaining
        return removed

    def _is_pdf(self, document: Document) -> bool:
        if document.media_type == PDF_MEDIA_TYPE:
            return True
        return document.has_extension(self._extensions)

    # Transitions --------------------------------------------------------

    async def start_quiz(self) -> None:
        """Upload the staged files if needed, then generate a fresh quiz."""

        state = self._state
        if self._busy or state.phase is not Phase.COLLECTING_FILES:
            return
        if not state.documents:
            state.error = NO_FILES_STAGED
            return
        epoch = state.epoch
        handle = state.store_handle
        if handle is None or any(
            doc.status != "uploaded" for doc in state.documents
        ):
            handle = await self._upload(epoch)
            if handle is None:
                return
        await self._generate(
            epoch, handle, append=False, origin=Phase.COLLECTING_FILES
        )

    async def more_questions(self) -> None:
        """Append new questions that exclude every question asked so far."""

        state = self._state
        if (
            "generate" in self._busy
            or state.phase is not Phase.FINISHED
            or state.store_handle is None
        ):
            return
        await self._generate(
            state.epoch,
            state.store_handle,
            append=True,
            origin=Phase.FINISHED,
        )

    async def restart_from_files(self) -> None:
        """Replace the question list with a fresh set from the same store."""

        state = self._state
        if (
            "generate" in self._busy
            or state.phase is not Phase.FINISHED
            or state.store_handle is None
        ):
            return
        await self._generate(
            state.epoch,
            state.store_handle,
            append=False,
            origin=Phase.FINISHED,
        )

    def reset(self) -> None:
        """Return to file selection, discarding everything else."""

        epoch = self._state.epoch + 1
        self._state = QuizSessionState(epoch=epoch)
        self._busy.clear()
        self._view_serial += 1
        self._logger.info("Session reset", extra={"epoch": epoch})

    def select_option(self, option: Option) -> bool:
        """Record the first answer for the current question.

        Later selections on an answered question are ignored, so the score
        can only move once per question.
        """

        state = self._state
        question = state.current
        if state.phase is not Phase.ANSWERING or question is None:
            return False
        if state.answered:
            return False
        if option not in question.options:
            return False
        state.selected = option
        state.answered = True
        if option.correct:
            state.score += 1
        return True

    def advance(self) -> bool:
        state = self._state
        if state.phase is not Phase.ANSWERING or not state.answered:
            return False
        if state.is_last:
            state.phase = Phase.FINISHED
            self._logger.info(
                "Quiz finished",
                extra={
                    "score": state.score,
                    "total": state.total_questions,
                },
            )
            return True
        state.index += 1
        state.selected = None
        state.answered = False
        self._view_serial += 1
        return True

    def options_for_view(self) -> list[Option]:
        """Options of the current question in this view's shuffled order.

        The order is drawn once each time a question comes on screen and
        stays fixed until the view changes.
        """

        question = self._state.current
        if question is None:
            return []
        key = (self._state.epoch, self._view_serial)
        if key != self._view_key:
            options = list(question.options)
            self._view_options = self._rng.sample(options, k=len(options))
            self._view_key = key
        return list(self._view_options)

    # Gateway calls ------------------------------------------------------

    def _is_stale(self, epoch: int, operation: str) -> bool:
        if epoch == self._state.epoch:
            return False
        self._logger.debug(
            "Discarding stale result",
            extra={
                "operation": operation,
                "epoch": epoch,
                "current_epoch": self._state.epoch,
            },
        )
        return True

    def _as_quiz_error(self, exc: Exception, operation: str) -> QuizError:
        if isinstance(exc, QuizError):
            return exc
        self._logger.exception(
            "Unexpected backend failure", extra={"operation": operation}
        )
        return UnexpectedError(str(exc) or None)

    def _release(self, operation: str, epoch: int) -> None:
        if self._busy.get(operation) == epoch:
            del self._busy[operation]

    async def _upload(self, epoch: int) -> Optional[str]:
        state = self._state
        documents = list(state.documents)
        resume = (
            state.pending_batch_id is not None
            and state.store_handle is not None
            and state.pending_document_ids
            == frozenset(doc.id for doc in documents)
        )
        state.phase = Phase.UPLOADING
        state.error = None
        for doc in documents:
            doc.status = "uploading"
            doc.error = None

        self._busy["upload"] = epoch
        try:
            if resume:
                outcome = await self._backend.check_upload(
                    state.store_handle, state.pending_batch_id
                )
            else:
                outcome = await self._backend.upload(
                    [doc.document for doc in documents]
                )
        except Exception as raw:
            if self._is_stale(epoch, "upload"):
                return None
            exc = self._as_quiz_error(raw, "upload")
            self._logger.warning(
                "Upload failed",
                extra={"code": exc.code, "error_message": exc.message},
            )
            state.phase = Phase.COLLECTING_FILES
            state.error = exc.message
            state.pending_batch_id = None
            state.pending_document_ids = frozenset()
            for doc in documents:
                doc.status = "error"
                doc.error = exc.message
            return None
        finally:
            self._release("upload", epoch)

        if self._is_stale(epoch, "upload"):
            return None
        state.store_handle = outcome.store_handle
        if not outcome.completed:
            state.pending_batch_id = outcome.batch_id
            state.pending_document_ids = frozenset(doc.id for doc in documents)
            state.phase = Phase.COLLECTING_FILES
            state.error = (
                f"{outcome.message}. Start the quiz again in a moment."
            )
            for doc in documents:
                doc.status = "pending"
            return None
        state.pending_batch_id = None
        state.pending_document_ids = frozenset()
        for doc in documents:
            doc.status = "uploaded"
        self._logger.info(
            "Documents uploaded",
            extra={
                "store_handle": outcome.store_handle,
                "files": len(documents),
            },
        )
        return outcome.store_handle

    async def _generate(
        self,
        epoch: int,
        handle: str,
        *,
        append: bool,
        origin: Phase,
    ) -> None:
        state = self._state
        exclusions = [q.question for q in state.questions] if append else []
        state.phase = Phase.GENERATING
        state.error = None

        self._busy["generate"] = epoch
        try:
            questions = await self._backend.generate(handle, exclusions)
        except Exception as raw:
            if self._is_stale(epoch, "generate"):
                return
            exc = self._as_quiz_error(raw, "generate")
            self._logger.warning(
                "Generation failed",
                extra={"code": exc.code, "error_message": exc.message},
            )
            state.phase = origin
            state.error = exc.message
            return
        finally:
            self._release("generate", epoch)

        if self._is_stale(epoch, "generate"):
            return
        if not questions:
            state.phase = origin
            state.error = NO_QUESTIONS_MORE if append else NO_QUESTIONS_FRESH
            return

        if append:
            state.index = len(state.questions)
            state.questions = [*state.questions, *questions]
        else:
            state.questions = list(questions)
            state.index = 0
            state.score = 0
        state.selected = None
        state.answered = False
        state.error = None
        state.phase = Phase.ANSWERING
        self._view_serial += 1
        self._logger.info(
            "Questions loaded",
            extra={
                "appended": append,
                "new": len(questions),
                "total": len(state.questions),
            },
        )
