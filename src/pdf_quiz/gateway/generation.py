"""Question generation gateway.

Generation runs through a file-search assistant bound to the caller's vector
store. The assistant and its thread only live for one request: both are
deleted once a response (or an error) is in hand.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Sequence

from ..core.config import GenerationConfig, OpenAIConfig, PollingConfig
from ..core.errors import (
    GenerationFailedError,
    NotFoundError,
    QuizError,
    SchemaValidationError,
    ValidationError,
    translate_provider_error,
)
from ..core.polling import poll_until
from . import prompts
from .schema import Question, parse_quiz_text

__all__ = ["QuestionGenerationGateway"]

RUN_COMPLETED = "completed"
_RUN_TERMINAL = frozenset(
    {
        RUN_COMPLETED,
        "failed",
        "cancelled",
        "expired",
        "incomplete",
        "requires_action",
    }
)


class QuestionGenerationGateway:
    """Request a validated question set for a store handle."""

    def __init__(
        self,
        client: Any,
        *,
        provider: OpenAIConfig,
        generation: GenerationConfig,
        polling: PollingConfig,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._provider = provider
        self._generation = generation
        self._polling = polling
        self._logger = logger or logging.getLogger(
            "pdf_quiz.gateway.generation"
        )
        self._sleep = sleep
        self._clock = clock

    def generate(
        self,
        store_handle: str,
        existing_questions: Sequence[str] = (),
    ) -> list[Question]:
        """Return 1-10 new questions, avoiding ``existing_questions``.

        Raises :class:`NotFoundError` for an unknown handle,
        :class:`ValidationError` for a store without documents,
        :class:`OperationTimeoutError` when the run outlives its ceiling and
        :class:`SchemaValidationError` when neither the assistant answer nor
        the fallback satisfies the schema.
        """

        self._ensure_store(store_handle)
        count = self._generation.question_count
        request = prompts.user_prompt(
            count,
            self._generation.options_per_question,
            existing_questions,
        )

        assistant_id: Optional[str] = None
        thread_id: Optional[str] = None
        try:
            assistant = self._client.beta.assistants.create(
                name=prompts.ASSISTANT_NAME,
                instructions=prompts.assistant_instructions(
                    count, self._generation.options_per_question
                ),
                model=self._provider.model,
                tools=[{"type": "file_search"}],
                tool_resources={
                    "file_search": {"vector_store_ids": [store_handle]}
                },
            )
            assistant_id = assistant.id
            thread = self._client.beta.threads.create()
            thread_id = thread.id
            self._client.beta.threads.messages.create(
                thread_id,
                role="user",
                content=request,
            )
            run = self._client.beta.threads.runs.create(
                thread_id=thread_id,
                assistant_id=assistant_id,
            )
            run = self._await_run(thread_id, run)
            self._logger.info(
                "Generation run finished",
                extra={
                    "store_id": store_handle,
                    "run_id": run.id,
                    "status": run.status,
                    "excluded": len(existing_questions),
                },
            )
            if run.status != RUN_COMPLETED:
                raise GenerationFailedError(
                    f"Assistant run failed with status: {run.status}"
                )
            text = self._assistant_text(thread_id)
            try:
                questions = parse_quiz_text(text)
            except SchemaValidationError as exc:
                self._logger.warning(
                    "Assistant response failed validation; using fallback",
                    extra={"store_id": store_handle, "reason": exc.message},
                )
                questions = self._fallback(request, text)
        except QuizError:
            raise
        except Exception as exc:
            raise translate_provider_error(exc) from exc
        finally:
            self._cleanup(assistant_id, thread_id)

        self._logger.info(
            "Generated questions",
            extra={"store_id": store_handle, "count": len(questions)},
        )
        return questions

    def _ensure_store(self, store_handle: str) -> None:
        try:
            self._client.vector_stores.retrieve(store_handle)
        except Exception as exc:
            if getattr(exc, "status_code", None) in (400, 404):
                raise NotFoundError(details=str(exc)) from exc
            raise translate_provider_error(exc) from exc
        try:
            files = self._client.vector_stores.files.list(
                store_handle, limit=1
            )
        except Exception as exc:
            raise translate_provider_error(exc) from exc
        if not list(getattr(files, "data", None) or []):
            raise ValidationError(
                "No files found in the vector store. Please upload PDF files "
                "first."
            )

    def _await_run(self, thread_id: str, run: Any) -> Any:
        if run.status in _RUN_TERMINAL:
            return run
        run_id = run.id
        return poll_until(
            lambda: self._client.beta.threads.runs.retrieve(
                run_id,
                thread_id=thread_id,
            ),
            lambda current: current.status in _RUN_TERMINAL,
            timeout_seconds=self._polling.generation_timeout_seconds,
            initial_interval=self._polling.initial_interval_seconds,
            max_interval=self._polling.max_interval_seconds,
            backoff=self._polling.backoff,
            description="question generation",
            sleep=self._sleep,
            clock=self._clock,
        )

    def _assistant_text(self, thread_id: str) -> str:
        page = self._client.beta.threads.messages.list(
            thread_id, order="desc", limit=10
        )
        for message in getattr(page, "data", None) or []:
            if message.role != "assistant":
                continue
            parts = [
                block.text.value
                for block in message.content or []
                if getattr(block, "type", None) == "text"
            ]
            if parts:
                return "\n".join(parts)
        raise GenerationFailedError("No response from assistant")

    def _fallback(self, request: str, context: str) -> list[Question]:
        try:
            response = self._client.chat.completions.create(
                model=self._provider.fallback_model,
                messages=[
                    {
                        "role": "system",
                        "content": prompts.FALLBACK_SYSTEM_PROMPT,
                    },
                    {
                        "role": "user",
                        "content": prompts.fallback_prompt(
                            request,
                            context,
                            self._generation.question_count,
                        ),
                    },
                ],
                response_format={"type": "json_object"},
                temperature=self._provider.temperature,
                max_tokens=self._provider.max_output_tokens,
            )
        except Exception as exc:
            raise SchemaValidationError(
                "Failed to generate structured quiz response",
                details=str(exc),
            ) from exc
        content = response.choices[0].message.content or ""
        return parse_quiz_text(content)

    def _cleanup(
        self, assistant_id: Optional[str], thread_id: Optional[str]
    ) -> None:
        if assistant_id is not None:
            try:
                self._client.beta.assistants.delete(assistant_id)
            except Exception as exc:
                self._logger.warning(
                    "Failed to delete assistant",
                    extra={"assistant_id": assistant_id, "error": str(exc)},
                )
        if thread_id is not None:
            try:
                self._client.beta.threads.delete(thread_id)
            except Exception as exc:
                self._logger.warning(
                    "Failed to delete thread",
                    extra={"thread_id": thread_id, "error": str(exc)},
                )
