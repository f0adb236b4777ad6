"""Backends the quiz session uses to reach the two gateways.

``LocalQuizBackend`` calls the gateways in-process on a worker thread;
``HttpQuizBackend`` talks to a running ``pdf-quiz serve`` instance.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from ..core.errors import UnexpectedError, error_from_payload
from ..gateway.documents import Document
from ..gateway.generation import QuestionGenerationGateway
from ..gateway.schema import Question, validate_quiz
from ..gateway.upload import BATCH_COMPLETED, UploadGateway, UploadResult

__all__ = [
    "UploadOutcome",
    "QuizBackend",
    "LocalQuizBackend",
    "HttpQuizBackend",
]


@dataclass(frozen=True)
class UploadOutcome:
    store_handle: str
    batch_id: str
    status: str
    message: str
    files_uploaded: int = 0

    @property
    def completed(self) -> bool:
        return self.status == BATCH_COMPLETED

    @classmethod
    def from_result(cls, result: UploadResult) -> "UploadOutcome":
        return cls(
            store_handle=result.store_handle,
            batch_id=result.batch_id,
            status=result.status,
            message=result.message,
            files_uploaded=result.files_uploaded,
        )


class QuizBackend(Protocol):
    """Asynchronous access to upload and generation."""

    async def upload(self, documents: Sequence[Document]) -> UploadOutcome:
        """Upload a batch and return its store handle."""

    async def check_upload(
        self, store_handle: str, batch_id: str
    ) -> UploadOutcome:
        """Re-check a batch that was still attaching."""

    async def generate(
        self, store_handle: str, existing_questions: Sequence[str]
    ) -> list[Question]:
        """Return a validated question set for ``store_handle``."""

    async def aclose(self) -> None:
        """Release any connections the backend holds."""


class LocalQuizBackend:
    def __init__(
        self,
        upload_gateway: UploadGateway,
        generation_gateway: QuestionGenerationGateway,
    ) -> None:
        self._upload = upload_gateway
        self._generation = generation_gateway

    async def aclose(self) -> None:
        return None

    async def upload(self, documents: Sequence[Document]) -> UploadOutcome:
        result = await asyncio.to_thread(self._upload.upload, list(documents))
        return UploadOutcome.from_result(result)

    async def check_upload(
        self, store_handle: str, batch_id: str
    ) -> UploadOutcome:
        result = await asyncio.to_thread(
            self._upload.batch_status, store_handle, batch_id
        )
        return UploadOutcome.from_result(result)

    async def generate(
        self, store_handle: str, existing_questions: Sequence[str]
    ) -> list[Question]:
        return await asyncio.to_thread(
            self._generation.generate,
            store_handle,
            list(existing_questions),
        )


class HttpQuizBackend:
    """Client for the ``/upload`` and ``/generate`` endpoints.

    Error bodies are turned back into the same exception types the gateways
    raise, and question sets are re-validated before they are returned.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 180.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise UnexpectedError(
                f"Could not reach the quiz server: {exc}"
            ) from exc

    async def upload(self, documents: Sequence[Document]) -> UploadOutcome:
        files = [
            ("files", (doc.name, doc.data, doc.media_type))
            for doc in documents
        ]
        response = await self._send("POST", "/upload", files=files)
        return _outcome(_json_or_raise(response))

    async def check_upload(
        self, store_handle: str, batch_id: str
    ) -> UploadOutcome:
        response = await self._send(
            "GET", f"/upload/{store_handle}/batches/{batch_id}"
        )
        return _outcome(_json_or_raise(response))

    async def generate(
        self, store_handle: str, existing_questions: Sequence[str]
    ) -> list[Question]:
        response = await self._send(
            "POST",
            "/generate",
            json={
                "storeHandle": store_handle,
                "existingQuestions": list(existing_questions),
            },
        )
        return validate_quiz(_json_or_raise(response))


def _json_or_raise(response: httpx.Response) -> Any:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if response.is_success:
        if payload is None:
            raise UnexpectedError("The server returned an unreadable response.")
        return payload
    if not isinstance(payload, dict):
        payload = {"message": response.reason_phrase or None}
    raise error_from_payload(response.status_code, payload)


def _outcome(payload: Any) -> UploadOutcome:
    if not isinstance(payload, dict) or not payload.get("storeHandle"):
        raise UnexpectedError(
            "The server returned an upload response without a store handle."
        )
    return UploadOutcome(
        store_handle=str(payload.get("storeHandle", "")),
        batch_id=str(payload.get("batchId", "")),
        status=str(payload.get("status", BATCH_COMPLETED)),
        message=str(payload.get("message", "")),
        files_uploaded=int(payload.get("filesUploaded", 0) or 0),
    )
