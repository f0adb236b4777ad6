"""Upload gateway: validated documents in, remote store handle out."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from ..core.config import LimitsConfig, PollingConfig, StoreConfig
from ..core.errors import (
    OperationTimeoutError,
    QuizError,
    UploadFailedError,
    translate_provider_error,
)
from ..core.polling import poll_until
from .documents import Document, validate_batch

__all__ = ["UploadResult", "UploadGateway"]

BATCH_COMPLETED = "completed"
BATCH_IN_PROGRESS = "in_progress"
_BATCH_FAILED = frozenset({"failed", "cancelled"})
_BATCH_TERMINAL = _BATCH_FAILED | {BATCH_COMPLETED}


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a successful or still-pending batch attach."""

    store_handle: str
    batch_id: str
    files_uploaded: int
    status: str
    message: str

    @property
    def completed(self) -> bool:
        return self.status == BATCH_COMPLETED


class UploadGateway:
    """Create a vector store, upload each document and attach them as a batch.

    Any failure after the store exists rolls back every uploaded file and the
    store itself. A batch still running when the polling ceiling passes is
    reported as ``in_progress`` and left untouched so callers can re-check it
    with :meth:`batch_status`.
    """

    def __init__(
        self,
        client: Any,
        *,
        limits: LimitsConfig,
        store: StoreConfig,
        polling: PollingConfig,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._limits = limits
        self._store = store
        self._polling = polling
        self._logger = logger or logging.getLogger("pdf_quiz.gateway.upload")
        self._sleep = sleep
        self._clock = clock
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def limits(self) -> LimitsConfig:
        return self._limits

    def upload(self, documents: Sequence[Document]) -> UploadResult:
        total_bytes = validate_batch(documents, self._limits)
        self._logger.info(
            "Validated upload batch",
            extra={"file_count": len(documents), "total_bytes": total_bytes},
        )

        store_id = self._create_store()
        file_ids: list[str] = []
        try:
            for document in documents:
                file_ids.append(self._upload_file(document))
            batch = self._attach_batch(store_id, file_ids)
        except Exception as exc:
            self._rollback(store_id, file_ids)
            if isinstance(exc, QuizError):
                raise
            raise translate_provider_error(exc) from exc

        try:
            batch = self._await_batch(store_id, batch)
        except OperationTimeoutError as exc:
            last = exc.last_value if exc.last_value is not None else batch
            self._logger.warning(
                "Batch attach still running after polling ceiling",
                extra={"store_id": store_id, "batch_id": last.id},
            )
            return self._result(store_id, last, len(documents))
        except Exception as exc:
            self._rollback(store_id, file_ids)
            raise translate_provider_error(exc) from exc

        if batch.status in _BATCH_FAILED:
            self._logger.error(
                "Batch attach failed",
                extra={
                    "store_id": store_id,
                    "batch_id": batch.id,
                    "status": batch.status,
                },
            )
            self._rollback(store_id, file_ids)
            raise UploadFailedError(
                details={"batch_id": batch.id, "status": batch.status}
            )
        return self._result(store_id, batch, len(documents))

    def batch_status(self, store_handle: str, batch_id: str) -> UploadResult:
        """Re-check a batch previously reported as in progress."""

        try:
            batch = self._client.vector_stores.file_batches.retrieve(
                batch_id,
                vector_store_id=store_handle,
            )
        except Exception as exc:
            raise translate_provider_error(exc) from exc
        if batch.status in _BATCH_FAILED:
            self._logger.error(
                "Batch attach failed on re-check",
                extra={
                    "store_id": store_handle,
                    "batch_id": batch.id,
                    "status": batch.status,
                },
            )
            self._rollback(
                store_handle, self._batch_file_ids(store_handle, batch_id)
            )
            raise UploadFailedError(
                details={"batch_id": batch.id, "status": batch.status}
            )
        return self._result(store_handle, batch, _file_count(batch))

    def _create_store(self) -> str:
        name = f"{self._store.name_prefix} - {self._now().isoformat()}"
        try:
            store = self._client.vector_stores.create(
                name=name,
                expires_after={
                    "anchor": "last_active_at",
                    "days": self._store.expires_after_days,
                },
            )
        except Exception as exc:
            raise translate_provider_error(exc) from exc
        self._logger.info(
            "Created vector store", extra={"store_id": store.id, "name": name}
        )
        return store.id

    def _upload_file(self, document: Document) -> str:
        try:
            uploaded = self._client.files.create(
                file=(document.name, document.data, document.media_type),
                purpose="assistants",
            )
        except Exception as exc:
            self._logger.error(
                "Failed to upload file",
                extra={"file_name": document.name, "error": str(exc)},
            )
            raise UploadFailedError(
                f"Failed to upload file {document.name}. Please try again."
            ) from exc
        self._logger.info(
            "Uploaded file",
            extra={
                "file_name": document.name,
                "file_id": uploaded.id,
                "size": document.size,
            },
        )
        return uploaded.id

    def _attach_batch(self, store_id: str, file_ids: Sequence[str]) -> Any:
        try:
            return self._client.vector_stores.file_batches.create(
                vector_store_id=store_id,
                file_ids=list(file_ids),
            )
        except Exception as exc:
            self._logger.error(
                "Failed to attach files to vector store",
                extra={"store_id": store_id, "error": str(exc)},
            )
            raise UploadFailedError(
                "Failed to attach the uploaded files to the vector store. "
                "Please try again."
            ) from exc

    def _batch_file_ids(self, store_id: str, batch_id: str) -> list[str]:
        try:
            page = self._client.vector_stores.file_batches.list_files(
                batch_id,
                vector_store_id=store_id,
                limit=100,
            )
        except Exception as exc:
            self._logger.warning(
                "Failed to list batch files for rollback",
                extra={"batch_id": batch_id, "error": str(exc)},
            )
            return []
        return [item.id for item in page.data]

    def _await_batch(self, store_id: str, batch: Any) -> Any:
        if batch.status in _BATCH_TERMINAL:
            return batch
        batch_id = batch.id
        return poll_until(
            lambda: self._client.vector_stores.file_batches.retrieve(
                batch_id,
                vector_store_id=store_id,
            ),
            lambda current: current.status in _BATCH_TERMINAL,
            timeout_seconds=self._polling.upload_timeout_seconds,
            initial_interval=self._polling.initial_interval_seconds,
            max_interval=self._polling.max_interval_seconds,
            backoff=self._polling.backoff,
            description="file batch attach",
            sleep=self._sleep,
            clock=self._clock,
        )

    def _rollback(self, store_id: str, file_ids: Sequence[str]) -> None:
        for file_id in file_ids:
            try:
                self._client.files.delete(file_id)
            except Exception as exc:
                self._logger.warning(
                    "Failed to delete uploaded file during rollback",
                    extra={"file_id": file_id, "error": str(exc)},
                )
        try:
            self._client.vector_stores.delete(store_id)
        except Exception as exc:
            self._logger.warning(
                "Failed to delete vector store during rollback",
                extra={"store_id": store_id, "error": str(exc)},
            )

    def _result(self, store_id: str, batch: Any, count: int) -> UploadResult:
        if batch.status == BATCH_COMPLETED:
            message = (
                f"Successfully uploaded {count} PDF files to vector store."
            )
            status = BATCH_COMPLETED
        else:
            message = (
                f"File upload is still in progress. Status: {batch.status}"
            )
            status = BATCH_IN_PROGRESS
        self._logger.info(
            "Batch attach status",
            extra={
                "store_id": store_id,
                "batch_id": batch.id,
                "status": batch.status,
            },
        )
        return UploadResult(
            store_handle=store_id,
            batch_id=batch.id,
            files_uploaded=count,
            status=status,
            message=message,
        )


def _file_count(batch: Any) -> int:
    counts = getattr(batch, "file_counts", None)
    total = getattr(counts, "total", None)
    return int(total) if isinstance(total, int) else 0
