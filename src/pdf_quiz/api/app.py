"""FastAPI surface for uploads and question generation."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..core.config import QuizConfig
from ..core.errors import QuizError, UnexpectedError, ValidationError
from ..gateway.documents import Document
from ..gateway.generation import QuestionGenerationGateway
from ..gateway.schema import quiz_payload
from ..gateway.upload import UploadGateway, UploadResult

__all__ = ["create_app"]

T = TypeVar("T")


def create_app(
    config: QuizConfig,
    *,
    upload_gateway: UploadGateway,
    generation_gateway: QuestionGenerationGateway,
    logger: logging.Logger | None = None,
) -> FastAPI:
    """Build the application around already-configured gateways."""

    log = logger or logging.getLogger("pdf_quiz.api")
    debug = config.server.debug

    app = FastAPI(title="pdf-quiz", docs_url="/docs")
    app.state.upload_gateway = upload_gateway
    app.state.generation_gateway = generation_gateway
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.server.cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    @app.exception_handler(QuizError)
    async def _quiz_error(request: Request, exc: QuizError) -> JSONResponse:
        log.error(
            "Request failed",
            extra={
                "path": request.url.path,
                "code": exc.code,
                "status": exc.status_code,
                "error_message": exc.message,
            },
        )
        return _error_response(exc, debug=debug)

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = ValidationError(
            "The request was malformed.",
            details=[str(item.get("msg", "")) for item in exc.errors()],
        )
        return await _quiz_error(request, error)

    async def _call(func: Callable[..., T], *args: Any) -> T:
        try:
            return await run_in_threadpool(func, *args)
        except QuizError:
            raise
        except Exception as exc:
            log.exception("Unexpected gateway failure")
            raise UnexpectedError(str(exc) or None) from exc

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> dict[str, Any]:
        return {"ok": True}

    @app.post("/upload")
    async def upload(
        files: Optional[List[UploadFile]] = File(None),
    ) -> JSONResponse:
        documents = []
        for item in files or []:
            documents.append(
                Document(
                    name=item.filename or "",
                    data=await item.read(),
                    media_type=item.content_type or "application/octet-stream",
                )
            )
        result = await _call(upload_gateway.upload, documents)
        return _upload_response(result)

    @app.get("/upload/{store_handle}/batches/{batch_id}")
    async def upload_status(store_handle: str, batch_id: str) -> JSONResponse:
        result = await _call(
            upload_gateway.batch_status, store_handle, batch_id
        )
        return _upload_response(result)

    @app.post("/generate")
    async def generate(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise ValidationError("Request body must be JSON.") from exc
        store_handle, existing = parse_generate_request(payload)
        questions = await _call(
            generation_gateway.generate, store_handle, existing
        )
        return JSONResponse(quiz_payload(questions))

    return app


def parse_generate_request(payload: Any) -> tuple[str, list[str]]:
    """Extract ``(store_handle, existing_questions)`` from a request body."""

    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object.")
    handle = payload.get("storeHandle") or payload.get("vectorStoreId")
    if not isinstance(handle, str) or not handle.strip():
        raise ValidationError(
            "Vector store ID is required. Please upload PDF files first."
        )
    existing = payload.get("existingQuestions")
    if existing is None:
        existing = []
    if not isinstance(existing, list) or not all(
        isinstance(item, str) for item in existing
    ):
        raise ValidationError("existingQuestions must be an array of strings.")
    return handle.strip(), list(existing)


def _upload_response(result: UploadResult) -> JSONResponse:
    if result.completed:
        return JSONResponse(
            {
                "storeHandle": result.store_handle,
                "message": result.message,
                "filesUploaded": result.files_uploaded,
                "batchId": result.batch_id,
            }
        )
    return JSONResponse(
        {
            "storeHandle": result.store_handle,
            "message": result.message,
            "batchId": result.batch_id,
            "status": result.status,
        },
        status_code=202,
    )


def _error_response(exc: QuizError, *, debug: bool) -> JSONResponse:
    body: dict[str, Any] = {"message": exc.message, "code": exc.code}
    if exc.details is not None:
        body["details"] = exc.details
    if debug:
        body["error"] = "".join(traceback.format_exception(exc))
    return JSONResponse(body, status_code=exc.status_code)
