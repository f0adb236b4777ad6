"""Error taxonomy shared by the gateways, the HTTP app and the session."""

from __future__ import annotations

from typing import Any, Mapping

__all__ = [
    "QuizError",
    "ValidationError",
    "NotFoundError",
    "UploadFailedError",
    "GenerationFailedError",
    "SchemaValidationError",
    "OperationTimeoutError",
    "UnexpectedError",
    "translate_provider_error",
    "error_from_payload",
]


class QuizError(RuntimeError):
    """Base class for every error surfaced to callers.

    ``message`` is stable and safe to show verbatim; ``details`` carries
    optional structured diagnostics (schema issues, provider payloads).
    """

    status_code = 500
    code = "quiz_error"
    default_message = "An unexpected error occurred."

    def __init__(
        self,
        message: str | None = None,
        *,
        details: Any = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(QuizError):
    """Bad input shape, size or count. Raised before any remote call."""

    status_code = 400
    code = "validation_error"
    default_message = "The request was invalid."


class NotFoundError(QuizError):
    """A store handle did not resolve remotely."""

    status_code = 404
    code = "not_found"
    default_message = (
        "Vector store not found or inaccessible. Please upload files again."
    )


class UploadFailedError(QuizError):
    status_code = 500
    code = "upload_failed"
    default_message = (
        "File upload batch failed. Please try again with different files."
    )


class GenerationFailedError(QuizError):
    status_code = 500
    code = "generation_failed"
    default_message = "An unexpected error occurred while generating the quiz."


class SchemaValidationError(QuizError):
    """Provider answered with data that violates the question-set rules."""

    status_code = 500
    code = "schema_validation_error"
    default_message = "Invalid quiz format generated by AI."


class OperationTimeoutError(QuizError):
    """A polled provider operation exceeded its ceiling."""

    status_code = 504
    code = "timeout"
    default_message = "The provider did not finish in time. Please retry."

    def __init__(
        self,
        message: str | None = None,
        *,
        details: Any = None,
        last_value: Any = None,
    ) -> None:
        super().__init__(message, details=details)
        self.last_value = last_value


class UnexpectedError(QuizError):
    status_code = 500
    code = "unexpected_error"


_BY_CODE: dict[str, type[QuizError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        NotFoundError,
        UploadFailedError,
        GenerationFailedError,
        SchemaValidationError,
        OperationTimeoutError,
        UnexpectedError,
    )
}

_BY_STATUS: dict[int, type[QuizError]] = {
    400: ValidationError,
    404: NotFoundError,
    504: OperationTimeoutError,
}


def translate_provider_error(
    exc: Exception,
    *,
    not_found_message: str | None = None,
) -> QuizError:
    """Map an SDK exception onto the local taxonomy.

    OpenAI API errors expose ``status_code`` and ``message``; anything else is
    reported as :class:`UnexpectedError` with its string form.
    """

    if isinstance(exc, QuizError):
        return exc
    status = getattr(exc, "status_code", None)
    text = str(getattr(exc, "message", "") or exc or "")
    if status == 404:
        return NotFoundError(not_found_message, details=text or None)
    if status == 413 or "too large" in text.lower():
        return ValidationError(
            "One or more files are too large. Please reduce file sizes and "
            "try again.",
            details=text or None,
        )
    if isinstance(status, int):
        return UnexpectedError(text or f"OpenAI API Error: {status}")
    return UnexpectedError(text or None)


def error_from_payload(status: int, payload: Mapping[str, Any]) -> QuizError:
    """Rebuild a taxonomy error from an HTTP error body."""

    message = str(payload.get("message") or "") or None
    code = payload.get("code")
    cls = _BY_CODE.get(code) if isinstance(code, str) else None
    if cls is None:
        cls = _BY_STATUS.get(status, UnexpectedError)
    return cls(message, details=payload.get("details"))
