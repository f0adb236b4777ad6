from .documents import Document, format_size, load_document, validate_batch
from .generation import QuestionGenerationGateway
from .schema import (
    Option,
    Question,
    QuizSet,
    parse_quiz_text,
    quiz_payload,
    validate_quiz,
)
from .upload import UploadGateway, UploadResult

__all__ = [
    "Document",
    "format_size",
    "load_document",
    "validate_batch",
    "QuestionGenerationGateway",
    "Option",
    "Question",
    "QuizSet",
    "parse_quiz_text",
    "quiz_payload",
    "validate_quiz",
    "UploadGateway",
    "UploadResult",
]
