"""Pydantic schema for generated question sets.

A set holds 1-10 questions; each question has 2-4 options with non-empty
text and exactly one option flagged correct.
"""

from __future__ import annotations

import json
import re
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, StrictBool, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import SchemaValidationError

__all__ = [
    "Option",
    "Question",
    "QuizSet",
    "validate_quiz",
    "parse_quiz_text",
    "quiz_payload",
]

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class Option(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    option: str = Field(min_length=1)
    correct: StrictBool


class Question(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    question: str = Field(min_length=1)
    options: tuple[Option, ...] = Field(min_length=2, max_length=4)

    @model_validator(mode="after")
    def _one_correct_option(self) -> "Question":
        correct = sum(1 for option in self.options if option.correct)
        if correct != 1:
            raise ValueError(
                "A question must have exactly one correct option "
                f"(found {correct})."
            )
        return self

    @property
    def correct_option(self) -> Option:
        return next(option for option in self.options if option.correct)


class QuizSet(BaseModel):
    quiz: List[Question] = Field(min_length=1, max_length=10)


def _summarize_errors(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": str(error.get("msg", "")),
        }
        for error in exc.errors()
    ]


def validate_quiz(payload: Any) -> list[Question]:
    """Validate a decoded ``{"quiz": [...]}`` payload."""

    try:
        quiz_set = QuizSet.model_validate(payload)
    except PydanticValidationError as exc:
        raise SchemaValidationError(details=_summarize_errors(exc)) from exc
    return list(quiz_set.quiz)


def parse_quiz_text(text: str) -> list[Question]:
    """Decode provider text and validate it as a question set.

    Models often wrap JSON in prose or code fences, so the outermost
    ``{...}`` span is parsed when present.
    """

    content = (text or "").strip()
    if not content:
        raise SchemaValidationError(
            "The provider returned an empty response.",
        )
    match = _JSON_OBJECT.search(content)
    candidate = match.group(0) if match else content
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise SchemaValidationError(
            "The provider response was not valid JSON.",
            details=str(exc),
        ) from exc
    return validate_quiz(payload)


def quiz_payload(questions: List[Question]) -> dict[str, Any]:
    """Serialize questions into the ``{"quiz": [...]}`` wire shape."""

    return {"quiz": [question.model_dump(mode="json") for question in questions]}
