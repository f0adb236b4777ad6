"""Prompt text for the question generation collaborator."""

from __future__ import annotations

from typing import Sequence

ASSISTANT_NAME = "Quiz Generator Assistant"

FALLBACK_SYSTEM_PROMPT = (
    "You are an expert quiz generator. Create high-quality multiple-choice "
    "questions based on the provided context. Reply with a single JSON "
    "object and nothing else."
)

_RESPONSE_FORMAT = """Respond with a JSON object in exactly this format:
{
  "quiz": [
    {
      "question": "Your question text here?",
      "options": [
        {"option": "First option text", "correct": false},
        {"option": "Second option text", "correct": true},
        {"option": "Third option text", "correct": false},
        {"option": "Fourth option text", "correct": false}
      ]
    }
  ]
}"""


def assistant_instructions(count: int, options: int) -> str:
    """System instructions for the file-search assistant."""

    return (
        "You are an expert quiz generator. Your task is to create "
        "high-quality multiple-choice questions based on the content in the "
        "provided documents.\n\n"
        "Rules:\n"
        f"1. Generate exactly {count} multiple-choice questions\n"
        f"2. Each question must have exactly {options} options\n"
        "3. Each question must have exactly one correct answer\n"
        "4. Questions should test understanding, not just memorization\n"
        "5. Make sure each option is a plausible answer to avoid obvious "
        "choices\n\n"
        'You must respond with a JSON object containing a "quiz" array. Each '
        'question should have a "question" field and an "options" array '
        'where each option has "option" (string) and "correct" (boolean) '
        "properties."
    )


def user_prompt(
    count: int,
    options: int,
    existing_questions: Sequence[str],
) -> str:
    """Build the generation request, listing texts the model must not repeat."""

    amount = f"{count} MORE NEW" if existing_questions else str(count)
    parts = [
        f"Generate {amount} quiz questions based on the content of the "
        f"uploaded documents. Each question should have {options} options, "
        "with exactly one correct answer.",
        "Please analyze the documents using file search and create "
        "comprehensive quiz questions that test understanding of the key "
        "concepts, facts, and ideas presented in the materials.",
    ]
    if existing_questions:
        listed = "\n".join(f"- {text}" for text in existing_questions)
        parts.append(
            "IMPORTANT: Do NOT repeat any of the following questions that "
            f"have already been asked:\n{listed}"
        )
    parts.append(_RESPONSE_FORMAT)
    return "\n\n".join(parts)


def fallback_prompt(request: str, context: str, count: int) -> str:
    """Stricter restatement used when the first answer fails validation."""

    return (
        f"Based on the following context, {request}\n\n"
        f"Return between 1 and {count} questions. Every question needs 2 to "
        "4 options with non-empty text and exactly one option whose "
        '"correct" is true.\n\n'
        f"Context: {context}"
    )
