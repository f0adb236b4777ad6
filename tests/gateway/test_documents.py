from __future__ import annotations

from dataclasses import replace

import pytest

from fixtures import pdf_bytes
from pdf_quiz.core.config import MIB
from pdf_quiz.core.errors import ValidationError
from pdf_quiz.gateway.documents import (
    Document,
    format_size,
    load_document,
    validate_batch,
)


def _doc(name: str = "notes.pdf", size: int = 64) -> Document:
    return Document(name=name, data=pdf_bytes(size))


def test_validate_batch_returns_total_size(config):
    total = validate_batch([_doc("a.pdf", 100), _doc("b.PDF", 50)], config.limits)

    assert total == 150


@pytest.mark.parametrize(
    "documents, message",
    [
        ([], "No PDF files were uploaded"),
        ([_doc(f"{i}.pdf") for i in range(11)], "maximum of 10 PDF files"),
        ([_doc("a.pdf"), _doc("notes.txt")], "File notes.txt is not a PDF"),
    ],
)
def test_validate_batch_rejects(config, documents, message):
    with pytest.raises(ValidationError, match=message):
        validate_batch(documents, config.limits)


def test_validate_batch_rejects_oversized_file(config):
    big = _doc("big.pdf", 21 * MIB)

    with pytest.raises(ValidationError) as excinfo:
        validate_batch([big], config.limits)

    assert excinfo.value.message == (
        "File big.pdf is too large. Maximum file size is 20MB."
    )


def test_validate_batch_rejects_total_over_limit(config):
    limits = replace(config.limits, max_file_bytes=100, max_total_bytes=150)

    with pytest.raises(ValidationError, match="Maximum total size is 150B"):
        validate_batch([_doc("a.pdf", 100), _doc("b.pdf", 100)], limits)


def test_has_extension_is_case_insensitive():
    assert _doc("REPORT.PDF").has_extension((".pdf",))
    assert not _doc("report.pdf.txt").has_extension((".pdf",))


@pytest.mark.parametrize(
    "size, label",
    [(512, "512B"), (2048, "2KB"), (20 * MIB, "20MB"), (1536 * 1024, "1.5MB")],
)
def test_format_size(size, label):
    assert format_size(size) == label


def test_load_document_guesses_media_type(workspace):
    pdf = workspace.pdf("notes.pdf", size=32)
    text = workspace.write("notes.txt", "plain text")

    loaded = load_document(pdf)
    other = load_document(text)

    assert loaded.name == "notes.pdf"
    assert loaded.media_type == "application/pdf"
    assert loaded.size == 32
    assert other.media_type == "text/plain"
