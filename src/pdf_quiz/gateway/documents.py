"""Document batches and their local validation rules."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..core.config import LimitsConfig
from ..core.errors import ValidationError

__all__ = ["Document", "load_document", "validate_batch", "format_size"]


@dataclass(frozen=True)
class Document:
    """A user-supplied file held in memory until it is handed off."""

    name: str
    data: bytes
    media_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.data)

    def has_extension(self, extensions: Sequence[str]) -> bool:
        lowered = self.name.lower()
        return any(lowered.endswith(ext) for ext in extensions)


def load_document(path: Path) -> Document:
    """Read ``path`` into memory, guessing its media type from the name."""

    media_type, _ = mimetypes.guess_type(path.name)
    return Document(
        name=path.name,
        data=path.read_bytes(),
        media_type=media_type or "application/octet-stream",
    )


def format_size(num_bytes: int) -> str:
    """Render a byte count as a short human label (``20MB``, ``512KB``)."""

    for unit, scale in (("GB", 1024**3), ("MB", 1024**2), ("KB", 1024)):
        if num_bytes >= scale:
            value = num_bytes / scale
            text = f"{value:.1f}".rstrip("0").rstrip(".")
            return f"{text}{unit}"
    return f"{num_bytes}B"


def validate_batch(
    documents: Sequence[Document], limits: LimitsConfig
) -> int:
    """Check a batch against ``limits`` and return its total size.

    Raises :class:`ValidationError` on the first violated rule.
    """

    if not documents:
        raise ValidationError(
            "No PDF files were uploaded. Please select at least one PDF file."
        )
    if len(documents) > limits.max_files:
        raise ValidationError(
            f"Too many files. Please upload a maximum of {limits.max_files} "
            "PDF files."
        )
    total = 0
    for document in documents:
        if not document.has_extension(limits.allowed_extensions):
            raise ValidationError(
                f"File {document.name} is not a PDF. Please upload only PDF "
                "files."
            )
        if document.size > limits.max_file_bytes:
            raise ValidationError(
                f"File {document.name} is too large. Maximum file size is "
                f"{format_size(limits.max_file_bytes)}."
            )
        total += document.size
    if total > limits.max_total_bytes:
        raise ValidationError(
            "Total upload size is too large. Maximum total size is "
            f"{format_size(limits.max_total_bytes)}."
        )
    return total
