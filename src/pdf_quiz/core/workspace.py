"""Data home layout for configuration and log files."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

__all__ = [
    "DATA_HOME_ENV",
    "DEFAULT_DATA_HOME",
    "WorkspaceError",
    "WorkspaceLayout",
    "ensure_workspace",
]

DATA_HOME_ENV = "PDF_QUIZ_DATA_HOME"
DEFAULT_DATA_HOME = Path.home() / ".pdf-quiz-data"

_SUBDIRS = {
    "config": "config",
    "logs": "logs",
}


class WorkspaceError(RuntimeError):
    """Raised when the data home cannot be prepared."""


@dataclass(frozen=True)
class WorkspaceLayout:
    home: Path
    directories: Mapping[str, Path]

    def path_for(self, key: str) -> Path:
        try:
            return self.directories[key]
        except KeyError as exc:
            raise KeyError(f"Unknown workspace directory '{key}'.") from exc


def ensure_workspace(
    *,
    env: Mapping[str, str] | None = None,
    path: Path | None = None,
    create: bool = True,
) -> WorkspaceLayout:
    """Resolve the data home and, when ``create`` is set, build it.

    An explicit ``path`` or ``PDF_QUIZ_DATA_HOME`` must be writable; the
    default location falls back to the temp dir on permission errors.
    """

    env_map = os.environ if env is None else env
    override = path
    if override is None:
        raw = (env_map.get(DATA_HOME_ENV) or "").strip()
        override = Path(raw) if raw else None
    base = (override or DEFAULT_DATA_HOME).expanduser()

    candidates = [base]
    if create and override is None:
        candidates.append(Path(tempfile.gettempdir()) / "pdf-quiz-data")

    last_error: Exception | None = None
    for candidate in candidates:
        try:
            return _materialize(candidate.resolve(), create=create)
        except PermissionError as exc:
            last_error = exc
    raise WorkspaceError(
        f"Unable to prepare data home at {base}: {last_error}"
    )


def _materialize(base: Path, *, create: bool) -> WorkspaceLayout:
    directories = {key: base / name for key, name in _SUBDIRS.items()}
    if base.exists() and not base.is_dir():
        raise WorkspaceError(f"Data home is not a directory: {base}")
    if create:
        base.mkdir(parents=True, exist_ok=True)
        for target in directories.values():
            target.mkdir(parents=True, exist_ok=True)
    return WorkspaceLayout(
        home=base,
        directories=MappingProxyType(directories),
    )
