"""Plain-text document persistence for checklists and progress snapshots."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol


class DocumentNotFoundError(RuntimeError):
    """Raised when a requested document does not exist."""


class DocumentStoreError(RuntimeError):
    """Raised when a document cannot be read or written."""


class DocumentStore(Protocol):
    """Protocol for the minimal read/write API used by the tracking core."""

    def read_text(self, path: Path) -> str:
        ...

    def write_text(self, path: Path, text: str) -> None:
        ...


class FileDocumentStore:
    """Read and write UTF-8 documents on the local filesystem.

    Relative paths are resolved against ``root``. Writes go through a temporary
    file in the target directory followed by an atomic replace, so readers never
    observe a half-written snapshot.
    """

    def __init__(self, root: Path | str | None = None) -> None:
        self._root = Path(root) if root is not None else None

    def _resolve(self, path: Path | str) -> Path:
        candidate = Path(path)
        if self._root is not None and not candidate.is_absolute():
            candidate = self._root / candidate
        return candidate

    def read_text(self, path: Path | str) -> str:
        target = self._resolve(path)
        try:
            with target.open("r", encoding="utf-8", newline="") as handle:
                return handle.read()
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(f"Document not found: {target}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentStoreError(f"Failed to read {target}: {exc}") from exc

    def write_text(self, path: Path | str, text: str) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                    handle.write(text)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise DocumentStoreError(f"Failed to write {target}: {exc}") from exc


__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "DocumentStoreError",
    "FileDocumentStore",
]
