"""
docexport - ephemeral working directories.

File: src/docexport/workspace/temp_manager.py

Purpose
- Hand out fresh, empty scratch directories to pipeline stages and dispose of
  them according to the target's retention flag.

Functional requirements
- Every acquired directory is unique within the process and lives under a
  process-private root.
- ``release(path, keep=True)`` leaves the directory in place and transfers
  ownership to the caller; otherwise it is removed recursively.
- Filesystem failures while acquiring surface as ``ConfigurationError``.
"""

from __future__ import annotations

import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from docexport.constants import TEMP_PREFIX
from docexport.errors import ConfigurationError
from docexport.utils.fs import safe_delete

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType


class TempArtifactManager:
    """Owner of every scratch directory created during one export invocation."""

    def __init__(
        self,
        temp_root: Path | None = None,
        *,
        prefix: str = TEMP_PREFIX,
        logger: Any | None = None,
    ) -> None:
        self._parent = Path(temp_root) if temp_root is not None else None
        self._prefix = prefix
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._lock = threading.Lock()
        self._root: Path | None = None
        self._owned: set[Path] = set()
        self._retained: set[Path] = set()

    @property
    def root(self) -> Path:
        with self._lock:
            return self._ensure_root()

    @property
    def owned(self) -> frozenset[Path]:
        with self._lock:
            return frozenset(self._owned)

    def acquire(self, label: str = "stage") -> Path:
        """Return a new empty directory no other caller has been given."""

        with self._lock:
            root = self._ensure_root()
            try:
                path = Path(tempfile.mkdtemp(prefix=f"{label}-", dir=root))
            except OSError as exc:
                raise ConfigurationError(
                    f"unable to create temp directory under {root}: {exc}"
                ) from exc
            self._owned.add(path)
        self._logger.debug("temp_acquired", path=path.as_posix(), label=label)
        return path

    def release(self, path: Path, *, keep: bool) -> None:
        with self._lock:
            if path not in self._owned:
                raise ValueError(f"temp directory is not owned by this manager: {path}")
            self._owned.discard(path)
            if keep:
                self._retained.add(path)
            root = self._root

        if keep:
            self._logger.info("temp_retained", path=path.as_posix())
            return
        if path.exists() and root is not None:
            safe_delete(path, root)
        self._logger.debug("temp_released", path=path.as_posix())

    @contextmanager
    def scoped(self, label: str = "stage", *, keep: bool = False) -> Iterator[Path]:
        """Acquire a directory and release it when the block exits, success or not."""

        path = self.acquire(label)
        try:
            yield path
        finally:
            self.release(path, keep=keep)

    def close(self) -> None:
        """Remove every directory still owned, and the root when nothing was retained."""

        for path in sorted(self.owned):
            self.release(path, keep=False)
        with self._lock:
            root = self._root
            retained = bool(self._retained)
            self._root = None
        if root is None or retained or not root.exists():
            return
        safe_delete(root, root.parent)

    def __enter__(self) -> TempArtifactManager:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _ensure_root(self) -> Path:
        if self._root is not None:
            return self._root
        try:
            if self._parent is not None:
                self._parent.mkdir(parents=True, exist_ok=True)
            self._root = Path(
                tempfile.mkdtemp(
                    prefix=self._prefix,
                    dir=str(self._parent) if self._parent is not None else None,
                )
            ).resolve()
        except OSError as exc:
            raise ConfigurationError(f"unable to create temp root: {exc}") from exc
        return self._root


__all__ = ["TempArtifactManager"]
