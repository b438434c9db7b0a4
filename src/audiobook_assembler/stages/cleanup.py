"""Temp file pool -- owns every intermediate file a run creates.

One pool per run. Transcoded chapters, the concat list, and the metadata
file all live in the pool's directory, so reclaiming the directory on exit
removes anything a failed or cancelled job left behind.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import threading
from pathlib import Path

from loguru import logger

from ..errors import CleanupError

log = logger.bind(stage="cleanup")


class TempFilePool:
    """Per-run temporary directory with tracked file allocation.

    Safe to share between transcode worker threads.
    """

    def __init__(self, parent: Path | None = None, prefix: str = "assemble-") -> None:
        if parent is not None:
            parent.mkdir(parents=True, exist_ok=True)
        self.root = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
        self._lock = threading.Lock()
        self._paths: set[Path] = set()
        self.closed = False
        log.debug(f"Created temp pool {self.root}")

    def __enter__(self) -> TempFilePool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def allocate(self, stem: str, suffix: str = "") -> Path:
        """Reserve a unique path inside the pool. The file is created empty."""
        with self._lock:
            if self.closed:
                raise RuntimeError("temp pool already cleaned up")
            fd, name = tempfile.mkstemp(prefix=f"{stem}-", suffix=suffix, dir=self.root)
            path = Path(name)
            self._paths.add(path)
        # mkstemp hands back an open descriptor we don't need
        os.close(fd)
        return path

    def release(self, path: Path) -> bool:
        """Remove one pooled file. Failures are logged, never raised."""
        with self._lock:
            self._paths.discard(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log.warning(str(CleanupError(path, str(e))))
            return False
        return True

    @property
    def outstanding(self) -> list[Path]:
        """Pooled paths that still exist on disk."""
        with self._lock:
            return sorted(p for p in self._paths if p.exists())

    def cleanup(self) -> None:
        """Remove the pool directory and everything in it."""
        with self._lock:
            if self.closed:
                return
            self.closed = True
            self._paths.clear()

        if not self.root.exists():
            return

        shutil.rmtree(self.root, ignore_errors=True)
        if self.root.exists():
            log.warning(str(CleanupError(self.root, "directory not fully removed")))
        else:
            log.debug(f"Removed temp pool {self.root}")
