"""Exception hierarchy for the audiobook assembler.

Every failure a run can surface derives from PipelineError. Probe,
transcode, and mux errors carry the file they concern, the chapter index
when known, and the subprocess diagnostic. CleanupError is only ever
logged -- it never aborts a run.
"""

from __future__ import annotations

from pathlib import Path

# Keep diagnostics readable -- ffmpeg banners can run to many KB
STDERR_TAIL = 500


def _tail(text: str, limit: int = STDERR_TAIL) -> str:
    text = (text or "").strip()
    if len(text) > limit:
        return "..." + text[-limit:]
    return text


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    stage = ""


class ConfigError(PipelineError):
    """Invalid or missing configuration."""

    stage = "config"


class DiscoveryError(PipelineError):
    """No usable input files, or an input path is missing/unreadable."""

    stage = "discover"


class ExternalToolError(PipelineError):
    """An external subprocess (ffmpeg, ffprobe) failed."""

    def __init__(self, tool: str, exit_code: int, stderr: str) -> None:
        super().__init__(f"{tool} exited with code {exit_code}: {_tail(stderr)}")
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr


class ChapterError(PipelineError):
    """A failure tied to one file (input chapter, intermediate, or output)."""

    reason = "failed"

    def __init__(
        self,
        path: Path,
        detail: str = "",
        chapter_index: int | None = None,
    ) -> None:
        self.path = Path(path)
        self.detail = _tail(detail)
        self.chapter_index = chapter_index
        super().__init__(self._format())

    def for_chapter(self, chapter_index: int) -> ChapterError:
        """Attach a chapter index if the raiser did not know it."""
        if self.chapter_index is None:
            self.chapter_index = chapter_index
            self.args = (self._format(),)
        return self

    def _format(self) -> str:
        where = self.path.name
        if self.chapter_index is not None:
            where = f"chapter {self.chapter_index + 1} ({self.path.name})"
        message = f"{self.stage}: {where}: {self.reason}"
        if self.detail:
            message += f": {self.detail}"
        return message


class ProbeError(ChapterError):
    stage = "probe"


class ProbeUnreadableError(ProbeError):
    """ffprobe exited non-zero (missing file, corrupt stream, no binary)."""

    reason = "unreadable"


class ProbeUnparsableError(ProbeError):
    """ffprobe succeeded but printed no recognisable duration."""

    reason = "no parseable duration"


class ProbeNonPositiveError(ProbeError):
    """Parsed duration was zero, negative, or not finite."""

    reason = "non-positive duration"


class TranscodeError(ChapterError):
    stage = "transcode"


class TranscodeSubprocessError(TranscodeError):
    reason = "encoder failed"


class TranscodeEmptyOutputError(TranscodeError):
    """Encoder reported success but produced nothing usable."""

    reason = "empty output"


class MuxError(ChapterError):
    stage = "mux"


class MuxSubprocessError(MuxError):
    reason = "muxer failed"


class MuxOutputMissingError(MuxError):
    reason = "output missing or empty"


class CleanupError(ChapterError):
    """Temporary file could not be removed. Logged, never raised by a run."""

    stage = "cleanup"
    reason = "could not remove"
