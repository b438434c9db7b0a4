"""Core enums, constants, and data types for the audiobook assembler.

Enums:
    PipelineState -- Run state machine (discovering through done, plus failed).
    CoverFormat   -- Accepted cover image formats (jpeg, png, webp).

Dataclasses (all frozen -- created once, never mutated):
    InputChapter      -- One discovered input file and its raw title.
    ProbedDuration    -- Validated duration for one chapter.
    CleanedTitle      -- Chapter title after set-wide token cleaning.
    TranscodedChapter -- Re-encoded intermediate file; owns its temp file.
    ChapterMarker     -- [start, end) span embedded in the output container.
    CoverImage        -- Cover file selected for embedding.
    AudiobookArtifact -- Final output path plus the markers it carries.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from loguru import logger

log = logger.bind(stage="models")


class PipelineState(StrEnum):
    DISCOVERING = "discovering"
    PROBING = "probing"
    CLEANING = "cleaning"
    TRANSCODING = "transcoding"
    TIMELINE_BUILDING = "timeline_building"
    COVER_RESOLVING = "cover_resolving"
    MUXING = "muxing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES: frozenset[PipelineState] = frozenset(
    {PipelineState.DONE, PipelineState.FAILED}
)


class CoverFormat(StrEnum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"


AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".m4a",
        ".m4b",
        ".flac",
        ".ogg",
        ".opus",
        ".wma",
        ".aac",
        ".wav",
    }
)

# Extension precedence matters: cover resolution ranks by this order
COVER_EXTENSIONS: dict[str, CoverFormat] = {
    ".jpg": CoverFormat.JPEG,
    ".jpeg": CoverFormat.JPEG,
    ".png": CoverFormat.PNG,
    ".webp": CoverFormat.WEBP,
}

COVER_NAMES: tuple[str, ...] = ("cover", "folder", "front", "albumart")

# FFMETADATA chapters use a millisecond timebase
TIMEBASE_MS = 1000


@dataclass(frozen=True)
class InputChapter:
    path: Path
    raw_title: str
    order_index: int


@dataclass(frozen=True)
class ProbedDuration:
    chapter_index: int
    duration: float


@dataclass(frozen=True)
class CleanedTitle:
    chapter_index: int
    text: str


@dataclass(frozen=True)
class TranscodedChapter:
    """A re-encoded chapter stream sitting in the run's temp directory.

    The instance owns ``encoded_path``. ``release()`` removes it and is safe
    to call more than once; removal failures are logged, never raised.
    """

    chapter_index: int
    encoded_path: Path
    duration: ProbedDuration

    def release(self) -> bool:
        """Delete the encoded file. Returns True if nothing is left behind."""
        try:
            self.encoded_path.unlink(missing_ok=True)
        except OSError as e:
            log.warning(f"CleanupError: could not remove {self.encoded_path}: {e}")
            return False
        return True


@dataclass(frozen=True)
class ChapterMarker:
    index: int
    title: str
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def start_ms(self) -> int:
        return round(self.start * TIMEBASE_MS)

    @property
    def end_ms(self) -> int:
        return round(self.end * TIMEBASE_MS)


@dataclass(frozen=True)
class CoverImage:
    path: Path
    format: CoverFormat


@dataclass(frozen=True)
class AudiobookArtifact:
    """Terminal result of a successful run."""

    path: Path
    markers: tuple[ChapterMarker, ...]
    duration: float
    cover: CoverImage | None = None
    title: str = ""
