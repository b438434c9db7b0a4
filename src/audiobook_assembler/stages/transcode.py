"""Transcode stage -- re-encode every chapter to one uniform format.

All intermediates share codec, bitrate, sample rate, and channel layout so
the mux step can concatenate them with -c:a copy. Each output is probed
again after encoding; that measurement, not the source probe, feeds the
chapter timeline.
"""

from __future__ import annotations

import functools
import subprocess
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from loguru import logger

from ..concurrency import first_failure, wait_fail_fast
from ..errors import (
    ExternalToolError,
    ProbeError,
    TranscodeEmptyOutputError,
    TranscodeError,
    TranscodeSubprocessError,
)
from ..models import InputChapter, ProbedDuration, TranscodedChapter
from .cleanup import TempFilePool
from .probe import DurationProbe, validate_duration

log = logger.bind(stage="transcode")

# Preferred AAC encoders, best first
_AAC_ENCODERS = ("libfdk_aac", "aac_at", "aac")


@dataclass(frozen=True)
class EncodeSettings:
    codec: str = "aac"
    bitrate_kbps: int = 128
    sample_rate: int = 44100
    channels: int = 1
    threads: int = 0  # 0 = ffmpeg decides


class Encoder(Protocol):
    def encode(self, source: Path, dest: Path, settings: EncodeSettings) -> None:
        """Write ``source`` re-encoded to ``dest`` or raise TranscodeError."""
        ...


@functools.cache
def _detect_encoder(codec: str = "aac") -> str:
    """Pick the best available ffmpeg encoder for the codec family."""
    if codec != "aac":
        return codec
    try:
        result = subprocess.run(
            ["ffmpeg", "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ExternalToolError("ffmpeg", -1, str(e)) from e
    if result.returncode != 0:
        raise ExternalToolError("ffmpeg", result.returncode, result.stderr)
    available = {
        parts[1]
        for parts in (line.split() for line in result.stdout.splitlines())
        if len(parts) >= 2
    }
    for name in _AAC_ENCODERS:
        if name in available:
            log.info(f"Using {name} encoder")
            return name
    log.info("Using default aac encoder")
    return "aac"


class FFmpegEncoder:
    """Encoder backed by the ffmpeg binary."""

    def __init__(self, binary: str = "ffmpeg") -> None:
        self.binary = binary

    def command(self, source: Path, dest: Path, settings: EncodeSettings) -> list[str]:
        return [
            self.binary,
            "-y",
            "-nostdin",
            "-threads",
            str(settings.threads),
            "-i",
            str(source),
            "-vn",
            "-map",
            "0:a:0",
            "-map_metadata",
            "-1",
            "-c:a",
            _detect_encoder(settings.codec),
            "-b:a",
            f"{settings.bitrate_kbps}k",
            "-ar",
            str(settings.sample_rate),
            "-ac",
            str(settings.channels),
            # Force mp4 -- ffmpeg can't guess from the temp file suffix
            "-f",
            "ipod",
            str(dest),
        ]

    def encode(self, source: Path, dest: Path, settings: EncodeSettings) -> None:
        try:
            cmd = self.command(source, dest, settings)
            log.debug(f"ffmpeg command: {' '.join(cmd)}")
            result = subprocess.run(cmd, capture_output=True, text=True)
        except (OSError, ExternalToolError) as e:
            raise TranscodeSubprocessError(source, str(e)) from e
        if result.returncode != 0:
            raise TranscodeSubprocessError(
                source, result.stderr or f"exit code {result.returncode}"
            )


def transcode(
    chapter: InputChapter,
    settings: EncodeSettings,
    encoder: Encoder,
    prober: DurationProbe,
    pool: TempFilePool,
) -> TranscodedChapter:
    """Re-encode one chapter into the pool and re-measure its duration.

    Raises TranscodeSubprocessError if the encoder fails,
    TranscodeEmptyOutputError for a missing, zero-byte, or zero-length
    result. The temp file is removed on every failure path.
    """
    dest = pool.allocate(f"{chapter.order_index:04d}", ".m4a")
    try:
        try:
            encoder.encode(chapter.path, dest, settings)
        except TranscodeError as e:
            raise e.for_chapter(chapter.order_index)

        if not dest.is_file() or dest.stat().st_size == 0:
            raise TranscodeEmptyOutputError(
                chapter.path, "encoder wrote no data", chapter.order_index
            )

        try:
            duration = validate_duration(prober.probe(dest), dest)
        except ProbeError as e:
            raise TranscodeEmptyOutputError(
                chapter.path, f"re-probe failed: {e.reason}", chapter.order_index
            ) from e
    except BaseException:
        pool.release(dest)
        raise

    log.debug(f"{chapter.path.name} -> {dest.name} ({duration:.3f}s)")
    return TranscodedChapter(
        chapter_index=chapter.order_index,
        encoded_path=dest,
        duration=ProbedDuration(chapter_index=chapter.order_index, duration=duration),
    )


def transcode_all(
    chapters: Sequence[InputChapter],
    settings: EncodeSettings,
    encoder: Encoder,
    prober: DurationProbe,
    pool: TempFilePool,
    max_workers: int = 1,
) -> list[TranscodedChapter]:
    """Transcode every chapter on a bounded pool, results in order_index order.

    On the first failure queued jobs are cancelled, running ones are allowed
    to finish, every intermediate produced so far is released, and the
    earliest failing chapter's error is raised.
    """
    if not chapters:
        return []

    ordered = sorted(chapters, key=lambda c: c.order_index)
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [
            executor.submit(transcode, c, settings, encoder, prober, pool)
            for c in ordered
        ]
        wait_fail_fast(futures)

    produced = [
        f.result() for f in futures
        if not f.cancelled() and f.exception() is None
    ]
    failure = first_failure(futures)
    if failure is not None:
        for chapter in produced:
            chapter.release()
        log.error(f"Transcoding aborted: {failure}")
        raise failure

    return produced
