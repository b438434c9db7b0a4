"""Probe stage -- validated per-chapter durations.

Durations measured here are advisory: they drive the time estimate shown
before encoding. The timeline is built from post-encode measurements.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Protocol

from loguru import logger

from ..concurrency import first_failure, wait_fail_fast
from ..errors import ProbeError, ProbeNonPositiveError
from ..models import InputChapter, ProbedDuration

log = logger.bind(stage="probe")


class DurationProbe(Protocol):
    def probe(self, path: Path) -> float:
        """Return the duration of ``path`` in seconds or raise ProbeError."""
        ...


def validate_duration(
    value: float,
    path: Path,
    chapter_index: int | None = None,
) -> float:
    """Reject zero, negative, NaN, and infinite durations."""
    if not math.isfinite(value) or value <= 0:
        raise ProbeNonPositiveError(path, f"got {value!r}", chapter_index)
    return value


def probe_chapter(chapter: InputChapter, prober: DurationProbe) -> ProbedDuration:
    """Probe one chapter, tagging any failure with its index."""
    try:
        value = prober.probe(chapter.path)
    except ProbeError as e:
        e.for_chapter(chapter.order_index)
        raise
    duration = validate_duration(value, chapter.path, chapter.order_index)
    log.debug(f"{chapter.path.name}: {duration:.3f}s")
    return ProbedDuration(chapter_index=chapter.order_index, duration=duration)


def probe_all(
    chapters: Sequence[InputChapter],
    prober: DurationProbe,
    max_workers: int = 1,
) -> list[ProbedDuration]:
    """Probe every chapter on a bounded pool, results in input order.

    Fail-fast: as soon as one probe fails the queued probes are cancelled,
    and once the running ones settle the earliest failing chapter (by
    input order) is raised. No retries.
    """
    if not chapters:
        return []

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [executor.submit(probe_chapter, c, prober) for c in chapters]
        wait_fail_fast(futures)

    failure = first_failure(futures)
    if failure is not None:
        raise failure
    return [future.result() for future in futures]
