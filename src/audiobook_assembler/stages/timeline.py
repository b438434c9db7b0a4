"""Chapter timeline -- accumulate durations into contiguous markers."""

from __future__ import annotations

import math
from collections.abc import Sequence

from loguru import logger

from ..models import ChapterMarker

log = logger.bind(stage="timeline")


def build_timeline(chapters: Sequence[tuple[str, float]]) -> list[ChapterMarker]:
    """Turn ordered (title, duration) pairs into [start, end) markers.

    Each marker starts exactly where the previous one ended (the same float
    is carried forward), so the first marker starts at 0 and there are no
    gaps or overlaps. Raises ValueError for a non-positive duration.
    """
    markers: list[ChapterMarker] = []
    offset = 0.0
    for index, (title, duration) in enumerate(chapters):
        if not math.isfinite(duration) or duration <= 0:
            raise ValueError(f"Chapter {index + 1} has invalid duration {duration!r}")
        end = offset + duration
        markers.append(ChapterMarker(index=index, title=title, start=offset, end=end))
        offset = end
    return markers


def timeline_drift(markers: Sequence[ChapterMarker], total_duration: float) -> float:
    """Absolute difference between the last marker's end and the real length."""
    if not markers:
        return abs(total_duration)
    return abs(markers[-1].end - total_duration)


def check_drift(
    markers: Sequence[ChapterMarker],
    total_duration: float,
    tolerance: float,
) -> bool:
    """True if the timeline ends within tolerance of the output duration."""
    drift = timeline_drift(markers, total_duration)
    if drift > tolerance:
        log.warning(
            f"Chapter timeline ends at {markers[-1].end if markers else 0:.3f}s "
            f"but output is {total_duration:.3f}s (drift {drift:.3f}s > {tolerance}s)"
        )
        return False
    log.debug(f"Timeline drift {drift:.3f}s within {tolerance}s")
    return True
