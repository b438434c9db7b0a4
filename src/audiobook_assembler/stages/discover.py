"""Discovery stage -- turns the CLI sources into an ordered chapter list."""

from __future__ import annotations

import os
import re
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from ..errors import DiscoveryError
from ..ffprobe import get_tags
from ..models import AUDIO_EXTENSIONS, COVER_EXTENSIONS, InputChapter

log = logger.bind(stage="discover")


def _natural_sort_key(p: Path) -> list:
    """Extract numeric/text parts for natural sorting of paths."""
    return [
        int(c) if c.isdigit() else c.lower()
        for c in re.split(r"(\d+)", p.as_posix())
    ]


def _is_audio(path: Path) -> bool:
    return path.suffix.lower() in AUDIO_EXTENSIONS


def _check_readable(path: Path) -> None:
    if not path.is_file():
        raise DiscoveryError(f"Input file not found: {path}")
    if not os.access(path, os.R_OK):
        raise DiscoveryError(f"Input file is not readable: {path}")


def _raw_title(path: Path, title_source: str) -> str:
    if title_source == "tags":
        title = get_tags(path).get("title", "").strip()
        if title:
            return title
        log.debug(f"No title tag in {path.name}, using filename")
    return path.stem


def collect_audio_files(
    sources: Sequence[Path],
    exclude: Sequence[Path] = (),
) -> list[Path]:
    """Resolve sources into an ordered list of audio files.

    A single directory is walked recursively and natural-sorted by path
    relative to it, so CD1/ files come before CD2/ files.
    Explicit files keep the order they were given in. Paths in exclude
    (e.g. the output file) are skipped when walking a directory.
    """
    if not sources:
        raise DiscoveryError("No input paths given")

    if len(sources) == 1 and sources[0].is_dir():
        root = sources[0]
        skip = {p.resolve() for p in exclude}
        found = [
            f for f in root.rglob("*")
            if f.is_file() and _is_audio(f) and f.resolve() not in skip
        ]
        if not found:
            raise DiscoveryError(f"No audio files found in {root}")
        found.sort(key=lambda f: _natural_sort_key(f.relative_to(root)))
        log.debug(f"Found {len(found)} audio files under {root}")
        return found

    files: list[Path] = []
    for source in sources:
        if source.is_dir():
            raise DiscoveryError(
                f"{source} is a directory; pass one directory or a list of files"
            )
        if not _is_audio(source):
            raise DiscoveryError(f"Unsupported audio file type: {source}")
        files.append(source)
    return files


def discover_chapters(
    sources: Sequence[Path],
    title_source: str = "filename",
    exclude: Sequence[Path] = (),
) -> list[InputChapter]:
    """Build the immutable, ordered chapter list for a run.

    order_index is assigned here and is the only ordering used downstream.
    Raises DiscoveryError for empty input or missing/unreadable files.
    """
    files = collect_audio_files([Path(s) for s in sources], [Path(p) for p in exclude])
    chapters = []
    for index, path in enumerate(files):
        _check_readable(path)
        chapters.append(
            InputChapter(
                path=path.resolve(),
                raw_title=_raw_title(path, title_source),
                order_index=index,
            )
        )
    log.info(f"Discovered {len(chapters)} chapters")
    return chapters


def cover_candidates(directory: Path) -> list[Path]:
    """Image files sitting directly in the book directory."""
    if not directory.is_dir():
        return []
    return sorted(
        f for f in directory.iterdir()
        if f.is_file() and f.suffix.lower() in COVER_EXTENSIONS
    )
