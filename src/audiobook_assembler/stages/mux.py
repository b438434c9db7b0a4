"""Mux stage -- concatenate transcoded chapters into the final M4B.

Generates two inputs for one ffmpeg run:
1. files.txt -- ffmpeg concat demuxer file (transcoded chapters, in order)
2. metadata.txt -- FFMETADATA1 chapter file, one [CHAPTER] per marker

Audio is stream-copied (every chapter was already encoded to the same
format). The output is written next to the destination as <name>.tmp and
only renamed into place once it exists and is non-empty.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from loguru import logger

from ..errors import MuxOutputMissingError, MuxSubprocessError
from ..ffprobe import count_chapters
from ..models import (
    AudiobookArtifact,
    ChapterMarker,
    CoverFormat,
    CoverImage,
    TranscodedChapter,
)
from .cleanup import TempFilePool

log = logger.bind(stage="mux")

_FFMETADATA_SPECIAL = ("\\", "=", ";", "#", "\n")


class Muxer(Protocol):
    def mux(
        self,
        inputs: Sequence[Path],
        metadata: str,
        cover: CoverImage | None,
        dest: Path,
        pool: TempFilePool,
    ) -> None:
        """Write the concatenated container to ``dest`` or raise MuxError."""
        ...


def escape_ffmetadata(value: str) -> str:
    """Escape a tag value for an FFMETADATA1 file."""
    for ch in _FFMETADATA_SPECIAL:
        value = value.replace(ch, "\\" + ch)
    return value


def render_concat_list(paths: Sequence[Path]) -> str:
    """ffmpeg concat demuxer listing, single quotes escaped as '\\''."""
    lines = []
    for path in paths:
        escaped_path = str(path).replace("'", "'\\''")
        lines.append(f"file '{escaped_path}'")
    return "\n".join(lines) + "\n"


def render_ffmetadata(
    markers: Sequence[ChapterMarker],
    title: str,
    artist: str | None = None,
) -> str:
    """Build the FFMETADATA1 payload: global tags, then one block per marker."""
    lines = [";FFMETADATA1", f"title={escape_ffmetadata(title)}"]
    if artist:
        lines.append(f"artist={escape_ffmetadata(artist)}")
        lines.append(f"album_artist={escape_ffmetadata(artist)}")
    lines.extend([f"album={escape_ffmetadata(title)}", "genre=Audiobook", ""])

    for marker in markers:
        lines.extend(
            [
                "[CHAPTER]",
                "TIMEBASE=1/1000",
                f"START={marker.start_ms}",
                f"END={marker.end_ms}",
                f"title={escape_ffmetadata(marker.title)}",
                "",
            ]
        )
    return "\n".join(lines)


class FFmpegMuxer:
    """Muxer backed by the ffmpeg binary."""

    def __init__(self, binary: str = "ffmpeg", verify_chapters: bool = True) -> None:
        self.binary = binary
        self.verify_chapters = verify_chapters

    def command(
        self,
        files_txt: Path,
        metadata_txt: Path,
        cover: CoverImage | None,
        dest: Path,
    ) -> list[str]:
        cmd = [
            self.binary,
            "-y",
            "-nostdin",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(files_txt),
        ]
        if cover:
            cmd.extend(["-i", str(cover.path)])
        metadata_index = "2" if cover else "1"
        cmd.extend(["-i", str(metadata_txt)])

        cmd.extend(["-map", "0:a"])
        if cover:
            cmd.extend(["-map", "1:v"])
        cmd.extend(
            [
                "-map_metadata",
                metadata_index,
                "-map_chapters",
                metadata_index,
                "-c:a",
                "copy",
            ]
        )
        if cover:
            # The ipod muxer only takes JPEG artwork
            video_codec = "copy" if cover.format == CoverFormat.JPEG else "mjpeg"
            cmd.extend(["-c:v", video_codec, "-disposition:v:0", "attached_pic"])

        # Force ipod/m4b format -- ffmpeg can't guess from .m4b.tmp extension
        cmd.extend(["-movflags", "+faststart", "-f", "ipod", str(dest)])
        return cmd

    def mux(
        self,
        inputs: Sequence[Path],
        metadata: str,
        cover: CoverImage | None,
        dest: Path,
        pool: TempFilePool,
    ) -> None:
        files_txt = pool.allocate("files", ".txt")
        metadata_txt = pool.allocate("metadata", ".txt")
        files_txt.write_text(render_concat_list(inputs))
        metadata_txt.write_text(metadata)
        log.debug(f"Wrote {len(inputs)} entries to {files_txt.name}")

        try:
            cmd = self.command(files_txt, metadata_txt, cover, dest)
            log.debug(f"ffmpeg command: {' '.join(cmd)}")
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise MuxSubprocessError(dest, str(e)) from e
        finally:
            pool.release(files_txt)
            pool.release(metadata_txt)

        if result.returncode != 0:
            raise MuxSubprocessError(
                dest, result.stderr or f"exit code {result.returncode}"
            )

        if self.verify_chapters and dest.is_file():
            expected = metadata.splitlines().count("[CHAPTER]")
            found = count_chapters(dest)
            if found != expected:
                raise MuxSubprocessError(
                    dest, f"chapter count mismatch: expected {expected}, got {found}"
                )


def assemble(
    transcoded: Sequence[TranscodedChapter],
    markers: Sequence[ChapterMarker],
    cover: CoverImage | None,
    output_path: Path,
    muxer: Muxer,
    pool: TempFilePool,
    title: str,
    artist: str | None = None,
) -> AudiobookArtifact:
    """Mux transcoded chapters plus chapter/cover metadata into output_path.

    Chapters are consumed strictly in chapter_index order and must pair
    one-to-one with the markers. Raises MuxSubprocessError when ffmpeg fails
    and MuxOutputMissingError when it reports success without producing a
    non-empty file. On success every transcoded chapter is released.
    """
    ordered = sorted(transcoded, key=lambda t: t.chapter_index)
    if len(ordered) != len(markers):
        raise ValueError(
            f"{len(ordered)} transcoded chapters but {len(markers)} markers"
        )
    for chapter, marker in zip(ordered, markers):
        if chapter.chapter_index != marker.index:
            raise ValueError(
                f"Marker {marker.index} does not match chapter {chapter.chapter_index}"
            )

    metadata = render_ffmetadata(markers, title, artist)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_output = output_path.with_name(output_path.name + ".tmp")

    try:
        muxer.mux(
            [t.encoded_path for t in ordered], metadata, cover, tmp_output, pool
        )
        if not tmp_output.is_file() or tmp_output.stat().st_size == 0:
            raise MuxOutputMissingError(output_path, f"{tmp_output.name} not written")
        tmp_output.replace(output_path)
    except BaseException:
        tmp_output.unlink(missing_ok=True)
        raise

    for chapter in ordered:
        chapter.release()

    artifact = AudiobookArtifact(
        path=output_path,
        markers=tuple(markers),
        duration=markers[-1].end if markers else 0.0,
        cover=cover,
        title=title,
    )
    cover_note = " +cover" if cover else ""
    log.info(f"Wrote {output_path.name}: {len(markers)} chapters{cover_note}")
    return artifact

