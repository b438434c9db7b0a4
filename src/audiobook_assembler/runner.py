"""Pipeline runner -- sequences the stages for one audiobook."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from pathlib import Path

import click
from loguru import logger

from .concurrency import calculate_max_workers, check_disk_space, threads_per_worker
from .config import AssemblerConfig
from .errors import DiscoveryError, PipelineError, ProbeError
from .ffprobe import FFprobe, duration_to_timestamp, get_bitrate
from .models import (
    TERMINAL_STATES,
    AudiobookArtifact,
    CleanedTitle,
    CoverImage,
    InputChapter,
    PipelineState,
    ProbedDuration,
)
from .sanitize import safe_filename
from .stages.cleanup import TempFilePool
from .stages.cover import cover_from_override, resolve_cover
from .stages.discover import cover_candidates, discover_chapters
from .stages.mux import FFmpegMuxer, Muxer, assemble
from .stages.probe import DurationProbe, probe_all
from .stages.timeline import build_timeline, check_drift
from .stages.titles import TitlePolicy, clean_chapter_titles
from .stages.transcode import EncodeSettings, Encoder, FFmpegEncoder, transcode_all

log = logger.bind(stage="runner")


def _book_dir(sources: Sequence[Path]) -> Path:
    """Directory the book lives in: the source dir, or the first file's parent."""
    if not sources:
        raise DiscoveryError("No input paths given")
    first = Path(sources[0]).resolve()
    if len(sources) == 1 and first.is_dir():
        return first
    return first.parent


class AudiobookPipeline:
    """Runs discover -> probe -> clean -> transcode -> timeline -> cover -> mux.

    The prober, encoder, muxer, and bitrate lookup default to the
    ffprobe/ffmpeg backed implementations; tests pass in-memory fakes instead.
    """

    def __init__(
        self,
        config: AssemblerConfig,
        prober: DurationProbe | None = None,
        encoder: Encoder | None = None,
        muxer: Muxer | None = None,
        bitrate_lookup: Callable[[Path], int | None] | None = None,
    ) -> None:
        self.config = config
        self.prober = prober or FFprobe()
        self.encoder = encoder or FFmpegEncoder()
        self.muxer = muxer or FFmpegMuxer()
        self.bitrate_lookup = bitrate_lookup or get_bitrate
        self.state = PipelineState.DISCOVERING
        self.history: list[PipelineState] = [self.state]

    def _enter(self, state: PipelineState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Run already finished ({self.state.value})")
        self.state = state
        self.history.append(state)
        log.debug(f"-> {state.value}")

    def run(
        self,
        sources: Sequence[Path],
        output_path: Path | None = None,
        cover_path: Path | None = None,
        title: str | None = None,
        artist: str | None = None,
    ) -> AudiobookArtifact | None:
        """Assemble one audiobook. Returns None in dry-run mode.

        Any stage failure moves the run to FAILED, removes every temporary
        file created so far, and re-raises the first error unchanged. The
        output path is only written once the mux has fully succeeded.
        """
        self.state = PipelineState.DISCOVERING
        self.history = [self.state]
        pool: TempFilePool | None = None

        try:
            book_dir = _book_dir(sources)
            title = title or book_dir.name
            output = Path(output_path) if output_path else book_dir / safe_filename(title)
            # A previous run's output must not be picked up as a chapter
            chapters = discover_chapters(
                sources, self.config.title_source, exclude=[output]
            )
            override = cover_from_override(Path(cover_path)) if cover_path else None
            log.info(f"Assembling {len(chapters)} chapters -> {output}")

            self._enter(PipelineState.PROBING)
            workers = calculate_max_workers(self.config.max_workers)
            probed = probe_all(chapters, self.prober, workers)
            estimate = sum(p.duration for p in probed)
            click.echo(
                f"  PROBE: {len(chapters)} files, {duration_to_timestamp(estimate)}"
            )

            self._enter(PipelineState.CLEANING)
            policy = TitlePolicy(
                outliers=self.config.title_outliers,
                strip_trailing=self.config.strip_trailing_tokens,
            )
            titles = clean_chapter_titles(chapters, policy)
            for chapter, cleaned in zip(chapters, titles):
                log.debug(f"title {chapter.raw_title!r} -> {cleaned.text!r}")

            if self.config.dry_run:
                self._report_dry_run(chapters, titles, probed, book_dir, override, output)
                self._enter(PipelineState.DONE)
                return None

            if self.config.check_disk_space and not check_disk_space(
                [c.path for c in chapters], self.config.work_dir
            ):
                raise DiscoveryError("Insufficient disk space for intermediate files")

            self._enter(PipelineState.TRANSCODING)
            self.config.ensure_dirs()
            pool = TempFilePool(self.config.work_dir)
            settings = EncodeSettings(
                codec=self.config.codec,
                bitrate_kbps=self._target_bitrate(chapters[0]),
                sample_rate=self.config.sample_rate,
                channels=self.config.channels,
                threads=threads_per_worker(workers),
            )
            transcoded = transcode_all(
                chapters, settings, self.encoder, self.prober, pool, workers
            )
            click.echo(
                f"  TRANSCODE: {len(transcoded)} files "
                f"({settings.bitrate_kbps}k {settings.codec})"
            )

            self._enter(PipelineState.TIMELINE_BUILDING)
            markers = build_timeline(
                [(t.text, tc.duration.duration) for t, tc in zip(titles, transcoded)]
            )

            self._enter(PipelineState.COVER_RESOLVING)
            cover = override or resolve_cover(cover_candidates(book_dir))

            self._enter(PipelineState.MUXING)
            artifact = assemble(
                transcoded, markers, cover, output, self.muxer, pool, title, artist
            )
            artifact = self._verify_output(artifact)
        except BaseException as e:
            self._enter(PipelineState.FAILED)
            if isinstance(e, PipelineError):
                log.error(f"Failed: {e}")
            raise
        finally:
            if pool is not None:
                pool.cleanup()

        self._enter(PipelineState.DONE)
        cover_note = " +cover" if artifact.cover else ""
        click.echo(
            f"  MUX: {output.name} ({len(artifact.markers)} chapters, "
            f"{duration_to_timestamp(artifact.duration)}{cover_note})"
        )
        return artifact

    def _target_bitrate(self, first: InputChapter) -> int:
        if self.config.target_bitrate:
            return self.config.target_bitrate
        source_bps = self.bitrate_lookup(first.path)
        bitrate = self.config.resolve_bitrate(source_bps)
        log.debug(f"Detected bitrate: {source_bps} bps, target: {bitrate}k")
        return bitrate

    def _verify_output(self, artifact: AudiobookArtifact) -> AudiobookArtifact:
        """Re-probe the muxed file and compare it with the timeline.

        Drift beyond duration_tolerance is logged as a warning; the artifact
        keeps its markers and reports the measured duration.
        """
        try:
            measured = self.prober.probe(artifact.path)
        except ProbeError as e:
            log.warning(f"Could not measure output duration: {e}")
            return artifact
        check_drift(artifact.markers, measured, self.config.duration_tolerance)
        return replace(artifact, duration=measured)

    def _report_dry_run(
        self,
        chapters: Sequence[InputChapter],
        titles: Sequence[CleanedTitle],
        probed: Sequence[ProbedDuration],
        book_dir: Path,
        override: CoverImage | None,
        output: Path,
    ) -> None:
        self._enter(PipelineState.TIMELINE_BUILDING)
        markers = build_timeline([(t.text, p.duration) for t, p in zip(titles, probed)])
        self._enter(PipelineState.COVER_RESOLVING)
        cover = override or resolve_cover(cover_candidates(book_dir))

        click.echo(f"  [DRY-RUN] Would write {output}")
        for chapter, marker in zip(chapters, markers):
            click.echo(
                f"    {duration_to_timestamp(marker.start)}  {marker.title}"
                f"  <- {chapter.path.name}"
            )
        click.echo(f"    cover: {cover.path.name if cover else 'none'}")
