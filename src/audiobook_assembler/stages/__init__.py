"""Pipeline stages, in run order.

Pipeline order: discover -> probe -> titles -> transcode -> timeline -> cover -> mux

Stages:
    discover  -- Resolve the CLI sources into an ordered InputChapter list.
                 A directory is walked recursively and natural-sorted by
                 relative path; an explicit file list keeps its order. Raw
                 titles come from the file stem or the embedded title tag.
                 Also lists cover image candidates in the book directory.
    probe     -- Measure each input's duration with the DurationProbe on a
                 bounded thread pool. Rejects unreadable, unparsable, and
                 non-positive results. Durations are advisory (estimates).
    titles    -- Set-wide chapter title cleaning. Strips shared leading and
                 trailing token runs, keeps number labels ("Chapter 1"),
                 falls back to the input title rather than emit an empty or
                 letterless one. Iterated to a fixpoint, so idempotent.
    transcode -- Re-encode every chapter to one codec/bitrate/sample rate/
                 channel layout via the Encoder (ffmpeg), into the run's
                 TempFilePool, and re-probe the result. Parallel, ordered
                 results, fail-fast with cleanup of finished siblings.
    timeline  -- Accumulate post-encode durations into contiguous
                 [start, end) ChapterMarkers. Drift check against the muxed
                 output's real duration.
    cover     -- Pick at most one jpg/jpeg/png/webp cover with a fixed
                 precedence (cover > folder > front > albumart > other).
    mux       -- Write the concat list and FFMETADATA1 chapter file, run
                 ffmpeg once with -c:a copy, embed the cover as
                 attached_pic, rename the .tmp output into place.
    cleanup   -- TempFilePool: per-run temp directory reclaimed on every
                 exit path.
"""
