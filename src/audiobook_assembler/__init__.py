"""Audiobook Assembler -- join per-chapter audio files into one chaptered M4B.

Core modules:
    config      -- Assembler configuration via pydantic-settings (env vars / .env).
                   CLI flags passed as kwargs.
    cli         -- Click CLI entry point (audiobook-assemble).
    runner      -- AudiobookPipeline: stage sequencing and the run state machine.
    models      -- Frozen dataclasses passed between stages.
    errors      -- PipelineError hierarchy; every failure names its stage.
    ffprobe     -- Audio file inspection via ffprobe subprocess.
    concurrency -- Worker sizing and disk space checks.
    sanitize    -- Output filename sanitization.

Subpackages:
    stages -- discover, probe, titles, transcode, timeline, cover, mux, cleanup
"""
