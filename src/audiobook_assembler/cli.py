"""CLI entry point for the audiobook assembler."""

import sys
from pathlib import Path

import click
from loguru import logger
from pydantic import ValidationError

from .config import AssemblerConfig
from .errors import PipelineError
from .runner import AudiobookPipeline

log = logger.bind(stage="cli")


def _find_config_file() -> Path | None:
    """Look for .env in cwd, then in the user config dir."""
    for candidate in [
        Path.cwd() / ".env",
        Path.home() / ".config" / "audiobook-assembler" / ".env",
    ]:
        if candidate.is_file():
            return candidate
    return None


@click.command()
@click.argument(
    "sources",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output .m4b path. Defaults to <book dir>/<title>.m4b.",
)
@click.option(
    "--cover",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Cover image (jpg, png, webp). Auto-detected if omitted.",
)
@click.option(
    "-b",
    "--bitrate",
    type=click.IntRange(min=1),
    default=None,
    help="Target bitrate in kbps. Follows the first input if omitted.",
)
@click.option("--title", default=None, help="Book title. Defaults to the folder name.")
@click.option("--artist", default=None, help="Author tag for the output file.")
@click.option(
    "-j",
    "--jobs",
    type=click.IntRange(min=0),
    default=None,
    help="Parallel probe/encode jobs (0 = auto).",
)
@click.option(
    "--title-source",
    type=click.Choice(["filename", "tags"]),
    default=None,
    help="Where raw chapter titles come from.",
)
@click.option(
    "--dry-run", is_flag=True, help="Show the chapter plan without encoding."
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to .env file.",
)
def main(
    sources: tuple[Path, ...],
    output: Path | None,
    cover: Path | None,
    bitrate: int | None,
    title: str | None,
    artist: str | None,
    jobs: int | None,
    title_source: str | None,
    dry_run: bool,
    verbose: bool,
    config_file: Path | None,
) -> None:
    """Assemble audio chapter files into one chaptered M4B audiobook.

    SOURCES is a single book directory or an ordered list of audio files.
    """
    # Pass CLI flags as kwargs so they win over env vars and .env
    config_kwargs: dict = {"dry_run": dry_run, "verbose": verbose}
    if bitrate is not None:
        config_kwargs["target_bitrate"] = bitrate
    if jobs is not None:
        config_kwargs["max_workers"] = jobs
    if title_source is not None:
        config_kwargs["title_source"] = title_source
    # None disables .env loading entirely
    config_kwargs["_env_file"] = config_file or _find_config_file()

    try:
        config = AssemblerConfig(**config_kwargs)
    except ValidationError as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e
    config.setup_logging()

    log.info(
        f"Starting: sources={len(sources)} output={output} dry_run={dry_run}"
    )

    pipeline = AudiobookPipeline(config=config)
    try:
        artifact = pipeline.run(
            list(sources),
            output_path=output,
            cover_path=cover,
            title=title,
            artist=artist,
        )
    except PipelineError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if artifact is not None:
        click.echo(f"Audiobook created: {artifact.path}")
