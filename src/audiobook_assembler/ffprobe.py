"""FFprobe subprocess wrappers for audio file inspection.

FFprobe is the process-backed DurationProbe used by the pipeline. The
module-level helpers are lighter lookups (bitrate, tags, chapter count)
that return None or an empty value on failure instead of raising.
"""

import json
import math
import subprocess
from pathlib import Path

from loguru import logger

from .errors import ProbeUnparsableError, ProbeUnreadableError

log = logger.bind(stage="ffprobe")


def _run_ffprobe(args: list[str]) -> subprocess.CompletedProcess:
    """Run ffprobe with common flags."""
    return subprocess.run(
        ["ffprobe", "-v", "error"] + args,
        capture_output=True,
        text=True,
    )


def parse_duration(output: str) -> float | None:
    """Extract the first numeric duration line from ffprobe output.

    Returns None if no line parses as a float ("N/A" is what ffprobe prints
    for streams without a known duration).
    """
    for line in output.splitlines():
        value = line.strip()
        if value.startswith("duration="):
            value = value.partition("=")[2]
        try:
            return float(value)
        except ValueError:
            continue
    return None


class FFprobe:
    """Duration probe backed by the ffprobe binary."""

    def __init__(self, binary: str = "ffprobe") -> None:
        self.binary = binary

    def probe(self, path: Path) -> float:
        """Return the container duration of ``path`` in seconds.

        Raises ProbeUnreadableError on non-zero exit (or a missing binary)
        and ProbeUnparsableError when the output has no duration field.
        Range checks are left to the caller.
        """
        cmd = [
            self.binary, "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        log.debug(f"probe {path.name}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ProbeUnreadableError(path, str(e)) from e
        if result.returncode != 0:
            raise ProbeUnreadableError(
                path, result.stderr or f"exit code {result.returncode}"
            )
        duration = parse_duration(result.stdout)
        if duration is None:
            raise ProbeUnparsableError(path, result.stdout)
        return duration


def _probe_json(file: Path, args: list[str]) -> dict:
    """ffprobe -of json for one file; {} when ffprobe fails or is missing."""
    try:
        result = _run_ffprobe(args + ["-of", "json", str(file)])
    except OSError as e:
        log.warning(f"ffprobe unavailable for {file.name}: {e}")
        return {}
    if result.returncode != 0:
        log.debug(f"ffprobe exited {result.returncode} for {file.name}")
        return {}
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def get_bitrate(file: Path) -> int | None:
    """Container bitrate in bits/sec, or None if ffprobe can't tell."""
    fmt = _probe_json(file, ["-show_entries", "format=bit_rate"]).get("format") or {}
    value = str(fmt.get("bit_rate", ""))
    return int(value) if value.isdigit() else None


def duration_to_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS (negative or non-finite -> 00:00:00)."""
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def get_tags(file: Path) -> dict[str, str]:
    """Format-level tags with lowercased keys (title, artist, album, ...)."""
    fmt = _probe_json(file, ["-show_entries", "format_tags"]).get("format") or {}
    tags = fmt.get("tags") or {}
    return {str(k).lower(): str(v) for k, v in tags.items()}


def count_chapters(file: Path) -> int:
    """Number of chapters embedded in a container."""
    return len(_probe_json(file, ["-show_chapters"]).get("chapters") or [])
