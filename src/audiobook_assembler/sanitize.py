"""Filename sanitization for the output audiobook."""

import re

from loguru import logger

log = logger.bind(stage="sanitize")

_UNSAFE_RE = re.compile(r'[/\\:"*?<>|;\x00-\x1f]+')


def safe_filename(name: str, suffix: str = ".m4b", max_bytes: int = 255) -> str:
    """Turn a book title into a filesystem-safe file name.

    Unsafe characters become spaces, runs of whitespace collapse, leading
    and trailing dots/spaces go. Truncated to max_bytes (UTF-8) including
    the suffix. An empty result falls back to "audiobook".
    """
    cleaned = " ".join(_UNSAFE_RE.sub(" ", name).split()).strip(" .")
    if not cleaned:
        cleaned = "audiobook"

    budget = max_bytes - len(suffix.encode("utf-8"))
    if len(cleaned.encode("utf-8")) > budget:
        while len(cleaned.encode("utf-8")) > budget:
            cleaned = cleaned[:-1]
        cleaned = cleaned.rstrip(" .")
        log.debug(f"Truncated output name to {len(cleaned.encode('utf-8'))} bytes")

    return cleaned + suffix
