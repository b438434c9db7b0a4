"""Cover resolution -- pick at most one image to embed."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from ..errors import DiscoveryError
from ..models import COVER_EXTENSIONS, COVER_NAMES, CoverImage

log = logger.bind(stage="cover")

_EXTENSION_ORDER = list(COVER_EXTENSIONS)


def _precedence(path: Path, names: tuple[str, ...]) -> tuple:
    stem = path.stem.casefold()
    name_rank = names.index(stem) if stem in names else len(names)
    ext_rank = _EXTENSION_ORDER.index(path.suffix.lower())
    return (name_rank, ext_rank, path.name.casefold(), str(path))


def resolve_cover(
    candidate_paths: Iterable[Path],
    names: tuple[str, ...] = COVER_NAMES,
) -> CoverImage | None:
    """Select the cover image from a set of candidate files.

    Only existing files with a jpg/jpeg/png/webp extension (any case) count.
    Ranking: preferred stem (cover, folder, front, albumart, then anything
    else), then extension order, then file name -- so the choice never
    depends on the order candidates were listed in. Returns None when
    nothing qualifies.
    """
    eligible = {
        Path(p) for p in candidate_paths
        if Path(p).suffix.lower() in COVER_EXTENSIONS and Path(p).is_file()
    }
    if not eligible:
        log.debug("No cover image found")
        return None

    chosen = min(eligible, key=lambda p: _precedence(p, names))
    if len(eligible) > 1:
        log.debug(f"Picked {chosen.name} from {len(eligible)} cover candidates")
    return CoverImage(path=chosen, format=COVER_EXTENSIONS[chosen.suffix.lower()])


def cover_from_override(path: Path) -> CoverImage:
    """Validate an explicitly requested cover file."""
    fmt = COVER_EXTENSIONS.get(path.suffix.lower())
    if fmt is None:
        raise DiscoveryError(
            f"Unsupported cover image type: {path.name} "
            f"(expected one of {', '.join(e.lstrip('.') for e in COVER_EXTENSIONS)})"
        )
    if not path.is_file():
        raise DiscoveryError(f"Cover image not found: {path}")
    return CoverImage(path=path.resolve(), format=fmt)
