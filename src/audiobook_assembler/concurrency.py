"""Worker pool sizing, fail-fast waiting, and disk space checks."""

import os
import shutil
import tempfile
from collections.abc import Iterable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, wait
from pathlib import Path

import psutil
from loguru import logger

log = logger.bind(stage="concurrency")

# ffmpeg encodes are themselves multi-threaded; more workers than this
# mostly adds contention
MAX_AUTO_WORKERS = 8


def calculate_max_workers(configured: int = 0) -> int:
    """Size the probe/transcode pool.

    A positive configured value wins. Otherwise use the physical core count
    (psutil), falling back to os.cpu_count(), capped at MAX_AUTO_WORKERS.
    """
    if configured > 0:
        log.debug(f"Using configured max_workers: {configured}")
        return configured

    cores = psutil.cpu_count(logical=False) or os.cpu_count() or 1
    max_workers = max(1, min(MAX_AUTO_WORKERS, cores))
    log.debug(f"Auto-calculated max_workers: {max_workers} (cores={cores})")
    return max_workers


def threads_per_worker(workers: int) -> int:
    """Calculate ffmpeg -threads for each concurrent encode.

    A single worker gets all cores (0 = ffmpeg default). Multiple workers
    split the logical cores between them, leaving one for the coordinator.
    """
    cpu_count = os.cpu_count() or 1
    if workers <= 1:
        return 0
    return max(1, (cpu_count - 1) // workers)


def check_disk_space(
    sources: Iterable[Path],
    work_dir: Path | None,
    multiplier: int = 2,
) -> bool:
    """Check that work_dir has room for the intermediates and the output.

    Requires at least multiplier * total source size available.
    Returns True if sufficient, False otherwise.
    """
    target = work_dir if work_dir is not None else Path(tempfile.gettempdir())
    source_size = sum(p.stat().st_size for p in sources if p.is_file())
    required = source_size * multiplier
    usage = shutil.disk_usage(target)
    result = usage.free >= required

    log.debug(
        f"Disk space check: required={required:,} bytes, "
        f"free={usage.free:,} bytes, sufficient={result}"
    )
    return result


def wait_fail_fast(futures: Sequence[Future]) -> None:
    """Wait for every future, or stop at the first failure.

    On a failure the jobs still queued are cancelled. Jobs already running
    cannot be interrupted; the executor's shutdown waits for them.
    """
    done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
    if not not_done:
        return
    failed = sum(1 for f in done if f.exception() is not None)
    cancelled = sum(1 for f in not_done if f.cancel())
    log.debug(f"{failed} job(s) failed, cancelled {cancelled} queued job(s)")


def first_failure(futures: Sequence[Future]) -> BaseException | None:
    """Earliest exception by submission order, skipping cancelled jobs."""
    for future in futures:
        if not future.cancelled() and future.exception() is not None:
            return future.exception()
    return None
