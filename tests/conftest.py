"""Shared fixtures: in-memory stand-ins for ffprobe and ffmpeg.

Fake "audio" files hold their duration in seconds as plain text. The fake
encoder copies that number into its output (plus optional drift), and the
fake muxer writes the sum of its inputs, so every stage can be exercised
end to end without the real binaries.
"""

import threading
import time
from pathlib import Path

import pytest
from loguru import logger

from audiobook_assembler.config import AssemblerConfig
from audiobook_assembler.errors import (
    MuxSubprocessError,
    ProbeUnparsableError,
    TranscodeSubprocessError,
)

_ENV_VARS = (
    "WORK_DIR",
    "LOG_DIR",
    "CODEC",
    "TARGET_BITRATE",
    "MAX_BITRATE",
    "SAMPLE_RATE",
    "CHANNELS",
    "MAX_WORKERS",
    "TITLE_SOURCE",
    "TITLE_OUTLIERS",
    "STRIP_TRAILING_TOKENS",
    "DURATION_TOLERANCE",
    "CHECK_DISK_SPACE",
    "DRY_RUN",
    "VERBOSE",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    """Keep host env vars and loguru sinks from leaking between tests."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    yield
    logger.remove()


class FakeProber:
    def __init__(self, durations=None, fail=None, delays=None):
        self.durations = dict(durations or {})
        self.fail = dict(fail or {})
        self.delays = dict(delays or {})
        self.calls: list[Path] = []
        self._lock = threading.Lock()

    def probe(self, path):
        path = Path(path)
        with self._lock:
            self.calls.append(path)
        time.sleep(self.delays.get(path.name, 0))
        if path.name in self.fail:
            raise self.fail[path.name](path, "simulated probe failure")
        if path.name in self.durations:
            return self.durations[path.name]
        try:
            return float(path.read_text().strip())
        except (OSError, ValueError) as e:
            raise ProbeUnparsableError(path, str(e)) from e


class FakeEncoder:
    def __init__(self, fail=(), empty=(), drift=0.0, delays=None):
        self.fail = set(fail)
        self.delays = dict(delays or {})
        self.empty = set(empty)
        self.drift = drift
        self.calls: list[tuple[Path, Path]] = []
        self.settings = []
        self._lock = threading.Lock()

    def encode(self, source, dest, settings):
        with self._lock:
            self.calls.append((source, dest))
            self.settings.append(settings)
        time.sleep(self.delays.get(source.name, 0))
        if source.name in self.fail:
            raise TranscodeSubprocessError(source, "simulated encoder crash")
        if source.name in self.empty:
            dest.write_text("")
            return
        duration = float(source.read_text().strip()) + self.drift
        dest.write_text(f"{duration}")


class FakeMuxer:
    def __init__(self, fail=False, write=True):
        self.fail = fail
        self.write = write
        self.calls = []

    def mux(self, inputs, metadata, cover, dest, pool):
        self.calls.append(
            {
                "inputs": list(inputs),
                "metadata": metadata,
                "cover": cover,
                "dest": dest,
                "pool_files": pool.outstanding,
            }
        )
        if self.fail:
            dest.write_text("partial")
            raise MuxSubprocessError(dest, "simulated muxer crash")
        if not self.write:
            return
        total = sum(float(Path(p).read_text()) for p in inputs)
        dest.write_text(f"{total}")


def make_book(directory: Path, chapters: dict[str, float]) -> list[Path]:
    """Create fake chapter files whose content is their duration."""
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for name, duration in chapters.items():
        path = directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{duration}")
        paths.append(path)
    return paths


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        values = {
            "work_dir": tmp_path / "work",
            "target_bitrate": 64,
            "max_workers": 2,
            "check_disk_space": False,
        }
        values.update(overrides)
        return AssemblerConfig(_env_file=None, **values)

    return _make


@pytest.fixture
def prober():
    return FakeProber()


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def muxer():
    return FakeMuxer()


@pytest.fixture
def book():
    return make_book
