"""Assembler configuration via pydantic-settings (.env + env vars)."""

import sys
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


class AssemblerConfig(BaseSettings):
    """All assembler configuration with layered resolution:
    .env file < environment variables < constructor kwargs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -- Directories --
    work_dir: Path | None = None  # None = system temp dir
    log_dir: Path | None = None

    # -- Encoding --
    codec: str = "aac"
    target_bitrate: int = 0  # kbps, 0 = auto from first input
    max_bitrate: int = 128
    sample_rate: int = 44100
    channels: int = 1

    # -- Parallel transcoding --
    max_workers: int = 0  # 0 = auto (CPU-based)

    # -- Titles --
    title_source: Literal["filename", "tags"] = "filename"
    title_outliers: int = 1
    strip_trailing_tokens: bool = True

    # -- Validation --
    duration_tolerance: float = 0.5
    check_disk_space: bool = True

    # -- Behavior --
    dry_run: bool = False
    verbose: bool = False
    log_level: str = "INFO"

    @field_validator("target_bitrate", "max_workers", "title_outliers")
    @classmethod
    def _not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("max_bitrate", "sample_rate", "channels")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    def resolve_bitrate(self, source_bps: int | None) -> int:
        """Pick the target bitrate in kbps.

        An explicit target_bitrate wins. Otherwise follow the source bitrate,
        capped at max_bitrate; unknown source bitrate -> max_bitrate.
        """
        if self.target_bitrate:
            return self.target_bitrate
        if not source_bps:
            return self.max_bitrate
        return max(1, min(source_bps // 1000, self.max_bitrate))

    def ensure_dirs(self) -> None:
        """Create configured directories if they don't exist."""
        for d in (self.work_dir, self.log_dir):
            if d is None:
                continue
            try:
                d.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigError(f"Cannot create directory {d}: {e}") from e

    def setup_logging(self) -> None:
        """Configure loguru for the assembler."""
        logger.remove()  # Remove default stderr handler

        log_format = (
            "{time:YYYY-MM-DDTHH:mm:ssZ} | {level:<8} | "
            "{extra[stage]:<10} | {message}"
        )

        def _default_extra(record):
            record["extra"].setdefault("stage", "")
            return True

        logger.add(
            sys.stderr,
            format=log_format,
            level="DEBUG" if self.verbose else self.log_level.upper(),
            filter=_default_extra,
        )

        if self.log_dir is None:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self.log_dir / "assembler.log"),
            format=log_format,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            filter=_default_extra,
        )
