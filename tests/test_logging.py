"""Tests for AssemblerConfig.setup_logging."""

from loguru import logger

from audiobook_assembler.config import AssemblerConfig
from audiobook_assembler.models import ChapterMarker
from audiobook_assembler.stages.timeline import check_drift


def _configure(**overrides):
    config = AssemblerConfig(_env_file=None, **overrides)
    config.setup_logging()
    return config


class TestFileSink:
    def test_creates_log_dir_and_file(self, tmp_path):
        log_dir = tmp_path / "logs" / "nested"
        _configure(log_dir=log_dir)
        logger.info("started")
        assert (log_dir / "assembler.log").is_file()

    def test_records_debug_even_at_info(self, tmp_path, capsys):
        log_dir = tmp_path / "logs"
        _configure(log_dir=log_dir)
        logger.bind(stage="probe").debug("01.mp3: 12.000s")
        assert "01.mp3: 12.000s" in (log_dir / "assembler.log").read_text()
        assert "01.mp3: 12.000s" not in capsys.readouterr().err

    def test_no_file_without_log_dir(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _configure()
        logger.info("stderr only")
        assert list(tmp_path.iterdir()) == []


class TestStageColumn:
    def test_stage_module_binding(self, tmp_path):
        log_dir = tmp_path / "logs"
        _configure(log_dir=log_dir)
        markers = [ChapterMarker(index=0, title="a", start=0.0, end=10.0)]
        check_drift(markers, 12.0, 0.5)
        line = (log_dir / "assembler.log").read_text().strip().splitlines()[-1]
        assert "| WARNING  | timeline   |" in line
        assert "drift 2.000s" in line

    def test_unbound_record_gets_blank_stage(self, tmp_path):
        log_dir = tmp_path / "logs"
        _configure(log_dir=log_dir)
        logger.info("no stage bound")
        line = (log_dir / "assembler.log").read_text().strip()
        assert "| INFO     |            | no stage bound" in line


class TestStderrLevel:
    def test_verbose_shows_debug(self, capsys):
        _configure(verbose=True)
        logger.bind(stage="transcode").debug("01.mp3 -> 0000-x.m4a")
        err = capsys.readouterr().err
        assert "| DEBUG    | transcode  | 01.mp3 -> 0000-x.m4a" in err

    def test_log_level_setting(self, capsys):
        _configure(log_level="warning")
        logger.info("routine")
        logger.warning("cover unreadable")
        err = capsys.readouterr().err
        assert "routine" not in err
        assert "cover unreadable" in err

    def test_verbose_overrides_log_level(self, capsys):
        _configure(verbose=True, log_level="ERROR")
        logger.debug("detail")
        assert "detail" in capsys.readouterr().err

    def test_reconfigure_does_not_duplicate(self, capsys):
        _configure()
        _configure()
        logger.info("once")
        assert capsys.readouterr().err.count("once") == 1
