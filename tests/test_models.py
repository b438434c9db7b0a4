"""Tests for models.py -- enums, constants, frozen dataclasses."""

import dataclasses
from pathlib import Path

import pytest

from audiobook_assembler.models import (
    AUDIO_EXTENSIONS,
    COVER_EXTENSIONS,
    TERMINAL_STATES,
    ChapterMarker,
    CoverFormat,
    InputChapter,
    PipelineState,
    ProbedDuration,
    TranscodedChapter,
)


class TestPipelineState:
    def test_values(self):
        assert PipelineState.DISCOVERING == "discovering"
        assert PipelineState.MUXING == "muxing"
        assert PipelineState.DONE == "done"
        assert PipelineState.FAILED == "failed"

    def test_terminal_states(self):
        assert TERMINAL_STATES == {PipelineState.DONE, PipelineState.FAILED}


class TestExtensions:
    def test_common_audio_formats(self):
        for ext in (".mp3", ".m4a", ".m4b", ".flac", ".ogg", ".opus"):
            assert ext in AUDIO_EXTENSIONS

    def test_cover_formats(self):
        assert COVER_EXTENSIONS[".jpg"] is CoverFormat.JPEG
        assert COVER_EXTENSIONS[".jpeg"] is CoverFormat.JPEG
        assert COVER_EXTENSIONS[".png"] is CoverFormat.PNG
        assert COVER_EXTENSIONS[".webp"] is CoverFormat.WEBP


class TestFrozen:
    def test_input_chapter_immutable(self):
        chapter = InputChapter(path=Path("a.mp3"), raw_title="a", order_index=0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            chapter.order_index = 1


class TestChapterMarker:
    def test_duration_and_millis(self):
        marker = ChapterMarker(index=0, title="One", start=1.5, end=62.25)
        assert marker.duration == pytest.approx(60.75)
        assert marker.start_ms == 1500
        assert marker.end_ms == 62250


class TestTranscodedChapter:
    def test_release_removes_file(self, tmp_path):
        encoded = tmp_path / "0000.m4a"
        encoded.write_text("1.0")
        chapter = TranscodedChapter(
            chapter_index=0,
            encoded_path=encoded,
            duration=ProbedDuration(chapter_index=0, duration=1.0),
        )
        assert chapter.release() is True
        assert not encoded.exists()

    def test_release_twice_is_safe(self, tmp_path):
        chapter = TranscodedChapter(
            chapter_index=0,
            encoded_path=tmp_path / "gone.m4a",
            duration=ProbedDuration(chapter_index=0, duration=1.0),
        )
        assert chapter.release() is True
        assert chapter.release() is True
