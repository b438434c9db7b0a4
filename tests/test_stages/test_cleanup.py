"""Tests for the temp file pool."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from audiobook_assembler.stages.cleanup import TempFilePool


class TestTempFilePool:
    def test_allocate_inside_root(self, tmp_path):
        pool = TempFilePool(tmp_path / "work")
        path = pool.allocate("0001", ".m4a")
        assert path.parent == pool.root
        assert path.name.startswith("0001-")
        assert path.suffix == ".m4a"
        assert path.exists()
        pool.cleanup()

    def test_unique_paths_across_threads(self, tmp_path):
        with TempFilePool(tmp_path) as pool:
            with ThreadPoolExecutor(max_workers=4) as executor:
                paths = list(executor.map(lambda i: pool.allocate("x", ".m4a"), range(50)))
            assert len(set(paths)) == 50
            assert len(pool.outstanding) == 50

    def test_release(self, tmp_path):
        with TempFilePool(tmp_path) as pool:
            path = pool.allocate("a")
            assert pool.release(path) is True
            assert not path.exists()
            assert pool.outstanding == []
            # Second release is a no-op
            assert pool.release(path) is True

    def test_release_failure_is_logged_not_raised(self, tmp_path):
        with TempFilePool(tmp_path) as pool:
            path = pool.allocate("a")
            with patch.object(type(path), "unlink", side_effect=PermissionError("busy")):
                assert pool.release(path) is False

    def test_cleanup_removes_everything(self, tmp_path):
        pool = TempFilePool(tmp_path)
        pool.allocate("a")
        (pool.root / "stray.txt").write_text("left by a crashed job")
        pool.cleanup()
        assert not pool.root.exists()
        assert pool.outstanding == []

    def test_cleanup_idempotent(self, tmp_path):
        pool = TempFilePool(tmp_path)
        pool.cleanup()
        pool.cleanup()
        assert pool.closed

    def test_allocate_after_cleanup(self, tmp_path):
        pool = TempFilePool(tmp_path)
        pool.cleanup()
        with pytest.raises(RuntimeError):
            pool.allocate("late")

    def test_context_manager_cleans_on_error(self, tmp_path):
        with pytest.raises(ValueError):
            with TempFilePool(tmp_path) as pool:
                pool.allocate("a")
                raise ValueError("boom")
        assert not pool.root.exists()
