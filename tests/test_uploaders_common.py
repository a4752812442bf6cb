"""Tests for chunkrelay.uploaders.common utility functions."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from chunkrelay.uploaders.common import (
    collect_files,
    compute_backoff,
    count_chunks,
    plan_chunks,
    progress_percent,
    split_into_batches,
)
from chunkrelay.uploaders.constants import MIB

# =============================================================================
# Chunk Planning Tests
# =============================================================================


class TestPlanChunks:
    """Tests for chunk planning."""

    def test_twelve_mib_in_five_mib_chunks(self):
        chunks = plan_chunks(12 * MIB, 5 * MIB)

        assert [c.length for c in chunks] == [5 * MIB, 5 * MIB, 2 * MIB]
        assert [c.part_number for c in chunks] == [1, 2, 3]

    def test_ranges_are_contiguous_and_cover_file(self):
        size = 10 * MIB + 17
        chunks = plan_chunks(size, MIB)

        assert chunks[0].start == 0
        assert chunks[-1].end == size
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.end == nxt.start
        assert all(c.length == MIB for c in chunks[:-1])

    def test_exact_multiple(self):
        chunks = plan_chunks(4 * MIB, 2 * MIB)
        assert len(chunks) == 2
        assert chunks[-1].length == 2 * MIB

    def test_empty_file_has_no_chunks(self):
        assert plan_chunks(0, 5 * MIB) == []
        assert count_chunks(0, 5 * MIB) == 0

    def test_smaller_than_chunk(self):
        chunks = plan_chunks(100, 5 * MIB)
        assert len(chunks) == 1
        assert chunks[0].length == 100

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            count_chunks(10, 0)


class TestProgressAndBackoff:
    """Tests for progress_percent and compute_backoff."""

    def test_progress_percent(self):
        assert progress_percent(1, 3) == 33
        assert progress_percent(0, 0) == 100

    def test_backoff_schedule(self):
        assert [compute_backoff(n) for n in range(1, 6)] == [2.0, 4.0, 8.0, 10.0, 10.0]


# =============================================================================
# split_into_batches Tests
# =============================================================================


class TestSplitIntoBatches:
    """Tests for split_into_batches."""

    def test_even_split(self):
        assert split_into_batches([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]

    def test_remainder(self):
        assert split_into_batches([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert split_into_batches([], 3) == []

    def test_non_positive_size_is_one_batch(self):
        assert split_into_batches([1, 2, 3], 0) == [[1, 2, 3]]


# =============================================================================
# collect_files Tests
# =============================================================================


class TestCollectFiles:
    """Tests for collect_files."""

    def test_names_are_relative_to_parent(self, temp_dir: Path):
        root = temp_dir / "photos"
        (root / "2024").mkdir(parents=True)
        (root / "a.jpg").write_text("a")
        (root / "2024" / "b.jpg").write_text("b")

        found = collect_files(root)

        assert [name for _, name in found] == ["photos/2024/b.jpg", "photos/a.jpg"]

    def test_skips_directories(self, temp_dir: Path):
        (temp_dir / "empty").mkdir()
        (temp_dir / "f.txt").write_text("x")

        assert len(collect_files(temp_dir)) == 1

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_skips_broken_symlinks(self, temp_dir: Path):
        (temp_dir / "real.txt").write_text("x")
        (temp_dir / "dangling").symlink_to(temp_dir / "missing.txt")

        found = collect_files(temp_dir)

        assert [p.name for p, _ in found] == ["real.txt"]

    def test_not_a_directory(self, temp_dir: Path):
        path = temp_dir / "f.txt"
        path.write_text("x")
        with pytest.raises(ValueError):
            collect_files(path)
