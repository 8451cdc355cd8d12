"""Tests for counter-based random streams and chunk planning."""

import numpy as np
import pytest

from decision_risk.core.sampler import (
    CounterStream,
    game_stream,
    plan_chunks,
    stream_id,
    variable_stream,
)


class TestCounterStream:
    """Test addressable uniform and normal streams."""

    def test_same_seed_same_values(self):
        """Identical seed and name reproduce the stream."""
        a = CounterStream(42, "variable:demand").uniforms(0, 1000)
        b = CounterStream(42, "variable:demand").uniforms(0, 1000)
        np.testing.assert_array_equal(a, b)

    def test_streams_are_independent_by_name(self):
        """Different names give different streams."""
        a = variable_stream(42, "demand").uniforms(0, 100)
        b = variable_stream(42, "cost").uniforms(0, 100)
        c = game_stream(42, "demand").uniforms(0, 100)
        assert not np.array_equal(a, b)
        assert not np.array_equal(a, c)

    def test_seed_changes_stream(self):
        """Different seeds give different streams."""
        a = CounterStream(1, "x").uniforms(0, 100)
        b = CounterStream(2, "x").uniforms(0, 100)
        assert not np.array_equal(a, b)

    @pytest.mark.parametrize("per_draw", [1, 2, 3])
    def test_chunk_invariance(self, per_draw):
        """Values depend on draw index only, never on chunk boundaries."""
        stream = CounterStream(7, "variable:x")
        full = stream.uniforms(0, 1000, per_draw=per_draw)
        pieces = np.concatenate([
            stream.uniforms(start, stop, per_draw=per_draw)
            for start, stop in [(0, 137), (137, 138), (138, 501), (501, 1000)]
        ])
        np.testing.assert_array_equal(full, pieces)

    def test_normal_chunk_invariance(self):
        """Standard normals are also addressable by draw index."""
        stream = CounterStream(7, "variable:x")
        full = stream.standard_normals(0, 5000)
        pieces = np.concatenate([stream.standard_normals(s, e) for s, e in plan_chunks(5000, 333)])
        np.testing.assert_array_equal(full, pieces)

    def test_uniform_range(self):
        """Uniforms lie in [0, 1)."""
        u = CounterStream(3, "u").uniforms(0, 10000)
        assert u.shape == (10000, 1)
        assert u.min() >= 0.0
        assert u.max() < 1.0

    def test_normal_moments(self):
        """Box-Muller output is standard normal."""
        z = CounterStream(11, "z").standard_normals(0, 100_000)
        assert np.all(np.isfinite(z))
        assert np.mean(z) == pytest.approx(0.0, abs=0.02)
        assert np.std(z) == pytest.approx(1.0, abs=0.02)

    def test_empty_range(self):
        """An empty range returns an empty array."""
        assert CounterStream(1, "x").uniforms(5, 5).shape == (0, 1)

    def test_stream_id_stable(self):
        """Stream ids are stable 64-bit integers."""
        assert stream_id("variable:demand") == stream_id("variable:demand")
        assert 0 <= stream_id("variable:demand") < 2 ** 64


class TestPlanChunks:
    """Test chunk planning."""

    def test_ranges_cover_draws(self):
        """Chunks are contiguous and cover every draw."""
        assert plan_chunks(10, 4) == [(0, 4), (4, 8), (8, 10)]

    def test_single_chunk(self):
        """A chunk larger than the run gives one range."""
        assert plan_chunks(100, 10_000) == [(0, 100)]

    def test_invalid_chunk_size(self):
        """Chunk size must be positive."""
        with pytest.raises(ValueError):
            plan_chunks(10, 0)
