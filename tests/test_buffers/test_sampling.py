"""
Unit tests for uniform, prioritized and geometric sampling.
"""
import pytest
import numpy as np
import torch
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from experience_replay import (ExperienceBuffer, ContinuousSpace, ConstantSchedule, LinearSchedule,
                               sample, uniform_sample, prioritized_sample, geometric_sample)
from experience_replay.sampling import truncated_geometric


SPACE = ContinuousSpace(1)

# Chi-square critical value, 3 degrees of freedom, p = 0.001
CHI2_CRITICAL_DF3 = 16.266


def make_source(n, capacity=None, offset=0, numpy_rng=None, **kwargs):
    """Buffer whose state column holds offset + row number."""
    capacity = n if capacity is None else capacity
    buffer = ExperienceBuffer(SPACE, SPACE, capacity, numpy_rng=numpy_rng, **kwargs)
    if n > 0:
        buffer.push({'s': np.arange(offset, offset + n, dtype=np.float32)})
    return buffer


def episodic_source(lengths, numpy_rng, extra='episode_end'):
    """Buffer holding back-to-back episodes of the given lengths."""
    n = sum(lengths)
    buffer = ExperienceBuffer(SPACE, SPACE, n, [extra], numpy_rng=numpy_rng)
    flags = np.zeros(n, dtype=bool)
    steps = np.zeros(n, dtype=np.int64)
    row = 0
    for length in lengths:
        steps[row:row + length] = np.arange(1, length + 1)
        row += length
        flags[row - 1] = True
    buffer.push({'s': np.arange(n, dtype=np.float32), 'episode_end': flags, 't': steps})
    return buffer


def episode_bounds(lengths):
    bounds = []
    row = 0
    for length in lengths:
        bounds.append((row, row + length - 1))
        row += length
    return bounds


class TestUniformSample:
    """Test cases for uniform_sample."""

    def test_fills_target(self, numpy_rng):
        """Test the target is filled with rows of the source."""
        source = make_source(10, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 32)
        rows = uniform_sample(target, source)

        assert len(rows) == 32
        assert len(target) == 32
        values = set(target['s'][:, 0].tolist())
        assert values.issubset(set(range(10)))

    def test_only_valid_rows(self, numpy_rng):
        """Test rows beyond the valid range are never drawn."""
        source = make_source(3, capacity=10, offset=1, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 200)
        uniform_sample(target, source)
        assert set(target['s'][:, 0].tolist()).issubset({1.0, 2.0, 3.0})

    def test_batch_size(self, numpy_rng):
        """Test B rows are pushed."""
        source = make_source(10, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 32)
        uniform_sample(target, source, B=5)
        assert len(target) == 5

    def test_empty_source(self, numpy_rng):
        """Test sampling an empty buffer fails fast."""
        source = make_source(0, capacity=4, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 4)
        with pytest.raises(ValueError, match="empty"):
            uniform_sample(target, source)


class TestPrioritizedSample:
    """Test cases for prioritized_sample."""

    def test_requires_weight_column(self, numpy_rng):
        """Test a source without weight column is rejected."""
        source = make_source(4, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 4)
        with pytest.raises(ValueError, match="weight"):
            prioritized_sample(target, source)

    def test_requires_priorities(self, numpy_rng):
        """Test a weight column alone is not enough."""
        source = make_source(4, numpy_rng=numpy_rng, extras=['weight'])
        target = ExperienceBuffer(SPACE, SPACE, 4)
        with pytest.raises(ValueError, match="prioritized"):
            prioritized_sample(target, source)

    def test_empty_source(self, numpy_rng):
        """Test sampling an empty prioritized buffer fails fast."""
        source = make_source(0, capacity=4, numpy_rng=numpy_rng, prioritized=True)
        target = ExperienceBuffer(SPACE, SPACE, 4)
        with pytest.raises(ValueError, match="empty"):
            prioritized_sample(target, source)

    def test_records_indices(self, numpy_rng):
        """Test the target remembers which source rows it received."""
        source = make_source(8, numpy_rng=numpy_rng, prioritized=True)
        target = ExperienceBuffer(SPACE, SPACE, 16, ['weight'])
        rows = prioritized_sample(target, source)

        np.testing.assert_array_equal(target.indices, rows)
        np.testing.assert_array_equal(target['s'][:, 0].numpy(), rows.astype(np.float32))
        assert np.all((rows >= 0) & (rows < 8))

    def test_only_valid_rows(self, numpy_rng):
        """Test a partially filled source only yields its valid rows."""
        source = make_source(3, capacity=10, numpy_rng=numpy_rng, prioritized=True)
        target = ExperienceBuffer(SPACE, SPACE, 100)
        rows = prioritized_sample(target, source)
        assert np.all(rows < 3)

    def test_single_row(self, numpy_rng):
        """Test a one-row source always yields that row."""
        source = make_source(1, capacity=5, numpy_rng=numpy_rng, prioritized=True)
        target = ExperienceBuffer(SPACE, SPACE, 10)
        rows = prioritized_sample(target, source)
        assert np.all(rows == 0)

    def test_weights_normalized(self, numpy_rng):
        """Test weights are at most 1, and exactly 1 for the least prioritized row."""
        source = make_source(4, numpy_rng=numpy_rng, prioritized=True, alpha=1.0,
                             beta=ConstantSchedule(0.5))
        source.update_priorities([0, 1, 2, 3], [1.0, 2.0, 3.0, 4.0])
        target = ExperienceBuffer(SPACE, SPACE, 64, ['weight'])
        rows = prioritized_sample(target, source)

        weights = target['weight'][:, 0].numpy()
        assert weights.max() <= 1.0 + 1e-6
        assert 0 in rows
        np.testing.assert_allclose(weights[rows == 0], 1.0, rtol=1e-6)
        # w_i = (p_i / p_min) ** -beta
        for row, expected in [(1, 2.0 ** -0.5), (2, 3.0 ** -0.5), (3, 0.5)]:
            if np.any(rows == row):
                np.testing.assert_allclose(weights[rows == row], expected, rtol=1e-5)

    def test_min_row_weight_after_rejected_update(self, numpy_rng):
        """Test a rejected update of an unused row keeps the least prioritized row at weight 1."""
        source = make_source(4, capacity=8, numpy_rng=numpy_rng, prioritized=True, alpha=1.0)
        source.update_priorities([0, 1, 2, 3], [1.0, 2.0, 3.0, 4.0])
        with pytest.raises(IndexError):
            source.update_priorities([6], [0.01])

        target = ExperienceBuffer(SPACE, SPACE, 64, ['weight'])
        rows = prioritized_sample(target, source)
        weights = target['weight'][:, 0].numpy()
        assert np.all(rows < 4)
        np.testing.assert_allclose(weights[rows == 0], 1.0, rtol=1e-6)

    def test_weights_written_to_source(self, numpy_rng):
        """Test the source weight column holds the weights of the sampled rows."""
        source = make_source(4, numpy_rng=numpy_rng, prioritized=True, alpha=1.0)
        source.update_priorities([0, 1, 2, 3], [4.0, 1.0, 1.0, 1.0])
        target = ExperienceBuffer(SPACE, SPACE, 32, ['weight'])
        rows = prioritized_sample(target, source)

        for i, row in enumerate(rows):
            assert target['weight'][i, 0].item() == source['weight'][row, 0].item()

    def test_beta_schedule_step(self, numpy_rng):
        """Test the beta used for the weights comes from the schedule at the given step."""
        source = make_source(2, numpy_rng=numpy_rng, prioritized=True, alpha=1.0,
                             beta=LinearSchedule(0.0, 100))
        source.update_priorities([0, 1], [1.0, 3.0])
        target = ExperienceBuffer(SPACE, SPACE, 8, ['weight'])

        prioritized_sample(target, source, step=0)
        assert torch.allclose(target['weight'], torch.ones(8, 1))

        rows = prioritized_sample(target, source, step=100)
        weights = target['weight'][:, 0].numpy()
        np.testing.assert_allclose(weights[rows == 1], 1.0 / 3.0, rtol=1e-5)

    def test_distribution_follows_priorities(self, numpy_rng):
        """Test draw frequencies match priority ** alpha (chi-square goodness of fit)."""
        alpha = 0.5
        priorities = np.array([1.0, 2.0, 5.0, 8.0])
        source = make_source(4, numpy_rng=numpy_rng, prioritized=True, alpha=alpha)
        source.update_priorities(np.arange(4), priorities)
        target = ExperienceBuffer(SPACE, SPACE, 1000, ['weight'])

        counts = np.zeros(4)
        for _ in range(20):
            rows = prioritized_sample(target, source)
            counts += np.bincount(rows, minlength=4)

        probs = priorities ** alpha / np.sum(priorities ** alpha)
        expected = counts.sum() * probs
        chi2 = np.sum((counts - expected) ** 2 / expected)
        assert chi2 < CHI2_CRITICAL_DF3

    def test_overwritten_rows_keep_priorities_consistent(self, numpy_rng):
        """Test wrapping writes reset overwritten rows to max priority."""
        source = ExperienceBuffer(SPACE, SPACE, 4, prioritized=True, alpha=1.0, numpy_rng=numpy_rng)
        source.push({'s': np.arange(4, dtype=np.float32)})
        source.update_priorities([0, 1, 2, 3], [0.1, 0.1, 0.1, 0.1])
        source.push({'s': np.array([10.0, 11.0], dtype=np.float32)})

        assert source.priority(0) == pytest.approx(source.max_priority, rel=1e-5)
        assert source.priorities.total() == pytest.approx(2 * 0.1 + 2 * 1.0, rel=1e-5)
        assert source.minsort_priorities.peek_min() == pytest.approx(0.1, rel=1e-5)


class TestGeometricSample:
    """Test cases for geometric_sample."""

    @pytest.mark.parametrize("gamma", [0.01, 0.5, 0.9, 0.99])
    def test_stays_inside_episode(self, gamma, numpy_rng):
        """Test sampled rows never pass the end of their episode, including length-1 episodes."""
        lengths = [1, 5, 3, 1, 10]
        source = episodic_source(lengths, numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 500)
        geometric_sample(target, source, gamma)

        bounds = episode_bounds(lengths)
        starts = np.array([b[0] for b in bounds])
        for row in target['s'][:, 0].numpy().astype(int):
            start, end = bounds[np.searchsorted(starts, row, side='right') - 1]
            assert start <= row <= end

    def test_step_counter_episodes(self, numpy_rng):
        """Test episodes can come from the step counter column."""
        lengths = [4, 1, 6]
        source = episodic_source(lengths, numpy_rng, extra='t')
        target = ExperienceBuffer(SPACE, SPACE, 200, ['s0'])
        geometric_sample(target, source, 0.9)

        bounds = episode_bounds(lengths)
        for row, s0 in zip(target['s'][:, 0].numpy().astype(int), target['s0'][:, 0].numpy()):
            start, end = next(b for b in bounds if b[0] <= row <= b[1])
            assert s0 == start

    def test_fills_episode_start_state(self, numpy_rng):
        """Test the s0 column receives the first state of each sampled episode."""
        lengths = [3, 2, 5]
        source = episodic_source(lengths, numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 100, ['s0'])
        rows = geometric_sample(target, source, 0.7)

        assert len(rows) == 100
        bounds = episode_bounds(lengths)
        for row, s0 in zip(target['s'][:, 0].numpy().astype(int), target['s0'][:, 0].numpy()):
            start = next(b[0] for b in bounds if b[0] <= row <= b[1])
            assert s0 == start

    def test_small_gamma_stays_at_start(self, numpy_rng):
        """Test a vanishing gamma almost never moves away from the drawn row."""
        source = episodic_source([50], numpy_rng)
        offsets = truncated_geometric(numpy_rng, 1 - 1e-9, np.full(1000, 49))
        assert np.all(offsets == 0)
        target = ExperienceBuffer(SPACE, SPACE, 10)
        geometric_sample(target, source, 1e-9)
        assert len(target) == 10

    def test_row_outside_episodes(self, numpy_rng):
        """Test rows after the last episode end are reported."""
        source = ExperienceBuffer(SPACE, SPACE, 5, ['episode_end'], numpy_rng=numpy_rng)
        source.push({'s': np.arange(5, dtype=np.float32),
                     'episode_end': [False, False, True, False, False]})
        target = ExperienceBuffer(SPACE, SPACE, 100)
        with pytest.raises(IndexError, match="out of range"):
            geometric_sample(target, source, 0.5)

    def test_requires_episode_columns(self, numpy_rng):
        """Test a source without episode information is rejected."""
        source = make_source(5, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 5)
        with pytest.raises(KeyError):
            geometric_sample(target, source, 0.5)

    @pytest.mark.parametrize("gamma", [0.0, 1.0, 1.5])
    def test_invalid_gamma(self, gamma, numpy_rng):
        """Test gamma outside (0, 1) is rejected."""
        source = episodic_source([3], numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 5)
        with pytest.raises(ValueError):
            geometric_sample(target, source, gamma)

    def test_empty_source(self, numpy_rng):
        """Test sampling an empty buffer fails fast."""
        source = ExperienceBuffer(SPACE, SPACE, 5, ['episode_end'], numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 5)
        with pytest.raises(ValueError, match="empty"):
            geometric_sample(target, source, 0.5)


class TestTruncatedGeometric:
    """Test cases for the truncated geometric offsets."""

    def test_zero_upper(self, numpy_rng):
        """Test a zero-length remainder always yields 0."""
        offsets = truncated_geometric(numpy_rng, 0.1, np.zeros(100, dtype=np.int64))
        assert np.all(offsets == 0)

    def test_bounded(self, numpy_rng):
        """Test offsets stay in [0, upper]."""
        upper = numpy_rng.integers(0, 20, size=5000)
        offsets = truncated_geometric(numpy_rng, 0.05, upper)
        assert np.all(offsets >= 0)
        assert np.all(offsets <= upper)

    def test_mean_untruncated(self, numpy_rng):
        """Test the mean matches (1 - p) / p when truncation is negligible."""
        offsets = truncated_geometric(numpy_rng, 0.5, np.full(20000, 1000))
        assert offsets.mean() == pytest.approx(1.0, abs=0.05)


class TestSample:
    """Test cases for sample over several sources."""

    def test_split_by_fracs(self, numpy_rng):
        """Test the target is split across sources following fracs."""
        first = make_source(5, offset=100, numpy_rng=numpy_rng, prioritized=True)
        second = make_source(5, offset=200, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 8, ['weight'])
        sample(target, first, second, fracs=[0.25, 0.75])

        s = target['s'][:, 0].numpy()
        assert np.all((s[:2] >= 100) & (s[:2] < 200))
        assert np.all(s[2:] >= 200)
        assert len(target.indices) == 2

    def test_default_fracs_remainder_to_first(self, numpy_rng):
        """Test the default split is uniform with the remainder on the first source."""
        sources = [make_source(5, offset=100 * (k + 1), numpy_rng=numpy_rng) for k in range(3)]
        target = ExperienceBuffer(SPACE, SPACE, 10)
        sample(target, *sources)

        s = target['s'][:, 0].numpy()
        assert np.sum((s >= 100) & (s < 200)) == 4
        assert np.sum((s >= 200) & (s < 300)) == 3
        assert np.sum(s >= 300) == 3

    def test_zero_fraction_skipped(self, numpy_rng):
        """Test a source with no share is never touched, even when empty."""
        full = make_source(5, numpy_rng=numpy_rng)
        empty = make_source(0, capacity=5, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 6)
        sample(target, full, empty, fracs=[1.0, 0.0])
        assert len(target) == 6

    def test_invalid_arguments(self, numpy_rng):
        """Test mismatched fractions and missing sources."""
        source = make_source(5, numpy_rng=numpy_rng)
        target = ExperienceBuffer(SPACE, SPACE, 4)
        with pytest.raises(ValueError):
            sample(target, source, fracs=[0.5, 0.5])
        with pytest.raises(ValueError, match="Fractions"):
            sample(target, source, source, fracs=[0.0, 1.5])
        with pytest.raises(ValueError, match="Fractions"):
            sample(target, source, source, fracs=[-0.5, 1.0])
        with pytest.raises(ValueError):
            sample(target)
