"""Tests for intensity quantization and linear filtering."""

import numpy as np
import pytest

from retinopathy_features.filters import (
    BLUR_KERNEL,
    SOBEL_X,
    convolve,
    convolve_normalized,
    gaussian_kernel,
    gradient_edges,
    grey_scale,
)
from retinopathy_features.quantize import (
    NUM_COLORS,
    label_levels,
    quantize_levels,
    reduce_colours,
    rgb_label,
)


def _green(values):
    values = np.asarray(values, dtype=np.int16)
    grid = np.zeros(values.shape + (3,), dtype=np.int16)
    grid[:, :, 1] = values
    return grid


class TestQuantize:
    """Test level quantization and label encoding."""

    def test_constant_channel_maps_to_zero(self):
        assert not quantize_levels(np.full((50, 50), 77)).any()

    def test_min_max_scaling(self):
        levels = quantize_levels(np.array([[0, 10, 20]]), num_levels=2)
        assert levels.tolist() == [[0, 1, 2]]

    def test_requantizing_is_idempotent(self):
        rng = np.random.default_rng(7)
        channel = rng.integers(0, 256, size=(40, 40))
        once = quantize_levels(channel)
        twice = quantize_levels(once)
        np.testing.assert_array_equal(once, twice)
        for inverse in (False, True):
            np.testing.assert_array_equal(rgb_label(once, inverse), rgb_label(twice, inverse))

    def test_label_encoding(self):
        labels = rgb_label(np.array([[0, 31, 32]]))
        assert labels[0, 0].tolist() == [1, 6, 7]
        assert labels[0, 1].tolist() == [32, 200, 240]
        assert labels[0, 2].tolist() == [33, 206, 247]

        inverted = rgb_label(np.array([[0, 32]]), inverse=True)
        assert label_levels(inverted).tolist() == [[NUM_COLORS + 1, 1]]

    def test_reduce_colours_reads_green_channel(self):
        grid = _green([[5, 5], [10, 10]])
        grid[:, :, 0] = 200
        labels = reduce_colours(grid)
        assert label_levels(labels).tolist() == [[1, 1], [33, 33]]
        labels = reduce_colours(grid, inverse=True)
        assert label_levels(labels).tolist() == [[33, 33], [1, 1]]

    def test_reduce_colours_rejects_flat_input(self):
        with pytest.raises(ValueError):
            reduce_colours(np.zeros((4, 4)))


class TestFilters:
    """Test convolution and derived filters."""

    def test_gaussian_kernel(self):
        kernel = gaussian_kernel(5)
        assert kernel.shape == (5, 5)
        assert kernel.sum() == pytest.approx(1.0)
        assert kernel[2, 2] == kernel.max()
        np.testing.assert_allclose(kernel, kernel.T)
        np.testing.assert_allclose(BLUR_KERNEL, kernel)
        with pytest.raises(ValueError):
            gaussian_kernel(4)

    def test_edges_are_clamped(self):
        values = np.arange(25).reshape(5, 5)
        kernel = np.zeros((3, 3))
        kernel[0, 0] = 1  # picks the up-left neighbour
        out = convolve(_green(values), kernel, channel=1)

        rows = np.clip(np.arange(5) - 1, 0, 4)
        expected = values[rows][:, rows]
        np.testing.assert_array_equal(out[:, :, 0], expected)
        np.testing.assert_array_equal(out[:, :, 1], expected)
        np.testing.assert_array_equal(out[:, :, 2], expected)

    def test_kernel_larger_than_grid(self):
        out = convolve(_green(np.full((3, 3), 2)), np.ones((5, 5)), channel=1)
        assert (out == 50).all()

    def test_normalized_identity(self):
        grid = _green(np.full((6, 6), 100))
        non_eye = np.zeros((6, 6), dtype=bool)
        non_eye[0, :] = True
        grid[0, :, 1] = 0
        identity = np.zeros((3, 3))
        identity[1, 1] = 1
        out = convolve_normalized(grid, identity, 1, non_eye)
        assert (out[1:, :, 0] == 100).all()
        assert (out[0, :, 0] == 0).all()

    def test_normalized_zero_mean_falls_back(self):
        grid = _green(np.zeros((4, 4)))
        out = convolve_normalized(grid, BLUR_KERNEL, 1, np.zeros((4, 4), dtype=bool))
        assert not out.any()

    def test_gradient_edges(self):
        values = np.zeros((8, 8))
        values[:, 4:] = 100
        grad_x = convolve(_green(values), SOBEL_X, channel=1)
        grad_y = convolve(_green(values), SOBEL_X.T, channel=1)
        magnitude, orientation = gradient_edges(grad_x, grad_y)
        assert magnitude[4, 3, 0] == 255  # clipped 400
        assert magnitude[4, 0, 0] == 0
        assert orientation[4, 3] == pytest.approx(0.0)

    def test_grey_scale(self):
        grid = np.zeros((2, 2, 3), dtype=np.int16)
        grid[:, :, 1] = 100
        grey = grey_scale(grid)
        assert grey.shape == (2, 2, 3)
        assert 58 <= grey[0, 0, 0] <= 59
        np.testing.assert_array_equal(grey[:, :, 0], grey[:, :, 2])
