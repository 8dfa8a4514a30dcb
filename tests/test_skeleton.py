"""Tests for ring labelling and thinning."""

import numpy as np
from skimage.measure import label

from retinopathy_features.skeleton import Skeletonizer


def _foreground(shape):
    return np.zeros(shape + (3,), dtype=np.int16)


def test_rings_count_distance_to_background():
    foreground = np.zeros((9, 9), dtype=bool)
    foreground[1:8, 1:8] = True
    rings = Skeletonizer.compute_rings(foreground)
    assert rings[1, 1] == 1
    assert rings[2, 2] == 2
    assert rings[4, 4] == 4
    assert rings[0, 0] == 0


def test_grid_edge_counts_as_background():
    rings = Skeletonizer.compute_rings(np.ones((5, 5), dtype=bool))
    assert rings[0, 2] == 1
    assert rings[2, 2] == 3


def test_one_pixel_line_is_kept(line_skeleton):
    grid = line_skeleton.copy()
    Skeletonizer().produce_skeleton(grid, np.zeros((11, 50), dtype=bool))
    np.testing.assert_array_equal(grid, line_skeleton)


def test_bar_thins_to_centre_line():
    grid = _foreground((13, 40))
    grid[5:8, 5:35] = (45, 30, 15)
    Skeletonizer().produce_skeleton(grid, np.zeros((13, 40), dtype=bool))

    expected = np.zeros((13, 40), dtype=bool)
    expected[6, 6:34] = True
    np.testing.assert_array_equal(grid[:, :, 0] != 0, expected)
    assert (grid[6, 6:34, 0] == 100).all()
    assert (grid[6, 6:34, 1] == 50).all()


def test_blob_stays_connected():
    grid = _foreground((30, 30))
    rows, cols = np.ogrid[:30, :30]
    grid[(rows - 15) ** 2 + (cols - 14) ** 2 <= 64] = (45, 30, 15)
    before = int((grid[:, :, 0] != 0).sum())

    Skeletonizer().produce_skeleton(grid, np.zeros((30, 30), dtype=bool))
    skeleton = grid[:, :, 0] != 0

    assert 0 < skeleton.sum() < before
    assert label(skeleton, connectivity=2).max() == 1


def test_masked_pixels_are_cleared(line_skeleton):
    grid = line_skeleton.copy()
    non_eye = np.zeros((11, 50), dtype=bool)
    non_eye[:, :25] = True
    Skeletonizer().produce_skeleton(grid, non_eye)
    assert not grid[:, :25].any()
    assert (grid[5, 25:45, 0] == 50).all()


class TestTruncate:
    """Test single pixel removal."""

    def test_transitions(self):
        assert Skeletonizer.transitions([1, 0, 1, 0, 0, 0, 0, 0]) == 2
        assert Skeletonizer.transitions([1, 1, 1, 0, 0, 0, 0, 0]) == 1
        assert Skeletonizer.transitions([1] * 8) == 0

    def test_removed_value_moves_to_lower_neighbours(self):
        grid = _foreground((3, 3))
        grid[1, 1] = (100, 50, 30)
        grid[0, 0] = (50, 25, 15)
        grid[0, 1] = (50, 25, 15)
        assert Skeletonizer().truncate(grid, 1, 1)
        assert not grid[1, 1].any()
        assert grid[0, 0].tolist() == [100, 50, 30]
        assert grid[0, 1].tolist() == [100, 50, 30]

    def test_endpoint_and_bridge_are_kept(self):
        grid = _foreground((3, 3))
        grid[1, 0:3] = (50, 25, 15)
        skeletonizer = Skeletonizer()
        assert not skeletonizer.truncate(grid, 1, 0)
        assert not skeletonizer.truncate(grid, 1, 1)
        assert not skeletonizer.truncate(grid, 0, 0)
