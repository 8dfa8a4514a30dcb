"""Tests for the patch hierarchy."""

import numpy as np
import pytest

from retinopathy_features.patches import (
    FOREGROUND_COLOUR,
    Patch,
    PatchArena,
    PatchForest,
    PatchHierarchyBuilder,
    compute_curvature,
    render_foreground,
)
from retinopathy_features.quantize import reduce_colours


def _squares():
    """20x20 grid at level 5 with an 8x8 block at level 10 in the middle."""
    levels = np.full((20, 20), 5, dtype=np.int32)
    levels[6:14, 6:14] = 10
    return levels


def test_constant_grid_is_one_patch():
    grid = np.full((50, 50, 3), 90, dtype=np.int16)
    forest = PatchHierarchyBuilder().construct(reduce_colours(grid))
    assert len(forest) == 1
    patch = forest.patches[0]
    assert patch.area == 2500
    assert patch.stacked_area == 2500
    assert patch.boundary == []
    assert patch.curvature == 0.0
    assert (forest.marker == patch.id).all()


def test_higher_block_absorbs_surrounding_ring():
    forest = PatchHierarchyBuilder().construct(_squares())
    outer, inner = forest.arena.get(1), forest.arena.get(2)

    assert (outer.level, inner.level) == (5, 10)
    assert outer.area == 336
    assert len(outer.boundary) == 36
    assert outer.parent == inner.id
    assert inner.children == [outer.id]
    assert inner.parent is None

    assert inner.area == 400
    assert inner.stacked_area == 5 * 336 + 400
    assert inner.centroid == pytest.approx((9.5, 9.5))
    assert [p.id for p in forest.arena.roots()] == [inner.id]


def test_inverted_labels_flip_the_hierarchy():
    grid = np.zeros((20, 20, 3), dtype=np.int16)
    grid[:, :, 1] = np.where(_squares() == 10, 200, 100)
    forest = PatchHierarchyBuilder().construct(reduce_colours(grid, inverse=True))

    inner, outer = forest.arena.get(1), forest.arena.get(2)
    assert (inner.level, outer.level) == (1, 33)
    assert inner.area == 64
    assert len(inner.boundary) == 28
    assert inner.parent == outer.id
    assert outer.stacked_area == 32 * 64 + 400


def test_random_levels_form_a_consistent_forest():
    rng = np.random.default_rng(11)
    levels = rng.integers(0, 6, size=(30, 30))
    forest = PatchHierarchyBuilder().construct(levels)

    assert forest.arena.discarded == 0
    for patch in forest.arena:
        assert patch.stacked_area >= patch.area
        if patch.parent is not None:
            parent = forest.arena.get(patch.parent)
            assert parent.level > patch.level
            assert patch.id in parent.children
    assert sum(root.area for root in forest.arena.roots()) == 30 * 30


def test_oversized_patch_is_discarded_and_releases_children():
    levels = np.full((20, 20), 2, dtype=np.int32)
    levels[8:11, 8:11] = 1
    forest = PatchHierarchyBuilder(max_area=100).construct(levels)

    assert forest.arena.discarded == 1
    assert len(forest) == 1
    island = forest.patches[0]
    assert island.level == 1
    assert island.area == 9
    assert island.parent is None


class TestArena:
    """Test id bookkeeping of the arena."""

    def test_root_and_ancestors(self):
        arena = PatchArena()
        low, mid, high = arena.create(1), arena.create(2), arena.create(3)
        arena.link(low, mid)
        arena.link(mid, high)

        assert arena.root_of(low.id) is high
        assert [p.id for p in arena.ancestors(low)] == [1, 2, 3]
        assert arena.root_of(0) is None

        arena.discard(mid)
        assert low.parent is None
        assert mid.id not in arena
        assert arena.discarded == 1


class TestCurvature:
    """Test the boundary roundness measure."""

    def test_circle_is_round(self):
        angles = np.linspace(0, 2 * np.pi, 64, endpoint=False)
        boundary = [(50 + 10 * np.sin(a), 50 + 10 * np.cos(a)) for a in angles]
        patch = Patch(id=1, level=3, area=100, row_sum=5000, col_sum=5000, boundary=boundary)
        assert compute_curvature(patch) == pytest.approx(1.0)

    def test_elongated_outline_is_not_round(self):
        boundary = [(50, c) for c in range(30, 71)] + [(49, 50), (51, 50)]
        patch = Patch(id=1, level=3, area=100, row_sum=5000, col_sum=5000, boundary=boundary)
        assert compute_curvature(patch) < 0.2

    def test_small_patches_score_zero(self):
        patch = Patch(id=1, level=3, area=8, boundary=[(0, i) for i in range(20)])
        assert compute_curvature(patch) == 0.0


def test_render_foreground_paints_outlines():
    forest = PatchHierarchyBuilder().construct(_squares())
    grid = render_foreground(forest)

    assert grid.shape == (20, 20, 3)
    assert grid[0, 0].tolist() == list(FOREGROUND_COLOUR)
    # Level 5 outline, weight (32 - 5) / 32 of the base colour, 3 pixels wide.
    assert grid[5, 5].tolist() == [126, 84, 42]
    assert grid[4, 4].tolist() == [126, 84, 42]
    assert grid[3, 3].tolist() == list(FOREGROUND_COLOUR)


def test_render_foreground_leaves_outline_centre():
    arena = PatchArena()
    patch = arena.create(4)
    patch.area = patch.stacked_area = 20
    patch.boundary = [(5, 5)]
    marker = np.full((11, 11), patch.id, dtype=np.int32)
    forest = PatchForest(arena=arena, marker=marker, levels=np.full((11, 11), 4))

    grid = render_foreground(forest)
    # Sharpness 1: a 3x3 square around the point, weight (32 - 4) / 32.
    assert grid[5, 5].tolist() == list(FOREGROUND_COLOUR)
    assert grid[4, 4].tolist() == [131, 87, 43]
    assert grid[6, 5].tolist() == [131, 87, 43]
    assert grid[7, 7].tolist() == list(FOREGROUND_COLOUR)
