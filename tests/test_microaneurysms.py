"""Tests for microaneurysm screening and the candidate histogram."""

import numpy as np
import pytest

from retinopathy_features.features import FeatureLog
from retinopathy_features.microaneurysms import (
    BAND_COLOURS,
    MicroaneurysmAnalyzer,
    draw_candidates,
    size_band,
    strength_band,
)
from retinopathy_features.patches import PatchHierarchyBuilder


def _disk_levels(size, discs, background):
    """Level grid with concentric discs centred in the middle, largest first."""
    levels = np.full((size, size), background, dtype=np.int32)
    rows, cols = np.ogrid[:size, :size]
    center = size // 2
    for radius, level in discs:
        levels[(rows - center) ** 2 + (cols - center) ** 2 <= radius ** 2] = level
    return levels


def test_strength_bands():
    assert strength_band(1.2) is None
    assert strength_band(1.3) == 0
    assert strength_band(1.7) == 2
    assert strength_band(2.5) == 4


def test_size_bands():
    assert size_band(10, 1.0) is None
    assert size_band(11, 1.0) == 0
    assert size_band(50, 1.0) == 0
    assert size_band(51, 1.0) == 1
    assert size_band(12000, 1.0) == 7
    assert size_band(12001, 1.0) is None
    assert size_band(30, 2.0) == 0


def test_dark_spot_is_a_candidate():
    forest = PatchHierarchyBuilder().construct(_disk_levels(30, [(3, 1)], 3))
    non_eye = np.zeros((30, 30), dtype=bool)
    features = FeatureLog()
    features.set_eye_radius(10)

    candidates = MicroaneurysmAnalyzer().find_microaneurysms(forest, non_eye, 1.0, features)

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.label == "SMALL_XSTRONG"
    assert candidate.intensity == 1
    assert candidate.centroid == pytest.approx((15.0, 15.0))
    assert forest.arena.get(candidate.patch_id).analyzed

    assert len(features) == 160
    name = "MICROANEURISM|CURVATURE_STRONG|SMALL_XSTRONG"
    assert features.values(name) == [0.0, 0.0, 100.0, pytest.approx(100 / (np.pi * 100))]


def test_nested_patches_are_reported_once():
    levels = _disk_levels(31, [(5, 3), (2, 1)], 5)
    forest = PatchHierarchyBuilder().construct(levels)
    candidates = MicroaneurysmAnalyzer().find_microaneurysms(
        forest, np.zeros((31, 31), dtype=bool), 1.0)

    assert [c.label for c in candidates] == ["MEDIUM_XXSTRONG"]
    accepted = forest.arena.get(candidates[0].patch_id)
    assert accepted.level == 3
    inner = forest.arena.get(accepted.children[0])
    assert inner.level == 1
    assert not inner.analyzed


def test_masked_centroid_is_ignored():
    forest = PatchHierarchyBuilder().construct(_disk_levels(30, [(3, 1)], 3))
    non_eye = np.zeros((30, 30), dtype=bool)
    non_eye[15, 15] = True
    assert MicroaneurysmAnalyzer().find_microaneurysms(forest, non_eye, 1.0) == []


def test_curvature_threshold_filters():
    forest = PatchHierarchyBuilder().construct(_disk_levels(30, [(3, 1)], 3))
    analyzer = MicroaneurysmAnalyzer(curvature_threshold=1.1)
    assert analyzer.find_microaneurysms(forest, np.zeros((30, 30), dtype=bool), 1.0) == []


def test_empty_histogram_is_all_zero():
    features = FeatureLog()
    MicroaneurysmAnalyzer().log_histogram(features, [])
    assert len(features) == 160
    assert all(value == 0.0 for _, value in features.records)


def test_draw_candidates():
    forest = PatchHierarchyBuilder().construct(_disk_levels(30, [(3, 1)], 3))
    candidates = MicroaneurysmAnalyzer().find_microaneurysms(
        forest, np.zeros((30, 30), dtype=bool), 1.0)
    grid = draw_candidates(np.zeros((30, 30, 3), dtype=np.int16), forest, candidates)
    row, col = forest.arena.get(candidates[0].patch_id).boundary[0]
    assert grid[row, col].tolist() == list(BAND_COLOURS[0])
    assert not grid[0, 0].any()
