"""Smoke tests for the plotting helpers."""

import matplotlib.pyplot as plt
import numpy as np

from retinopathy_features import FeatureDetector
from retinopathy_features.veins import VeinNetworkExtractor
from retinopathy_features.visualization import (
    FORK_COLOUR,
    show_microaneurysm_histogram,
    show_processing_stages,
    show_vein_network,
    vein_overlay,
)


def _y_skeleton():
    grid = np.zeros((30, 30, 3), dtype=np.int16)
    grid[15, 2:28] = (50, 25, 15)
    grid[3:15, 15] = (50, 25, 15)
    return grid


def test_vein_overlay_marks_branch_forks():
    network = VeinNetworkExtractor().trace(_y_skeleton())
    overlay = vein_overlay(network, fork_radius=1)
    branches = [fork for fork in network.forks if len(fork.veins) > 2]
    assert branches
    row, col = branches[0].coord
    assert overlay[row, col].tolist() == list(FORK_COLOUR)


def test_processing_stages_figure(fundus, tmp_path):
    result = FeatureDetector(boundary_thickness=2).compute_features(fundus)
    target = tmp_path / "stages.png"
    fig = show_processing_stages(fundus, result, save_path=str(target), show=False)
    assert target.exists()
    assert len(fig.axes) == 6
    plt.close(fig)


def test_vein_network_figure(tmp_path):
    network = VeinNetworkExtractor().trace(_y_skeleton())
    target = tmp_path / "veins.png"
    fig = show_vein_network(network, image=_y_skeleton() * 3, save_path=str(target), show=False)
    assert target.exists()
    plt.close(fig)


def test_histogram_figure(fundus, tmp_path):
    features = FeatureDetector(boundary_thickness=2).compute_features(fundus).features
    target = tmp_path / "histogram.png"
    fig = show_microaneurysm_histogram(features, save_path=str(target), show=False)
    assert target.exists()
    assert len(fig.axes[0].patches) == 40
    plt.close(fig)


def test_plotting_helpers_are_exported():
    import retinopathy_features

    assert retinopathy_features.show_vein_network is show_vein_network
    assert retinopathy_features.vein_overlay is vein_overlay
    for name in ("show_processing_stages", "show_vein_network",
                 "show_microaneurysm_histogram", "vein_overlay"):
        assert name in retinopathy_features.__all__
