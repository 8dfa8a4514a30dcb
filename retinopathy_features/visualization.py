"""
Visualization utilities for fundus feature extraction.

Provides functions to visualize:
- The pipeline stages of one image
- The vein network with its forks
- Microaneurysm candidate counts
"""

import numpy as np
import matplotlib.pyplot as plt
from skimage.draw import disk
from typing import Optional, Tuple

from .detector import FeatureExtractionResult
from .features import FeatureLog
from .veins import VeinNetwork, render_veins

FORK_COLOUR = (255, 255, 255)


def _finish(fig, save_path: Optional[str], show: bool):
    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
    if show:
        plt.show()
    return fig


def _display(grid: np.ndarray) -> np.ndarray:
    return np.clip(grid, 0, 255).astype(np.uint8)


def show_processing_stages(image: np.ndarray,
                           result: FeatureExtractionResult,
                           figsize: Tuple[int, int] = (16, 8),
                           save_path: Optional[str] = None,
                           show: bool = True):
    """
    Display the main intermediate results of one run.

    Parameters
    ----------
    image : np.ndarray
        Original RGB image
    result : FeatureExtractionResult
        Output of ``FeatureDetector.compute_features``
    figsize : tuple
        Figure size
    save_path : str, optional
        Path to save figure
    show : bool
        Open an interactive window

    Returns
    -------
    fig : matplotlib.figure.Figure
    """
    fig, axes = plt.subplots(2, 3, figsize=figsize)
    axes = axes.ravel()

    axes[0].imshow(_display(image))
    axes[0].set_title('Original Image')

    axes[1].imshow(result.non_eye, cmap='gray')
    title = f'Non-eye Mask (radius {result.eye_radius})'
    if result.optic_disc is not None:
        row, col = result.optic_disc.center
        axes[1].plot(col, row, 'r+', markersize=12)
        title += ', disc +'
    axes[1].set_title(title)

    for offset, pass_result in enumerate(result.passes[:2]):
        name = 'Inverted' if pass_result.inverse else 'Normal'
        axes[2 + offset].imshow(pass_result.forest.levels, cmap='viridis')
        axes[2 + offset].set_title(f'{name} Levels ({len(pass_result.forest)} patches)')
        axes[4 + offset].imshow(_display(pass_result.skeleton))
        axes[4 + offset].set_title(f'{name} Skeleton ({len(pass_result.candidates)} candidates)')

    for ax in axes:
        ax.axis('off')

    return _finish(fig, save_path, show)


def vein_overlay(network: VeinNetwork, fork_radius: int = 2) -> np.ndarray:
    """RGB grid of the live veins with branch forks stamped as discs."""
    overlay = render_veins(network.shape, network.veins)
    for fork in network.forks:
        if len(fork.veins) > 2:
            rr, cc = disk(fork.coord, fork_radius, shape=network.shape)
            overlay[rr, cc] = FORK_COLOUR
    return overlay


def show_vein_network(network: VeinNetwork,
                      image: Optional[np.ndarray] = None,
                      figsize: Tuple[int, int] = (10, 10),
                      save_path: Optional[str] = None,
                      show: bool = True):
    """
    Display the vein network coloured by strength class.

    Parameters
    ----------
    network : VeinNetwork
        Network from the normal pass
    image : np.ndarray, optional
        Background image shown underneath
    figsize : tuple
        Figure size
    save_path : str, optional
        Path to save figure
    show : bool
        Open an interactive window
    """
    fig, ax = plt.subplots(1, 1, figsize=figsize)
    overlay = vein_overlay(network)
    if image is not None:
        ax.imshow(_display(image), alpha=0.5)
        drawn = overlay.any(axis=2)
        rgba = np.zeros(overlay.shape[:2] + (4,), dtype=np.uint8)
        rgba[..., :3] = _display(overlay)
        rgba[..., 3] = np.where(drawn, 255, 0)
        ax.imshow(rgba)
    else:
        ax.imshow(_display(overlay))
    live = len(network.live_veins())
    ax.set_title(f'Vein Network ({live} live veins, {len(network.forks)} forks)')
    ax.axis('off')
    return _finish(fig, save_path, show)


def show_microaneurysm_histogram(features: FeatureLog,
                                 figsize: Tuple[int, int] = (14, 5),
                                 save_path: Optional[str] = None,
                                 show: bool = True):
    """
    Bar chart of the candidate percentages logged for each size/strength cell.

    Only the percent-of-candidates records are plotted; both orientation
    passes are summed.
    """
    totals = {}
    for name, value in features.records:
        if not name.startswith('MICROANEURISM|'):
            continue
        label = name.rsplit('|', 1)[-1]
        totals.setdefault(label, []).append(float(value))
    # Records come in pairs: percent of candidates, then percent of eye area.
    labels = list(totals)
    values = [sum(v[0::2]) for v in totals.values()]

    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.bar(np.arange(len(labels)), values, color='tab:red', alpha=0.7)
    ax.set_xticks(np.arange(len(labels)))
    ax.set_xticklabels(labels, rotation=90, fontsize=6)
    ax.set_ylabel('Percent of candidates')
    ax.set_title('Microaneurysm Candidates by Size and Strength')
    ax.grid(True, alpha=0.3)
    return _finish(fig, save_path, show)
