"""
Optic disc localisation.

The disc is the brightest compact circular structure of a fundus image. The
search runs on a 10x downsampled copy and scores every candidate centre by the
ratio of the mean intensity inside a disc to the mean of the ring around it.
"""

import logging
from dataclasses import dataclass

import numpy as np
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class OpticDisc:
    """Located optic disc, in full-resolution coordinates."""
    center: Tuple[int, int]  # (row, col)
    radius: int
    ratio: float


class OpticDiscLocator:
    """
    Locates the optic disc and masks it out.

    Parameters
    ----------
    downsample : int
        Sampling step of the search image
    eye_to_disc_ratio : float
        Eye radius divided by the expected disc radius
    exterior_factor : float
        Outer radius of the comparison ring, relative to the disc radius
    mask_factor : float
        Radius of the masked region, relative to the disc radius
    """

    def __init__(self,
                 downsample: int = 10,
                 eye_to_disc_ratio: float = 6.3,
                 exterior_factor: float = 1.5,
                 mask_factor: float = 1.2):
        self.downsample = downsample
        self.eye_to_disc_ratio = eye_to_disc_ratio
        self.exterior_factor = exterior_factor
        self.mask_factor = mask_factor

    def _offsets(self, radius: int) -> Tuple[np.ndarray, np.ndarray]:
        """Integer offsets of the disc interior and of the surrounding ring."""
        reach = int(np.ceil(radius * self.exterior_factor))
        dr, dc = np.mgrid[-reach:reach + 1, -reach:reach + 1]
        dist = np.sqrt(dr ** 2 + dc ** 2)
        interior = dist <= radius
        exterior = (dist <= radius * self.exterior_factor) & ~interior
        return (np.stack([dr[interior], dc[interior]], axis=1),
                np.stack([dr[exterior], dc[exterior]], axis=1))

    @staticmethod
    def _gather(combined: np.ndarray, mask: np.ndarray, center: Tuple[int, int],
                offsets: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        rows = offsets[:, 0] + center[0]
        cols = offsets[:, 1] + center[1]
        inside = (rows >= 0) & (rows < combined.shape[0]) & (cols >= 0) & (cols < combined.shape[1])
        rows, cols = rows[inside], cols[inside]
        return combined[rows, cols], mask[rows, cols]

    def evaluate_circle(self, combined: np.ndarray, mask: np.ndarray,
                        center: Tuple[int, int],
                        interior: np.ndarray, exterior: np.ndarray) -> float:
        """
        Interior/exterior intensity ratio for one candidate centre.

        Returns 0 when any interior pixel is masked or when the ring is dark.
        """
        values, masked = self._gather(combined, mask, center, interior)
        if masked.any():
            return 0.0
        interior_avg = values.sum() / max(1, len(values))

        values, masked = self._gather(combined, mask, center, exterior)
        values = values[~masked]
        exterior_avg = values.sum() / max(1, len(values))
        if exterior_avg == 0:
            return 0.0
        return float(interior_avg / exterior_avg)

    def locate(self, grid: np.ndarray, eye_radius: int,
               non_eye: np.ndarray) -> Optional[OpticDisc]:
        """
        Find the optic disc and mark it in ``non_eye``.

        Parameters
        ----------
        grid : np.ndarray
            RGB pixel grid of shape (H, W, 3)
        eye_radius : int
            Eye radius estimated by the background modeler
        non_eye : np.ndarray
            NonEyeMask, updated in place

        Returns
        -------
        disc : OpticDisc or None
            None when the image is too small to hold a single candidate
        """
        step = self.downsample
        height, width = grid.shape[:2]
        mini_h, mini_w = height // step, width // step
        mini = grid[:mini_h * step:step, :mini_w * step:step].astype(np.int32)
        mini_mask = non_eye[:mini_h * step:step, :mini_w * step:step]
        combined = ((mini[:, :, 0] + mini[:, :, 1]) * 0.5).astype(np.int32)

        mini_radius = int(eye_radius / (self.eye_to_disc_ratio * step))
        interior, exterior = self._offsets(mini_radius)

        best_ratio = -99.0
        best_center = None
        row = int(mini_radius * 2.1)
        while row < mini_h - mini_radius * 2.1:
            col = int(mini_radius * 1.1)
            while col < mini_w - mini_radius * 1.1:
                ratio = self.evaluate_circle(combined, mini_mask, (row, col), interior, exterior)
                if ratio > best_ratio:
                    best_ratio = ratio
                    best_center = (row, col)
                col += 2
            row += 2

        if best_center is None:
            logger.debug("No optic disc candidates for a %dx%d image", height, width)
            return None

        center = (best_center[0] * step, best_center[1] * step)
        radius = int(eye_radius / self.eye_to_disc_ratio)
        self.mark(non_eye, center, radius * self.mask_factor)
        logger.debug("Optic disc at %s, radius %d, ratio %.3f", center, radius, best_ratio)
        return OpticDisc(center=center, radius=radius, ratio=best_ratio)

    @staticmethod
    def mark(non_eye: np.ndarray, center: Tuple[int, int], radius: float):
        """Set every mask pixel within ``radius`` of ``center``."""
        rows, cols = np.ogrid[:non_eye.shape[0], :non_eye.shape[1]]
        inside = (rows - center[0]) ** 2 + (cols - center[1]) ** 2 <= radius ** 2
        non_eye[inside] = True
