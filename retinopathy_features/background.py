"""
Background modelling for fundus photographs.

Fundus images show a circular field of view on a black border. The border is
found by growing dark regions from the image corners; the size of what is left
gives the eye radius. The same module holds the local-mean normalization that
flattens the illumination gradient inside the eye.
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

_EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


@dataclass
class BackgroundModel:
    """Result of the black border search."""
    mask: np.ndarray  # NonEyeMask, True outside the field of view
    background_pixels: int
    eye_radius: int


class BackgroundModeler:
    """
    Separates the eye field of view from the black border.

    Parameters
    ----------
    foreground_threshold : int
        A pixel whose channel sum exceeds this value belongs to the eye
    boundary_thickness : int
        Number of dilation passes applied to the border region
    corner_size : int
        Side of the square corner windows that seed the border search
    """

    def __init__(self,
                 foreground_threshold: int = 45,
                 boundary_thickness: int = 30,
                 corner_size: int = 200):
        self.foreground_threshold = foreground_threshold
        self.boundary_thickness = boundary_thickness
        self.corner_size = corner_size

    def _corner_labels(self, labelled: np.ndarray) -> np.ndarray:
        height, width = labelled.shape
        rows = min(self.corner_size, height)
        cols = min(self.corner_size, width)
        corners = (
            labelled[:rows, :cols],
            labelled[:rows, width - cols:],
            labelled[height - rows:, :cols],
            labelled[height - rows:, width - cols:],
        )
        ids = np.unique(np.concatenate([corner.ravel() for corner in corners]))
        return ids[ids != 0]

    @staticmethod
    def estimate_eye_radius(mask: np.ndarray) -> int:
        """
        Half the diagonal distance between the first eye pixels seen from the
        top-left and bottom-right corners.

        A walk that runs off the grid without leaving the mask falls back to
        its starting corner.
        """
        height, width = mask.shape
        start = 0
        while mask[start, start]:
            if start == height - 1 or start == width - 1:
                start = 0
                break
            start += 1

        end = 0
        while mask[height - 1 - end, width - 1 - end]:
            if end == height - 1 or end == width - 1:
                end = 0
                break
            end += 1

        top_left = np.array([start, start], dtype=np.float64)
        bottom_right = np.array([height - 1 - end, width - 1 - end], dtype=np.float64)
        return int(np.linalg.norm(bottom_right - top_left) / 2)

    def find_black_background(self, grid: np.ndarray) -> BackgroundModel:
        """
        Find the black border around the field of view.

        Parameters
        ----------
        grid : np.ndarray
            RGB pixel grid of shape (H, W, 3)

        Returns
        -------
        model : BackgroundModel
            Border mask, its pixel count and the estimated eye radius
        """
        if grid.ndim != 3 or grid.shape[2] != 3:
            raise ValueError(f"Expected a (H, W, 3) grid, got shape {grid.shape}")

        dark = grid.astype(np.int32).sum(axis=2) <= self.foreground_threshold
        labelled, n_regions = ndimage.label(dark, structure=_EIGHT_CONNECTED)
        border_ids = self._corner_labels(labelled)
        mask = np.isin(labelled, border_ids)

        if self.boundary_thickness > 0 and mask.any():
            mask = ndimage.binary_dilation(mask, structure=_EIGHT_CONNECTED,
                                           iterations=self.boundary_thickness)

        background_pixels = int(mask.sum())
        radius = self.estimate_eye_radius(mask)
        logger.debug("Background: %d of %d dark regions touch a corner, %d pixels, radius %d",
                     len(border_ids), n_regions, background_pixels, radius)
        return BackgroundModel(mask=mask, background_pixels=background_pixels,
                               eye_radius=radius)

    @staticmethod
    def subtract_background(grid: np.ndarray,
                            median_value: int = 150,
                            box_size: int = 70,
                            channel: int = 1) -> np.ndarray:
        """
        Local-mean normalization of one channel.

        Every pixel is shifted by ``median_value - window_mean`` where the window
        is the ``(2 * box_size + 1)`` square around it, clipped to the grid. The
        result is min-max rescaled to 0..255.

        Parameters
        ----------
        grid : np.ndarray
            Pixel grid of shape (H, W, 3)
        median_value : int
            Target mean intensity of every window
        box_size : int
            Half-width of the averaging window
        channel : int
            Channel to normalise

        Returns
        -------
        normalised : np.ndarray
            New grid with the result in the green channel, zeros elsewhere
        """
        values = grid[:, :, channel].astype(np.int64)
        height, width = values.shape

        # Summed-area table with a zero row and column in front.
        table = np.zeros((height + 1, width + 1), dtype=np.int64)
        table[1:, 1:] = values.cumsum(axis=0).cumsum(axis=1)

        rows = np.arange(height)
        cols = np.arange(width)
        top = np.clip(rows - box_size, 0, height)
        bottom = np.clip(rows + box_size + 1, 0, height)
        left = np.clip(cols - box_size, 0, width)
        right = np.clip(cols + box_size + 1, 0, width)

        window_sum = (table[bottom][:, right] - table[top][:, right]
                      - table[bottom][:, left] + table[top][:, left])
        counts = (bottom - top)[:, np.newaxis] * (right - left)[np.newaxis, :]
        shifted = values + (median_value - window_sum // counts)

        low, high = shifted.min(), shifted.max()
        normalised = np.zeros(grid.shape, dtype=np.int16)
        if high > low:
            normalised[:, :, 1] = (255 * (shifted - low) / (high - low)).astype(np.int16)
        else:
            logger.debug("Flat channel after normalization, output is all zero")
        return normalised
