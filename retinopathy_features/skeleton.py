"""
Ring-by-ring thinning of a foreground grid to a one pixel wide skeleton.

Foreground pixels are grouped into rings by their 8-neighbour distance to the
background. Rings are then eroded from the outside in, removing every pixel
whose neighbourhood shows it is not needed to keep the foreground connected.
"""

import logging

import numpy as np
from scipy import ndimage
from typing import List

from .geometry import NEIGHBOURS_8, in_bounds

logger = logging.getLogger(__name__)

_EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


class Skeletonizer:
    """
    Thins foreground regions to their medial skeleton.

    Parameters
    ----------
    value_steps : tuple of int
        Per-channel increment of the ring labels written into the grid
    value_limits : tuple of int
        Per-channel cap of the ring labels
    """

    def __init__(self, value_steps=(50, 25, 15), value_limits=(250, 250, 255)):
        self.value_steps = value_steps
        self.value_limits = value_limits

    @staticmethod
    def compute_rings(foreground: np.ndarray) -> np.ndarray:
        """
        Ring index of every foreground pixel (1 = touches the background).

        Pixels outside the grid count as background. Background pixels get 0.
        """
        rings = np.zeros(foreground.shape, dtype=np.int32)
        claimed = ~foreground
        frontier = ~foreground
        ring = 0
        while True:
            ring += 1
            grown = ndimage.binary_dilation(frontier, structure=_EIGHT_CONNECTED,
                                            border_value=1) & ~claimed
            if not grown.any():
                break
            rings[grown] = ring
            claimed |= grown
            frontier = grown
        return rings

    def _label(self, grid: np.ndarray, rings: np.ndarray):
        for channel in range(3):
            grid[:, :, channel] = np.minimum(rings * self.value_steps[channel],
                                             self.value_limits[channel])

    def produce_skeleton(self, grid: np.ndarray, non_eye: np.ndarray) -> np.ndarray:
        """
        Thin the foreground of ``grid`` in place.

        Parameters
        ----------
        grid : np.ndarray
            (H, W, 3) grid; pixels with a non-zero channel 0 are foreground
        non_eye : np.ndarray
            NonEyeMask; masked pixels are cleared

        Returns
        -------
        grid : np.ndarray
            The same grid, holding ring-labelled skeleton pixels
        """
        foreground = (grid[:, :, 0] != 0) & ~non_eye
        rings = self.compute_rings(foreground)
        self._label(grid, rings)

        n_rings = int(rings.max())
        removed = 0
        for ring in range(1, n_rings + 1):
            removed += self._truncate_ring(grid, rings == ring)
        logger.debug("Skeleton: %d rings, %d of %d pixels removed",
                     n_rings, removed, int(foreground.sum()))
        return grid

    def _truncate_ring(self, grid: np.ndarray, pending: np.ndarray) -> int:
        """Visit a ring one connected run at a time, eroding as it goes."""
        height, width = pending.shape
        removed = 0
        for start_row, start_col in np.argwhere(pending):
            if not pending[start_row, start_col]:
                continue
            pending[start_row, start_col] = False
            stack = [(int(start_row), int(start_col))]
            while stack:
                row, col = stack.pop()
                if self.truncate(grid, row, col):
                    removed += 1
                for dr, dc in NEIGHBOURS_8:
                    nr, nc = row + dr, col + dc
                    if 0 <= nr < height and 0 <= nc < width and pending[nr, nc]:
                        pending[nr, nc] = False
                        stack.append((nr, nc))
        return removed

    @staticmethod
    def neighbour_values(grid: np.ndarray, row: int, col: int) -> List[int]:
        """Channel 0 of the 8 neighbours in circular order, 0 outside the grid."""
        values = []
        for dr, dc in NEIGHBOURS_8:
            nr, nc = row + dr, col + dc
            if in_bounds(grid.shape, nr, nc):
                values.append(int(grid[nr, nc, 0]))
            else:
                values.append(0)
        return values

    @staticmethod
    def transitions(values: List[int]) -> int:
        """Number of foreground to background steps around the neighbourhood."""
        count = 0
        for i, value in enumerate(values):
            if value != 0 and values[(i + 1) % len(values)] == 0:
                count += 1
        return count

    def truncate(self, grid: np.ndarray, row: int, col: int) -> bool:
        """
        Remove one pixel if the skeleton stays connected without it.

        Endpoints, isolated pixels and pixels with a fully occupied
        neighbourhood are kept. Before clearing, the pixel's value is copied to
        foreground neighbours holding a lower value.
        """
        center = int(grid[row, col, 0])
        if center == 0:
            return False
        values = self.neighbour_values(grid, row, col)
        occupied = sum(1 for value in values if value != 0)
        if occupied < 2 or self.transitions(values) != 1:
            return False

        pixel = grid[row, col].copy()
        for (dr, dc), value in zip(NEIGHBOURS_8, values):
            if 0 < value < center:
                grid[row + dr, col + dc] = pixel
        grid[row, col] = 0
        return True
