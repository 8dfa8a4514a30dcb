"""
Multi-level region (patch) hierarchy.

The quantized image is read as a stack of intensity layers. Working from the
lowest layer upwards, every connected same-level region becomes a Patch, and a
patch at a higher level absorbs the lower-level patches it surrounds. The
result is a forest in which each parent sits strictly above its children.

Patches are stored in a per-run arena and refer to each other by integer id.
A marker grid records which patch claimed every pixel (0 = unclaimed).
"""

import logging
from dataclasses import dataclass, field

import numpy as np
from scipy import ndimage
from typing import Dict, Iterator, List, Optional, Tuple

from .geometry import NEIGHBOURS_8
from .quantize import NUM_COLORS, label_levels

logger = logging.getLogger(__name__)

Point = Tuple[int, int]

FOREGROUND_COLOUR = (45, 30, 15)
BOUNDARY_COLOUR = (150, 100, 50)


@dataclass
class Patch:
    """One connected region of the level hierarchy."""
    id: int
    level: int
    area: int = 0
    stacked_area: int = 0
    level_sum: int = 0
    row_sum: int = 0
    col_sum: int = 0
    boundary: List[Point] = field(default_factory=list)
    curvature: float = 0.0
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    analyzed: bool = False

    @property
    def centroid(self) -> Tuple[float, float]:
        area = max(1, self.area)
        return self.row_sum / area, self.col_sum / area

    @property
    def average_intensity(self) -> float:
        return self.level_sum / max(1, self.area)

    @property
    def sharpness(self) -> float:
        """Stacked area relative to own area (>= 1)."""
        return self.stacked_area / max(1, self.area)


def compute_curvature(patch: Patch) -> float:
    """
    Ratio of the nearest to the farthest boundary distances from the centroid.

    The mean of the lowest eighth of the sorted distances is divided by the mean
    of the highest eighth. Values near 1 mean a round outline, low values a
    spiky one. Small patches and short boundaries get 0.
    """
    if patch.area <= 8 or len(patch.boundary) <= 8:
        return 0.0
    center = np.array(patch.centroid)
    points = np.asarray(patch.boundary, dtype=np.float64)
    distances = np.sort(np.sqrt(((points - center) ** 2).sum(axis=1)))
    sample = max(1, len(distances) // 8)
    farthest = distances[-sample:].mean()
    if farthest == 0:
        return 0.0
    return float(distances[:sample].mean() / farthest)


class PatchArena:
    """Owns the patches of one run and hands out sequential ids."""

    def __init__(self):
        self._patches: Dict[int, Patch] = {}
        self._next_id = 1
        self.discarded = 0

    def create(self, level: int) -> Patch:
        patch = Patch(id=self._next_id, level=level)
        self._next_id += 1
        self._patches[patch.id] = patch
        return patch

    def get(self, patch_id: int) -> Optional[Patch]:
        return self._patches.get(patch_id)

    def __contains__(self, patch_id: int) -> bool:
        return patch_id in self._patches

    def __iter__(self) -> Iterator[Patch]:
        return iter(self._patches.values())

    def __len__(self) -> int:
        return len(self._patches)

    def root_of(self, patch_id: int) -> Optional[Patch]:
        """Topmost ancestor of a live patch, or None for unknown ids."""
        patch = self._patches.get(patch_id)
        if patch is None:
            return None
        while patch.parent is not None:
            patch = self._patches[patch.parent]
        return patch

    def ancestors(self, patch: Patch) -> Iterator[Patch]:
        """The patch itself followed by its parent chain."""
        current: Optional[Patch] = patch
        while current is not None:
            yield current
            current = self._patches.get(current.parent) if current.parent is not None else None

    def link(self, child: Patch, parent: Patch):
        child.parent = parent.id
        parent.children.append(child.id)

    def discard(self, patch: Patch):
        """Drop a patch and release the children it had absorbed."""
        for child_id in patch.children:
            child = self._patches.get(child_id)
            if child is not None and child.parent == patch.id:
                child.parent = None
        del self._patches[patch.id]
        self.discarded += 1

    def roots(self) -> List[Patch]:
        return [patch for patch in self._patches.values() if patch.parent is None]


@dataclass
class PatchForest:
    """Finalized patches of one quantized grid plus the pixel marker grid."""
    arena: PatchArena
    marker: np.ndarray  # patch id per pixel, 0 where unclaimed
    levels: np.ndarray

    def __len__(self) -> int:
        return len(self.arena)

    @property
    def patches(self) -> List[Patch]:
        return list(self.arena)


class PatchHierarchyBuilder:
    """
    Builds the patch forest of a quantized grid.

    Parameters
    ----------
    max_area : int
        Patches that grow beyond this many pixels are discarded as noise
    """

    def __init__(self, max_area: int = 1_000_000):
        self.max_area = max_area

    @staticmethod
    def seed_points(levels: np.ndarray) -> Dict[int, List[Point]]:
        """One representative pixel per 8-connected same-level region, per level."""
        structure = np.ones((3, 3), dtype=bool)
        seeds: Dict[int, List[Point]] = {}
        for level in np.unique(levels):
            labelled, n_regions = ndimage.label(levels == level, structure=structure)
            if n_regions == 0:
                continue
            # First pixel of every region in row-major order.
            flat = labelled.ravel()
            _, first = np.unique(flat, return_index=True)
            rows, cols = np.unravel_index(first[1:] if flat[first[0]] == 0 else first,
                                          labelled.shape)
            seeds[int(level)] = list(zip(rows.tolist(), cols.tolist()))
        return seeds

    def construct(self, labels: np.ndarray) -> PatchForest:
        """
        Build the patch forest.

        Parameters
        ----------
        labels : np.ndarray
            Label grid (H, W, 3) from the quantizer, or a 2-D level grid

        Returns
        -------
        forest : PatchForest
            Finalized patches indexed by id and the marker grid
        """
        levels = label_levels(labels) if labels.ndim == 3 else np.asarray(labels, dtype=np.int32)
        marker = np.zeros(levels.shape, dtype=np.int32)
        arena = PatchArena()

        seeds = self.seed_points(levels)
        for level in sorted(seeds):
            for seed in seeds[level]:
                if marker[seed] != 0:
                    continue
                self._grow(levels, marker, arena, seed, level)

        logger.debug("Patch forest: %d patches, %d discarded", len(arena), arena.discarded)
        return PatchForest(arena=arena, marker=marker, levels=levels)

    def _grow(self, levels: np.ndarray, marker: np.ndarray, arena: PatchArena,
              seed: Point, level: int):
        height, width = levels.shape
        patch = arena.create(level)
        stack = [seed]
        oversized = False

        while stack and not oversized:
            row, col = stack.pop()
            if marker[row, col] == patch.id:
                continue
            value = levels[row, col]
            if value > level:
                continue

            if value < level:
                owner = arena.root_of(int(marker[row, col]))
                if owner is None:
                    # Touches a discarded region.
                    oversized = True
                elif owner.id != patch.id and owner.level < level:
                    self._absorb(levels, marker, arena, patch, owner, stack)
                continue

            marker[row, col] = patch.id
            patch.area += 1
            patch.level_sum += int(value)
            patch.row_sum += row
            patch.col_sum += col
            if patch.area > self.max_area:
                oversized = True
                continue

            touches_higher = False
            for dr, dc in NEIGHBOURS_8:
                nr, nc = row + dr, col + dc
                if not (0 <= nr < height and 0 <= nc < width):
                    continue
                if marker[nr, nc] == patch.id:
                    continue
                if levels[nr, nc] > level:
                    touches_higher = True
                    continue
                stack.append((nr, nc))
            if touches_higher:
                patch.boundary.append((row, col))

        if oversized:
            logger.debug("Discarding patch %d at level %d (area %d)", patch.id, level, patch.area)
            arena.discard(patch)
            return

        patch.stacked_area += patch.area
        patch.curvature = compute_curvature(patch)

    @staticmethod
    def _absorb(levels: np.ndarray, marker: np.ndarray, arena: PatchArena,
                patch: Patch, child: Patch, stack: List[Point]):
        """Fold a finalized lower-level patch into the patch being grown."""
        height, width = levels.shape
        patch.area += child.area
        patch.stacked_area += (patch.level - child.level) * child.stacked_area
        patch.level_sum += child.level_sum
        patch.row_sum += child.row_sum
        patch.col_sum += child.col_sum
        arena.link(child, patch)

        for row, col in child.boundary:
            marker[row, col] = patch.id
            touches_higher = False
            for dr, dc in NEIGHBOURS_8:
                nr, nc = row + dr, col + dc
                if not (0 <= nr < height and 0 <= nc < width):
                    continue
                if marker[nr, nc] == patch.id:
                    continue
                neighbour = levels[nr, nc]
                if neighbour > patch.level:
                    touches_higher = True
                elif neighbour == patch.level:
                    stack.append((nr, nc))
            if touches_higher:
                patch.boundary.append((row, col))


def _boundary_reach(sharpness: float) -> int:
    """Half-width (plus one) of the painted outline: 3, 5 or 7 pixels wide."""
    if sharpness > 1.4:
        return 4
    if sharpness > 1.2:
        return 3
    return 2


def render_foreground(forest: PatchForest, num_levels: int = NUM_COLORS) -> np.ndarray:
    """
    Render the forest as a foreground grid for skeletonization.

    Pixels owned by a live patch get ``FOREGROUND_COLOUR``. Outlines of patches
    with a stacked area above 10 are then painted on top, darker for patches
    near the top of the level range, so bright outlines separate touching
    regions.

    Returns
    -------
    grid : np.ndarray
        New (H, W, 3) grid
    """
    marker = forest.marker
    height, width = marker.shape
    live = np.isin(marker, np.fromiter((p.id for p in forest.arena), dtype=np.int64))
    grid = np.zeros((height, width, 3), dtype=np.int16)
    grid[live] = FOREGROUND_COLOUR

    base = np.array(BOUNDARY_COLOUR, dtype=np.float64)
    for patch in forest.arena:
        if patch.stacked_area <= 10 or not patch.boundary:
            continue
        weight = patch.sharpness * (num_levels - min(patch.level, num_levels)) / num_levels
        colour = np.minimum(base * weight, 255).astype(np.int16)
        reach = _boundary_reach(patch.sharpness)
        for row, col in patch.boundary:
            # The boundary pixel itself is left out of its own square.
            centre = grid[row, col].copy()
            grid[max(0, row - reach + 1):row + reach, max(0, col - reach + 1):col + reach] = colour
            grid[row, col] = centre
    return grid
