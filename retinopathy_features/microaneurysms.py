"""
Microaneurysm candidates from the patch forest.

Microaneurysms appear as small, round, sharply bounded spots. Patches are
screened by outline curvature, then binned by stacked size, by how steeply
their level rises above the surroundings (sharpness) and by intensity.
"""

import logging
from dataclasses import dataclass

import numpy as np
from typing import List, Optional, Tuple

from .features import FeatureLog
from .patches import Patch, PatchForest
from .quantize import NUM_COLORS

logger = logging.getLogger(__name__)

SIZE_BANDS = ("SMALL", "MEDIUM", "LARGE", "XLARGE", "XXLARGE",
              "XXXLARGE", "XXXXLARGE", "XXXXXLARGE")
# Band i covers (SIZE_LIMITS[i], SIZE_LIMITS[i + 1]] before scaling.
SIZE_LIMITS = (10, 50, 120, 240, 500, 1200, 2500, 6000, 12000)

STRENGTH_BANDS = ("WEAK", "MEDIUM", "STRONG", "XSTRONG", "XXSTRONG")
# Lower sharpness bound (exclusive) of each strength band.
STRENGTH_LIMITS = (1.2, 1.4, 1.6, 1.8, 2.0)

INTENSITY_BANDS = ("WEAK", "STRONG")

BAND_COLOURS = (
    (255, 255, 0), (255, 170, 0), (255, 85, 0), (255, 0, 0),
    (255, 0, 170), (170, 0, 255), (85, 0, 255), (0, 0, 255),
)


@dataclass
class MicroaneurysmCandidate:
    """A patch classified as a possible microaneurysm."""
    patch_id: int
    centroid: Tuple[float, float]
    size_band: int
    strength: int
    intensity: int  # 0 weak, 1 strong

    @property
    def label(self) -> str:
        return f"{SIZE_BANDS[self.size_band]}_{STRENGTH_BANDS[self.strength]}"


def strength_band(sharpness: float) -> Optional[int]:
    """Index into ``STRENGTH_BANDS``; None at or below 1.2."""
    band = None
    for index, limit in enumerate(STRENGTH_LIMITS):
        if sharpness > limit:
            band = index
    return band


def size_band(stacked_area: float, scaling: float) -> Optional[int]:
    """Index into ``SIZE_BANDS`` of the single band holding the area."""
    for index in range(len(SIZE_BANDS)):
        if SIZE_LIMITS[index] * scaling < stacked_area <= SIZE_LIMITS[index + 1] * scaling:
            return index
    return None


class MicroaneurysmAnalyzer:
    """
    Classifies patches as microaneurysm candidates.

    Parameters
    ----------
    curvature_threshold : float
        Minimum outline curvature of a candidate
    num_levels : int
        Quantization level count, used to split weak and strong intensity
    """

    def __init__(self, curvature_threshold: float = 0.3, num_levels: int = NUM_COLORS):
        self.curvature_threshold = curvature_threshold
        self.num_levels = num_levels

    def classify(self, forest: PatchForest, patch: Patch,
                 scaling: float) -> Optional[MicroaneurysmCandidate]:
        """Size, strength and intensity of one patch, or None if it does not qualify."""
        factor = patch.sharpness
        if patch.parent is not None:
            parent = forest.arena.get(patch.parent)
            if parent is not None:
                factor *= parent.level - patch.level
        strength = strength_band(factor)
        if strength is None:
            return None
        size = size_band(patch.stacked_area, scaling)
        if size is None:
            return None
        intensity = 1 if patch.average_intensity <= self.num_levels * 0.5 else 0
        return MicroaneurysmCandidate(patch_id=patch.id, centroid=patch.centroid,
                                      size_band=size, strength=strength,
                                      intensity=intensity)

    def find_microaneurysms(self, forest: PatchForest, non_eye: np.ndarray,
                            scaling: float,
                            features: Optional[FeatureLog] = None) -> List[MicroaneurysmCandidate]:
        """
        Screen every patch and log the candidate histogram.

        Patches are visited from the highest level down. Once a patch is
        accepted it is marked analyzed, and patches nested below it are skipped.

        Parameters
        ----------
        forest : PatchForest
            Output of the patch hierarchy builder
        non_eye : np.ndarray
            NonEyeMask; patches centred on masked pixels are ignored
        scaling : float
            Eye-size factor applied to the size thresholds
        features : FeatureLog, optional
            Receives the histogram records

        Returns
        -------
        candidates : list of MicroaneurysmCandidate
        """
        candidates = []
        height, width = non_eye.shape
        for patch in sorted(forest.arena, key=lambda p: p.level, reverse=True):
            if any(node.analyzed for node in forest.arena.ancestors(patch)):
                continue
            row, col = (int(v) for v in patch.centroid)
            if not (0 <= row < height and 0 <= col < width) or non_eye[row, col]:
                continue
            if patch.curvature < self.curvature_threshold:
                continue
            candidate = self.classify(forest, patch, scaling)
            if candidate is None:
                continue
            patch.analyzed = True
            candidates.append(candidate)

        logger.debug("%d microaneurysm candidates out of %d patches", len(candidates), len(forest))
        if features is not None:
            self.log_histogram(features, candidates)
        return candidates

    def log_histogram(self, features: FeatureLog, candidates: List[MicroaneurysmCandidate]):
        """
        Log candidate counts per intensity, size and strength.

        Every cell yields two records: percent of all candidates and percent of
        the eye area.
        """
        width = len(STRENGTH_BANDS)
        histogram = np.zeros((len(INTENSITY_BANDS), len(SIZE_BANDS) * width), dtype=np.int64)
        for candidate in candidates:
            histogram[candidate.intensity, candidate.size_band * width + candidate.strength] += 1

        total = max(1, len(candidates))
        eye_area = max(1.0, features.eye_area)
        for row in range(len(INTENSITY_BANDS)):
            for size_index, size_name in enumerate(SIZE_BANDS):
                for strength_index, strength_name in enumerate(STRENGTH_BANDS):
                    count = int(histogram[row, size_index * width + strength_index])
                    name = f"MICROANEURISM|CURVATURE_STRONG|{size_name}_{strength_name}"
                    features.add(name, count / total * 100)
                    features.add(name, count / eye_area * 100)
                features.add_separator()


def draw_candidates(grid: np.ndarray, forest: PatchForest,
                    candidates: List[MicroaneurysmCandidate]) -> np.ndarray:
    """Paint candidate outlines in place, coloured by size band, thicker when stronger."""
    height, width = grid.shape[:2]
    for candidate in candidates:
        patch = forest.arena.get(candidate.patch_id)
        if patch is None:
            continue
        colour = BAND_COLOURS[candidate.size_band]
        reach = 1 + candidate.strength // 2
        for row, col in patch.boundary:
            grid[max(0, row - reach + 1):min(height, row + reach),
                 max(0, col - reach + 1):min(width, col + reach)] = colour
    return grid
