"""
Vessel (vein) network extraction from a skeleton.

Skeleton pixels with one neighbour (endpoints) or more than two (branches)
become forks. Veins are traced between forks, short spurs and dangling
segments are pruned, and the rest are split into strength classes by their
mean intensity. Strong segments that merely pass through a fork are spliced together, and
statistics of the strong class go to the feature log.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from scipy import ndimage
from typing import Dict, List, Optional, Tuple

from .features import FeatureLog
from .geometry import NEIGHBOURS_8, distance, mean, std_dev

logger = logging.getLogger(__name__)

Point = Tuple[int, int]

_NEIGHBOUR_KERNEL = np.array([[1, 1, 1],
                              [1, 0, 1],
                              [1, 1, 1]], dtype=np.int32)


class VeinStrength(Enum):
    NONE = "NONE"
    WEAK = "WEAK"
    MEDIUM = "MEDIUM"
    STRONG = "STRONG"


class VeinStatus(Enum):
    NONE = "NONE"
    SHORT = "SHORT"
    CYCLE = "CYCLE"
    DUPLICATE = "DUPLICATE"


STRENGTH_COLOURS = {
    VeinStrength.STRONG: (255, 60, 60),
    VeinStrength.MEDIUM: (60, 255, 60),
    VeinStrength.WEAK: (60, 60, 255),
    VeinStrength.NONE: (90, 90, 90),
}


@dataclass(eq=False)
class VeinFork:
    """A skeleton endpoint or branch pixel."""
    id: int
    coord: Point
    neighbour_count: int
    veins: List["Vein"] = field(default_factory=list)
    marked: bool = False
    mark: int = 0

    def attach(self, vein: "Vein"):
        if vein not in self.veins:
            self.veins.append(vein)

    def detach(self, vein: "Vein"):
        self.veins = [other for other in self.veins if other is not vein]


@dataclass(eq=False)
class Vein:
    """A traced skeleton segment; ``points`` include both end pixels."""
    id: int
    points: List[Point]
    values: List[int]
    connection_a: Optional[VeinFork] = None
    connection_b: Optional[VeinFork] = None
    strength: VeinStrength = VeinStrength.NONE
    status: VeinStatus = VeinStatus.NONE
    merged_into: Optional[int] = None

    @property
    def length(self) -> int:
        return len(self.points)

    @property
    def intensity(self) -> int:
        return sum(self.values)

    @property
    def average_intensity(self) -> float:
        return self.intensity / max(1, self.length)

    @property
    def is_live(self) -> bool:
        return self.status is VeinStatus.NONE

    def other_end(self, fork: Optional[VeinFork]) -> Optional[VeinFork]:
        if fork is self.connection_a:
            return self.connection_b
        if fork is self.connection_b:
            return self.connection_a
        return None

    def reverse(self):
        self.points.reverse()
        self.values.reverse()
        self.connection_a, self.connection_b = self.connection_b, self.connection_a

    def detach(self):
        """Remove the vein from the incident lists of its forks."""
        for fork in (self.connection_a, self.connection_b):
            if fork is not None:
                fork.detach(self)


@dataclass
class VeinNetwork:
    """Forks and veins traced from one skeleton."""
    forks: List[VeinFork]
    veins: List[Vein]
    shape: Tuple[int, int]
    _next_mark: int = 0

    def live_veins(self) -> List[Vein]:
        return [vein for vein in self.veins if vein.is_live]

    def next_mark(self) -> int:
        """Fresh value for fork deduplication."""
        self._next_mark += 1
        return self._next_mark


def _curvature_bucket(ratio: float) -> int:
    if ratio > 12:
        return 4
    if ratio > 9:
        return 3
    if ratio > 6:
        return 2
    if ratio > 3:
        return 1
    return 0


class VeinNetworkExtractor:
    """
    Extracts and summarises the vessel network of a skeleton.

    Parameters
    ----------
    noise_removal_iterations : int
        Number of pruning passes over the veins
    minimal_vein_length : int
        Veins with a free end shorter than this are pruned
    """

    def __init__(self, noise_removal_iterations: int = 2, minimal_vein_length: int = 30):
        self.noise_removal_iterations = noise_removal_iterations
        self.minimal_vein_length = minimal_vein_length

    @staticmethod
    def _intensity(skeleton: np.ndarray) -> np.ndarray:
        return skeleton[:, :, 0] if skeleton.ndim == 3 else skeleton

    def detect_forks(self, skeleton: np.ndarray) -> Tuple[List[VeinFork], np.ndarray]:
        """
        Find endpoint and branch pixels.

        Returns
        -------
        forks : list of VeinFork
            Forks in row-major order
        fork_index : np.ndarray
            Grid holding ``fork position + 1`` at fork pixels, 0 elsewhere
        """
        foreground = self._intensity(skeleton) != 0
        counts = ndimage.convolve(foreground.astype(np.int32), _NEIGHBOUR_KERNEL,
                                  mode="constant", cval=0)
        is_fork = foreground & ((counts == 1) | (counts > 2))
        forks = []
        fork_index = np.zeros(foreground.shape, dtype=np.int32)
        for row, col in np.argwhere(is_fork):
            fork = VeinFork(id=len(forks) + 1, coord=(int(row), int(col)),
                            neighbour_count=int(counts[row, col]))
            forks.append(fork)
            fork_index[row, col] = fork.id
        return forks, fork_index

    def trace(self, skeleton: np.ndarray) -> VeinNetwork:
        """
        Trace every vein leaving every fork.

        Each skeleton pixel is claimed by at most one vein. A fork next to
        another fork produces a two-point vein, unless the other fork has
        already been processed or already has a vein. Clusters of adjacent
        branch forks therefore do not form triangles.
        """
        values = self._intensity(skeleton)
        height, width = values.shape
        forks, fork_index = self.detect_forks(skeleton)
        claimed = np.zeros(values.shape, dtype=bool)
        veins: List[Vein] = []

        for fork in forks:
            row, col = fork.coord
            for dr, dc in NEIGHBOURS_8:
                nr, nc = row + dr, col + dc
                if not (0 <= nr < height and 0 <= nc < width):
                    continue
                if fork_index[nr, nc]:
                    other = forks[fork_index[nr, nc] - 1]
                    if other.marked or other.veins:
                        continue
                    vein = Vein(id=len(veins) + 1,
                                points=[fork.coord, other.coord],
                                values=[int(values[row, col]), int(values[nr, nc])],
                                connection_a=fork, connection_b=other)
                    fork.attach(vein)
                    other.attach(vein)
                    veins.append(vein)
                    continue
                if claimed[nr, nc] or values[nr, nc] == 0:
                    continue
                veins.append(self._follow(values, fork_index, forks, claimed, fork,
                                          (nr, nc), len(veins) + 1))
            fork.marked = True

        logger.debug("Traced %d veins between %d forks", len(veins), len(forks))
        return VeinNetwork(forks=forks, veins=veins, shape=(height, width))

    @staticmethod
    def _follow(values: np.ndarray, fork_index: np.ndarray, forks: List[VeinFork],
                claimed: np.ndarray, start_fork: VeinFork, start: Point,
                vein_id: int) -> Vein:
        height, width = values.shape
        vein = Vein(id=vein_id,
                    points=[start_fork.coord, start],
                    values=[int(values[start_fork.coord]), int(values[start])],
                    connection_a=start_fork)
        start_fork.attach(vein)
        claimed[start] = True
        row, col = start

        while True:
            end_fork = None
            for dr, dc in NEIGHBOURS_8:
                nr, nc = row + dr, col + dc
                if 0 <= nr < height and 0 <= nc < width and fork_index[nr, nc]:
                    candidate = forks[fork_index[nr, nc] - 1]
                    if candidate is not start_fork:
                        end_fork = candidate
                        break
            if end_fork is not None:
                vein.points.append(end_fork.coord)
                vein.values.append(int(values[end_fork.coord]))
                vein.connection_b = end_fork
                end_fork.attach(vein)
                return vein

            step = None
            for dr, dc in NEIGHBOURS_8:
                nr, nc = row + dr, col + dc
                if (0 <= nr < height and 0 <= nc < width and not claimed[nr, nc]
                        and values[nr, nc] != 0 and not fork_index[nr, nc]):
                    step = (nr, nc)
                    break
            if step is None:
                # Dead end: the vein stops at its last pixel.
                return vein
            claimed[step] = True
            vein.points.append(step)
            vein.values.append(int(values[step]))
            row, col = step

    def remove_short_veins(self, network: VeinNetwork):
        """
        Prune dangling and short free-ended veins.

        Runs a fixed number of passes; a spur exposed by a later removal may
        survive when the pass count is exhausted.
        """
        for _ in range(self.noise_removal_iterations):
            for vein in network.veins:
                if not vein.is_live:
                    continue
                fork_a, fork_b = vein.connection_a, vein.connection_b
                if fork_a is None or fork_b is None:
                    vein.status = VeinStatus.CYCLE
                    vein.detach()
                elif len(fork_a.veins) == 1:
                    if len(fork_b.veins) == 2:
                        continue
                    if vein.length < self.minimal_vein_length:
                        vein.status = VeinStatus.SHORT
                        vein.detach()
                elif len(fork_b.veins) == 1:
                    if len(fork_a.veins) == 2:
                        continue
                    if vein.length < self.minimal_vein_length:
                        vein.status = VeinStatus.SHORT
                        vein.detach()

    @staticmethod
    def classify(veins: List[Vein]) -> Dict[VeinStrength, List[Vein]]:
        """
        Split veins into strength classes by average intensity.

        With mean ``m`` and population deviation ``s`` of the averages: strong
        above ``m + s/2``, medium from ``m - s/2``, weak above ``m - 1.5 s``.
        Anything lower keeps ``VeinStrength.NONE``.
        """
        bands: Dict[VeinStrength, List[Vein]] = {
            VeinStrength.STRONG: [], VeinStrength.MEDIUM: [], VeinStrength.WEAK: []}
        averages = [vein.average_intensity for vein in veins]
        if not averages:
            return bands
        center = mean(averages)
        spread = std_dev(averages)
        for vein, average in zip(veins, averages):
            if average > center + 0.5 * spread:
                vein.strength = VeinStrength.STRONG
            elif average >= center - 0.5 * spread:
                vein.strength = VeinStrength.MEDIUM
            elif average > center - 1.5 * spread:
                vein.strength = VeinStrength.WEAK
            else:
                vein.strength = VeinStrength.NONE
                continue
            bands[vein.strength].append(vein)
        return bands

    @staticmethod
    def _resolve(vein: Vein, by_id: Dict[int, Vein]) -> Vein:
        """Follow ``merged_into`` links to the vein that absorbed this one."""
        while vein.status is VeinStatus.DUPLICATE and vein.merged_into in by_id:
            vein = by_id[vein.merged_into]
        return vein

    def _merge_candidate(self, vein: Vein, fork: Optional[VeinFork],
                         by_id: Dict[int, Vein]) -> Optional[Vein]:
        keep = vein.other_end(fork)
        if fork is None or keep is None or fork is keep:
            return None
        candidates = []
        for other in fork.veins:
            other = self._resolve(other, by_id)
            if other is vein or not other.is_live or other.strength is not vein.strength:
                continue
            if other in candidates:
                continue
            far = other.other_end(fork)
            if far is None or far is fork or far is keep:
                continue
            candidates.append(other)
        return candidates[0] if len(candidates) == 1 else None

    @staticmethod
    def _splice(vein: Vein, fork: VeinFork, other: Vein):
        """
        Append ``other`` to ``vein`` across ``fork``.

        Fork lists are left as they are: ``other`` stays listed at both of
        its forks and stands for ``vein`` through ``merged_into``.
        """
        if vein.connection_a is fork:
            vein.reverse()
        if other.connection_b is fork:
            other.reverse()
        vein.points.extend(other.points[1:])
        vein.values.extend(other.values[1:])
        vein.connection_b = other.connection_b
        other.status = VeinStatus.DUPLICATE
        other.merged_into = vein.id

    def merge_pass_through(self, veins: List[Vein]) -> List[Vein]:
        """
        Splice veins that continue through a fork into a single vein.

        A vein is extended across one of its forks when exactly one other live
        vein of the same strength ends there and does not lead back to the
        vein's opposite fork. A vein that was already spliced away is
        represented at its forks by the vein that absorbed it. Repeats until
        nothing changes. Fork membership is not modified, so branch counts
        still see every traced vein.

        Returns
        -------
        survivors : list of Vein
            Live veins, unique and ordered by id
        """
        by_id = {vein.id: vein for vein in veins}
        merged = True
        while merged:
            merged = False
            for vein in veins:
                if not vein.is_live:
                    continue
                for fork in (vein.connection_a, vein.connection_b):
                    other = self._merge_candidate(vein, fork, by_id)
                    if other is not None:
                        self._splice(vein, fork, other)
                        merged = True
                        break
        unique = {vein.id: vein for vein in veins if vein.is_live}
        return [unique[vein_id] for vein_id in sorted(unique)]

    def analyze(self, skeleton: np.ndarray, features: FeatureLog,
                eye_pixels: int, scaling: float) -> VeinNetwork:
        """
        Run the full vein analysis and log its statistics.

        Parameters
        ----------
        skeleton : np.ndarray
            Skeleton grid from the skeletonizer
        features : FeatureLog
            Receives the vein records
        eye_pixels : int
            Number of pixels inside the field of view
        scaling : float
            Eye-size factor applied to length thresholds and distances

        Returns
        -------
        network : VeinNetwork
            Traced network with pruning, strength and merge state applied
        """
        eye_pixels = max(1, eye_pixels)
        network = self.trace(skeleton)
        self.remove_short_veins(network)

        live = network.live_veins()
        bands = self.classify(live)
        for strength in (VeinStrength.STRONG, VeinStrength.MEDIUM, VeinStrength.WEAK):
            band = bands[strength]
            name = f"{strength.value}_VEIN_RATIO"
            features.add(name, sum(vein.length for vein in band) / eye_pixels)
            features.add(name, len(band) / max(1, len(live)))
        features.add_separator()

        strong = self.merge_pass_through(bands[VeinStrength.STRONG])
        self._log_curvature(features, strong, eye_pixels, scaling)
        self._log_forks(features, network, strong, scaling)
        logger.debug("Veins: %d live, %d strong after merging", len(live), len(strong))
        return network

    @staticmethod
    def _log_curvature(features: FeatureLog, veins: List[Vein], eye_pixels: int,
                       scaling: float):
        table = [0.0] * 15
        for vein in veins:
            if vein.connection_a is None or vein.connection_b is None:
                continue
            span = max(1.0, distance(vein.connection_a.coord, vein.connection_b.coord))
            if vein.length > 75 * scaling:
                base = 0
            elif vein.length > 50 * scaling:
                base = 5
            else:
                base = 10
            table[base + _curvature_bucket(vein.length / span)] += vein.length
        for total in table:
            features.add("VEIN_CURVATURE|", total / eye_pixels)
        features.add_separator()

    @staticmethod
    def _log_forks(features: FeatureLog, network: VeinNetwork, veins: List[Vein],
                   scaling: float):
        mark = network.next_mark()
        branches = []
        for vein in veins:
            for fork in (vein.connection_a, vein.connection_b):
                if fork is not None and len(fork.veins) > 2 and fork.mark != mark:
                    fork.mark = mark
                    branches.append(fork)

        center = (network.shape[0] / 2, network.shape[1] / 2)
        from_center = sum(distance(fork.coord, center) for fork in branches)
        features.add("FORK_COUNT|STRONG", len(branches))
        features.add("STANDARD_DEVIATION_FORK_X|STRONG", std_dev([f.coord[1] for f in branches]))
        features.add("STANDARD_DEVIATION_FORK_Y|STRONG", std_dev([f.coord[0] for f in branches]))
        features.add("FROM_CENTER_FORK|STRONG", from_center * scaling / max(1, len(branches)))
        features.add_separator()


def render_veins(shape: Tuple[int, int], veins: List[Vein]) -> np.ndarray:
    """Paint live veins by strength class onto a new (H, W, 3) grid."""
    grid = np.zeros(tuple(shape[:2]) + (3,), dtype=np.int16)
    for vein in veins:
        if not vein.is_live:
            continue
        colour = STRENGTH_COLOURS[vein.strength]
        for point in vein.points:
            grid[point] = colour
    return grid
