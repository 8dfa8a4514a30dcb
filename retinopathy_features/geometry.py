"""
Small geometry and statistics helpers shared by the pipeline stages.

Coordinates are ``(row, col)`` tuples throughout the package.
"""

import numpy as np
from typing import Sequence, Tuple, List


# Circular order, starting top-left and walking clockwise. The skeletonizer
# relies on this order when counting foreground/background transitions.
NEIGHBOURS_8: Tuple[Tuple[int, int], ...] = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, 1),
    (1, 1), (1, 0), (1, -1),
    (0, -1),
)


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two points of equal dimension."""
    diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return float(np.sqrt(np.sum(diff ** 2)))


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; 0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.std(values))


def transpose(matrix: Sequence[Sequence[float]]) -> List[List[float]]:
    """Transpose a rectangular list-of-lists matrix."""
    return [list(column) for column in zip(*matrix)]


def in_bounds(shape: Tuple[int, ...], row: int, col: int) -> bool:
    return 0 <= row < shape[0] and 0 <= col < shape[1]
