# tests/conftest.py
# Ensure project root is importable as a module during pytest runs
import pathlib
import sys

import cv2
import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def make_fundus(size: int = 160, radius: int = 70) -> np.ndarray:
    """Bright eye disc on black, with an optic disc, dark vessels and a few dots."""
    image = np.zeros((size, size, 3), dtype=np.uint8)
    center = size // 2
    cv2.circle(image, (center, center), radius, (170, 90, 40), -1)
    cv2.circle(image, (center - 40, center), 12, (250, 210, 120), -1)

    vessel = (110, 45, 20)
    cv2.line(image, (center - 40, center), (center + 50, center - 45), vessel, 3)
    cv2.line(image, (center - 40, center), (center + 50, center + 45), vessel, 3)
    cv2.line(image, (center + 5, center - 22), (center + 10, center - 60), vessel, 2)
    cv2.line(image, (center + 5, center + 22), (center + 15, center + 60), vessel, 2)
    for dot in ((center + 20, center), (center - 10, center + 35), (center - 5, center - 35)):
        cv2.circle(image, dot, 2, (90, 30, 15), -1)

    rows, cols = np.ogrid[:size, :size]
    outside = (rows - center) ** 2 + (cols - center) ** 2 > radius ** 2
    image[outside] = 0
    return image.astype(np.int16)


@pytest.fixture
def fundus():
    return make_fundus()


@pytest.fixture
def line_skeleton():
    """A 40 pixel horizontal skeleton line on row 5."""
    grid = np.zeros((11, 50, 3), dtype=np.int16)
    grid[5, 5:45] = (50, 25, 15)
    return grid
