"""
Image and label-table input/output.
"""

import csv
import logging
import os

import cv2
import numpy as np
from typing import Dict

from .features import UNRATED

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 2500


class ImageLoadError(OSError):
    """Raised when an image file cannot be read or decoded."""


def crop_center(image: np.ndarray, max_height: int = MAX_IMAGE_SIZE,
                max_width: int = MAX_IMAGE_SIZE) -> np.ndarray:
    """Cut an image down to at most ``max_height x max_width``, keeping its centre."""
    height, width = image.shape[:2]
    top = max(0, (height - max_height) // 2)
    left = max(0, (width - max_width) // 2)
    return image[top:top + min(height, max_height), left:left + min(width, max_width)]


def load_image(path: str, max_size: int = MAX_IMAGE_SIZE) -> np.ndarray:
    """
    Load an RGB image as a pixel grid.

    Parameters
    ----------
    path : str
        Image file path
    max_size : int
        Maximum width and height; larger images are centre-cropped

    Returns
    -------
    grid : np.ndarray
        (H, W, 3) int16 grid in RGB order

    Raises
    ------
    ImageLoadError
        If the file is missing or cannot be decoded
    """
    image = cv2.imread(path, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageLoadError(f"Could not load image {path}")
    image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    return crop_center(image, max_size, max_size).astype(np.int16)


def save_image(path: str, grid: np.ndarray):
    """Write an RGB pixel grid, clipping values to 0..255."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    image = np.clip(grid, 0, 255).astype(np.uint8)
    if not cv2.imwrite(path, cv2.cvtColor(image, cv2.COLOR_RGB2BGR)):
        raise OSError(f"Could not write image {path}")


def read_labels(path: str) -> Dict[str, str]:
    """
    Read an ``image,level`` CSV table.

    A header row is skipped when its second column is not a number. Rows with
    an empty level map to the unrated sentinel.
    """
    labels: Dict[str, str] = {}
    with open(path, newline="", encoding="utf-8") as fh:
        for index, row in enumerate(csv.reader(fh)):
            if not row or not row[0].strip():
                continue
            name = row[0].strip()
            level = row[1].strip() if len(row) > 1 else ""
            if index == 0 and level and not level.lstrip("-").isdigit():
                continue
            labels[name] = level or UNRATED
    logger.debug("Read %d labels from %s", len(labels), path)
    return labels
