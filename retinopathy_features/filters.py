"""
Linear filtering on pixel grids.

Kernels are indexed ``[row, col]`` and applied as a correlation, with pixels
outside the grid replaced by the nearest edge pixel.
"""

import logging

import cv2
import numpy as np
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def gaussian_kernel(size: int, spread: float = 3.0) -> np.ndarray:
    """
    Sample a 2-D Gaussian on a ``size x size`` grid.

    Parameters
    ----------
    size : int
        Kernel width and height (odd)
    spread : float
        The grid covers ``[-spread, spread]`` along both axes

    Returns
    -------
    kernel : np.ndarray
        Kernel normalised to sum 1
    """
    if size < 1 or size % 2 == 0:
        raise ValueError(f"Kernel size must be a positive odd number, got {size}")
    if size == 1:
        return np.ones((1, 1), dtype=np.float64)
    axis = np.linspace(-spread, spread, size)
    xx, yy = np.meshgrid(axis, axis)
    kernel = 0.5 * np.pi * np.exp(-0.5 * (xx ** 2 + yy ** 2))
    return kernel / kernel.sum()


BLUR_KERNEL = gaussian_kernel(5)

SOBEL_X = np.array([[-1, 0, 1],
                    [-2, 0, 2],
                    [-1, 0, 1]], dtype=np.float64)

SOBEL_Y = SOBEL_X.T.copy()


def _correlate(values: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    kernel = np.asarray(kernel, dtype=np.float64)
    if kernel.ndim != 2 or kernel.shape[0] % 2 == 0 or kernel.shape[1] % 2 == 0:
        raise ValueError(f"Kernel must be 2-D with odd sides, got shape {kernel.shape}")
    return cv2.filter2D(values.astype(np.float64), cv2.CV_64F, kernel,
                        borderType=cv2.BORDER_REPLICATE)


def _to_grid(values: np.ndarray) -> np.ndarray:
    out = np.trunc(values).astype(np.int16)
    return np.repeat(out[:, :, np.newaxis], 3, axis=2)


def convolve(grid: np.ndarray, kernel: np.ndarray, channel: int = 1) -> np.ndarray:
    """
    Convolve one channel of a grid with a kernel.

    Parameters
    ----------
    grid : np.ndarray
        Pixel grid of shape (H, W, 3)
    kernel : np.ndarray
        Odd-sized 2-D kernel
    channel : int
        Channel to filter

    Returns
    -------
    filtered : np.ndarray
        New grid holding the truncated result in all three channels
    """
    return _to_grid(_correlate(grid[:, :, channel], kernel))


def convolve_normalized(grid: np.ndarray, kernel: np.ndarray, channel: int,
                        non_eye: np.ndarray, fraction: float = 1.0) -> np.ndarray:
    """
    Convolve and blend the result with the source relative to the eye mean.

    With ``S`` the mean eye-pixel value divided by ``fraction``, each pixel
    becomes ``(v / S) * filtered + ((S - v) / S) * v``. Masked pixels do not
    contribute to ``S``.
    """
    source = grid[:, :, channel].astype(np.float64)
    filtered = _correlate(source, kernel)
    eye = ~non_eye
    reference = source[eye].sum() / (max(int(eye.sum()), 1) * fraction)
    if reference == 0:
        logger.debug("Eye mean is zero, returning the plain convolution")
        return _to_grid(filtered)
    blend_filtered = source / reference
    blend_source = (reference - source) / reference
    return _to_grid(blend_filtered * filtered + blend_source * source)


def grey_scale(grid: np.ndarray) -> np.ndarray:
    """Luminance grid (0.3 R + 0.59 G + 0.11 B) replicated to 3 channels."""
    luminance = 0.3 * grid[:, :, 0] + 0.59 * grid[:, :, 1] + 0.11 * grid[:, :, 2]
    return _to_grid(luminance)


def gradient_edges(grad_x: np.ndarray, grad_y: np.ndarray,
                   clip: Optional[int] = 255) -> Tuple[np.ndarray, np.ndarray]:
    """
    Combine directional gradients into magnitude and orientation.

    Parameters
    ----------
    grad_x, grad_y : np.ndarray
        Gradient grids as returned by ``convolve`` with ``SOBEL_X``/``SOBEL_Y``
        (channel 0 is read)
    clip : int, optional
        Upper bound of the magnitude values

    Returns
    -------
    magnitude : np.ndarray
        Gradient magnitude grid (H, W, 3)
    orientation : np.ndarray
        Gradient angle in radians, range (-pi, pi]
    """
    gx = grad_x[:, :, 0].astype(np.float64)
    gy = grad_y[:, :, 0].astype(np.float64)
    magnitude = np.sqrt(gx ** 2 + gy ** 2)
    if clip is not None:
        magnitude = np.minimum(magnitude, clip)
    return _to_grid(magnitude), np.arctan2(gy, gx)
