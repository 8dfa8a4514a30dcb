"""
Intensity quantization.

A continuous channel is reduced to a fixed number of discrete levels. Each
level is then encoded as a synthetic RGB label whose red channel carries the
level itself, so later stages can recover it directly.
"""

import numpy as np

NUM_COLORS = 32


def quantize_levels(channel: np.ndarray, num_levels: int = NUM_COLORS) -> np.ndarray:
    """
    Map a channel onto integer levels ``0..num_levels`` by min-max scaling.

    Parameters
    ----------
    channel : np.ndarray
        2-D array of intensities
    num_levels : int
        Number of quantization steps

    Returns
    -------
    levels : np.ndarray
        Integer levels. The minimum maps to 0 and the maximum to ``num_levels``;
        a constant channel maps to 0 everywhere.
    """
    values = np.asarray(channel, dtype=np.int64)
    low = values.min()
    span = values.max() - low
    if span == 0:
        return np.zeros(values.shape, dtype=np.int32)
    return ((num_levels * (values - low)) // span).astype(np.int32)


def rgb_label(levels: np.ndarray, inverse: bool = False,
              num_levels: int = NUM_COLORS) -> np.ndarray:
    """
    Encode quantized levels as an RGB label grid.

    Level ``i`` (or ``num_levels - i`` when ``inverse``) becomes
    ``(i + 1, int((i + 1) / n * 200), int((i + 1) / n * 240))``.
    """
    index = np.asarray(levels, dtype=np.int64)
    if inverse:
        index = num_levels - index
    step = index + 1
    labels = np.empty(index.shape + (3,), dtype=np.int16)
    labels[..., 0] = step
    labels[..., 1] = (step * 200 / num_levels).astype(np.int16)
    labels[..., 2] = (step * 240 / num_levels).astype(np.int16)
    return labels


def reduce_colours(grid: np.ndarray, inverse: bool = False,
                   num_levels: int = NUM_COLORS, channel: int = 1) -> np.ndarray:
    """
    Quantize one channel of a pixel grid and return the label grid.

    Parameters
    ----------
    grid : np.ndarray
        Pixel grid of shape (H, W, 3)
    inverse : bool
        Invert the level order (bright regions get the low labels)
    num_levels : int
        Number of quantization steps
    channel : int
        Channel to quantize (green by default)

    Returns
    -------
    labels : np.ndarray
        Label grid of shape (H, W, 3); channel 0 holds the level in
        ``1..num_levels + 1``
    """
    if grid.ndim != 3:
        raise ValueError(f"Expected a (H, W, 3) grid, got shape {grid.shape}")
    return rgb_label(quantize_levels(grid[:, :, channel], num_levels), inverse, num_levels)


def label_levels(labels: np.ndarray) -> np.ndarray:
    """Recover the level grid from a label grid."""
    return np.asarray(labels[:, :, 0], dtype=np.int32)
