"""Rectangles stored as corner matrices, and conversion of images to gray.

A rectangle is a 2x4 float32 array whose columns are its corners in the
order top-left, top-right, bottom-left, bottom-right. Row 0 holds the x
coordinates and row 1 the y coordinates.
"""

from __future__ import annotations

import numpy as np

# Luma weights for images with channels in blue, green, red order.
_GRAY_WEIGHTS_BGR = np.array([0.114, 0.587, 0.299])


def create_rectangle(top_left, bottom_right) -> np.ndarray:
    """Build the 2x4 corner matrix of an axis-aligned rectangle."""
    x0, y0 = top_left
    x1, y1 = bottom_right
    return np.array(
        [[x0, x1, x0, x1], [y0, y0, y1, y1]],
        dtype=np.float32,
    )


def rect_from_xywh(x, y, width, height) -> np.ndarray:
    """Build a rectangle from its top-left corner and its extent."""
    return create_rectangle((x, y), (x + width, y + height))


def rect_to_xywh(rect) -> tuple[float, float, float, float]:
    """Return (x, y, width, height) of a rectangle corner matrix."""
    corners = np.asarray(rect)
    if corners.shape != (2, 4):
        raise ValueError(f"a rectangle is a 2x4 matrix, got shape {corners.shape}")
    x = float(corners[0, 0])
    y = float(corners[1, 0])
    width = float(corners[0, 3]) - x
    height = float(corners[1, 3]) - y
    return x, y, width, height


def to_gray(image) -> np.ndarray:
    """Return a single-channel 8-bit copy of an 8-bit gray or BGR image."""
    pixels = np.asarray(image)
    if pixels.dtype != np.uint8:
        raise ValueError(f"expected an 8-bit image, got dtype {pixels.dtype}")
    if pixels.ndim == 2:
        return pixels.copy()
    if pixels.ndim == 3 and pixels.shape[2] == 1:
        return pixels[:, :, 0].copy()
    if pixels.ndim == 3 and pixels.shape[2] == 3:
        gray = pixels.astype(np.float64) @ _GRAY_WEIGHTS_BGR
        return np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    raise ValueError(f"unsupported image shape {pixels.shape}")