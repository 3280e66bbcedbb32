"""Chroma upsampling and YCbCr -> RGB conversion."""

import numpy as np
import cv2
from typing import Literal, Tuple

from engines.dct_engine import round_half_up


def ycbcr_to_rgb(ycbcr: np.ndarray) -> np.ndarray:
    """YCbCr to RGB using the JFIF (ITU-R BT.601 full range) equations."""
    ycbcr = ycbcr.astype(np.float64)
    Y, Cb, Cr = ycbcr[:, :, 0], ycbcr[:, :, 1] - 128.0, ycbcr[:, :, 2] - 128.0
    R = Y + 1.402 * Cr
    G = Y - 0.344136 * Cb - 0.714136 * Cr
    B = Y + 1.772 * Cb
    rgb = np.stack([R, G, B], axis=-1)
    return np.clip(round_half_up(rgb), 0, 255).astype(np.uint8)


def upsample_plane(
    plane: np.ndarray,
    target_shape: Tuple[int, int],
    method: Literal['nearest', 'bilinear'] = 'nearest'
) -> np.ndarray:
    """Upsample one sample plane to target (rows, cols)."""
    if plane.shape == tuple(target_shape):
        return plane
    rows, cols = target_shape
    if method == 'nearest' and rows % plane.shape[0] == 0 and cols % plane.shape[1] == 0:
        return plane.repeat(rows // plane.shape[0], axis=0).repeat(cols // plane.shape[1], axis=1)
    interp = cv2.INTER_LINEAR if method == 'bilinear' else cv2.INTER_NEAREST
    return cv2.resize(plane, (cols, rows), interpolation=interp)


def planes_to_rgba(
    planes,
    width: int,
    height: int,
    transform: Literal['ycbcr', 'rgb', 'grayscale']
) -> np.ndarray:
    """Assemble full-size uint8 planes into an (height, width, 4) RGBA array.

    `planes` are already upsampled to a common grid at least height x width.
    """
    rgba = np.empty((height, width, 4), dtype=np.uint8)
    rgba[:, :, 3] = 255
    if transform == 'grayscale':
        luma = planes[0][:height, :width]
        rgba[:, :, 0] = luma
        rgba[:, :, 1] = luma
        rgba[:, :, 2] = luma
        return rgba
    stacked = np.stack([p[:height, :width] for p in planes], axis=-1)
    if transform == 'ycbcr':
        rgba[:, :, :3] = ycbcr_to_rgb(stacked)
    else:
        rgba[:, :, :3] = stacked
    return rgba
