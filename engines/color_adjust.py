"""Per-pixel photometric adjustments on (H, W, 4) uint8 RGBA arrays.

Every function returns a new array; alpha is copied through unchanged.
"""

import math
import numpy as np
import cv2
from typing import Literal

from engines.dct_engine import round_half_up
from models.errors import InvalidArgumentError
from utils.constants import LUMA_BT709, SEPIA_MATRIX

GrayscaleMethod = Literal['luminance', 'average', 'desaturate', 'max', 'min']
GRAYSCALE_METHODS = ('luminance', 'average', 'desaturate', 'max', 'min')


def validate_number(value, name: str, low: float, high: float) -> float:
    """Finite real in [low, high], else InvalidArgumentError."""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidArgumentError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or not low <= value <= high:
        raise InvalidArgumentError(f"{name} must be in [{low}, {high}], got {value!r}")
    return float(value)


def with_rgb(pixels: np.ndarray, rgb: np.ndarray) -> np.ndarray:
    """Copy of `pixels` with RGB replaced by `rgb`, rounded half up and clamped."""
    out = pixels.copy()
    out[..., :3] = np.clip(round_half_up(rgb), 0, 255).astype(np.uint8)
    return out


def _rgb(pixels: np.ndarray) -> np.ndarray:
    return pixels[..., :3].astype(np.float64)


def brightness(pixels: np.ndarray, factor: float) -> np.ndarray:
    factor = validate_number(factor, "Brightness factor", 0.0, 10.0)
    return with_rgb(pixels, _rgb(pixels) * factor)


def contrast(pixels: np.ndarray, factor: float) -> np.ndarray:
    factor = validate_number(factor, "Contrast factor", 0.0, 10.0)
    return with_rgb(pixels, (_rgb(pixels) - 128.0) * factor + 128.0)


def grayscale(pixels: np.ndarray, method: GrayscaleMethod = 'luminance') -> np.ndarray:
    """Replace R, G, B with a single grey level computed by `method`."""
    if method not in GRAYSCALE_METHODS:
        raise InvalidArgumentError(f"Grayscale method must be one of {GRAYSCALE_METHODS}, got {method!r}")
    rgb = _rgb(pixels)
    if method == 'luminance':
        gray = rgb @ np.array(LUMA_BT709)
    elif method == 'average':
        gray = rgb.mean(axis=-1)
    elif method == 'desaturate':
        gray = (rgb.max(axis=-1) + rgb.min(axis=-1)) / 2.0
    elif method == 'max':
        gray = rgb.max(axis=-1)
    else:
        gray = rgb.min(axis=-1)
    return with_rgb(pixels, np.repeat(gray[..., None], 3, axis=-1))


def invert(pixels: np.ndarray) -> np.ndarray:
    out = pixels.copy()
    out[..., :3] = 255 - pixels[..., :3]
    return out


def sepia(pixels: np.ndarray) -> np.ndarray:
    return with_rgb(pixels, _rgb(pixels) @ SEPIA_MATRIX.T)


def hue_saturation(pixels: np.ndarray, hue_shift: float = 0.0, saturation_factor: float = 1.0) -> np.ndarray:
    """Rotate hue by `hue_shift` degrees and scale saturation in HLS space."""
    hue_shift = validate_number(hue_shift, "Hue shift", -360.0, 360.0)
    saturation_factor = validate_number(saturation_factor, "Saturation factor", 0.0, 10.0)

    rgb = np.ascontiguousarray(pixels[..., :3], dtype=np.float32) / 255.0
    hls = cv2.cvtColor(rgb, cv2.COLOR_RGB2HLS)
    hls[..., 0] = np.mod(hls[..., 0] + hue_shift, 360.0)
    hls[..., 2] = np.clip(hls[..., 2] * saturation_factor, 0.0, 1.0)
    adjusted = cv2.cvtColor(hls, cv2.COLOR_HLS2RGB).astype(np.float64) * 255.0
    return with_rgb(pixels, adjusted)


def saturation(pixels: np.ndarray, factor: float) -> np.ndarray:
    return hue_saturation(pixels, 0.0, factor)


def hue(pixels: np.ndarray, degrees: float) -> np.ndarray:
    return hue_saturation(pixels, degrees, 1.0)
