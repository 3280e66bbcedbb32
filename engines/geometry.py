"""Resampling and index-remapping transforms on (H, W, 4) uint8 RGBA arrays."""

import math
import numpy as np
import cv2
from typing import Literal, Sequence

from models.decode_options import DEFAULT_MAX_PIXELS
from models.errors import InvalidArgumentError, ResourceLimitExceededError

Algorithm = Literal['nearest', 'bilinear', 'bicubic', 'lanczos']

INTERPOLATION = {
    'nearest': cv2.INTER_NEAREST,
    'bilinear': cv2.INTER_LINEAR,
    'bicubic': cv2.INTER_CUBIC,
    'lanczos': cv2.INTER_LANCZOS4,
}


def _is_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def _interpolation(algorithm: str) -> int:
    if algorithm not in INTERPOLATION:
        raise InvalidArgumentError(
            f"Unknown resampling algorithm {algorithm!r}, expected one of {tuple(INTERPOLATION)}"
        )
    return INTERPOLATION[algorithm]


def _check_canvas(width: int, height: int, max_pixels: int) -> None:
    if width * height > max_pixels:
        raise ResourceLimitExceededError(
            f"Output {width}x{height} exceeds the limit of {max_pixels} pixels"
        )


def resize(
    pixels: np.ndarray,
    width: int,
    height: int,
    algorithm: Algorithm = 'bilinear',
    max_pixels: int = DEFAULT_MAX_PIXELS
) -> np.ndarray:
    """Resample to width x height with an OpenCV interpolation kernel."""
    if not (_is_int(width) and _is_int(height)) or width < 1 or height < 1:
        raise InvalidArgumentError(f"Resize dimensions must be positive integers, got {width!r}x{height!r}")
    interp = _interpolation(algorithm)
    _check_canvas(width, height, max_pixels)
    if (height, width) == pixels.shape[:2]:
        return pixels.copy()
    return np.ascontiguousarray(cv2.resize(pixels, (int(width), int(height)), interpolation=interp))


def crop(pixels: np.ndarray, x: int, y: int, width: int, height: int) -> np.ndarray:
    """Copy of the rectangle; it must lie fully inside the image."""
    if not all(_is_int(v) for v in (x, y, width, height)):
        raise InvalidArgumentError(f"Crop rectangle must be integers, got ({x!r}, {y!r}, {width!r}, {height!r})")
    img_h, img_w = pixels.shape[:2]
    if width < 1 or height < 1:
        raise InvalidArgumentError(f"Crop size must be at least 1x1, got {width}x{height}")
    if x < 0 or y < 0 or x + width > img_w or y + height > img_h:
        raise InvalidArgumentError(
            f"Crop rectangle ({x}, {y}, {width}x{height}) is outside the {img_w}x{img_h} image"
        )
    return pixels[y:y + height, x:x + width].copy()


def flip(pixels: np.ndarray, direction: Literal['horizontal', 'vertical']) -> np.ndarray:
    if direction == 'horizontal':
        return np.ascontiguousarray(pixels[:, ::-1])
    if direction == 'vertical':
        return np.ascontiguousarray(pixels[::-1])
    raise InvalidArgumentError(f"Flip direction must be 'horizontal' or 'vertical', got {direction!r}")


def _check_fill(fill: Sequence[int]) -> tuple:
    values = tuple(fill) if isinstance(fill, (tuple, list, np.ndarray)) else ()
    if len(values) != 4 or not all(_is_int(v) and 0 <= v <= 255 for v in values):
        raise InvalidArgumentError(f"Fill colour must be four integers in [0, 255], got {fill!r}")
    return tuple(int(v) for v in values)


def rotated_size(width: int, height: int, degrees: float) -> tuple:
    """Canvas (width, height) that holds the image rotated by `degrees`."""
    theta = math.radians(degrees)
    cos, sin = abs(math.cos(theta)), abs(math.sin(theta))
    new_w = max(1, math.ceil(width * cos + height * sin - 1e-9))
    new_h = max(1, math.ceil(width * sin + height * cos - 1e-9))
    return new_w, new_h


def rotate(
    pixels: np.ndarray,
    degrees: float,
    algorithm: Algorithm = 'bilinear',
    fill: Sequence[int] = (0, 0, 0, 0),
    max_pixels: int = DEFAULT_MAX_PIXELS
) -> np.ndarray:
    """Rotate clockwise by `degrees`.

    Multiples of 90 are exact index remaps. Other angles are resampled onto
    a canvas large enough for the whole rotated image; uncovered pixels get
    `fill`.
    """
    if isinstance(degrees, bool) or not isinstance(degrees, (int, float, np.integer, np.floating)):
        raise InvalidArgumentError(f"Rotation angle must be a number, got {degrees!r}")
    if not math.isfinite(degrees):
        raise InvalidArgumentError(f"Rotation angle must be finite, got {degrees!r}")
    fill = _check_fill(fill)
    interp = _interpolation(algorithm)

    angle = float(degrees) % 360.0
    if angle % 90.0 == 0.0:
        # np.rot90 turns counter-clockwise for positive k.
        return np.ascontiguousarray(np.rot90(pixels, k=-int(angle // 90)))

    height, width = pixels.shape[:2]
    new_w, new_h = rotated_size(width, height, angle)
    _check_canvas(new_w, new_h, max_pixels)

    # getRotationMatrix2D is counter-clockwise for positive angles.
    matrix = cv2.getRotationMatrix2D(((width - 1) / 2.0, (height - 1) / 2.0), -angle, 1.0)
    matrix[0, 2] += (new_w - width) / 2.0
    matrix[1, 2] += (new_h - height) / 2.0
    rotated = cv2.warpAffine(
        pixels, matrix, (new_w, new_h),
        flags=interp, borderMode=cv2.BORDER_CONSTANT, borderValue=fill
    )
    return np.ascontiguousarray(rotated)
