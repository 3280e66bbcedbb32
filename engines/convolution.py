"""Spatial filters on the RGB channels of (H, W, 4) uint8 RGBA arrays.

All filters read a replicated (clamped-to-edge) border of the source array
and write a fresh output array, so no output pixel depends on another.
"""

import math
import numpy as np
import cv2
from typing import Literal

from engines.color_adjust import validate_number, with_rgb
from models.errors import InvalidArgumentError

EdgeKind = Literal['sobel-x', 'sobel-y', 'sobel', 'prewitt-x', 'prewitt-y', 'laplacian']

SOBEL_X = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64)
SOBEL_Y = SOBEL_X.T.copy()
PREWITT_X = np.array([[-1, 0, 1], [-1, 0, 1], [-1, 0, 1]], dtype=np.float64)
PREWITT_Y = PREWITT_X.T.copy()
LAPLACIAN = np.array([[0, 1, 0], [1, -4, 1], [0, 1, 0]], dtype=np.float64)

EDGE_KERNELS = {
    'sobel-x': SOBEL_X,
    'sobel-y': SOBEL_Y,
    'prewitt-x': PREWITT_X,
    'prewitt-y': PREWITT_Y,
    'laplacian': LAPLACIAN,
}

MAX_KERNEL_SIZE = 99


def filter_rgb(pixels: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Convolve R, G, B with `kernel`; float64 (H, W, 3) response, unclamped."""
    rgb = pixels[..., :3].astype(np.float64)
    # filter2D correlates; flipping the kernel makes it a true convolution.
    flipped = np.ascontiguousarray(kernel[::-1, ::-1], dtype=np.float64)
    return cv2.filter2D(rgb, -1, flipped, borderType=cv2.BORDER_REPLICATE)


def gaussian_kernel(radius: float, sigma: float = None) -> np.ndarray:
    """Normalised 2D Gaussian; size max(3, 2*ceil(radius)+1), sigma radius/2."""
    if sigma is None:
        sigma = radius / 2.0
    size = max(3, 2 * math.ceil(radius) + 1)
    kernel_1d = cv2.getGaussianKernel(size, sigma, cv2.CV_64F)
    return kernel_1d @ kernel_1d.T


def blur(pixels: np.ndarray, radius: float = 1.0, sigma: float = None) -> np.ndarray:
    radius = validate_number(radius, "Blur radius", 0.5, 5.0)
    if sigma is not None:
        sigma = validate_number(sigma, "Blur sigma", 1e-3, 50.0)
    return with_rgb(pixels, filter_rgb(pixels, gaussian_kernel(radius, sigma)))


def box_blur(pixels: np.ndarray, size: int = 3) -> np.ndarray:
    if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 3 or size % 2 == 0:
        raise InvalidArgumentError(f"Box blur size must be an odd integer >= 3, got {size!r}")
    if size > MAX_KERNEL_SIZE:
        raise InvalidArgumentError(f"Box blur size must be at most {MAX_KERNEL_SIZE}, got {size}")
    kernel = np.full((size, size), 1.0 / (size * size))
    return with_rgb(pixels, filter_rgb(pixels, kernel))


def sharpen_kernel(strength: float) -> np.ndarray:
    s = strength
    return np.array([[0, -s, 0], [-s, 1 + 4 * s, -s], [0, -s, 0]], dtype=np.float64)


def sharpen(pixels: np.ndarray, strength: float = 1.0) -> np.ndarray:
    strength = validate_number(strength, "Sharpen strength", 0.0, 2.0)
    return with_rgb(pixels, filter_rgb(pixels, sharpen_kernel(strength)))


def unsharp_mask(pixels: np.ndarray, amount: float = 1.0, radius: float = 1.0) -> np.ndarray:
    """src + amount * (src - gaussian(src))."""
    amount = validate_number(amount, "Unsharp amount", 0.0, 3.0)
    radius = validate_number(radius, "Unsharp radius", 0.5, 3.0)
    src = pixels[..., :3].astype(np.float64)
    blurred = filter_rgb(pixels, gaussian_kernel(radius))
    return with_rgb(pixels, src + amount * (src - blurred))


def edge_detect(pixels: np.ndarray, kind: EdgeKind = 'sobel-x') -> np.ndarray:
    """Absolute gradient response (gradient magnitude for 'sobel')."""
    if kind == 'sobel':
        gx = filter_rgb(pixels, SOBEL_X)
        gy = filter_rgb(pixels, SOBEL_Y)
        return with_rgb(pixels, np.hypot(gx, gy))
    if kind not in EDGE_KERNELS:
        raise InvalidArgumentError(
            f"Edge detector must be one of {tuple(EDGE_KERNELS) + ('sobel',)}, got {kind!r}"
        )
    return with_rgb(pixels, np.abs(filter_rgb(pixels, EDGE_KERNELS[kind])))


def convolve(pixels: np.ndarray, kernel, normalize: bool = False) -> np.ndarray:
    """Apply a square, odd-sized custom kernel.

    With `normalize`, the kernel is divided by its sum (when non-zero).
    """
    try:
        kernel = np.array(kernel, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"Kernel must be a 2D array of numbers: {exc}") from exc
    if kernel.ndim != 2 or kernel.shape[0] != kernel.shape[1] or kernel.shape[0] % 2 == 0:
        raise InvalidArgumentError(f"Kernel must be square with odd size, got shape {kernel.shape}")
    if kernel.shape[0] > MAX_KERNEL_SIZE:
        raise InvalidArgumentError(f"Kernel size must be at most {MAX_KERNEL_SIZE}, got {kernel.shape[0]}")
    if not np.isfinite(kernel).all():
        raise InvalidArgumentError("Kernel values must be finite")
    if normalize:
        total = kernel.sum()
        if total != 0:
            kernel = kernel / total
    return with_rgb(pixels, filter_rgb(pixels, kernel))
