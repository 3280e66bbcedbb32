"""8x8 inverse DCT with level shift."""

import numpy as np
from scipy.fft import idctn


def idct2(coeffs: np.ndarray) -> np.ndarray:
    """2D inverse DCT (Type-III), orthonormal.

    Equal to the JPEG IDCT: 1/4 * sum alpha(u) alpha(v) F(u,v) cos cos,
    alpha(0) = 1/sqrt(2), alpha(k>0) = 1.
    """
    return idctn(coeffs, type=2, norm='ortho')


def round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def decode_block(coeffs: np.ndarray) -> np.ndarray:
    """Dequantized natural-order 8x8 coefficients -> uint8 samples.

    IDCT, level shift (+128), round, clamp to [0,255]. Blocks with no AC
    energy use the closed form round(DC / 8) + 128.
    """
    coeffs = np.asarray(coeffs, dtype=np.float64).reshape(8, 8)
    if not coeffs.flat[1:].any():
        value = int(np.floor(coeffs[0, 0] / 8.0 + 0.5)) + 128
        return np.full((8, 8), min(255, max(0, value)), dtype=np.uint8)
    spatial = round_half_up(idct2(coeffs)) + 128.0
    return np.clip(spatial, 0, 255).astype(np.uint8)
