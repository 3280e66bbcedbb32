"""Zigzag reordering and dequantization."""

import numpy as np

from utils.constants import ZIGZAG_TO_NATURAL


def zigzag_to_natural(zigzag: np.ndarray) -> np.ndarray:
    """Reorder 64 scan-order values into natural row-major order."""
    natural = np.zeros(64, dtype=np.asarray(zigzag).dtype)
    natural[ZIGZAG_TO_NATURAL] = zigzag
    return natural


def dequantize(coeffs: np.ndarray, q_table: np.ndarray) -> np.ndarray:
    """Multiply natural-order coefficients by the natural-order quant table."""
    return np.asarray(coeffs, dtype=np.int64).reshape(8, 8) * np.asarray(q_table, dtype=np.int64).reshape(8, 8)
