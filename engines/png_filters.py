"""PNG scanline filter reconstruction (filter method 0).

None, Sub and Up are numpy operations over the whole row. Average and Paeth
depend on the reconstructed byte to their left and on both neighbours above,
so they run as a Python loop over the row bytes. On large images encoded
mostly with these two filters the loop dominates decode time.
"""

import numpy as np

from models.errors import CorruptDataError
from utils.constants import (
    PNG_FILTER_AVERAGE, PNG_FILTER_NONE, PNG_FILTER_PAETH, PNG_FILTER_SUB, PNG_FILTER_UP,
)


def paeth_predictor(a: int, b: int, c: int) -> int:
    """Nearest of left, above, upper-left to a + b - c; ties resolve a, b, c."""
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def unfilter_scanline(
    filter_type: int,
    filtered: np.ndarray,
    previous: np.ndarray,
    bpp: int,
    row: int = 0
) -> np.ndarray:
    """Reconstruct one scanline.

    Args:
        filter_type: Filter byte that preceded the row.
        filtered: Filtered row bytes (uint8, without the filter byte).
        previous: Reconstructed previous row, all zeros for the first row.
        bpp: Bytes per complete pixel, at least 1.
        row: Row index, reported when the filter type is invalid.
    """
    if filter_type == PNG_FILTER_NONE:
        return filtered.copy()

    if filter_type == PNG_FILTER_UP:
        return filtered + previous

    if filter_type == PNG_FILTER_SUB:
        # Each byte adds the reconstructed byte bpp to its left: a running sum per lane.
        lanes = filtered.reshape(-1, bpp)
        return np.cumsum(lanes, axis=0, dtype=np.uint8).reshape(-1)

    if filter_type == PNG_FILTER_AVERAGE:
        out = bytearray(filtered.tobytes())
        above = previous.tobytes()
        lead = min(bpp, len(out))
        for i in range(lead):
            out[i] = (out[i] + (above[i] >> 1)) & 0xFF
        for i in range(lead, len(out)):
            out[i] = (out[i] + ((out[i - bpp] + above[i]) >> 1)) & 0xFF
        return np.frombuffer(bytes(out), dtype=np.uint8)

    if filter_type == PNG_FILTER_PAETH:
        out = bytearray(filtered.tobytes())
        above = previous.tobytes()
        lead = min(bpp, len(out))
        for i in range(lead):
            out[i] = (out[i] + above[i]) & 0xFF
        # paeth_predictor inlined: pa = |b - c|, pb = |a - c|, pc = |a + b - 2c|.
        for i in range(lead, len(out)):
            a, b, c = out[i - bpp], above[i], above[i - bpp]
            pa, pb, pc = abs(b - c), abs(a - c), abs(a + b - c - c)
            if pa <= pb and pa <= pc:
                pred = a
            elif pb <= pc:
                pred = b
            else:
                pred = c
            out[i] = (out[i] + pred) & 0xFF
        return np.frombuffer(bytes(out), dtype=np.uint8)

    raise CorruptDataError(f"Invalid filter type {filter_type}", row=row)


def unfilter_image(data: np.ndarray, height: int, stride: int, bpp: int, pass_index=None) -> np.ndarray:
    """Reconstruct `height` rows of `stride` bytes each from inflated data.

    `data` holds one filter byte plus `stride` bytes per row. Returns a
    (height, stride) uint8 array.
    """
    rows = np.empty((height, stride), dtype=np.uint8)
    previous = np.zeros(stride, dtype=np.uint8)
    for y in range(height):
        start = y * (stride + 1)
        filter_type = int(data[start])
        try:
            previous = unfilter_scanline(filter_type, data[start + 1:start + 1 + stride], previous, bpp, row=y)
        except CorruptDataError as exc:
            if pass_index is None:
                raise
            raise exc.with_context(chunk=f"IDAT pass {pass_index + 1}") from exc
        rows[y] = previous
    return rows
