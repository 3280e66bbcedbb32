"""Hand-built PNG streams for decoder tests."""

import struct
import zlib

import numpy as np

SIGNATURE = b"\x89PNG\r\n\x1a\n"
SAMPLES = {0: 1, 2: 3, 3: 1, 4: 2, 6: 4}
PASSES = ((0, 0, 8, 8), (4, 0, 8, 8), (0, 4, 4, 8), (2, 0, 4, 4), (0, 2, 2, 4), (1, 0, 2, 2), (0, 1, 1, 2))


def chunk(ctype: bytes, payload: bytes = b"", crc: int = None) -> bytes:
    if crc is None:
        crc = zlib.crc32(ctype + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + ctype + payload + struct.pack(">I", crc)


def ihdr(width, height, bit_depth=8, color_type=6, interlace=0, compression=0, filter_method=0) -> bytes:
    return chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, bit_depth, color_type,
                                      compression, filter_method, interlace))


def pack_rows(samples: np.ndarray, bit_depth: int) -> np.ndarray:
    """(h, w, n) integer samples -> (h, stride) packed row bytes."""
    h = samples.shape[0]
    flat = samples.reshape(h, -1).astype(np.int64)
    if bit_depth == 8:
        return flat.astype(np.uint8)
    if bit_depth == 16:
        return flat.astype(">u2").view(np.uint8).reshape(h, -1)
    per_byte = 8 // bit_depth
    pad = (-flat.shape[1]) % per_byte
    flat = np.pad(flat, ((0, 0), (0, pad)))
    groups = flat.reshape(h, -1, per_byte)
    shifts = np.arange(per_byte - 1, -1, -1) * bit_depth
    return (groups << shifts).sum(axis=-1).astype(np.uint8)


def _paeth(a, b, c):
    p = a + b - c
    pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    return b if pb <= pc else c


def filter_rows(rows: np.ndarray, filter_types, bpp: int) -> bytes:
    """Apply PNG filters; `filter_types` is an int or a per-row sequence."""
    out = bytearray()
    prev = [0] * rows.shape[1]
    for y, row in enumerate(rows.tolist()):
        ft = filter_types if isinstance(filter_types, int) else filter_types[y % len(filter_types)]
        out.append(ft)
        for i, x in enumerate(row):
            a = row[i - bpp] if i >= bpp else 0
            b = prev[i]
            c = prev[i - bpp] if i >= bpp else 0
            if ft == 0:
                pred = 0
            elif ft == 1:
                pred = a
            elif ft == 2:
                pred = b
            elif ft == 3:
                pred = (a + b) // 2
            elif ft == 4:
                pred = _paeth(a, b, c)
            else:
                pred = 0
            out.append((x - pred) & 0xFF)
        prev = row
    return bytes(out)


def image_data(samples: np.ndarray, bit_depth: int, interlace: int = 0, filter_types=0) -> bytes:
    """Uncompressed IDAT stream (filter bytes included) for the samples."""
    n = samples.shape[2]
    bpp = max(1, n * bit_depth // 8)
    if not interlace:
        return filter_rows(pack_rows(samples, bit_depth), filter_types, bpp)
    h, w = samples.shape[:2]
    data = b""
    for x0, y0, dx, dy in PASSES:
        sub = samples[y0::dy, x0::dx]
        if sub.shape[0] and sub.shape[1]:
            data += filter_rows(pack_rows(sub, bit_depth), filter_types, bpp)
    return data


def make_png(
    samples: np.ndarray,
    bit_depth: int = 8,
    color_type: int = 6,
    interlace: int = 0,
    filter_types=0,
    palette=None,
    trns: bytes = None,
    before_idat=(),
    after_idat=(),
    idat_parts: int = 1,
    raw: bytes = None,
) -> bytes:
    """Complete PNG for (h, w, n) samples at the given depth and colour type."""
    h, w = samples.shape[:2]
    if raw is None:
        raw = image_data(samples, bit_depth, interlace, filter_types)
    compressed = zlib.compress(raw)
    out = SIGNATURE + ihdr(w, h, bit_depth, color_type, interlace)
    if palette is not None:
        out += chunk(b"PLTE", bytes(np.asarray(palette, dtype=np.uint8).reshape(-1)))
    if trns is not None:
        out += chunk(b"tRNS", trns)
    for extra in before_idat:
        out += extra
    step = max(1, -(-len(compressed) // idat_parts))
    for i in range(0, len(compressed), step):
        out += chunk(b"IDAT", compressed[i:i + step])
    for extra in after_idat:
        out += extra
    return out + chunk(b"IEND")
