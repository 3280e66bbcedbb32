"""Immutable lookup tables shared by the decoders."""

import numpy as np


def _readonly(values, dtype) -> np.ndarray:
    array = np.array(values, dtype=dtype)
    array.setflags(write=False)
    return array


# Index i in zigzag scan order -> index in natural 8x8 row-major order.
ZIGZAG_TO_NATURAL = _readonly([
     0,  1,  8, 16,  9,  2,  3, 10,
    17, 24, 32, 25, 18, 11,  4,  5,
    12, 19, 26, 33, 40, 48, 41, 34,
    27, 20, 13,  6,  7, 14, 21, 28,
    35, 42, 49, 56, 57, 50, 43, 36,
    29, 22, 15, 23, 30, 37, 44, 51,
    58, 59, 52, 45, 38, 31, 39, 46,
    53, 60, 61, 54, 47, 55, 62, 63,
], np.intp)

# JPEG markers (second byte after 0xFF).
SOI = 0xD8
EOI = 0xD9
SOS = 0xDA
DQT = 0xDB
DNL = 0xDC
DRI = 0xDD
DHT = 0xC4
DAC = 0xCC
COM = 0xFE
SOF0 = 0xC0
RST0 = 0xD0
RST7 = 0xD7
APP0 = 0xE0
APP15 = 0xEF

# SOF1..SOF15 except DHT/JPG/DAC, none of which this decoder implements.
UNSUPPORTED_FRAMES = {
    0xC1: "extended sequential DCT",
    0xC2: "progressive DCT",
    0xC3: "lossless",
    0xC5: "differential sequential DCT",
    0xC6: "differential progressive DCT",
    0xC7: "differential lossless",
    0xC9: "extended sequential DCT, arithmetic coding",
    0xCA: "progressive DCT, arithmetic coding",
    0xCB: "lossless, arithmetic coding",
    0xCD: "differential sequential DCT, arithmetic coding",
    0xCE: "differential progressive DCT, arithmetic coding",
    0xCF: "differential lossless, arithmetic coding",
}

# Markers that stand alone (no length field).
STANDALONE_MARKERS = frozenset([SOI, EOI, 0x01, *range(RST0, RST7 + 1)])

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# (x0, y0, dx, dy) for each of the seven Adam7 passes.
ADAM7_PASSES = (
    (0, 0, 8, 8),
    (4, 0, 8, 8),
    (0, 4, 4, 8),
    (2, 0, 4, 4),
    (0, 2, 2, 4),
    (1, 0, 2, 2),
    (0, 1, 1, 2),
)

# PNG colour type -> (name, samples per pixel, allowed bit depths)
PNG_COLOR_TYPES = {
    0: ("grayscale", 1, (1, 2, 4, 8, 16)),
    2: ("truecolor", 3, (8, 16)),
    3: ("indexed", 1, (1, 2, 4, 8)),
    4: ("grayscale_alpha", 2, (8, 16)),
    6: ("truecolor_alpha", 4, (8, 16)),
}

PNG_FILTER_NONE = 0
PNG_FILTER_SUB = 1
PNG_FILTER_UP = 2
PNG_FILTER_AVERAGE = 3
PNG_FILTER_PAETH = 4

# Largest width/height a PNG header may declare.
PNG_MAX_DIMENSION = 2**31 - 1

# ITU-R BT.709 luma weights, used by luminance grayscale.
LUMA_BT709 = (0.2126, 0.7152, 0.0722)

SEPIA_MATRIX = _readonly([
    [0.393, 0.769, 0.189],
    [0.349, 0.686, 0.168],
    [0.272, 0.534, 0.131],
], np.float64)
