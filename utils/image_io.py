"""PNG/JPEG encoding of RGBA arrays using OpenCV."""

import cv2
import numpy as np

from models.errors import InvalidArgumentError

PNG_MIME = "image/png"
JPEG_MIME = "image/jpeg"


def _check_rgba(rgba: np.ndarray) -> None:
    if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
        raise ValueError(f"Expected uint8 (H, W, 4) RGBA array, got {rgba.dtype} {rgba.shape}")


def encode_png(rgba: np.ndarray, compression_level: int = 6) -> bytes:
    """Lossless PNG; alpha is kept (8-bit RGBA)."""
    _check_rgba(rgba)
    if not 0 <= compression_level <= 9:
        raise InvalidArgumentError(f"PNG compression level must be in [0, 9], got {compression_level}")
    bgra = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
    ok, buf = cv2.imencode(".png", bgra, [cv2.IMWRITE_PNG_COMPRESSION, compression_level])
    if not ok:
        raise ValueError("PNG encoding failed")
    return buf.tobytes()


def encode_jpeg(rgba: np.ndarray, quality: int = 75) -> bytes:
    """Baseline JPEG; alpha is discarded."""
    _check_rgba(rgba)
    if not 1 <= quality <= 100:
        raise InvalidArgumentError(f"JPEG quality must be in [1, 100], got {quality}")
    bgr = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR)
    ok, buf = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buf.tobytes()


def encode(rgba: np.ndarray, mime_type: str, **options) -> bytes:
    """Encode by MIME type; `options` go to the format encoder."""
    kind = mime_type.split(";", 1)[0].strip().lower()
    if kind == PNG_MIME:
        return encode_png(rgba, **options)
    if kind in (JPEG_MIME, "image/jpg", "image/pjpeg"):
        return encode_jpeg(rgba, **options)
    raise InvalidArgumentError(f"No encoder for MIME type {mime_type!r}")


def save_image(rgba: np.ndarray, path: str, **options) -> None:
    """Write RGBA as PNG or JPEG, chosen by file extension."""
    mime = JPEG_MIME if path.lower().endswith((".jpg", ".jpeg")) else PNG_MIME
    with open(path, "wb") as f:
        f.write(encode(rgba, mime, **options))
