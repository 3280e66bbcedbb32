"""MIME type to decoder routing."""

import logging
from typing import Optional

from engines.jpeg_decoder import decode_jpeg
from engines.png_decoder import decode_png
from models.decode_options import DecodeOptions
from models.decoded_image import DecodedImage
from models.errors import UnsupportedFeatureError
from utils.constants import PNG_SIGNATURE

logger = logging.getLogger(__name__)

DECODERS = {
    "image/jpeg": decode_jpeg,
    "image/png": decode_png,
}

MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}


def normalize_mime_type(mime_type: str) -> str:
    """Lower-case, drop parameters and resolve aliases."""
    kind = mime_type.split(";", 1)[0].strip().lower()
    return MIME_ALIASES.get(kind, kind)


def sniff_mime_type(data) -> Optional[str]:
    """MIME type from magic bytes, or None when unrecognised."""
    head = bytes(data[:8])
    if head.startswith(PNG_SIGNATURE):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    return None


def decode_raw(data, mime_type: Optional[str] = None, options: Optional[DecodeOptions] = None) -> DecodedImage:
    """Decode to a DecodedImage; without `mime_type` the format is sniffed."""
    if mime_type is None:
        kind = sniff_mime_type(data)
        if kind is None:
            raise UnsupportedFeatureError("Unrecognised image format (no known signature)")
    else:
        kind = normalize_mime_type(mime_type)
    decoder = DECODERS.get(kind)
    if decoder is None:
        raise UnsupportedFeatureError(f"Unsupported MIME type {mime_type!r}")
    logger.debug("Decoding %d bytes as %s", len(data), kind)
    return decoder(data, options)


def decode(data, mime_type: Optional[str] = None, options: Optional[DecodeOptions] = None):
    """Decode bytes into an Image."""
    from models.image import Image

    options = options or DecodeOptions()
    return Image.from_decoded(decode_raw(data, mime_type, options), options.max_pixels)
