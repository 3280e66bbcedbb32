"""Decoder configuration."""

from dataclasses import dataclass
from typing import Literal

DEFAULT_MAX_PIXELS = 100_000_000
DEFAULT_MAX_TEXT_BYTES = 1 << 20


@dataclass(frozen=True)
class DecodeOptions:
    """Limits and switches shared by the JPEG and PNG decoders."""

    max_pixels: int = DEFAULT_MAX_PIXELS
    verify_crc: bool = True
    upsampling: Literal['nearest', 'bilinear'] = 'nearest'
    collect_timings: bool = False
    max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES

    def __post_init__(self):
        if not isinstance(self.max_pixels, int) or self.max_pixels < 1:
            raise ValueError(f"max_pixels must be a positive integer, got {self.max_pixels!r}")
        if not isinstance(self.max_text_bytes, int) or self.max_text_bytes < 1:
            raise ValueError(f"max_text_bytes must be a positive integer, got {self.max_text_bytes!r}")
        if self.upsampling not in ('nearest', 'bilinear'):
            raise ValueError(f"Upsampling must be 'nearest' or 'bilinear', got {self.upsampling!r}")
