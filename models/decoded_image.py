"""Decoder output handed to the unified Image."""

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np


@dataclass
class DecodedImage:
    """RGBA pixels plus format-specific metadata."""

    pixels: np.ndarray
    width: int
    height: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    channels: int = 4

    def __post_init__(self):
        expected = (self.height, self.width, 4)
        if self.pixels.shape != expected or self.pixels.dtype != np.uint8:
            raise ValueError(
                f"Decoded pixels must be uint8 {expected}, got {self.pixels.dtype} {self.pixels.shape}"
            )

    def pixels_bytes(self) -> bytes:
        """Flat row-major RGBA bytes."""
        return self.pixels.tobytes()
