"""Unified in-memory RGBA image."""

import copy
from typing import Any, Dict, Optional, Sequence

import numpy as np

from engines import color_adjust, convolution, geometry
from engines.dispatch import decode_raw
from models.decode_options import DEFAULT_MAX_PIXELS, DecodeOptions
from models.decoded_image import DecodedImage
from models.errors import InvalidArgumentError
from utils import image_io


class Image:
    """Owns exactly one (height, width, 4) uint8 RGBA array.

    Manipulations build a complete new array and swap it in as their last
    step, so an operation that raises leaves the image as it was. They
    return ``self`` for chaining::

        Image.from_bytes(data, "image/jpeg").resize(320, 240).sharpen(0.5).to_png_bytes()
    """

    channels = 4

    def __init__(
        self,
        pixels,
        width: int,
        height: int,
        metadata: Optional[Dict[str, Any]] = None,
        max_pixels: int = DEFAULT_MAX_PIXELS
    ):
        for name, value in (("width", width), ("height", height)):
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
                raise InvalidArgumentError(f"Image {name} must be a positive integer, got {value!r}")
        if isinstance(pixels, np.ndarray):
            if pixels.dtype != np.uint8:
                raise InvalidArgumentError(f"Pixel array must be uint8, got {pixels.dtype}")
            flat = pixels.reshape(-1).copy()
        elif isinstance(pixels, (bytes, bytearray, memoryview)):
            flat = np.frombuffer(bytes(pixels), dtype=np.uint8).copy()
        else:
            raise InvalidArgumentError(f"Pixels must be bytes-like or a numpy array, got {type(pixels).__name__}")

        expected = int(width) * int(height) * 4
        if flat.size != expected:
            raise InvalidArgumentError(
                f"Pixel buffer has {flat.size} bytes, expected {expected} for {width}x{height} RGBA"
            )
        self._pixels = flat.reshape(int(height), int(width), 4)
        self._metadata = copy.deepcopy(dict(metadata or {}))
        self.max_pixels = max_pixels

    # --- construction ---
    @classmethod
    def from_decoded(cls, result: DecodedImage, max_pixels: int = DEFAULT_MAX_PIXELS) -> "Image":
        return cls(result.pixels, result.width, result.height, result.metadata, max_pixels)

    @classmethod
    def from_bytes(cls, data, mime_type: Optional[str] = None, options: Optional[DecodeOptions] = None) -> "Image":
        """Decode PNG or JPEG bytes; the format is sniffed when `mime_type` is None."""
        options = options or DecodeOptions()
        return cls.from_decoded(decode_raw(data, mime_type, options), options.max_pixels)

    @classmethod
    def from_png_bytes(cls, data, options: Optional[DecodeOptions] = None) -> "Image":
        return cls.from_bytes(data, "image/png", options)

    @classmethod
    def from_jpeg_bytes(cls, data, options: Optional[DecodeOptions] = None) -> "Image":
        return cls.from_bytes(data, "image/jpeg", options)

    @classmethod
    def from_array(cls, array: np.ndarray, metadata: Optional[Dict[str, Any]] = None) -> "Image":
        if not isinstance(array, np.ndarray) or array.ndim != 3 or array.shape[2] != 4:
            raise InvalidArgumentError("Expected an (H, W, 4) RGBA array")
        return cls(array, array.shape[1], array.shape[0], metadata)

    # --- accessors ---
    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def has_alpha(self) -> bool:
        """True when any pixel is not fully opaque."""
        return bool((self._pixels[..., 3] != 255).any())

    @property
    def pixels(self) -> bytes:
        """Flat row-major RGBA bytes (a copy)."""
        return self._pixels.tobytes()

    def to_array(self) -> np.ndarray:
        return self._pixels.copy()

    def get_metadata(self) -> Dict[str, Any]:
        """Deep copy; nested values such as exif or text are not shared."""
        return copy.deepcopy(self._metadata)

    def set_metadata(self, metadata: Dict[str, Any]) -> "Image":
        if not isinstance(metadata, dict):
            raise InvalidArgumentError(f"Metadata must be a dict, got {type(metadata).__name__}")
        self._metadata = copy.deepcopy(metadata)
        return self

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.get_metadata()

    def copy(self) -> "Image":
        return Image(self._pixels, self.width, self.height, self._metadata, self.max_pixels)

    def __repr__(self) -> str:
        fmt = self._metadata.get("format", "raw")
        return f"Image({self.width}x{self.height}, format={fmt})"

    def _swap(self, pixels: np.ndarray) -> "Image":
        self._pixels = pixels
        return self

    # --- geometry ---
    def resize(self, width: int, height: int, algorithm: geometry.Algorithm = 'bilinear') -> "Image":
        return self._swap(geometry.resize(self._pixels, width, height, algorithm, self.max_pixels))

    def crop(self, x: int, y: int, width: int, height: int) -> "Image":
        return self._swap(geometry.crop(self._pixels, x, y, width, height))

    def rotate(
        self,
        degrees: float,
        algorithm: geometry.Algorithm = 'bilinear',
        fill: Sequence[int] = (0, 0, 0, 0)
    ) -> "Image":
        """Rotate clockwise; multiples of 90 swap dimensions without resampling."""
        return self._swap(geometry.rotate(self._pixels, degrees, algorithm, fill, self.max_pixels))

    def flip(self, direction: str) -> "Image":
        return self._swap(geometry.flip(self._pixels, direction))

    # --- photometric ---
    def brightness(self, factor: float) -> "Image":
        return self._swap(color_adjust.brightness(self._pixels, factor))

    def contrast(self, factor: float) -> "Image":
        return self._swap(color_adjust.contrast(self._pixels, factor))

    def grayscale(self, method: color_adjust.GrayscaleMethod = 'luminance') -> "Image":
        return self._swap(color_adjust.grayscale(self._pixels, method))

    def invert(self) -> "Image":
        return self._swap(color_adjust.invert(self._pixels))

    def sepia(self) -> "Image":
        return self._swap(color_adjust.sepia(self._pixels))

    def saturation(self, factor: float) -> "Image":
        return self._swap(color_adjust.saturation(self._pixels, factor))

    def hue(self, degrees: float) -> "Image":
        return self._swap(color_adjust.hue(self._pixels, degrees))

    def hue_saturation(self, hue_shift: float, saturation_factor: float) -> "Image":
        return self._swap(color_adjust.hue_saturation(self._pixels, hue_shift, saturation_factor))

    # --- convolution ---
    def blur(self, radius: float = 1.0, sigma: Optional[float] = None) -> "Image":
        return self._swap(convolution.blur(self._pixels, radius, sigma))

    def box_blur(self, size: int = 3) -> "Image":
        return self._swap(convolution.box_blur(self._pixels, size))

    def sharpen(self, strength: float = 1.0) -> "Image":
        return self._swap(convolution.sharpen(self._pixels, strength))

    def unsharp_mask(self, amount: float = 1.0, radius: float = 1.0) -> "Image":
        return self._swap(convolution.unsharp_mask(self._pixels, amount, radius))

    def edge_detect(self, kind: convolution.EdgeKind = 'sobel-x') -> "Image":
        return self._swap(convolution.edge_detect(self._pixels, kind))

    def convolve(self, kernel, normalize: bool = False) -> "Image":
        return self._swap(convolution.convolve(self._pixels, kernel, normalize))

    # --- encoding ---
    def to_png_bytes(self, compression_level: int = 6) -> bytes:
        return image_io.encode_png(self._pixels, compression_level)

    def to_jpeg_bytes(self, quality: int = 75) -> bytes:
        return image_io.encode_jpeg(self._pixels, quality)

    def to_bytes(self, mime_type: str, **options) -> bytes:
        return image_io.encode(self._pixels, mime_type, **options)
