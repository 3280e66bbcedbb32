"""PNG decoder: chunk stream, inflate, unfilter, Adam7 and RGBA expansion."""

import logging
import math
import zlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from engines.bit_reader import ByteReader
from engines.png_filters import unfilter_image
from models.decode_options import DecodeOptions
from models.decoded_image import DecodedImage
from models.errors import (
    CorruptDataError,
    MalformedHeaderError,
    ResourceLimitExceededError,
    TruncatedStreamError,
    UnsupportedFeatureError,
)
from utils.constants import ADAM7_PASSES, PNG_COLOR_TYPES, PNG_MAX_DIMENSION, PNG_SIGNATURE
from utils.metrics import Timer

logger = logging.getLogger(__name__)


class ChunkState(Enum):
    EXPECT_SIGNATURE = "expect_signature"
    EXPECT_IHDR = "expect_ihdr"
    ITERATE_CHUNKS = "iterate_chunks"
    DONE = "done"


@dataclass(frozen=True)
class PngHeader:
    width: int
    height: int
    bit_depth: int
    color_type: int
    interlace: int

    @property
    def samples(self) -> int:
        return PNG_COLOR_TYPES[self.color_type][1]

    @property
    def bpp(self) -> int:
        """Filter unit: bytes per complete pixel, rounded up to 1."""
        return max(1, self.samples * self.bit_depth // 8)

    def stride(self, width: int) -> int:
        return math.ceil(width * self.samples * self.bit_depth / 8)


def adam7_pass_sizes(width: int, height: int):
    """(x0, y0, dx, dy, pass width, pass height) for each Adam7 pass."""
    sizes = []
    for x0, y0, dx, dy in ADAM7_PASSES:
        pw = (width - x0 + dx - 1) // dx if width > x0 else 0
        ph = (height - y0 + dy - 1) // dy if height > y0 else 0
        sizes.append((x0, y0, dx, dy, pw, ph))
    return sizes


class PngDecoder:
    """Single-use decoder over one PNG byte stream."""

    def __init__(self, data, options: Optional[DecodeOptions] = None):
        self._reader = ByteReader(data)
        self._options = options or DecodeOptions()
        self._timer = Timer(enabled=self._options.collect_timings)
        self._header: Optional[PngHeader] = None
        self._palette: Optional[np.ndarray] = None
        self._palette_alpha: Optional[np.ndarray] = None
        self._transparent_key = None
        self._idat: List[bytes] = []
        self._text: Dict[str, str] = {}
        self._metadata: Dict[str, Any] = {}

    def decode(self) -> DecodedImage:
        reader = self._reader
        state = ChunkState.EXPECT_SIGNATURE
        while state is not ChunkState.DONE:
            if state is ChunkState.EXPECT_SIGNATURE:
                if len(reader) < len(PNG_SIGNATURE) or reader.bytes_at(0, 8) != PNG_SIGNATURE:
                    raise MalformedHeaderError("Invalid PNG signature", offset=0)
                reader.skip(len(PNG_SIGNATURE))
                state = ChunkState.EXPECT_IHDR
                continue

            if reader.at_end:
                raise TruncatedStreamError("Missing IEND chunk", offset=reader.tell())
            offset = reader.tell()
            ctype, payload = self._timer.measure("parse", self._read_chunk)

            if state is ChunkState.EXPECT_IHDR:
                if ctype != "IHDR":
                    raise MalformedHeaderError(f"First chunk must be IHDR, found {ctype}", chunk=ctype, offset=offset)
                self._process_IHDR(payload, offset)
                state = ChunkState.ITERATE_CHUNKS
            elif ctype == "IHDR":
                raise MalformedHeaderError("Duplicate IHDR chunk", chunk=ctype, offset=offset)
            elif ctype == "IEND":
                state = ChunkState.DONE
            else:
                handler = getattr(self, f"_process_{ctype}", None)
                if handler is not None:
                    self._timer.measure("parse", handler, payload, offset)
                elif ctype[0].isupper():
                    raise UnsupportedFeatureError(f"Unknown critical chunk {ctype}", chunk=ctype, offset=offset)
                else:
                    logger.debug("Skipping ancillary chunk %s (%d bytes)", ctype, len(payload))

        return self._finish()

    def _read_chunk(self):
        reader = self._reader
        offset = reader.tell()
        length = reader.read_u32()
        type_bytes = reader.read_bytes(4)
        if not all(65 <= b <= 90 or 97 <= b <= 122 for b in type_bytes):
            raise CorruptDataError(f"Invalid chunk type {type_bytes!r}", offset=offset)
        ctype = type_bytes.decode("ascii")
        if length > PNG_MAX_DIMENSION:
            raise CorruptDataError(f"Chunk length {length} too large", chunk=ctype, offset=offset)
        if reader.remaining < length + 4:
            raise TruncatedStreamError(f"Chunk {ctype} runs past end of data", chunk=ctype, offset=offset)
        payload = reader.read_bytes(length)
        crc = reader.read_u32()
        if self._options.verify_crc and zlib.crc32(payload, zlib.crc32(type_bytes)) & 0xFFFFFFFF != crc:
            raise CorruptDataError("CRC mismatch", chunk=ctype, offset=offset)
        logger.debug("Chunk %s, %d bytes at offset %d", ctype, length, offset)
        return ctype, payload

    # --- critical chunks ---
    def _process_IHDR(self, data: bytes, offset: int) -> None:
        if len(data) != 13:
            raise MalformedHeaderError("IHDR chunk has incorrect length", chunk="IHDR", offset=offset)
        seg = ByteReader(data)
        width, height = seg.read_u32(), seg.read_u32()
        bit_depth, color_type = seg.read_u8(), seg.read_u8()
        compression, filter_method, interlace = seg.read_u8(), seg.read_u8(), seg.read_u8()

        if not (1 <= width <= PNG_MAX_DIMENSION and 1 <= height <= PNG_MAX_DIMENSION):
            raise MalformedHeaderError(f"Invalid dimensions {width}x{height}", chunk="IHDR", offset=offset)
        if color_type not in PNG_COLOR_TYPES:
            raise MalformedHeaderError(f"Invalid color type {color_type}", chunk="IHDR", offset=offset)
        if bit_depth not in PNG_COLOR_TYPES[color_type][2]:
            raise MalformedHeaderError(
                f"Bit depth {bit_depth} not allowed for color type {color_type}", chunk="IHDR", offset=offset
            )
        if compression != 0:
            raise MalformedHeaderError(f"Unknown compression method {compression}", chunk="IHDR", offset=offset)
        if filter_method != 0:
            raise MalformedHeaderError(f"Unknown filter method {filter_method}", chunk="IHDR", offset=offset)
        if interlace not in (0, 1):
            raise UnsupportedFeatureError(f"Unknown interlace method {interlace}", chunk="IHDR", offset=offset)
        if width * height > self._options.max_pixels:
            raise ResourceLimitExceededError(
                f"Image {width}x{height} exceeds the limit of {self._options.max_pixels} pixels",
                chunk="IHDR",
                offset=offset,
            )
        self._header = PngHeader(width, height, bit_depth, color_type, interlace)
        logger.debug(
            "IHDR %dx%d, depth %d, color type %d, interlace %d",
            width, height, bit_depth, color_type, interlace,
        )

    def _process_PLTE(self, data: bytes, offset: int) -> None:
        if self._idat:
            raise MalformedHeaderError("PLTE after IDAT", chunk="PLTE", offset=offset)
        if self._palette is not None:
            raise MalformedHeaderError("Multiple PLTE chunks", chunk="PLTE", offset=offset)
        if self._header.color_type in (0, 4):
            raise MalformedHeaderError("PLTE not allowed for grayscale images", chunk="PLTE", offset=offset)
        if len(data) % 3 or not 3 <= len(data) <= 768:
            raise MalformedHeaderError(f"Invalid PLTE length {len(data)}", chunk="PLTE", offset=offset)
        self._palette = np.frombuffer(data, dtype=np.uint8).reshape(-1, 3)

    def _process_tRNS(self, data: bytes, offset: int) -> None:
        color_type = self._header.color_type
        if self._idat:
            raise MalformedHeaderError("tRNS after IDAT", chunk="tRNS", offset=offset)
        if color_type == 3:
            if self._palette is None:
                raise MalformedHeaderError("tRNS before PLTE", chunk="tRNS", offset=offset)
            if len(data) > len(self._palette):
                raise MalformedHeaderError("tRNS has more entries than PLTE", chunk="tRNS", offset=offset)
            self._palette_alpha = np.frombuffer(data, dtype=np.uint8)
        elif color_type == 0:
            if len(data) != 2:
                raise MalformedHeaderError("tRNS chunk has incorrect length", chunk="tRNS", offset=offset)
            self._transparent_key = (int.from_bytes(data, "big"),)
        elif color_type == 2:
            if len(data) != 6:
                raise MalformedHeaderError("tRNS chunk has incorrect length", chunk="tRNS", offset=offset)
            self._transparent_key = tuple(int.from_bytes(data[i:i + 2], "big") for i in (0, 2, 4))
        else:
            raise MalformedHeaderError(
                f"tRNS not allowed for color type {color_type}", chunk="tRNS", offset=offset
            )

    def _process_IDAT(self, data: bytes, offset: int) -> None:
        if self._header.color_type == 3 and self._palette is None:
            raise MalformedHeaderError("PLTE required before IDAT", chunk="IDAT", offset=offset)
        self._idat.append(data)

    # --- ancillary chunks ---
    def _process_tEXt(self, data: bytes, offset: int) -> None:
        keyword, _, text = data.partition(b"\x00")
        self._text[keyword.decode("latin-1")] = text.decode("latin-1")

    def _process_zTXt(self, data: bytes, offset: int) -> None:
        keyword, _, rest = data.partition(b"\x00")
        if not rest or rest[0] != 0:
            raise CorruptDataError("Unknown zTXt compression method", chunk="zTXt", offset=offset)
        text = self._inflate_text(rest[1:], "zTXt", offset)
        self._text[keyword.decode("latin-1")] = text.decode("latin-1")

    def _process_iTXt(self, data: bytes, offset: int) -> None:
        keyword, _, rest = data.partition(b"\x00")
        if len(rest) < 2:
            raise CorruptDataError("iTXt chunk too short", chunk="iTXt", offset=offset)
        compressed = rest[0]
        _language, _, rest = rest[2:].partition(b"\x00")
        _translated, _, text = rest.partition(b"\x00")
        if compressed:
            text = self._inflate_text(text, "iTXt", offset)
        self._text[keyword.decode("latin-1")] = text.decode("utf-8", errors="replace")

    def _process_gAMA(self, data: bytes, offset: int) -> None:
        if len(data) != 4:
            raise MalformedHeaderError("gAMA chunk has incorrect length", chunk="gAMA", offset=offset)
        self._metadata["gamma"] = int.from_bytes(data, "big") / 100000.0

    def _process_pHYs(self, data: bytes, offset: int) -> None:
        if len(data) != 9:
            raise MalformedHeaderError("pHYs chunk has incorrect length", chunk="pHYs", offset=offset)
        self._metadata["physical"] = {
            "x_pixels_per_unit": int.from_bytes(data[0:4], "big"),
            "y_pixels_per_unit": int.from_bytes(data[4:8], "big"),
            "unit": "meter" if data[8] == 1 else "unknown",
        }

    def _process_sRGB(self, data: bytes, offset: int) -> None:
        if len(data) != 1:
            raise MalformedHeaderError("sRGB chunk has incorrect length", chunk="sRGB", offset=offset)
        self._metadata["srgb_intent"] = data[0]

    def _process_bKGD(self, data: bytes, offset: int) -> None:
        if self._header.color_type == 3:
            self._metadata["background"] = tuple(data[:1])
        else:
            self._metadata["background"] = tuple(
                int.from_bytes(data[i:i + 2], "big") for i in range(0, len(data) - 1, 2)
            )

    def _inflate_text(self, data: bytes, chunk: str, offset: int) -> bytes:
        """Inflate compressed text, refusing output beyond max_text_bytes."""
        limit = self._options.max_text_bytes
        inflater = zlib.decompressobj()
        try:
            text = inflater.decompress(data, limit + 1)
        except zlib.error as exc:
            raise CorruptDataError(f"Cannot inflate {chunk} text: {exc}", chunk=chunk, offset=offset) from exc
        if len(text) > limit or inflater.unconsumed_tail:
            raise ResourceLimitExceededError(
                f"{chunk} text inflates beyond the limit of {limit} bytes", chunk=chunk, offset=offset
            )
        if inflater.eof:
            return text
        raise CorruptDataError(f"{chunk} text stream is incomplete", chunk=chunk, offset=offset)

    # --- pixel data ---
    def _expected_size(self) -> int:
        header = self._header
        if not header.interlace:
            return header.height * (header.stride(header.width) + 1)
        return sum(
            ph * (header.stride(pw) + 1)
            for _, _, _, _, pw, ph in adam7_pass_sizes(header.width, header.height)
            if pw and ph
        )

    def _inflate(self) -> np.ndarray:
        if not self._idat:
            raise MalformedHeaderError("No IDAT chunk", chunk="IDAT")
        expected = self._expected_size()
        inflater = zlib.decompressobj()
        try:
            raw = inflater.decompress(b"".join(self._idat), expected)
        except zlib.error as exc:
            raise CorruptDataError(f"IDAT inflate failed: {exc}", chunk="IDAT") from exc
        if len(raw) < expected:
            raise TruncatedStreamError(
                f"Inflated image data is {len(raw)} bytes, expected {expected}", chunk="IDAT"
            )
        return np.frombuffer(raw, dtype=np.uint8)

    def _unpack_samples(self, rows: np.ndarray, width: int) -> np.ndarray:
        """Filtered-row bytes -> (h, w, samples) integer samples at source depth."""
        header = self._header
        depth, samples = header.bit_depth, header.samples
        height = rows.shape[0]
        if depth == 8:
            return rows[:, :width * samples].reshape(height, width, samples)
        if depth == 16:
            pairs = rows[:, :width * samples * 2].reshape(height, width, samples, 2).astype(np.uint16)
            return (pairs[..., 0] << 8) | pairs[..., 1]
        per_byte = 8 // depth
        shifts = np.arange(per_byte - 1, -1, -1, dtype=np.uint8) * depth
        mask = (1 << depth) - 1
        values = (rows[:, :, None] >> shifts) & mask
        return values.reshape(height, -1)[:, :width].reshape(height, width, 1)

    def _expand(self, rows: np.ndarray, width: int) -> np.ndarray:
        """Reconstructed rows of one (sub-)image -> (h, w, 4) RGBA."""
        header = self._header
        samples = self._unpack_samples(rows, width)
        height = rows.shape[0]
        rgba = np.empty((height, width, 4), dtype=np.uint8)

        if header.color_type == 3:
            indices = samples[..., 0].astype(np.intp)
            if indices.size and int(indices.max()) >= len(self._palette):
                raise CorruptDataError(
                    f"Palette index {int(indices.max())} out of range ({len(self._palette)} entries)",
                    chunk="IDAT",
                )
            alpha = np.full(256, 255, dtype=np.uint8)
            if self._palette_alpha is not None:
                alpha[:len(self._palette_alpha)] = self._palette_alpha
            rgba[..., :3] = self._palette[indices]
            rgba[..., 3] = alpha[indices]
            return rgba

        depth = header.bit_depth
        if depth == 16:
            scaled = (samples >> 8).astype(np.uint8)
        elif depth < 8:
            scaled = (samples * (255 // ((1 << depth) - 1))).astype(np.uint8)
        else:
            scaled = samples.astype(np.uint8)

        if header.color_type in (0, 4):
            rgba[..., 0] = rgba[..., 1] = rgba[..., 2] = scaled[..., 0]
        else:
            rgba[..., :3] = scaled[..., :3]

        if header.color_type in (4, 6):
            rgba[..., 3] = scaled[..., -1]
        else:
            rgba[..., 3] = 255
            if self._transparent_key is not None:
                # Keys compare at source precision, before 16-bit truncation.
                key = np.array(self._transparent_key, dtype=np.int64)
                matches = np.all(samples[..., :len(key)].astype(np.int64) == key, axis=-1)
                rgba[..., 3][matches] = 0
        return rgba

    def _reconstruct(self, data: np.ndarray) -> np.ndarray:
        header = self._header
        bpp = header.bpp
        if not header.interlace:
            stride = header.stride(header.width)
            rows = unfilter_image(data, header.height, stride, bpp)
            return self._expand(rows, header.width)

        out = np.zeros((header.height, header.width, 4), dtype=np.uint8)
        pos = 0
        for index, (x0, y0, dx, dy, pw, ph) in enumerate(adam7_pass_sizes(header.width, header.height)):
            if not pw or not ph:
                continue
            stride = header.stride(pw)
            size = ph * (stride + 1)
            rows = unfilter_image(data[pos:pos + size], ph, stride, bpp, pass_index=index)
            out[y0::dy, x0::dx] = self._expand(rows, pw)
            pos += size
        return out

    def _finish(self) -> DecodedImage:
        header = self._header
        data = self._timer.measure("inflate", self._inflate)
        rgba = self._timer.measure("reconstruct", self._reconstruct, data)

        metadata: Dict[str, Any] = {
            "format": "png",
            "bit_depth": header.bit_depth,
            "color_type": header.color_type,
            "color_type_name": PNG_COLOR_TYPES[header.color_type][0],
            "interlaced": bool(header.interlace),
            "palette_size": 0 if self._palette is None else len(self._palette),
            "has_transparency": (
                header.color_type in (4, 6)
                or self._palette_alpha is not None
                or self._transparent_key is not None
            ),
        }
        if self._text:
            metadata["text"] = dict(self._text)
        metadata.update(self._metadata)
        if self._options.collect_timings:
            metadata["timings_ms"] = self._timer.report()
        return DecodedImage(np.ascontiguousarray(rgba), header.width, header.height, metadata)


def decode_png(data, options: Optional[DecodeOptions] = None) -> DecodedImage:
    """Decode a PNG byte stream into RGBA."""
    return PngDecoder(data, options).decode()
