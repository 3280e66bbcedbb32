"""Baseline sequential JPEG decoder (ITU-T T.81, Huffman coded, 8-bit).

Markers are consumed by an explicit state machine; entropy-coded scans are
decoded block by block into per-component sample planes, which are then
upsampled and converted to RGBA.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from engines.bit_reader import BitReader, ByteReader
from engines.color_space import planes_to_rgba, upsample_plane
from engines.dct_engine import decode_block
from engines.huffman import HuffmanTable
from engines.quantizer import dequantize, zigzag_to_natural
from models.decode_options import DecodeOptions
from models.decoded_image import DecodedImage
from models.errors import (
    CorruptDataError,
    DecodeError,
    MalformedHeaderError,
    ResourceLimitExceededError,
    TruncatedStreamError,
    UnexpectedEofError,
    UnsupportedFeatureError,
)
from utils.constants import (
    APP0, APP15, COM, DAC, DHT, DNL, DQT, DRI, EOI, RST0, RST7, SOF0, SOI, SOS,
    STANDALONE_MARKERS, UNSUPPORTED_FRAMES,
)
from utils.metrics import Timer

logger = logging.getLogger(__name__)


class DecoderState(Enum):
    EXPECT_SOI = "expect_soi"
    READ_HEADER_SEGMENTS = "read_header_segments"
    READ_SOS = "read_sos"
    DECODE_ENTROPY_DATA = "decode_entropy_data"
    EXPECT_EOI = "expect_eoi"
    DONE = "done"


_TABLE_MARKERS = frozenset([DQT, DHT, DRI, COM, *range(APP0, APP15 + 1)])

# state -> {marker: next state}. READ_SOS and DECODE_ENTROPY_DATA consume no
# markers: they advance once the scan header and its entropy data are read.
TRANSITIONS = {
    DecoderState.EXPECT_SOI: {SOI: DecoderState.READ_HEADER_SEGMENTS},
    DecoderState.READ_HEADER_SEGMENTS: {
        **{m: DecoderState.READ_HEADER_SEGMENTS for m in _TABLE_MARKERS},
        SOF0: DecoderState.READ_HEADER_SEGMENTS,
        SOS: DecoderState.READ_SOS,
    },
    DecoderState.READ_SOS: {},
    DecoderState.DECODE_ENTROPY_DATA: {},
    DecoderState.EXPECT_EOI: {
        **{m: DecoderState.EXPECT_EOI for m in _TABLE_MARKERS},
        SOS: DecoderState.READ_SOS,
        EOI: DecoderState.DONE,
    },
}

_COMPONENT_NAMES = {1: "Y", 2: "Cb", 3: "Cr", 82: "R", 71: "G", 66: "B"}
_EXIF_ORIENTATION = 0x0112


@dataclass
class FrameComponent:
    """One SOF0 component and the sample plane its blocks decode into."""

    id: int
    h: int
    v: int
    tq: int
    blocks_x: int = 0
    blocks_y: int = 0
    plane: Optional[np.ndarray] = None
    dc_pred: int = 0
    scanned: bool = False


@dataclass
class Frame:
    precision: int
    width: int
    height: int
    components: List[FrameComponent]
    hmax: int
    vmax: int
    mcus_x: int
    mcus_y: int


@dataclass
class ScanComponent:
    component: FrameComponent
    dc_table: HuffmanTable
    ac_table: HuffmanTable
    quant: np.ndarray


class JpegDecoder:
    """Single-use decoder; all tables live on the instance for one call."""

    def __init__(self, data, options: Optional[DecodeOptions] = None):
        self._reader = ByteReader(data)
        self._options = options or DecodeOptions()
        self._timer = Timer(enabled=self._options.collect_timings)
        self._quant: Dict[int, np.ndarray] = {}
        self._dc_tables: Dict[int, HuffmanTable] = {}
        self._ac_tables: Dict[int, HuffmanTable] = {}
        self._restart_interval = 0
        self._frame: Optional[Frame] = None
        self._scans = 0
        self._metadata: Dict[str, Any] = {}

    # --- state machine ---
    def decode(self) -> DecodedImage:
        reader = self._reader
        if len(reader) < 2 or reader.u8_at(0) != 0xFF or reader.u8_at(1) != SOI:
            raise MalformedHeaderError("Missing SOI marker, not a JPEG stream", offset=0)

        state = DecoderState.EXPECT_SOI
        while state is not DecoderState.DONE:
            if reader.at_end:
                if state is DecoderState.EXPECT_EOI:
                    raise TruncatedStreamError("Missing EOI marker after last scan", offset=reader.tell())
                raise TruncatedStreamError("Stream ended before the first scan", offset=reader.tell())
            code, offset = reader.next_marker()
            state = self._next_state(state, code, offset)
            if code in STANDALONE_MARKERS:
                continue

            length = reader.read_u16()
            if length < 2:
                raise MalformedHeaderError(f"Segment length {length} is too small", marker=code, offset=offset)
            segment = reader.sub_reader(length - 2)

            if state is DecoderState.READ_SOS:
                scan = self._parse_segment(self._parse_sos, segment, code, offset)
                state = DecoderState.DECODE_ENTROPY_DATA
                end = self._timer.measure("entropy", self._decode_scan, scan, reader.tell())
                reader.seek(end)
                state = DecoderState.EXPECT_EOI
            else:
                self._parse_segment(self._segment_handler(code), segment, code, offset)

        return self._timer.measure("color", self._finish)

    def _next_state(self, state: DecoderState, code: int, offset: int) -> DecoderState:
        allowed = TRANSITIONS[state]
        if code in allowed:
            if code == SOF0 and self._frame is not None:
                raise MalformedHeaderError("Multiple SOF0 frames", marker=code, offset=offset)
            if code == SOS and self._frame is None:
                raise MalformedHeaderError("SOS before SOF0", marker=code, offset=offset)
            return allowed[code]

        if code in UNSUPPORTED_FRAMES:
            raise UnsupportedFeatureError(
                f"Unsupported JPEG frame type: {UNSUPPORTED_FRAMES[code]}", marker=code, offset=offset
            )
        if code == DAC:
            raise UnsupportedFeatureError("Arithmetic coding is not supported", marker=code, offset=offset)
        if code == DNL:
            raise UnsupportedFeatureError("DNL-defined image height is not supported", marker=code, offset=offset)
        if code == EOI and state is DecoderState.READ_HEADER_SEGMENTS:
            raise TruncatedStreamError("EOI reached before any scan", marker=code, offset=offset)
        if code == SOF0:
            raise MalformedHeaderError("SOF0 after the first scan", marker=code, offset=offset)
        if RST0 <= code <= RST7:
            raise MalformedHeaderError("Restart marker outside entropy-coded data", marker=code, offset=offset)
        raise MalformedHeaderError(
            f"Marker not allowed in state {state.name}", marker=code, offset=offset
        )

    def _segment_handler(self, code: int):
        if code == DQT:
            return self._parse_dqt
        if code == DHT:
            return self._parse_dht
        if code == DRI:
            return self._parse_dri
        if code == SOF0:
            return self._parse_sof0
        if code == COM:
            return self._parse_com
        return self._parse_app

    def _parse_segment(self, handler, segment: ByteReader, code: int, offset: int):
        try:
            return self._timer.measure("parse", handler, segment, code, offset)
        except UnexpectedEofError as exc:
            raise MalformedHeaderError(
                "Segment is shorter than its contents", marker=code, offset=offset
            ) from exc

    # --- header segments ---
    def _parse_dqt(self, seg: ByteReader, code: int, offset: int) -> None:
        while not seg.at_end:
            pq_tq = seg.read_u8()
            pq, tq = pq_tq >> 4, pq_tq & 0x0F
            if pq > 1 or tq > 3:
                raise MalformedHeaderError(
                    f"Invalid quantization table precision {pq} / id {tq}", marker=code, offset=offset
                )
            if pq == 0:
                values = np.frombuffer(seg.read_bytes(64), dtype=np.uint8)
            else:
                values = np.frombuffer(seg.read_bytes(128), dtype=">u2")
            self._quant[tq] = zigzag_to_natural(values.astype(np.int64)).reshape(8, 8)
            logger.debug("DQT table %d (%d-bit)", tq, 16 if pq else 8)

    def _parse_dht(self, seg: ByteReader, code: int, offset: int) -> None:
        while not seg.at_end:
            tc_th = seg.read_u8()
            tc, th = tc_th >> 4, tc_th & 0x0F
            if tc > 1 or th > 3:
                raise MalformedHeaderError(
                    f"Invalid Huffman table class {tc} / id {th}", marker=code, offset=offset
                )
            counts = list(seg.read_bytes(16))
            total = sum(counts)
            if total > 256:
                raise CorruptDataError(
                    f"Huffman table declares {total} symbols (max 256)", marker=code, offset=offset
                )
            symbols = list(seg.read_bytes(total))
            try:
                table = HuffmanTable(counts, symbols)
            except CorruptDataError as exc:
                raise exc.with_context(marker=code, offset=offset) from exc
            (self._ac_tables if tc else self._dc_tables)[th] = table
            logger.debug("DHT %s table %d, %d symbols", "AC" if tc else "DC", th, total)

    def _parse_dri(self, seg: ByteReader, code: int, offset: int) -> None:
        self._restart_interval = seg.read_u16()
        logger.debug("Restart interval %d", self._restart_interval)

    def _parse_sof0(self, seg: ByteReader, code: int, offset: int) -> None:
        precision = seg.read_u8()
        height = seg.read_u16()
        width = seg.read_u16()
        count = seg.read_u8()

        if precision != 8:
            raise UnsupportedFeatureError(
                f"Sample precision {precision} is not supported (only 8)", marker=code, offset=offset
            )
        if width == 0:
            raise MalformedHeaderError("Frame width is 0", marker=code, offset=offset)
        if height == 0:
            raise UnsupportedFeatureError("DNL-defined image height is not supported", marker=code, offset=offset)
        if count == 0:
            raise MalformedHeaderError("Frame has no components", marker=code, offset=offset)
        if count not in (1, 3):
            raise UnsupportedFeatureError(
                f"{count}-component frames are not supported", marker=code, offset=offset
            )
        if width * height > self._options.max_pixels:
            raise ResourceLimitExceededError(
                f"Image {width}x{height} exceeds the limit of {self._options.max_pixels} pixels",
                marker=code,
                offset=offset,
            )

        components = []
        for _ in range(count):
            cid = seg.read_u8()
            hv = seg.read_u8()
            tq = seg.read_u8()
            h, v = hv >> 4, hv & 0x0F
            if not (1 <= h <= 4 and 1 <= v <= 4):
                raise MalformedHeaderError(
                    f"Invalid sampling factors {h}x{v} for component {cid}", marker=code, offset=offset
                )
            if tq > 3:
                raise MalformedHeaderError(
                    f"Invalid quantization table id {tq} for component {cid}", marker=code, offset=offset
                )
            if any(c.id == cid for c in components):
                raise MalformedHeaderError(f"Duplicate component id {cid}", marker=code, offset=offset)
            components.append(FrameComponent(cid, h, v, tq))

        hmax = max(c.h for c in components)
        vmax = max(c.v for c in components)
        mcus_x = math.ceil(width / (8 * hmax))
        mcus_y = math.ceil(height / (8 * vmax))
        for comp in components:
            comp.blocks_x = mcus_x * comp.h
            comp.blocks_y = mcus_y * comp.v
            comp.plane = np.zeros((comp.blocks_y * 8, comp.blocks_x * 8), dtype=np.uint8)

        self._frame = Frame(precision, width, height, components, hmax, vmax, mcus_x, mcus_y)
        logger.debug(
            "SOF0 %dx%d, %d component(s), sampling %s",
            width, height, count, ", ".join(f"{c.h}x{c.v}" for c in components),
        )

    def _parse_com(self, seg: ByteReader, code: int, offset: int) -> None:
        text = seg.read_bytes(seg.remaining).decode("utf-8", errors="replace").rstrip("\x00")
        self._metadata.setdefault("comments", []).append(text)

    def _parse_app(self, seg: ByteReader, code: int, offset: int) -> None:
        payload = seg.read_bytes(seg.remaining)
        if code == APP0 and payload.startswith(b"JFIF\x00") and len(payload) >= 14:
            self._metadata["jfif"] = {
                "version": f"{payload[5]}.{payload[6]:02d}",
                "density_units": payload[7],
                "x_density": int.from_bytes(payload[8:10], "big"),
                "y_density": int.from_bytes(payload[10:12], "big"),
                "thumbnail": (payload[12], payload[13]),
            }
        elif code == APP0 + 1 and payload.startswith(b"Exif\x00\x00"):
            self._metadata["exif"] = _parse_exif(payload[6:])
        elif code == APP0 + 14 and payload.startswith(b"Adobe") and len(payload) >= 12:
            self._metadata["adobe"] = {
                "version": int.from_bytes(payload[5:7], "big"),
                "flags0": int.from_bytes(payload[7:9], "big"),
                "flags1": int.from_bytes(payload[9:11], "big"),
                "transform": payload[11],
            }
        else:
            logger.debug("Skipping APP%d segment (%d bytes)", code - APP0, len(payload))

    def _parse_sos(self, seg: ByteReader, code: int, offset: int) -> List[ScanComponent]:
        frame = self._frame
        count = seg.read_u8()
        if not 1 <= count <= 4:
            raise MalformedHeaderError(f"Scan has {count} components", marker=code, offset=offset)

        scan = []
        for _ in range(count):
            cid = seg.read_u8()
            td_ta = seg.read_u8()
            comp = next((c for c in frame.components if c.id == cid), None)
            if comp is None:
                raise MalformedHeaderError(f"Scan references unknown component {cid}", marker=code, offset=offset)
            td, ta = td_ta >> 4, td_ta & 0x0F
            if td not in self._dc_tables or ta not in self._ac_tables:
                raise MalformedHeaderError(
                    f"Huffman table DC{td}/AC{ta} for component {cid} is not defined",
                    marker=code,
                    offset=offset,
                )
            if comp.tq not in self._quant:
                raise MalformedHeaderError(
                    f"Quantization table {comp.tq} for component {cid} is not defined",
                    marker=code,
                    offset=offset,
                )
            scan.append(ScanComponent(comp, self._dc_tables[td], self._ac_tables[ta], self._quant[comp.tq]))

        ss, se, ah_al = seg.read_u8(), seg.read_u8(), seg.read_u8()
        if ss != 0 or se != 63 or ah_al != 0:
            raise MalformedHeaderError(
                f"Baseline scan requires Ss=0, Se=63, Ah=Al=0 (got {ss}, {se}, {ah_al:#04x})",
                marker=code,
                offset=offset,
            )
        if count > 1 and sum(sc.component.h * sc.component.v for sc in scan) > 10:
            raise MalformedHeaderError("Interleaved MCU exceeds 10 blocks", marker=code, offset=offset)
        logger.debug("SOS with components %s", [sc.component.id for sc in scan])
        return scan

    # --- entropy-coded data ---
    def _decode_scan(self, scan: List[ScanComponent], offset: int) -> int:
        """Decode one scan starting at `offset`; return the offset after it."""
        frame = self._frame
        bits = BitReader(self._reader.data, offset)
        for sc in scan:
            sc.component.dc_pred = 0

        if len(scan) == 1:
            comp = scan[0].component
            cols = math.ceil(math.ceil(frame.width * comp.h / frame.hmax) / 8)
            rows = math.ceil(math.ceil(frame.height * comp.v / frame.vmax) / 8)
        else:
            cols, rows = frame.mcus_x, frame.mcus_y
        units = cols * rows
        restart = self._restart_interval

        for mcu in range(units):
            if restart and mcu and mcu % restart == 0:
                bits.consume_restart((mcu // restart - 1) % 8, mcu)
                for sc in scan:
                    sc.component.dc_pred = 0

            my, mx = divmod(mcu, cols)
            block = 0
            try:
                if len(scan) == 1:
                    self._decode_block(bits, scan[0], my, mx)
                else:
                    for sc in scan:
                        comp = sc.component
                        for by in range(comp.v):
                            for bx in range(comp.h):
                                self._decode_block(bits, sc, my * comp.v + by, mx * comp.h + bx)
                                block += 1
            except DecodeError as exc:
                raise exc.with_context(mcu=mcu, block=block) from exc

        for sc in scan:
            sc.component.scanned = True
        self._scans += 1
        logger.debug("Decoded scan of %d MCU(s)", units)
        return bits.finish()

    def _decode_block(self, bits: BitReader, sc: ScanComponent, block_row: int, block_col: int) -> None:
        comp = sc.component
        zigzag = np.zeros(64, dtype=np.int64)

        category = sc.dc_table.decode(bits)
        if category > 11:
            raise CorruptDataError(f"DC difference category {category} out of range")
        comp.dc_pred += bits.receive_extend(category)
        zigzag[0] = comp.dc_pred

        k = 1
        while k < 64:
            rs = sc.ac_table.decode(bits)
            run, size = rs >> 4, rs & 0x0F
            if size == 0:
                if run == 0:
                    break
                if run != 15:
                    raise CorruptDataError(f"Invalid AC symbol 0x{rs:02X}")
                k += 16
                if k > 64:
                    raise CorruptDataError(f"Zero run extends past coefficient 63 (to {k - 1})")
                continue
            k += run
            if k > 63:
                raise CorruptDataError(f"Coefficient index {k} beyond 63")
            zigzag[k] = bits.receive_extend(size)
            k += 1

        coeffs = dequantize(zigzag_to_natural(zigzag), sc.quant)
        y, x = block_row * 8, block_col * 8
        comp.plane[y:y + 8, x:x + 8] = decode_block(coeffs)

    # --- output ---
    def _color_transform(self) -> str:
        frame = self._frame
        if len(frame.components) == 1:
            return "grayscale"
        adobe = self._metadata.get("adobe")
        if adobe is not None:
            return "rgb" if adobe["transform"] == 0 else "ycbcr"
        if [c.id for c in frame.components] == [82, 71, 66]:
            return "rgb"
        return "ycbcr"

    def _finish(self) -> DecodedImage:
        frame = self._frame
        missing = [c.id for c in frame.components if not c.scanned]
        if missing:
            raise TruncatedStreamError(f"Component(s) {missing} have no scan data")

        target = (frame.mcus_y * frame.vmax * 8, frame.mcus_x * frame.hmax * 8)
        planes = [upsample_plane(c.plane, target, self._options.upsampling) for c in frame.components]
        transform = self._color_transform()
        rgba = planes_to_rgba(planes, frame.width, frame.height, transform)

        metadata = {
            "format": "jpeg",
            "frame_type": "baseline",
            "precision": frame.precision,
            "components": len(frame.components),
            "sampling": [
                {"id": c.id, "name": _COMPONENT_NAMES.get(c.id), "h": c.h, "v": c.v}
                for c in frame.components
            ],
            "restart_interval": self._restart_interval,
            "scans": self._scans,
            "color_transform": transform,
        }
        metadata.update(self._metadata)
        if self._options.collect_timings:
            metadata["timings_ms"] = self._timer.report()
        return DecodedImage(np.ascontiguousarray(rgba), frame.width, frame.height, metadata)


def _parse_exif(tiff: bytes) -> Dict[str, Any]:
    """Byte order, IFD0 entry count and Orientation from a TIFF header.

    Exif is informational: fields that do not fit in the payload are left out.
    """
    info: Dict[str, Any] = {}
    if len(tiff) < 8 or tiff[:2] not in (b"II", b"MM"):
        return info
    order = "little" if tiff[:2] == b"II" else "big"
    info["byte_order"] = order
    ifd = int.from_bytes(tiff[4:8], order)
    if ifd + 2 > len(tiff):
        return info
    entries = int.from_bytes(tiff[ifd:ifd + 2], order)
    info["ifd0_entries"] = entries
    for i in range(entries):
        pos = ifd + 2 + i * 12
        if pos + 12 > len(tiff):
            break
        if int.from_bytes(tiff[pos:pos + 2], order) == _EXIF_ORIENTATION:
            info["orientation"] = int.from_bytes(tiff[pos + 8:pos + 10], order)
            break
    return info


def decode_jpeg(data, options: Optional[DecodeOptions] = None) -> DecodedImage:
    """Decode a baseline JPEG byte stream into RGBA."""
    return JpegDecoder(data, options).decode()
