"""Byte and bit cursors over an immutable buffer.

ByteReader handles big-endian fields, JPEG segments and PNG chunks.
BitReader handles JPEG entropy-coded data: MSB-first bits with the 0x00
stuffed after every literal 0xFF removed.
"""

from typing import Optional, Tuple

from models.errors import CorruptDataError, TruncatedStreamError, UnexpectedEofError
from utils.constants import RST0, RST7


class ByteReader:
    """Sequential and random-access big-endian reads with bounds checks."""

    def __init__(self, data, offset: int = 0, base: int = 0):
        self._data = bytes(data)
        self._pos = offset
        # Absolute offset of data[0] in the enclosing file, for error reports.
        self._base = base

    @property
    def data(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return len(self._data)

    @property
    def remaining(self) -> int:
        return max(0, len(self._data) - self._pos)

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def tell(self) -> int:
        return self._pos

    def absolute(self, offset: Optional[int] = None) -> int:
        """File offset of `offset` (default: the cursor)."""
        return self._base + (self._pos if offset is None else offset)

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self._data):
            raise UnexpectedEofError("Seek outside buffer", offset=self._base + offset)
        self._pos = offset

    def _check(self, offset: int, size: int) -> None:
        if offset < 0 or offset + size > len(self._data):
            raise UnexpectedEofError(
                f"Unexpected end of data reading {size} byte(s), buffer is {len(self._data)} bytes",
                offset=self._base + offset,
            )

    # --- random access ---
    def u8_at(self, offset: int) -> int:
        self._check(offset, 1)
        return self._data[offset]

    def u16_at(self, offset: int) -> int:
        self._check(offset, 2)
        return int.from_bytes(self._data[offset:offset + 2], "big")

    def u32_at(self, offset: int) -> int:
        self._check(offset, 4)
        return int.from_bytes(self._data[offset:offset + 4], "big")

    def bytes_at(self, offset: int, size: int) -> bytes:
        self._check(offset, size)
        return self._data[offset:offset + size]

    # --- sequential ---
    def read_u8(self) -> int:
        value = self.u8_at(self._pos)
        self._pos += 1
        return value

    def read_u16(self) -> int:
        value = self.u16_at(self._pos)
        self._pos += 2
        return value

    def read_u32(self) -> int:
        value = self.u32_at(self._pos)
        self._pos += 4
        return value

    def read_bytes(self, size: int) -> bytes:
        value = self.bytes_at(self._pos, size)
        self._pos += size
        return value

    def skip(self, size: int) -> None:
        self._check(self._pos, size)
        self._pos += size

    def sub_reader(self, size: int) -> "ByteReader":
        """Consume `size` bytes and return a reader bounded to them."""
        self._check(self._pos, size)
        sub = ByteReader(self._data[self._pos:self._pos + size], 0, base=self._base + self._pos)
        self._pos += size
        return sub

    def next_marker(self) -> Tuple[int, int]:
        """Advance past the next 0xFF xx marker; return (code, offset of 0xFF).

        Runs of 0xFF fill bytes are skipped. Any other byte found before the
        marker is garbage between segments and is rejected.
        """
        start = self._pos
        if self.read_u8() != 0xFF:
            raise CorruptDataError("Expected marker prefix 0xFF", offset=self._base + start)
        code = self.read_u8()
        while code == 0xFF:
            code = self.read_u8()
        return code, self._base + self._pos - 2


class BitReader:
    """MSB-first reader for JPEG entropy-coded segments."""

    def __init__(self, data: bytes, offset: int = 0):
        self._data = data
        self._pos = offset
        self._bits = 0
        self._count = 0
        self._marker: Optional[int] = None
        self._marker_offset: Optional[int] = None

    @property
    def position(self) -> int:
        """Offset of the next byte not yet loaded into the bit buffer."""
        return self._pos

    @property
    def pending_marker(self) -> Optional[int]:
        return self._marker

    def _fill(self) -> None:
        if self._marker is not None:
            raise TruncatedStreamError(
                "Entropy-coded data ended at a marker",
                marker=self._marker,
                offset=self._marker_offset,
            )
        if self._pos >= len(self._data):
            raise UnexpectedEofError("Entropy-coded data runs past end of buffer", offset=self._pos)
        byte = self._data[self._pos]
        if byte == 0xFF:
            if self._pos + 1 >= len(self._data):
                raise UnexpectedEofError("Entropy-coded data runs past end of buffer", offset=self._pos)
            follower = self._data[self._pos + 1]
            if follower == 0x00:
                self._pos += 2
            else:
                # Real marker: leave the cursor on it and stop supplying bits.
                self._marker = follower
                self._marker_offset = self._pos
                raise TruncatedStreamError(
                    "Entropy-coded data ended at a marker",
                    marker=follower,
                    offset=self._pos,
                )
        else:
            self._pos += 1
        self._bits = byte
        self._count = 8

    def read_bit(self) -> int:
        if self._count == 0:
            self._fill()
        self._count -= 1
        return (self._bits >> self._count) & 1

    def read_bits(self, n: int) -> int:
        value = 0
        for _ in range(n):
            if self._count == 0:
                self._fill()
            self._count -= 1
            value = (value << 1) | ((self._bits >> self._count) & 1)
        return value

    def receive_extend(self, n: int) -> int:
        """Read an n-bit magnitude and sign-extend it (T.81 F.2.2.1)."""
        if n == 0:
            return 0
        value = self.read_bits(n)
        if value < (1 << (n - 1)):
            value -= (1 << n) - 1
        return value

    def align(self) -> None:
        """Drop the unread bits of the current byte."""
        self._count = 0
        self._bits = 0

    def _peek_marker(self) -> Optional[Tuple[int, int]]:
        pos = self._pos
        while pos + 1 < len(self._data) and self._data[pos] == 0xFF and self._data[pos + 1] == 0xFF:
            pos += 1
        if pos + 1 < len(self._data) and self._data[pos] == 0xFF and self._data[pos + 1] != 0x00:
            return self._data[pos + 1], pos
        return None

    def consume_restart(self, expected: int, mcu: int) -> None:
        """Align, then require and skip the marker RST<expected>."""
        self.align()
        found = self._peek_marker()
        if found is None:
            raise CorruptDataError(f"Expected RST{expected} marker", mcu=mcu, offset=self._pos)
        code, offset = found
        if not RST0 <= code <= RST7:
            raise CorruptDataError(f"Expected RST{expected} marker", marker=code, mcu=mcu, offset=offset)
        if code - RST0 != expected:
            raise CorruptDataError(
                f"Restart marker out of sequence: expected RST{expected}, found RST{code - RST0}",
                marker=code,
                mcu=mcu,
                offset=offset,
            )
        self._pos = offset + 2
        self._marker = None
        self._marker_offset = None

    def finish(self) -> int:
        """Align and return the offset where the next marker should start."""
        self.align()
        if self._marker_offset is not None:
            return self._marker_offset
        return self._pos
