"""Canonical Huffman tables for JPEG entropy decoding (T.81 Annex C, F.2.2.3)."""

from typing import List, Sequence

from engines.bit_reader import BitReader
from models.errors import CorruptDataError


class HuffmanTable:
    """Decoding table built from 16 code-length counts and the symbol list."""

    def __init__(self, counts: Sequence[int], symbols: Sequence[int]):
        if len(counts) != 16:
            raise CorruptDataError(f"Huffman table needs 16 length counts, got {len(counts)}")
        total = sum(counts)
        if total > 256 or total != len(symbols):
            raise CorruptDataError(f"Huffman table declares {total} symbols, has {len(symbols)}")

        self.counts = tuple(counts)
        self.symbols = tuple(symbols)
        # Index 1..16; maxcode[l] == -1 when no code has length l.
        self.mincode: List[int] = [0] * 17
        self.maxcode: List[int] = [-1] * 17
        self.valptr: List[int] = [0] * 17

        code = 0
        k = 0
        for length in range(1, 17):
            n = counts[length - 1]
            if n:
                self.valptr[length] = k
                self.mincode[length] = code
                code += n
                k += n
                if code > (1 << length):
                    raise CorruptDataError(f"Huffman codes overflow {length}-bit code space")
                self.maxcode[length] = code - 1
            code <<= 1

    def decode(self, reader: BitReader) -> int:
        """Read one symbol, raising CorruptDataError when no code matches."""
        code = reader.read_bit()
        length = 1
        while code > self.maxcode[length]:
            length += 1
            if length > 16:
                raise CorruptDataError("Huffman code not found in table", offset=reader.position)
            code = (code << 1) | reader.read_bit()
        return self.symbols[self.valptr[length] + code - self.mincode[length]]
