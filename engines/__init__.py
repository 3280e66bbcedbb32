"""Codec and pixel engines - pure computation on bytes and numpy arrays."""

from .bit_reader import ByteReader, BitReader
from .huffman import HuffmanTable
from .dct_engine import idct2, decode_block
from .quantizer import zigzag_to_natural, dequantize
from .color_space import ycbcr_to_rgb, upsample_plane
from .jpeg_decoder import decode_jpeg, DecoderState
from .png_decoder import decode_png, ChunkState
from .dispatch import decode, decode_raw, sniff_mime_type

__all__ = [
    'ByteReader',
    'BitReader',
    'HuffmanTable',
    'idct2',
    'decode_block',
    'zigzag_to_natural',
    'dequantize',
    'ycbcr_to_rgb',
    'upsample_plane',
    'decode_jpeg',
    'DecoderState',
    'decode_png',
    'ChunkState',
    'decode',
    'decode_raw',
    'sniff_mime_type',
]
