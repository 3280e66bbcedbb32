"""Tests for the byte and bit cursors."""

import pytest
from engines.bit_reader import ByteReader, BitReader
from models.errors import CorruptDataError, TruncatedStreamError, UnexpectedEofError


def test_byte_reader_big_endian():
    """Sequential and random-access reads are big-endian."""
    reader = ByteReader(b"\x01\x02\x03\x04\x05\x06\x07")
    assert reader.u16_at(1) == 0x0203
    assert reader.read_u8() == 1
    assert reader.read_u16() == 0x0203
    assert reader.read_u32() == 0x04050607
    assert reader.at_end


def test_byte_reader_eof_names_offset():
    """Reading past the end raises UnexpectedEofError with the offset."""
    reader = ByteReader(b"\x00\x01\x02")
    reader.skip(2)
    with pytest.raises(UnexpectedEofError) as exc_info:
        reader.read_u16()
    assert exc_info.value.offset == 2
    assert isinstance(exc_info.value, TruncatedStreamError)


def test_sub_reader_reports_absolute_offsets():
    """Errors inside a sub-reader use offsets in the enclosing buffer."""
    reader = ByteReader(b"\xaa\xbb\xcc\xdd")
    reader.skip(1)
    sub = reader.sub_reader(2)
    assert reader.tell() == 3
    assert sub.read_u16() == 0xBBCC
    with pytest.raises(UnexpectedEofError) as exc_info:
        sub.read_u8()
    assert exc_info.value.offset == 3


def test_next_marker_skips_fill_bytes():
    """0xFF fill bytes before a marker code are skipped."""
    reader = ByteReader(b"\xff\xff\xff\xd8")
    code, offset = reader.next_marker()
    assert code == 0xD8
    assert offset == 2


def test_next_marker_rejects_garbage():
    """A non-0xFF byte where a marker is expected is corrupt data."""
    with pytest.raises(CorruptDataError):
        ByteReader(b"\x12\xd8").next_marker()


def test_bit_reader_msb_first():
    """Bits come out most significant first."""
    bits = BitReader(b"\xa5")
    assert [bits.read_bit() for _ in range(8)] == [1, 0, 1, 0, 0, 1, 0, 1]


def test_bit_reader_unstuffs_ff00():
    """0xFF 0x00 yields a single 0xFF byte of data."""
    bits = BitReader(b"\xff\x00\x80")
    assert bits.read_bits(8) == 0xFF
    assert bits.read_bit() == 1
    assert bits.position == 3


def test_bit_reader_stops_at_marker():
    """A real marker ends the data and is reported."""
    bits = BitReader(b"\x12\xff\xd9")
    assert bits.read_bits(8) == 0x12
    with pytest.raises(TruncatedStreamError) as exc_info:
        bits.read_bit()
    assert exc_info.value.marker == 0xD9
    assert bits.pending_marker == 0xD9
    assert bits.finish() == 1


def test_bit_reader_end_of_buffer():
    """Running off the buffer is an unexpected EOF."""
    bits = BitReader(b"\x01")
    bits.read_bits(8)
    with pytest.raises(UnexpectedEofError):
        bits.read_bit()


def test_receive_extend():
    """Magnitude categories sign-extend per T.81 F.2.2.1."""
    # 3 bits '011' -> 3 - 7 = -4 ; 3 bits '100' -> 4
    bits = BitReader(bytes([0b01110000]))
    assert bits.receive_extend(3) == -4
    assert bits.receive_extend(3) == 4
    assert bits.receive_extend(0) == 0


def test_consume_restart_in_sequence():
    """RSTn in sequence is skipped after byte alignment."""
    bits = BitReader(b"\x80\xff\xd0\x40")
    assert bits.read_bit() == 1
    bits.consume_restart(0, mcu=4)
    assert bits.read_bits(2) == 1


def test_consume_restart_out_of_sequence():
    """Wrong restart number is corrupt data naming the MCU."""
    bits = BitReader(b"\x80\xff\xd3\x00")
    bits.read_bit()
    with pytest.raises(CorruptDataError) as exc_info:
        bits.consume_restart(1, mcu=16)
    assert exc_info.value.mcu == 16
    assert exc_info.value.marker == 0xD3


def test_consume_restart_missing():
    """No marker where one is due is corrupt data."""
    bits = BitReader(b"\x80\x12\x34")
    bits.read_bit()
    with pytest.raises(CorruptDataError):
        bits.consume_restart(0, mcu=8)
