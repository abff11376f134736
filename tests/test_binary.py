import io

import pytest

from blockmaps.errors import IncompleteDataError
from blockmaps.utils import BinaryReader, BinaryWriter, BIG_ENDIAN, LITTLE_ENDIAN
from blockmaps.utils.binary import READ_CHUNK_SIZE


def test_fixed_width_reads_respect_byte_order():
    reader = BinaryReader(io.BytesIO(bytes([0x07, 0x52, 0x52, 0x07, 0xAA, 0, 0, 1, 1, 0, 0, 0xAA])))
    assert reader.read_u16(BIG_ENDIAN) == 1874
    assert reader.read_u16(LITTLE_ENDIAN) == 1874
    assert reader.read_u32(BIG_ENDIAN) == 0xAA000001
    assert reader.read_u32(LITTLE_ENDIAN) == 0xAA000001
    assert reader.bytes_read == 12


def test_arbitrary_width_little_endian_is_most_significant_byte_last():
    reader = BinaryReader(io.BytesIO(bytes([0x01, 0x02, 0x03, 0, 0, 0, 0, 0x80])))
    assert reader.read_uint(8, LITTLE_ENDIAN) == 0x8000000000030201


def test_arbitrary_width_wider_than_eight_bytes():
    data = (2 ** 80 + 5).to_bytes(11, 'big')
    assert BinaryReader(io.BytesIO(data)).read_uint(11, BIG_ENDIAN) == 2 ** 80 + 5


def test_short_stream_raises_incomplete_data():
    reader = BinaryReader(io.BytesIO(b'\x01\x02\x03'))
    with pytest.raises(IncompleteDataError):
        reader.read_u32(BIG_ENDIAN)


def test_incomplete_data_is_an_eof_error():
    with pytest.raises(EOFError):
        BinaryReader(io.BytesIO(b'')).read_u8()


def test_unknown_byte_order_rejected():
    with pytest.raises(ValueError):
        BinaryReader(io.BytesIO(b'\x00\x00')).read_u16('middle')


def test_at_eof():
    reader = BinaryReader(io.BytesIO(b'\x01'))
    assert reader.read_u8() == 1
    assert reader.at_eof()


def test_writer_mirrors_reader():
    stream = io.BytesIO()
    writer = BinaryWriter(stream)
    writer.write_u8(0xFE)
    writer.write_u16(0x1234, LITTLE_ENDIAN)
    writer.write_u32(0xDEADBEEF, BIG_ENDIAN)
    writer.write_uint(0x0102030405, 8, LITTLE_ENDIAN)
    writer.write_i32(-2, BIG_ENDIAN)
    writer.write_f32(0.5, BIG_ENDIAN)

    assert stream.getvalue() == (
        b'\xfe' + b'\x34\x12' + b'\xde\xad\xbe\xef'
        + b'\x05\x04\x03\x02\x01\x00\x00\x00'
        + b'\xff\xff\xff\xfe' + b'\x3f\x00\x00\x00'
    )
    assert writer.bytes_written == len(stream.getvalue())


def test_write_uint_rejects_overflow():
    writer = BinaryWriter(io.BytesIO())
    with pytest.raises(ValueError):
        writer.write_uint(256, 1, BIG_ENDIAN)
    with pytest.raises(ValueError):
        writer.write_uint(-1, 4, LITTLE_ENDIAN)


def test_signed_and_float_values_both_byte_orders():
    stream = io.BytesIO()
    writer = BinaryWriter(stream)
    writer.write_i8(-1)
    writer.write_i16(-2, LITTLE_ENDIAN)
    writer.write_i16(-300, BIG_ENDIAN)
    writer.write_i64(-2 ** 40, LITTLE_ENDIAN)
    writer.write_f64(-0.125, BIG_ENDIAN)
    writer.write_f32(1.5, LITTLE_ENDIAN)

    data = stream.getvalue()
    assert data[:5] == b'\xff' + b'\xfe\xff' + b'\xfe\xd4'
    assert data[13:21] == b'\xbf\xc0\x00\x00\x00\x00\x00\x00'

    reader = BinaryReader(io.BytesIO(data))
    assert reader.read_i8() == -1
    assert reader.read_i16(LITTLE_ENDIAN) == -2
    assert reader.read_i16(BIG_ENDIAN) == -300
    assert reader.read_i64(LITTLE_ENDIAN) == -2 ** 40
    assert reader.read_f64(BIG_ENDIAN) == -0.125
    assert reader.read_f32(LITTLE_ENDIAN) == 1.5
    assert reader.at_eof()


def test_signed_writes_reject_overflow():
    writer = BinaryWriter(io.BytesIO())
    with pytest.raises(ValueError):
        writer.write_i8(128)
    with pytest.raises(ValueError):
        writer.write_i16(-32769, BIG_ENDIAN)


class RecordingStream(io.BytesIO):
    def __init__(self, data):
        super().__init__(data)
        self.requests = []

    def read(self, size=-1):
        self.requests.append(size)
        return super().read(size)


def test_huge_declared_read_is_chunked():
    stream = RecordingStream(b'\x00' * 10)
    with pytest.raises(IncompleteDataError):
        BinaryReader(stream).read_exact(10 ** 12)
    assert max(stream.requests) <= READ_CHUNK_SIZE


def test_read_spanning_several_chunks():
    data = bytes(range(256)) * (READ_CHUNK_SIZE // 128 + 1)
    reader = BinaryReader(io.BytesIO(data))
    assert reader.read_exact(len(data)) == data
    assert reader.bytes_read == len(data)
