"""
Binary Stream Utilities

Endian-aware readers and writers for the map file formats.

Several formats mix byte orders inside one stream (big-endian version tags
in front of little-endian payloads), so every call states its byte order
explicitly:

    reader = BinaryReader(stream)
    version = reader.read_u32(BIG_ENDIAN)
    width = reader.read_u16(LITTLE_ENDIAN)
"""

import struct
from typing import BinaryIO

from ..errors import IncompleteDataError

BIG_ENDIAN = 'big'
LITTLE_ENDIAN = 'little'

_STRUCT_PREFIX = {BIG_ENDIAN: '>', LITTLE_ENDIAN: '<'}

# Largest single read; a declared size is never allocated before the data arrives
READ_CHUNK_SIZE = 1 << 20


def _prefix(byte_order: str) -> str:
    try:
        return _STRUCT_PREFIX[byte_order]
    except KeyError:
        raise ValueError(f"Unknown byte order: {byte_order!r}") from None


class BinaryReader:
    """
    Reads fixed-width and arbitrary-width unsigned integers from a stream.

    Any read that cannot be fully satisfied raises IncompleteDataError;
    a short read is never padded or returned partially.
    """

    def __init__(self, stream: BinaryIO):
        """
        Args:
            stream: Readable binary stream (file, BytesIO, GzipFile)
        """
        self.stream = stream
        self.bytes_read = 0

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly ``size`` bytes.

        Args:
            size: Number of bytes to read

        Returns:
            The bytes read

        Raises:
            IncompleteDataError: If the stream ends first
        """
        if size < 0:
            raise ValueError(f"Negative read size: {size}")
        if size == 0:
            return b''

        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self.stream.read(min(remaining, READ_CHUNK_SIZE))
            if not chunk:
                raise IncompleteDataError(
                    f"Unexpected end of data: wanted {size} bytes at offset "
                    f"{self.bytes_read}, got {size - remaining}"
                )
            chunks.append(chunk)
            remaining -= len(chunk)

        self.bytes_read += size
        return chunks[0] if len(chunks) == 1 else b''.join(chunks)

    def at_eof(self) -> bool:
        """
        Check whether the stream is exhausted.

        Consumes one byte when data remains, so use it only as a final check.
        """
        return not self.stream.read(1)

    def read_u8(self) -> int:
        return self.read_exact(1)[0]

    def read_u16(self, byte_order: str) -> int:
        return struct.unpack(_prefix(byte_order) + 'H', self.read_exact(2))[0]

    def read_u32(self, byte_order: str) -> int:
        return struct.unpack(_prefix(byte_order) + 'I', self.read_exact(4))[0]

    def read_i8(self) -> int:
        return struct.unpack('b', self.read_exact(1))[0]

    def read_i16(self, byte_order: str) -> int:
        return struct.unpack(_prefix(byte_order) + 'h', self.read_exact(2))[0]

    def read_i32(self, byte_order: str) -> int:
        return struct.unpack(_prefix(byte_order) + 'i', self.read_exact(4))[0]

    def read_i64(self, byte_order: str) -> int:
        return struct.unpack(_prefix(byte_order) + 'q', self.read_exact(8))[0]

    def read_f32(self, byte_order: str) -> float:
        return struct.unpack(_prefix(byte_order) + 'f', self.read_exact(4))[0]

    def read_f64(self, byte_order: str) -> float:
        return struct.unpack(_prefix(byte_order) + 'd', self.read_exact(8))[0]

    def read_uint(self, size: int, byte_order: str) -> int:
        """
        Read an unsigned integer of arbitrary byte width.

        Little-endian values carry their most significant byte last.

        Args:
            size: Width in bytes (1 or more)
            byte_order: BIG_ENDIAN or LITTLE_ENDIAN

        Returns:
            Unsigned integer value (unbounded Python int)
        """
        _prefix(byte_order)
        if size < 1:
            raise ValueError(f"Integer width must be at least 1 byte: {size}")
        return int.from_bytes(self.read_exact(size), byte_order, signed=False)


class BinaryWriter:
    """Writes fixed-width and arbitrary-width integers to a stream."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.bytes_written = 0

    def write(self, data: bytes):
        """Write raw bytes."""
        self.stream.write(data)
        self.bytes_written += len(data)

    def _pack(self, fmt: str, value):
        try:
            self.write(struct.pack(fmt, value))
        except struct.error as e:
            raise ValueError(f"Value {value!r} does not fit field '{fmt}': {e}") from e

    def write_u8(self, value: int):
        self._pack('B', value)

    def write_u16(self, value: int, byte_order: str):
        self._pack(_prefix(byte_order) + 'H', value)

    def write_u32(self, value: int, byte_order: str):
        self._pack(_prefix(byte_order) + 'I', value)

    def write_i8(self, value: int):
        self._pack('b', value)

    def write_i16(self, value: int, byte_order: str):
        self._pack(_prefix(byte_order) + 'h', value)

    def write_i32(self, value: int, byte_order: str):
        self._pack(_prefix(byte_order) + 'i', value)

    def write_i64(self, value: int, byte_order: str):
        self._pack(_prefix(byte_order) + 'q', value)

    def write_f32(self, value: float, byte_order: str):
        self._pack(_prefix(byte_order) + 'f', value)

    def write_f64(self, value: float, byte_order: str):
        self._pack(_prefix(byte_order) + 'd', value)

    def write_uint(self, value: int, size: int, byte_order: str):
        """
        Write an unsigned integer of arbitrary byte width.

        Args:
            value: Non-negative integer
            size: Width in bytes
            byte_order: BIG_ENDIAN or LITTLE_ENDIAN

        Raises:
            ValueError: If the value is negative or needs more than ``size`` bytes
        """
        _prefix(byte_order)
        if size < 1:
            raise ValueError(f"Integer width must be at least 1 byte: {size}")
        try:
            data = int(value).to_bytes(size, byte_order, signed=False)
        except OverflowError as e:
            raise ValueError(f"Value {value} does not fit in {size} bytes") from e
        self.write(data)
