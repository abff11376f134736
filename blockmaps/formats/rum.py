"""
RUM (.rum) Map Format

Extensible map format where every voxel is a fixed-length record and the
map carries binary metadata.

File format (version 0xAA000001):
- u32 version (big-endian, uncompressed)
- gzip stream, little-endian inside:
  - u16 metadata entry count
  - Per entry: u16 name length, name (UTF-8), u16 payload length, payload
  - u16 width, height, depth
  - u16 spawn x, y, z
  - u8 spawn rotation, u8 spawn pitch
  - u8 extra record length (record length = 2 + value)
  - u64 record region size, equal to width * height * depth * record length
  - Records, one per voxel in block order
  - End of stream

Record layout:
- byte 0: block id
- byte 1: BlockFlags
- bytes 2..: extension data, zero unless written by a record-level call
"""

import threading
from enum import IntFlag
from typing import Dict, Mapping, Optional, Union

import numpy as np

from ..constants import (
    RUM_VERSION_1, RUM_MIN_RECORD_LENGTH, RUM_MAX_RECORD_LENGTH,
    RUM_MAX_METADATA_ENTRIES, RUM_ORIGIN_KEY,
    MIN_BLOCK_DATA_SIZE, MAX_BLOCK_DATA_SIZE, MIN_BLOCK_ID, MAX_BLOCK_ID, MAX_U16,
)
from ..config import get_config, resolve_config, CodecConfig
from ..errors import InvalidMapError, MapFormatError, UnsupportedVersionError
from ..map import VoxelMap, check_range
from ..utils import BinaryReader, BinaryWriter, BIG_ENDIAN, LITTLE_ENDIAN, logDebug
from .base import MapFormat, Source, Target, open_source, open_target
from .compression import gzip_reader, gzip_writer
from .mcsharp import MCSharpMap

SUPPORTED_VERSIONS = (RUM_VERSION_1,)
CURRENT_VERSION = RUM_VERSION_1

RecordSource = Union[np.ndarray, bytes, bytearray, memoryview]


class BlockFlags(IntFlag):
    """Per-voxel flag bits stored in record byte 1."""
    SPECIAL = 0x80
    SOLID = 0x40
    PHYSICS = 0x20
    MESSAGE = 0x10
    PORTAL = 0x08
    SCRIPTED = 0x04


def extend_blocks(blocks: np.ndarray, record_length: int) -> np.ndarray:
    """Records holding ``blocks`` as ids with zero flags and extension bytes."""
    records = np.zeros((blocks.size, record_length), dtype=np.uint8)
    records[:, 0] = blocks.reshape(-1)
    return records


def check_records(records: RecordSource, expected_size: int,
                  record_length: Optional[int] = None) -> np.ndarray:
    """
    Validate voxel records and return them as an owned (volume, record_length) uint8 array.

    Args:
        records: 2-D array of records, or a flat byte sequence together with record_length
        expected_size: width * height * depth
        record_length: Bytes per record; taken from a 2-D array when omitted

    Raises:
        InvalidMapError: On a bad record length, size mismatch or byte value
    """
    if isinstance(records, np.ndarray) and records.ndim == 2:
        if record_length is not None and record_length != records.shape[1]:
            raise InvalidMapError(
                f"Record array rows are {records.shape[1]} bytes, expected {record_length}"
            )
        record_length = records.shape[1]
    if record_length is None:
        raise InvalidMapError("Record length required for flat record data")
    record_length = check_range(record_length, RUM_MIN_RECORD_LENGTH, RUM_MAX_RECORD_LENGTH,
                                "record length")

    if isinstance(records, np.ndarray):
        if records.dtype.kind not in 'iub':
            raise InvalidMapError(f"Invalid record array type: {records.dtype}")
        flat = records.reshape(-1)
        if flat.dtype != np.uint8 and flat.size:
            if flat.min() < 0 or flat.max() > 255:
                raise InvalidMapError("Invalid record array: bytes must be in [0, 255]")
        flat = flat.astype(np.uint8, copy=True)
    else:
        flat = np.frombuffer(bytes(records), dtype=np.uint8).copy()

    if flat.size % record_length:
        raise InvalidMapError(
            f"Record data of {flat.size} bytes is not a multiple of the record length {record_length}"
        )
    count = flat.size // record_length
    if count < MIN_BLOCK_DATA_SIZE or count > MAX_BLOCK_DATA_SIZE:
        raise InvalidMapError(f"Invalid block array size: {count}")
    if count != expected_size:
        raise InvalidMapError(f"Invalid block array size: {count}, dimensions need {expected_size}")
    return flat.reshape(count, record_length)


def _encoded_name(name: str) -> bytes:
    if not isinstance(name, str):
        raise InvalidMapError(f"Metadata name must be a string, got {type(name).__name__}")
    data = name.encode('utf-8')
    if len(data) > MAX_U16:
        raise InvalidMapError(f"Metadata name too long: {len(data)} bytes (max {MAX_U16})")
    return data


def _payload(payload) -> bytes:
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise InvalidMapError(f"Metadata payload must be bytes, got {type(payload).__name__}")
    payload = bytes(payload)
    if len(payload) > MAX_U16:
        raise InvalidMapError(f"Metadata payload too long: {len(payload)} bytes (max {MAX_U16})")
    return payload


class RUMMap(VoxelMap):
    """
    RUM map: one fixed-length record per voxel plus binary metadata.

    Usage:
        level = RUMMap(np.zeros((16 ** 3, 4), np.uint8), 16, 16, 16)
        level.set_block(1, 2, 3, 20, BlockFlags.SOLID | BlockFlags.PORTAL)
        assert level.is_block_portal(1, 2, 3)

    set_block rewrites the whole record and clears its extension bytes;
    set_block_partial only touches the id and flags.
    """

    def __init__(self, records: RecordSource,
                 width: int, height: int, depth: int,
                 spawn_x: int = 0, spawn_y: int = 0, spawn_z: int = 0,
                 spawn_rotation: int = 0, spawn_pitch: int = 0,
                 metadata: Optional[Mapping[str, bytes]] = None,
                 record_length: Optional[int] = None):
        """
        Args:
            records: (volume, record_length) array, or flat bytes with record_length; copied
            width, height, depth: Dimensions in blocks (16-65535)
            spawn_x, spawn_y, spawn_z: Spawn position in fine units (0-65535)
            spawn_rotation, spawn_pitch: Spawn angles (0-255)
            metadata: Name to payload bytes, at most 65535 entries
            record_length: Bytes per record (2-257)
        """
        super().__init__(width, height, depth,
                         spawn_x, spawn_y, spawn_z, spawn_rotation, spawn_pitch)
        self._records = check_records(records, self.volume, record_length)

        entries = {}
        for name, payload in (metadata or {}).items():
            _encoded_name(name)
            entries[name] = _payload(payload)
        if len(entries) > RUM_MAX_METADATA_ENTRIES:
            raise InvalidMapError(
                f"Too many metadata entries: {len(entries)} (max {RUM_MAX_METADATA_ENTRIES})"
            )
        self._metadata: Dict[str, bytes] = entries
        self._metadata_lock = threading.Lock()

    @classmethod
    def from_map(cls, other: VoxelMap, origin_tag: Optional[str] = None) -> 'RUMMap':
        """
        Rebuild ``other`` as a RUM map.

        Another RUM map keeps its records and metadata. Any other map gets
        2-byte records and an ``_origin`` metadata entry; MCSharp maps keep
        their raw overlay ids.
        """
        if isinstance(other, RUMMap):
            return cls(
                other.get_records(),
                other.width, other.height, other.depth,
                other.spawn_x, other.spawn_y, other.spawn_z,
                other.spawn_rotation, other.spawn_pitch,
                other.get_metadata_map(),
            )

        if origin_tag is None:
            origin_tag = get_config().origin_tag
        if isinstance(other, MCSharpMap):
            blocks = other.get_raw_blocks()
        else:
            blocks = other.get_blocks()
        return cls(
            extend_blocks(blocks, RUM_MIN_RECORD_LENGTH),
            other.width, other.height, other.depth,
            other.spawn_x, other.spawn_y, other.spawn_z,
            other.spawn_rotation, other.spawn_pitch,
            {RUM_ORIGIN_KEY: origin_tag.encode('utf-8')},
        )

    def copy(self) -> 'RUMMap':
        return RUMMap.from_map(self)

    @property
    def record_length(self) -> int:
        return self._records.shape[1]

    # =========================================================================
    # Blocks and flags
    # =========================================================================

    def get_block(self, x: int, y: int, z: int) -> int:
        return int(self._records[self._block_offset(x, y, z), 0])

    def set_block(self, x: int, y: int, z: int, value: int, flags: int = BlockFlags(0)):
        """Overwrite the whole record: id, flags and zeroed extension bytes."""
        offset = self._block_offset(x, y, z)
        value = check_range(value, MIN_BLOCK_ID, MAX_BLOCK_ID, "block id")
        flags = check_range(flags, 0, 0xFF, "block flags")
        record = self._records[offset]
        record[:] = 0
        record[0] = value
        record[1] = flags

    def set_block_partial(self, x: int, y: int, z: int, value: int, flags: int = BlockFlags(0)):
        """Write id and flags only, leaving the extension bytes as they are."""
        offset = self._block_offset(x, y, z)
        value = check_range(value, MIN_BLOCK_ID, MAX_BLOCK_ID, "block id")
        flags = check_range(flags, 0, 0xFF, "block flags")
        self._records[offset, 0] = value
        self._records[offset, 1] = flags

    def get_blocks(self) -> np.ndarray:
        return self._records[:, 0].copy()

    def get_block_flags(self, x: int, y: int, z: int) -> BlockFlags:
        return BlockFlags(int(self._records[self._block_offset(x, y, z), 1]))

    def _has_flag(self, x: int, y: int, z: int, flag: BlockFlags) -> bool:
        return bool(self._records[self._block_offset(x, y, z), 1] & flag)

    def is_block_special(self, x: int, y: int, z: int) -> bool:
        return self._has_flag(x, y, z, BlockFlags.SPECIAL)

    def is_block_solid(self, x: int, y: int, z: int) -> bool:
        return self._has_flag(x, y, z, BlockFlags.SOLID)

    def is_block_physics(self, x: int, y: int, z: int) -> bool:
        return self._has_flag(x, y, z, BlockFlags.PHYSICS)

    def is_block_message(self, x: int, y: int, z: int) -> bool:
        return self._has_flag(x, y, z, BlockFlags.MESSAGE)

    def is_block_portal(self, x: int, y: int, z: int) -> bool:
        return self._has_flag(x, y, z, BlockFlags.PORTAL)

    def is_block_scripted(self, x: int, y: int, z: int) -> bool:
        return self._has_flag(x, y, z, BlockFlags.SCRIPTED)

    # =========================================================================
    # Records
    # =========================================================================

    def get_record(self, x: int, y: int, z: int) -> bytes:
        return self._records[self._block_offset(x, y, z)].tobytes()

    def set_record(self, x: int, y: int, z: int, record: Union[bytes, bytearray, memoryview]):
        """
        Replace a whole record.

        Raises:
            InvalidMapError: If the record is not exactly record_length bytes
        """
        offset = self._block_offset(x, y, z)
        data = bytes(record)
        if len(data) != self.record_length:
            raise InvalidMapError(
                f"Record must be {self.record_length} bytes, got {len(data)}"
            )
        self._records[offset] = np.frombuffer(data, dtype=np.uint8)

    def get_records(self) -> np.ndarray:
        """(volume, record_length) uint8 copy of all records."""
        return self._records.copy()

    def _storage(self) -> np.ndarray:
        return self._records

    # =========================================================================
    # Metadata
    # =========================================================================

    def get_metadata(self, name: str) -> Optional[bytes]:
        with self._metadata_lock:
            return self._metadata.get(name)

    def set_metadata(self, name: str, payload: bytes):
        """
        Set one metadata entry.

        Raises:
            InvalidMapError: If the name or payload exceeds 65535 bytes, or the table is full
        """
        _encoded_name(name)
        payload = _payload(payload)
        with self._metadata_lock:
            if name not in self._metadata and len(self._metadata) >= RUM_MAX_METADATA_ENTRIES:
                raise InvalidMapError(f"Too many metadata entries (max {RUM_MAX_METADATA_ENTRIES})")
            self._metadata[name] = payload

    def remove_metadata(self, name: str):
        with self._metadata_lock:
            self._metadata.pop(name, None)

    def get_metadata_map(self) -> Dict[str, bytes]:
        with self._metadata_lock:
            return dict(self._metadata)

    def _state(self) -> tuple:
        return self.record_length, self.get_metadata_map()


# =============================================================================
# Load / save
# =============================================================================

def is_version_supported(version: int) -> bool:
    return version in SUPPORTED_VERSIONS


def _read_body(reader: BinaryReader) -> RUMMap:
    count = reader.read_u16(LITTLE_ENDIAN)
    metadata = {}
    for _ in range(count):
        name_data = reader.read_exact(reader.read_u16(LITTLE_ENDIAN))
        try:
            name = name_data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MapFormatError(f"Metadata name is not valid UTF-8: {e}") from e
        metadata[name] = reader.read_exact(reader.read_u16(LITTLE_ENDIAN))

    width = reader.read_u16(LITTLE_ENDIAN)
    height = reader.read_u16(LITTLE_ENDIAN)
    depth = reader.read_u16(LITTLE_ENDIAN)
    spawn_x = reader.read_u16(LITTLE_ENDIAN)
    spawn_y = reader.read_u16(LITTLE_ENDIAN)
    spawn_z = reader.read_u16(LITTLE_ENDIAN)
    rotation = reader.read_u8()
    pitch = reader.read_u8()
    record_length = RUM_MIN_RECORD_LENGTH + reader.read_u8()

    volume = width * height * depth
    if volume > MAX_BLOCK_DATA_SIZE:
        raise MapFormatError(f"Dimensions too large: {width}x{height}x{depth}")

    data_length = reader.read_uint(8, LITTLE_ENDIAN)
    expected = volume * record_length
    if data_length != expected:
        raise MapFormatError(
            f"Record region is {data_length} bytes, dimensions and record length need {expected}"
        )
    data = reader.read_exact(data_length)
    if not reader.at_eof():
        raise MapFormatError("Unexpected data after the record region")

    logDebug(f"RUM map {width}x{height}x{depth}, {record_length}-byte records, "
             f"{len(metadata)} metadata entries")
    records = np.frombuffer(data, dtype=np.uint8).reshape(volume, record_length)
    return RUMMap(records, width, height, depth,
                  spawn_x, spawn_y, spawn_z, rotation, pitch, metadata)


def load(source: Source, config: Optional[CodecConfig] = None) -> RUMMap:
    """
    Load a RUM map.

    Args:
        source: Path or readable binary stream
        config: Unused, accepted for a uniform codec signature

    Raises:
        UnsupportedVersionError: Version tag other than 0xAA000001
        MapFormatError: Record region size mismatch, trailing data, corrupt gzip data
        IncompleteDataError: Truncated file
        InvalidMapError: Field outside the map limits
    """
    with open_source(source) as stream:
        version = BinaryReader(stream).read_u32(BIG_ENDIAN)
        if not is_version_supported(version):
            raise UnsupportedVersionError(f"Unsupported RUM map version 0x{version:08X}", version)
        with gzip_reader(stream) as body:
            return _read_body(BinaryReader(body))


def save(level: VoxelMap, target: Target, version: Optional[int] = None,
         config: Optional[CodecConfig] = None):
    """
    Save any map as a RUM file.

    Maps of other formats are written as converted by RUMMap.from_map.

    Args:
        level: Map to save
        target: Path or writable binary stream
        version: Format version (only 0xAA000001)
        config: Supplies the compression level and the origin tag
    """
    version = CURRENT_VERSION if version is None else version
    if not is_version_supported(version):
        raise UnsupportedVersionError(f"Cannot save RUM map version {version}", version)
    config = resolve_config(config)
    if not isinstance(level, RUMMap):
        level = RUMMap.from_map(level, config.origin_tag)

    records = level.get_records()
    metadata = level.get_metadata_map()
    with open_target(target) as stream:
        BinaryWriter(stream).write_u32(version, BIG_ENDIAN)
        with gzip_writer(stream, config.compression_level) as body:
            writer = BinaryWriter(body)
            writer.write_u16(len(metadata), LITTLE_ENDIAN)
            for name, payload in metadata.items():
                name_data = _encoded_name(name)
                writer.write_u16(len(name_data), LITTLE_ENDIAN)
                writer.write(name_data)
                writer.write_u16(len(payload), LITTLE_ENDIAN)
                writer.write(payload)

            writer.write_u16(level.width, LITTLE_ENDIAN)
            writer.write_u16(level.height, LITTLE_ENDIAN)
            writer.write_u16(level.depth, LITTLE_ENDIAN)
            spawn = level.spawn
            writer.write_u16(spawn.x, LITTLE_ENDIAN)
            writer.write_u16(spawn.y, LITTLE_ENDIAN)
            writer.write_u16(spawn.z, LITTLE_ENDIAN)
            writer.write_u8(spawn.rotation)
            writer.write_u8(spawn.pitch)
            writer.write_u8(level.record_length - RUM_MIN_RECORD_LENGTH)
            writer.write_uint(records.size, 8, LITTLE_ENDIAN)
            writer.write(records.tobytes())
    logDebug(f"Saved RUM map {level.width}x{level.height}x{level.depth}")


class RUMFormat(MapFormat):
    name = "RUM"
    description = "Extensible map format with per-voxel records"
    extensions = frozenset({"rum"})
    map_class = RUMMap
    supported_versions = SUPPORTED_VERSIONS
    current_version = CURRENT_VERSION

    def load(self, source: Source, config=None) -> RUMMap:
        return load(source, config)

    def save(self, level: VoxelMap, target: Target, version: Optional[int] = None, config=None):
        save(level, target, version, config)

    def convert(self, level: VoxelMap, config=None) -> RUMMap:
        return RUMMap.from_map(level, resolve_config(config).origin_tag)


FORMAT = RUMFormat()
RUMMap.format = FORMAT
