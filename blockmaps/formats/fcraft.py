"""
fCraft (.fcm) Map Format

Map format of the fCraft server. Adds a free-form string dictionary to
the base map.

File format (version 2), all fields little-endian:
- u32 version 0xFC000002
- u16 width, height, depth
- u16 spawn x, y, z
- u8 spawn rotation, u8 spawn pitch
- u16 metadata entry count
- Per entry: u16 key length, key (UTF-8), u16 value length, value (UTF-8)
- gzip stream holding width * height * depth block ids
"""

import threading
from typing import Dict, Mapping, Optional

from ..constants import FCRAFT_VERSION_2, MAX_U16, MAX_U32
from ..config import resolve_config, CodecConfig
from ..errors import InvalidMapError, MapFormatError, UnsupportedVersionError
from ..map import BlockMap, BlockSource, VoxelMap
from ..utils import BinaryReader, BinaryWriter, LITTLE_ENDIAN, logDebug
from .base import MapFormat, Source, Target, open_source, open_target
from .compression import gzip_reader, gzip_writer

SUPPORTED_VERSIONS = (FCRAFT_VERSION_2,)
CURRENT_VERSION = FCRAFT_VERSION_2


def _encoded_text(text: str, label: str) -> bytes:
    if not isinstance(text, str):
        raise InvalidMapError(f"Metadata {label} must be a string, got {type(text).__name__}")
    data = text.encode('utf-8')
    if len(data) > MAX_U16:
        raise InvalidMapError(f"Metadata {label} too long: {len(data)} bytes (max {MAX_U16})")
    return data


class FCraftMap(BlockMap):
    """
    fCraft map: base block map plus string metadata.

    Metadata access is serialized by a lock; get_metadata_map returns a
    snapshot copy.
    """

    def __init__(self, blocks: BlockSource,
                 width: int, height: int, depth: int,
                 spawn_x: int = 0, spawn_y: int = 0, spawn_z: int = 0,
                 spawn_rotation: int = 0, spawn_pitch: int = 0,
                 metadata: Optional[Mapping[str, str]] = None):
        super().__init__(blocks, width, height, depth,
                         spawn_x, spawn_y, spawn_z, spawn_rotation, spawn_pitch)
        entries = dict(metadata or {})
        if len(entries) > MAX_U16:
            raise InvalidMapError(f"Too many metadata entries: {len(entries)} (max {MAX_U16})")
        for key, value in entries.items():
            _encoded_text(key, "key")
            _encoded_text(value, "value")
        self._metadata: Dict[str, str] = entries
        self._metadata_lock = threading.Lock()

    @classmethod
    def from_map(cls, other: VoxelMap) -> 'FCraftMap':
        """Rebuild ``other``; metadata carries over only from another fCraft map."""
        metadata = other.get_metadata_map() if isinstance(other, FCraftMap) else None
        return cls(
            other.get_blocks(),
            other.width, other.height, other.depth,
            other.spawn_x, other.spawn_y, other.spawn_z,
            other.spawn_rotation, other.spawn_pitch,
            metadata,
        )

    def copy(self) -> 'FCraftMap':
        return FCraftMap.from_map(self)

    # =========================================================================
    # Metadata
    # =========================================================================

    def get_metadata(self, key: str) -> Optional[str]:
        with self._metadata_lock:
            return self._metadata.get(key)

    def set_metadata(self, key: str, value: str):
        """
        Set one metadata entry.

        Raises:
            InvalidMapError: If key or value is not a string of at most
                65535 UTF-8 bytes, or the table is full
        """
        _encoded_text(key, "key")
        _encoded_text(value, "value")
        with self._metadata_lock:
            if key not in self._metadata and len(self._metadata) >= MAX_U16:
                raise InvalidMapError(f"Too many metadata entries (max {MAX_U16})")
            self._metadata[key] = value

    def remove_metadata(self, key: str):
        """Remove an entry; a missing key is ignored."""
        with self._metadata_lock:
            self._metadata.pop(key, None)

    def get_metadata_map(self) -> Dict[str, str]:
        with self._metadata_lock:
            return dict(self._metadata)

    def _state(self) -> tuple:
        return (self.get_metadata_map(),)


# =============================================================================
# Load / save
# =============================================================================

def is_version_supported(version: int) -> bool:
    return version in SUPPORTED_VERSIONS


def _read_text(reader: BinaryReader, label: str) -> str:
    size = reader.read_u16(LITTLE_ENDIAN)
    data = reader.read_exact(size)
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MapFormatError(f"Metadata {label} is not valid UTF-8: {e}") from e


def _write_text(writer: BinaryWriter, text: str, label: str):
    data = _encoded_text(text, label)
    writer.write_u16(len(data), LITTLE_ENDIAN)
    writer.write(data)


def _load_version_2(reader: BinaryReader, stream) -> FCraftMap:
    width = reader.read_u16(LITTLE_ENDIAN)
    height = reader.read_u16(LITTLE_ENDIAN)
    depth = reader.read_u16(LITTLE_ENDIAN)
    spawn_x = reader.read_u16(LITTLE_ENDIAN)
    spawn_y = reader.read_u16(LITTLE_ENDIAN)
    spawn_z = reader.read_u16(LITTLE_ENDIAN)
    rotation = reader.read_u8()
    pitch = reader.read_u8()

    count = reader.read_u16(LITTLE_ENDIAN)
    metadata = {}
    for _ in range(count):
        key = _read_text(reader, "key")
        metadata[key] = _read_text(reader, "value")

    volume = width * height * depth
    if volume > MAX_U32:
        raise MapFormatError(f"Dimensions too large: {width}x{height}x{depth}")

    with gzip_reader(stream) as body:
        blocks = BinaryReader(body).read_exact(volume)

    logDebug(f"fCraft map {width}x{height}x{depth}, {len(metadata)} metadata entries")
    return FCraftMap(blocks, width, height, depth,
                     spawn_x, spawn_y, spawn_z, rotation, pitch, metadata)


def load(source: Source, config: Optional[CodecConfig] = None) -> FCraftMap:
    """
    Load an fCraft map.

    Args:
        source: Path or readable binary stream
        config: Unused, accepted for a uniform codec signature

    Raises:
        MapFormatError: Bad metadata text or oversized dimensions
        UnsupportedVersionError: Version tag other than 0xFC000002
        IncompleteDataError: Truncated file
        InvalidMapError: Field outside the map limits
    """
    with open_source(source) as stream:
        reader = BinaryReader(stream)
        version = reader.read_u32(LITTLE_ENDIAN)
        if not is_version_supported(version):
            raise UnsupportedVersionError(f"Unsupported fCraft map version 0x{version:08X}", version)
        return _load_version_2(reader, stream)


def save(level: VoxelMap, target: Target, version: Optional[int] = None,
         config: Optional[CodecConfig] = None):
    """
    Save any map as an fCraft file.

    Metadata is written only for fCraft maps; other maps get an empty table.

    Args:
        level: Map to save
        target: Path or writable binary stream
        version: Format version (only 0xFC000002)
        config: Supplies the compression level
    """
    version = CURRENT_VERSION if version is None else version
    if not is_version_supported(version):
        raise UnsupportedVersionError(f"Cannot save fCraft map version {version}", version)
    config = resolve_config(config)
    metadata = level.get_metadata_map() if isinstance(level, FCraftMap) else {}

    with open_target(target) as stream:
        writer = BinaryWriter(stream)
        writer.write_u32(version, LITTLE_ENDIAN)
        writer.write_u16(level.width, LITTLE_ENDIAN)
        writer.write_u16(level.height, LITTLE_ENDIAN)
        writer.write_u16(level.depth, LITTLE_ENDIAN)
        spawn = level.spawn
        writer.write_u16(spawn.x, LITTLE_ENDIAN)
        writer.write_u16(spawn.y, LITTLE_ENDIAN)
        writer.write_u16(spawn.z, LITTLE_ENDIAN)
        writer.write_u8(spawn.rotation)
        writer.write_u8(spawn.pitch)

        writer.write_u16(len(metadata), LITTLE_ENDIAN)
        for key, value in metadata.items():
            _write_text(writer, key, "key")
            _write_text(writer, value, "value")

        with gzip_writer(stream, config.compression_level) as body:
            body.write(level.get_blocks().tobytes())
    logDebug(f"Saved fCraft map {level.width}x{level.height}x{level.depth}")


class FCraftFormat(MapFormat):
    name = "fCraft"
    description = "Map format for fCraft"
    extensions = frozenset({"fcm"})
    map_class = FCraftMap
    supported_versions = SUPPORTED_VERSIONS
    current_version = CURRENT_VERSION

    def load(self, source: Source, config=None) -> FCraftMap:
        return load(source, config)

    def save(self, level: VoxelMap, target: Target, version: Optional[int] = None, config=None):
        save(level, target, version, config)


FORMAT = FCraftFormat()
FCraftMap.format = FORMAT
