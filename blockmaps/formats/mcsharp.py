"""
MCSharp (.lvl) Map Format

Map format of the MCSharp server. Adds visit and build permissions and
stores server-side overlay block ids (100-206) in the block array.

File format (version 1874), big-endian, uncompressed:
- u16 version 1874
- u16 width, height, depth
- u16 spawn x, y, z
- u8 spawn pitch, u8 spawn rotation
- u8 visit permission code, u8 build permission code
- width * height * depth raw block ids, no length prefix

Older servers wrote the same layout little-endian. Such files are
recognized by the version tag reading 1874 little-endian and imported
when CodecConfig.allow_legacy_byte_order is set; they are never written.
"""

from enum import Enum
from typing import Optional

import numpy as np

from ..constants import MAX_BLOCK_DATA_SIZE, MCSHARP_VERSION_1
from ..config import resolve_config, CodecConfig
from ..errors import InvalidMapError, MapFormatError, UnsupportedVersionError
from ..map import BlockMap, BlockSource, VoxelMap
from ..utils import BinaryReader, BinaryWriter, BIG_ENDIAN, LITTLE_ENDIAN, logDebug, logWarning
from .base import MapFormat, Source, Target, open_source, open_target
from .mcsharp_blocks import normalize_block, normalize_blocks

SUPPORTED_VERSIONS = (MCSHARP_VERSION_1,)
CURRENT_VERSION = MCSHARP_VERSION_1


class LevelPermission(Enum):
    """Server rank needed to visit or build on a level, with its file code."""
    NULL = 0x99
    GUEST = 0x00
    BUILDER = 0x01
    ADVBUILDER = 0x02
    MODERATOR = 0x03
    OPERATOR = 0x04
    ADMIN = 0x05

    @property
    def code(self) -> int:
        return self.value

    @classmethod
    def from_code(cls, code: int) -> 'LevelPermission':
        """Decode a permission byte; unknown codes give NULL."""
        try:
            return cls(code)
        except ValueError:
            return cls.NULL


def _permission(value: Optional[LevelPermission], label: str) -> LevelPermission:
    if value is None:
        return LevelPermission.NULL
    if not isinstance(value, LevelPermission):
        raise InvalidMapError(f"Invalid {label} permission: {value!r}")
    return value


class MCSharpMap(BlockMap):
    """
    MCSharp map: base block map plus visit/build permissions.

    Stored block ids are raw and may be overlay ids. get_block and
    get_blocks fold overlay ids to vanilla ids; get_raw_block and
    get_raw_blocks return what is stored.
    """

    def __init__(self, blocks: BlockSource,
                 width: int, height: int, depth: int,
                 spawn_x: int = 0, spawn_y: int = 0, spawn_z: int = 0,
                 spawn_rotation: int = 0, spawn_pitch: int = 0,
                 visit_permission: Optional[LevelPermission] = LevelPermission.NULL,
                 build_permission: Optional[LevelPermission] = LevelPermission.NULL):
        super().__init__(blocks, width, height, depth,
                         spawn_x, spawn_y, spawn_z, spawn_rotation, spawn_pitch)
        self._visit_permission = _permission(visit_permission, "visit")
        self._build_permission = _permission(build_permission, "build")

    @classmethod
    def from_map(cls, other: VoxelMap) -> 'MCSharpMap':
        """Rebuild ``other``; raw ids and permissions carry over only from another MCSharp map."""
        if isinstance(other, MCSharpMap):
            return cls(
                other.get_raw_blocks(),
                other.width, other.height, other.depth,
                other.spawn_x, other.spawn_y, other.spawn_z,
                other.spawn_rotation, other.spawn_pitch,
                other.visit_permission, other.build_permission,
            )
        return cls(
            other.get_blocks(),
            other.width, other.height, other.depth,
            other.spawn_x, other.spawn_y, other.spawn_z,
            other.spawn_rotation, other.spawn_pitch,
        )

    def copy(self) -> 'MCSharpMap':
        return MCSharpMap.from_map(self)

    @property
    def visit_permission(self) -> LevelPermission:
        return self._visit_permission

    @visit_permission.setter
    def visit_permission(self, value: Optional[LevelPermission]):
        self._visit_permission = _permission(value, "visit")

    @property
    def build_permission(self) -> LevelPermission:
        return self._build_permission

    @build_permission.setter
    def build_permission(self, value: Optional[LevelPermission]):
        self._build_permission = _permission(value, "build")

    def get_block(self, x: int, y: int, z: int) -> int:
        return normalize_block(self.get_raw_block(x, y, z))

    def get_blocks(self) -> np.ndarray:
        return normalize_blocks(self._blocks)

    def get_raw_block(self, x: int, y: int, z: int) -> int:
        return int(self._blocks[self._block_offset(x, y, z)])

    def get_raw_blocks(self) -> np.ndarray:
        return self._blocks.copy()

    def get_block_bytes(self) -> bytes:
        """Raw block ids as bytes, in file order."""
        return self._blocks.tobytes()

    def _state(self) -> tuple:
        return self._visit_permission, self._build_permission


# =============================================================================
# Load / save
# =============================================================================

def is_version_supported(version: int) -> bool:
    return version in SUPPORTED_VERSIONS


def _detect_byte_order(tag: bytes, config: CodecConfig) -> str:
    if int.from_bytes(tag, BIG_ENDIAN) == MCSHARP_VERSION_1:
        return BIG_ENDIAN
    if int.from_bytes(tag, LITTLE_ENDIAN) == MCSHARP_VERSION_1:
        if not config.allow_legacy_byte_order:
            raise UnsupportedVersionError(
                "Little-endian MCSharp map and legacy byte order import is disabled",
                MCSHARP_VERSION_1,
            )
        logWarning("Importing MCSharp map written with the legacy little-endian byte order")
        return LITTLE_ENDIAN
    version = int.from_bytes(tag, BIG_ENDIAN)
    raise UnsupportedVersionError(f"Unsupported MCSharp map version {version}", version)


def _load_version_1(reader: BinaryReader, byte_order: str) -> MCSharpMap:
    width = reader.read_u16(byte_order)
    height = reader.read_u16(byte_order)
    depth = reader.read_u16(byte_order)
    spawn_x = reader.read_u16(byte_order)
    spawn_y = reader.read_u16(byte_order)
    spawn_z = reader.read_u16(byte_order)
    pitch = reader.read_u8()
    rotation = reader.read_u8()
    visit = LevelPermission.from_code(reader.read_u8())
    build = LevelPermission.from_code(reader.read_u8())

    volume = width * height * depth
    if volume > MAX_BLOCK_DATA_SIZE:
        raise MapFormatError(f"Dimensions too large: {width}x{height}x{depth}")
    blocks = reader.read_exact(volume)

    logDebug(f"MCSharp map {width}x{height}x{depth} ({byte_order}-endian), "
             f"visit {visit.name}, build {build.name}")
    return MCSharpMap(blocks, width, height, depth,
                      spawn_x, spawn_y, spawn_z, rotation, pitch, visit, build)


def load(source: Source, config: Optional[CodecConfig] = None) -> MCSharpMap:
    """
    Load an MCSharp map.

    Args:
        source: Path or readable binary stream
        config: Controls the legacy little-endian import

    Raises:
        UnsupportedVersionError: Version tag other than 1874, or a
            little-endian file with the legacy import disabled
        IncompleteDataError: Truncated header or block array
        MapFormatError: Block array larger than 2**31 - 1 bytes
        InvalidMapError: Field outside the map limits
    """
    config = resolve_config(config)
    with open_source(source) as stream:
        reader = BinaryReader(stream)
        byte_order = _detect_byte_order(reader.read_exact(2), config)
        return _load_version_1(reader, byte_order)


def save(level: VoxelMap, target: Target, version: Optional[int] = None,
         config: Optional[CodecConfig] = None):
    """
    Save any map as a big-endian MCSharp file.

    MCSharp maps keep their raw ids and permissions; other maps are saved
    with NULL permissions.

    Args:
        level: Map to save
        target: Path or writable binary stream
        version: Format version (only 1874)
        config: Unused, accepted for a uniform codec signature
    """
    version = CURRENT_VERSION if version is None else version
    if not is_version_supported(version):
        raise UnsupportedVersionError(f"Cannot save MCSharp map version {version}", version)

    if isinstance(level, MCSharpMap):
        blocks = level.get_raw_blocks()
        visit, build = level.visit_permission, level.build_permission
    else:
        blocks = level.get_blocks()
        visit = build = LevelPermission.NULL

    with open_target(target) as stream:
        writer = BinaryWriter(stream)
        writer.write_u16(version, BIG_ENDIAN)
        writer.write_u16(level.width, BIG_ENDIAN)
        writer.write_u16(level.height, BIG_ENDIAN)
        writer.write_u16(level.depth, BIG_ENDIAN)
        spawn = level.spawn
        writer.write_u16(spawn.x, BIG_ENDIAN)
        writer.write_u16(spawn.y, BIG_ENDIAN)
        writer.write_u16(spawn.z, BIG_ENDIAN)
        writer.write_u8(spawn.pitch)
        writer.write_u8(spawn.rotation)
        writer.write_u8(visit.code)
        writer.write_u8(build.code)
        writer.write(blocks.tobytes())
    logDebug(f"Saved MCSharp map {level.width}x{level.height}x{level.depth}")


class MCSharpFormat(MapFormat):
    name = "MCSharp"
    description = "Map format for MCSharp"
    extensions = frozenset({"lvl"})
    map_class = MCSharpMap
    supported_versions = SUPPORTED_VERSIONS
    current_version = CURRENT_VERSION

    def load(self, source: Source, config=None) -> MCSharpMap:
        return load(source, config)

    def save(self, level: VoxelMap, target: Target, version: Optional[int] = None, config=None):
        save(level, target, version, config)


FORMAT = MCSharpFormat()
MCSharpMap.format = FORMAT
