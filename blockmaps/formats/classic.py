"""
Classic (.dat) Map Format

Level files of the original classic game client and server. The level is
a Java-serialized com.mojang.minecraft.level.Level object.

File format (version 2), one gzip stream:
- u32 magic 0x271BB788 (big-endian)
- u8 version (2)
- Java object serialization stream holding one Level object

Files whose magic and version are stored uncompressed in front of a gzip
compressed object stream are read as well; files are always written in
the fully compressed form the game client expects.

Level fields used by the map model:
- int width, height, depth
- byte[] blocks
- int xSpawn, ySpawn, zSpawn
- float rotSpawn: fraction of a full turn, mapped to 0-255

Version 2 files do not store a spawn pitch; loaded maps get pitch 150.
"""

import io
import math
from dataclasses import dataclass
from typing import BinaryIO, Optional

import numpy as np

from ..constants import (
    CLASSIC_MAGIC, CLASSIC_VERSION_2, CLASSIC_DEFAULT_PITCH, CLASSIC_LEVEL_CLASS,
    CLASSIC_SKY_COLOR, CLASSIC_FOG_COLOR, CLASSIC_CLOUD_COLOR,
)
from ..config import resolve_config, CodecConfig
from ..errors import MapFormatError, UnsupportedVersionError
from ..map import BlockMap, VoxelMap
from ..utils import BinaryReader, BinaryWriter, BIG_ENDIAN, logDebug
from .base import MapFormat, Source, Target, open_source, open_target
from .compression import gzip_reader, gzip_writer
from .object_stream import (
    ClassDesc, FieldSpec, JavaArray, JavaObject, ObjectStreamWriter,
    BYTE_ARRAY_CLASS, SC_SERIALIZABLE, SC_WRITE_METHOD,
    canonical_field_order, read_object_stream,
)

SUPPORTED_VERSIONS = (CLASSIC_VERSION_2,)
CURRENT_VERSION = CLASSIC_VERSION_2

GZIP_MAGIC = b'\x1f\x8b'

STRING_TYPE = "Ljava/lang/String;"

# The Level class exactly as the game's own serializer declares it
LEVEL_CLASS = ClassDesc(
    name=CLASSIC_LEVEL_CLASS,
    serial_version_uid=0,
    flags=SC_SERIALIZABLE | SC_WRITE_METHOD,
    fields=canonical_field_order([
        FieldSpec('I', 'width'),
        FieldSpec('I', 'height'),
        FieldSpec('I', 'depth'),
        FieldSpec('[', 'blocks', '[B'),
        FieldSpec('L', 'name', STRING_TYPE),
        FieldSpec('L', 'creator', STRING_TYPE),
        FieldSpec('J', 'createTime'),
        FieldSpec('I', 'xSpawn'),
        FieldSpec('I', 'ySpawn'),
        FieldSpec('I', 'zSpawn'),
        FieldSpec('F', 'rotSpawn'),
        FieldSpec('Z', 'networkMode'),
        FieldSpec('Z', 'creativeMode'),
        FieldSpec('I', 'waterLevel'),
        FieldSpec('I', 'skyColor'),
        FieldSpec('I', 'fogColor'),
        FieldSpec('I', 'cloudColor'),
        FieldSpec('Z', 'growTrees'),
    ]),
)


@dataclass
class LevelRecord:
    """Level values as carried in a Classic file."""
    width: int
    height: int
    depth: int
    blocks: bytes
    x_spawn: int
    y_spawn: int
    z_spawn: int
    rot_spawn: float
    name: Optional[str] = None
    creator: Optional[str] = None
    create_time: int = 0
    network_mode: bool = False
    creative_mode: bool = False
    water_level: int = 0
    sky_color: int = CLASSIC_SKY_COLOR
    fog_color: int = CLASSIC_FOG_COLOR
    cloud_color: int = CLASSIC_CLOUD_COLOR
    grow_trees: bool = False

    def to_java_object(self, class_desc: ClassDesc = LEVEL_CLASS) -> JavaObject:
        """Pair the record's values with the declared Level field names."""
        values = {
            'width': self.width,
            'height': self.height,
            'depth': self.depth,
            'blocks': JavaArray(BYTE_ARRAY_CLASS, bytes(self.blocks)),
            'name': self.name,
            'creator': self.creator,
            'createTime': self.create_time,
            'xSpawn': self.x_spawn,
            'ySpawn': self.y_spawn,
            'zSpawn': self.z_spawn,
            'rotSpawn': self.rot_spawn,
            'networkMode': self.network_mode,
            'creativeMode': self.creative_mode,
            'waterLevel': self.water_level,
            'skyColor': self.sky_color,
            'fogColor': self.fog_color,
            'cloudColor': self.cloud_color,
            'growTrees': self.grow_trees,
        }
        return JavaObject(class_desc, {class_desc.name: values})


def rotation_from_float(rot_spawn: float) -> int:
    """
    Convert a stored rotSpawn (fraction of a full turn) to a 0-255 angle.

    Computed in 32-bit float like the game: scale by 255, wrap modulo 255
    keeping the sign, round half away from zero, drop the sign.
    1.0 gives 0, 0.5 and -0.5 both give 128.

    Raises:
        MapFormatError: If the value is not finite, or overflows 32-bit
            float once scaled
    """
    with np.errstate(over='ignore', invalid='ignore'):
        scaled = np.float32(rot_spawn) * np.float32(255)
        wrapped = abs(float(np.fmod(scaled, np.float32(255))))
    if not math.isfinite(wrapped):
        raise MapFormatError(f"Spawn rotation is out of range: {rot_spawn}")
    return int(math.floor(wrapped + 0.5))


def rotation_to_float(rotation: int) -> float:
    """
    Convert a 0-255 angle to the rotSpawn value that reads back as the same angle.
    """
    # 255 / 255 would wrap to 0; store it just under a full turn
    turns = rotation if rotation < 255 else 254.75
    return float(np.float32(turns / 255.0))


class ClassicMap(BlockMap):
    """A Classic map: exactly the base block map."""

    def copy(self) -> 'ClassicMap':
        return ClassicMap.from_map(self)


# =============================================================================
# Object graph
# =============================================================================

def _int_field(obj: JavaObject, name: str) -> int:
    value = obj.get_field(name)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MapFormatError(f"Level field '{name}' missing or not an int")
    return value


def _string_field(obj: JavaObject, name: str) -> Optional[str]:
    value = obj.get_field(name)
    return value if isinstance(value, str) else None


def read_level_record(stream: BinaryIO) -> LevelRecord:
    """
    Deserialize the Level object from an object stream.

    Raises:
        MapFormatError: If the stream holds anything but a Level with the
            fields the map model needs
    """
    obj = read_object_stream(stream)
    if not isinstance(obj, JavaObject):
        raise MapFormatError("Object stream does not hold an object")
    if obj.class_name != CLASSIC_LEVEL_CLASS:
        raise MapFormatError(f"Holds wrong serialized object: {obj.class_name}")

    blocks = obj.get_field('blocks')
    if not isinstance(blocks, JavaArray) or not isinstance(blocks.values, bytes):
        raise MapFormatError("Level field 'blocks' missing or not a byte array")

    rot_spawn = obj.get_field('rotSpawn')
    if isinstance(rot_spawn, bool) or not isinstance(rot_spawn, (int, float)):
        raise MapFormatError("Level field 'rotSpawn' missing or not a float")

    return LevelRecord(
        width=_int_field(obj, 'width'),
        height=_int_field(obj, 'height'),
        depth=_int_field(obj, 'depth'),
        blocks=blocks.values,
        x_spawn=_int_field(obj, 'xSpawn'),
        y_spawn=_int_field(obj, 'ySpawn'),
        z_spawn=_int_field(obj, 'zSpawn'),
        rot_spawn=float(rot_spawn),
        name=_string_field(obj, 'name'),
        creator=_string_field(obj, 'creator'),
    )


def write_level_record(stream: BinaryIO, record: LevelRecord, class_desc: ClassDesc = LEVEL_CLASS):
    """Serialize ``record`` as a complete object stream."""
    writer = ObjectStreamWriter(stream)
    writer.write_header()
    writer.write_object(record.to_java_object(class_desc))


def level_record_from_map(level: VoxelMap, config: CodecConfig) -> LevelRecord:
    return LevelRecord(
        width=level.width,
        height=level.height,
        depth=level.depth,
        blocks=level.get_blocks().tobytes(),
        x_spawn=level.spawn_x,
        y_spawn=level.spawn_y,
        z_spawn=level.spawn_z,
        rot_spawn=rotation_to_float(level.spawn_rotation),
        name=config.level_name or None,
        creator=config.level_creator or None,
        # The game's vertical axis is the Level's depth
        water_level=level.depth // 2,
    )


# =============================================================================
# Load / save
# =============================================================================

def is_version_supported(version: int) -> bool:
    return version in SUPPORTED_VERSIONS


def _read_magic_and_version(reader: BinaryReader) -> int:
    magic = reader.read_u32(BIG_ENDIAN)
    if magic != CLASSIC_MAGIC:
        raise MapFormatError(f"Wrong magic constant 0x{magic:08X}")
    version = reader.read_u8()
    if not is_version_supported(version):
        raise UnsupportedVersionError(f"Unsupported Classic map version {version}", version)
    return version


def _load_version_2(body: BinaryIO) -> ClassicMap:
    record = read_level_record(body)
    rotation = rotation_from_float(record.rot_spawn)
    logDebug(f"Classic level {record.width}x{record.height}x{record.depth}, "
             f"rotSpawn {record.rot_spawn} -> rotation {rotation}")
    return ClassicMap(
        record.blocks,
        record.width, record.height, record.depth,
        record.x_spawn, record.y_spawn, record.z_spawn,
        rotation, CLASSIC_DEFAULT_PITCH,
    )


def load(source: Source, config: Optional[CodecConfig] = None) -> ClassicMap:
    """
    Load a Classic map.

    Args:
        source: Path or readable binary stream
        config: Unused, accepted for a uniform codec signature

    Raises:
        MapFormatError: Bad magic or malformed object graph
        UnsupportedVersionError: Version other than 2
        IncompleteDataError: Truncated file
        InvalidMapError: Level values outside the map limits
    """
    with open_source(source) as stream:
        data = stream.read()

    if data[:2] == GZIP_MAGIC:
        with gzip_reader(io.BytesIO(data)) as body:
            _read_magic_and_version(BinaryReader(body))
            return _load_version_2(body)

    raw = io.BytesIO(data)
    _read_magic_and_version(BinaryReader(raw))
    with gzip_reader(raw) as body:
        return _load_version_2(body)


def save(level: VoxelMap, target: Target, version: Optional[int] = None,
         config: Optional[CodecConfig] = None):
    """
    Save any map as a Classic file.

    The spawn pitch is not stored.

    Args:
        level: Map to save
        target: Path or writable binary stream
        version: Format version (only 2)
        config: Supplies the Level name/creator and compression level
    """
    version = CURRENT_VERSION if version is None else version
    if not is_version_supported(version):
        raise UnsupportedVersionError(f"Cannot save Classic map version {version}", version)
    config = resolve_config(config)

    record = level_record_from_map(level, config)
    with open_target(target) as stream:
        with gzip_writer(stream, config.compression_level) as body:
            writer = BinaryWriter(body)
            writer.write_u32(CLASSIC_MAGIC, BIG_ENDIAN)
            writer.write_u8(version)
            write_level_record(body, record)
    logDebug(f"Saved Classic map {level.width}x{level.height}x{level.depth}")


class ClassicFormat(MapFormat):
    name = "Classic"
    description = "Serialized level format of the original classic client and server"
    extensions = frozenset({"dat", "mine"})
    map_class = ClassicMap
    supported_versions = SUPPORTED_VERSIONS
    current_version = CURRENT_VERSION

    def load(self, source: Source, config=None) -> ClassicMap:
        return load(source, config)

    def save(self, level: VoxelMap, target: Target, version: Optional[int] = None, config=None):
        save(level, target, version, config)


FORMAT = ClassicFormat()
ClassicMap.format = FORMAT
