"""
blockmaps: readers and writers for block-game world files.

Formats:
- Classic: serialized Level objects of the original game (.dat, .mine)
- fCraft: maps with string metadata (.fcm)
- MCSharp: maps with visit/build permissions and overlay blocks (.lvl)
- RUM: maps with per-voxel records and binary metadata (.rum)

Usage:
    import blockmaps

    level = blockmaps.get_format("Classic").load("server_level.dat")
    fcraft_level = blockmaps.get_format("fCraft").convert(level)
    fcraft_level.set_metadata("author", "someone")
    fcraft_level.save("server_level.fcm")
"""

from .errors import (
    MapError,
    MapFormatError,
    IncompleteDataError,
    UnsupportedVersionError,
    InvalidMapError,
    OutOfBoundsError,
)
from .map import Spawn, VoxelMap, BlockMap
from .config import CodecConfig, load_config, get_config, set_config
from .formats import (
    MapFormat,
    ClassicMap,
    FCraftMap,
    MCSharpMap,
    LevelPermission,
    RUMMap,
    BlockFlags,
    register_format,
    get_format,
    get_formats,
    find_formats_by_extension,
)

__version__ = "0.1.0"

__all__ = [
    'MapError', 'MapFormatError', 'IncompleteDataError', 'UnsupportedVersionError',
    'InvalidMapError', 'OutOfBoundsError',
    'Spawn', 'VoxelMap', 'BlockMap',
    'CodecConfig', 'load_config', 'get_config', 'set_config',
    'MapFormat', 'ClassicMap', 'FCraftMap', 'MCSharpMap', 'LevelPermission',
    'RUMMap', 'BlockFlags',
    'register_format', 'get_format', 'get_formats', 'find_formats_by_extension',
]
