"""
Map Format Codecs

One module per file format, each defining a MapFormat and a module-level
FORMAT instance:

- classic: ClassicFormat for .dat / .mine files
- fcraft: FCraftFormat for .fcm files
- mcsharp: MCSharpFormat for .lvl files
- rum: RUMFormat for .rum files

The registry below looks formats up by name or extension. It never
inspects file contents; callers choose the format and its codec checks
the magic and version.

Usage:
    from blockmaps.formats import get_format, find_formats_by_extension

    fmt = find_formats_by_extension("world.fcm")[0]
    level = fmt.load("world.fcm")
    get_format("RUM").convert(level).save("world.rum")
"""

from pathlib import Path
from typing import Dict, List, Union

from .base import MapFormat, normalize_extension, open_source, open_target

from .classic import ClassicFormat, ClassicMap, LevelRecord, LEVEL_CLASS
from .fcraft import FCraftFormat, FCraftMap
from .mcsharp import MCSharpFormat, MCSharpMap, LevelPermission
from .mcsharp_blocks import OVERLAY_BLOCKS
from .rum import RUMFormat, RUMMap, BlockFlags

from . import classic, fcraft, mcsharp, rum

_FORMATS: Dict[str, MapFormat] = {}


def register_format(fmt: MapFormat):
    """
    Add a format to the registry, replacing any format of the same name.

    Names are matched case-insensitively.
    """
    if not fmt.name:
        raise ValueError(f"Format has no name: {fmt!r}")
    _FORMATS[fmt.name.lower()] = fmt


def get_format(name: str) -> MapFormat:
    """
    Look up a format by name, ignoring case.

    Raises:
        KeyError: If no format has that name
    """
    try:
        return _FORMATS[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown map format: {name!r}") from None


def get_formats() -> List[MapFormat]:
    """All registered formats in registration order."""
    return list(_FORMATS.values())


def find_formats_by_extension(filename: Union[str, Path]) -> List[MapFormat]:
    """Formats claiming the extension of ``filename`` ("fcm", ".fcm" or "maps/world.fcm")."""
    return [fmt for fmt in _FORMATS.values() if fmt.handles_extension(filename)]


for _module in (classic, fcraft, mcsharp, rum):
    register_format(_module.FORMAT)
del _module

__all__ = [
    'MapFormat', 'normalize_extension', 'open_source', 'open_target',
    'ClassicFormat', 'ClassicMap', 'LevelRecord', 'LEVEL_CLASS',
    'FCraftFormat', 'FCraftMap',
    'MCSharpFormat', 'MCSharpMap', 'LevelPermission', 'OVERLAY_BLOCKS',
    'RUMFormat', 'RUMMap', 'BlockFlags',
    'register_format', 'get_format', 'get_formats', 'find_formats_by_extension',
]
