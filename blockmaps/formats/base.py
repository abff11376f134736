"""
Base contract shared by all map formats.

Each format module defines one MapFormat subclass and a module-level
FORMAT instance that the registry in ``blockmaps.formats`` exposes:

- name / description / extensions: identification for callers
- load(source): decode a path or binary stream into a map
- save(map, target): encode a map to a path or binary stream
- convert(map): rebuild any map as this format's map type
- is_version_supported(code): version check without decoding

Formats never guess from content; each codec checks its own magic and
version and rejects anything else.
"""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, FrozenSet, Iterator, Optional, Tuple, Type, Union

from ..map import VoxelMap
from ..utils import log_context

Source = Union[str, Path, BinaryIO]
Target = Union[str, Path, BinaryIO]


@contextmanager
def open_source(source: Source) -> Iterator[BinaryIO]:
    """
    Yield a readable binary stream for ``source``.

    Paths are opened here and closed on exit; caller-owned streams are
    passed through and left open.
    """
    if isinstance(source, (str, Path)):
        with log_context(Path(source).name), open(source, 'rb') as f:
            yield f
    else:
        yield source


@contextmanager
def open_target(target: Target) -> Iterator[BinaryIO]:
    """
    Yield a writable binary stream for ``target``.

    For paths, output goes to a temporary file next to the destination
    that replaces it only when the block exits cleanly; on error the
    temporary file is removed and the destination is left untouched.
    Caller-owned streams are passed through and left open.
    """
    if not isinstance(target, (str, Path)):
        yield target
        return

    path = Path(target)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp",
                                    dir=str(path.parent))
    try:
        with log_context(path.name), os.fdopen(fd, 'wb') as f:
            yield f
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class MapFormat:
    """
    A map file format.

    Subclasses set the class attributes and implement load and save.
    """

    name: str = ""
    description: str = ""
    extensions: FrozenSet[str] = frozenset()
    map_class: Type[VoxelMap] = VoxelMap
    supported_versions: Tuple[int, ...] = ()
    current_version: int = 0

    def load(self, source: Source, config=None) -> VoxelMap:
        raise NotImplementedError

    def save(self, level: VoxelMap, target: Target,
             version: Optional[int] = None, config=None):
        raise NotImplementedError

    def convert(self, level: VoxelMap, config=None) -> VoxelMap:
        """
        Rebuild ``level`` as this format's map type.

        Every field is re-validated against this format's limits.

        Raises:
            InvalidMapError: If a field does not fit this format
        """
        return self.map_class.from_map(level)

    def is_version_supported(self, version: int) -> bool:
        return version in self.supported_versions

    def handles_extension(self, filename: Union[str, Path]) -> bool:
        """Check a bare extension ("fcm", ".fcm") or a file name against this format."""
        return normalize_extension(filename) in self.extensions

    def __repr__(self) -> str:
        return f"<MapFormat {self.name}>"


def normalize_extension(filename: Union[str, Path]) -> str:
    """Lower-case extension without the dot, from an extension or a path."""
    text = str(filename)
    suffix = Path(text).suffix
    if suffix:
        return suffix[1:].lower()
    return text.lstrip('.').lower()
