"""
Voxel map core model.

A map is a width x height x depth grid of block ids plus a spawn point.
Blocks are stored flat, indexed as ((y * depth + z) * width + x), with
x running along the width, y along the height and z along the depth.

Spawn coordinates are in fine-position units (SPAWN_UNIT per block) and
must land inside the grid once divided by SPAWN_UNIT.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple, Union

import numpy as np

from .constants import (
    MIN_WIDTH, MAX_WIDTH, MIN_HEIGHT, MAX_HEIGHT, MIN_DEPTH, MAX_DEPTH,
    MIN_SPAWN_COORD, MAX_SPAWN_COORD, MIN_SPAWN_ANGLE, MAX_SPAWN_ANGLE,
    MIN_BLOCK_DATA_SIZE, MAX_BLOCK_DATA_SIZE, MIN_BLOCK_ID, MAX_BLOCK_ID,
    SPAWN_UNIT,
)
from .errors import InvalidMapError, OutOfBoundsError

if TYPE_CHECKING:
    from .formats.base import MapFormat

BlockSource = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True)
class Spawn:
    """Spawn point: fine-position coordinates plus facing angles."""
    x: int
    y: int
    z: int
    rotation: int = 0
    pitch: int = 0


def check_range(value, low: int, high: int, label: str) -> int:
    """
    Validate an integer field.

    Returns:
        The value as int

    Raises:
        InvalidMapError: If the value is not an integer in [low, high]
    """
    if isinstance(value, (bool, float)) or not isinstance(value, (int, np.integer)):
        raise InvalidMapError(f"Invalid {label}: expected an integer, got {value!r}")
    value = int(value)
    if value < low or value > high:
        raise InvalidMapError(f"Invalid {label}: {value} not in [{low}, {high}]")
    return value


def check_block_array(blocks: BlockSource, expected_size: int) -> np.ndarray:
    """
    Validate block ids and return them as an owned flat uint8 array.

    Args:
        blocks: Block ids (bytes-like or integer numpy array)
        expected_size: width * height * depth

    Raises:
        InvalidMapError: On a size mismatch or an id outside 0-255
    """
    if isinstance(blocks, np.ndarray):
        if blocks.dtype.kind not in 'iub':
            raise InvalidMapError(f"Invalid block array type: {blocks.dtype}")
        flat = blocks.reshape(-1)
        if flat.dtype != np.uint8 and flat.size:
            if flat.min() < MIN_BLOCK_ID or flat.max() > MAX_BLOCK_ID:
                raise InvalidMapError("Invalid block array: ids must be in [0, 255]")
        array = flat.astype(np.uint8, copy=True)
    else:
        array = np.frombuffer(bytes(blocks), dtype=np.uint8).copy()

    if array.size < MIN_BLOCK_DATA_SIZE or array.size > MAX_BLOCK_DATA_SIZE:
        raise InvalidMapError(f"Invalid block array size: {array.size}")
    if array.size != expected_size:
        raise InvalidMapError(
            f"Invalid block array size: {array.size}, dimensions need {expected_size}"
        )
    return array


class VoxelMap:
    """
    Dimensions, spawn state and bounds handling shared by every map type.

    Subclasses own the block storage and implement get_block, set_block
    and get_blocks. Dimensions never change after construction; the spawn
    is held as one immutable Spawn that set_spawn replaces whole, so a
    reader always sees a consistent spawn.
    """

    format: Optional['MapFormat'] = None

    def __init__(self, width: int, height: int, depth: int,
                 spawn_x: int = 0, spawn_y: int = 0, spawn_z: int = 0,
                 spawn_rotation: int = 0, spawn_pitch: int = 0):
        self._width = check_range(width, MIN_WIDTH, MAX_WIDTH, "width")
        self._height = check_range(height, MIN_HEIGHT, MAX_HEIGHT, "height")
        self._depth = check_range(depth, MIN_DEPTH, MAX_DEPTH, "depth")
        self._spawn = self._validated_spawn(spawn_x, spawn_y, spawn_z,
                                            spawn_rotation, spawn_pitch)

    def _validated_spawn(self, x, y, z, rotation, pitch) -> Spawn:
        spawn = Spawn(
            x=check_range(x, MIN_SPAWN_COORD, MAX_SPAWN_COORD, "spawn x"),
            y=check_range(y, MIN_SPAWN_COORD, MAX_SPAWN_COORD, "spawn y"),
            z=check_range(z, MIN_SPAWN_COORD, MAX_SPAWN_COORD, "spawn z"),
            rotation=check_range(rotation, MIN_SPAWN_ANGLE, MAX_SPAWN_ANGLE, "spawn rotation"),
            pitch=check_range(pitch, MIN_SPAWN_ANGLE, MAX_SPAWN_ANGLE, "spawn pitch"),
        )
        if self.is_player_out_of_bounds(spawn.x, spawn.y, spawn.z):
            raise InvalidMapError(
                f"Spawn out of bounds: ({spawn.x}, {spawn.y}, {spawn.z}) in a "
                f"{self._width}x{self._height}x{self._depth} map"
            )
        return spawn

    # =========================================================================
    # Dimensions and bounds
    # =========================================================================

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def volume(self) -> int:
        """Number of blocks in the map."""
        return self._width * self._height * self._depth

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        return self._width, self._height, self._depth

    def is_out_of_bounds(self, x: int, y: int, z: int) -> bool:
        return (x < 0 or y < 0 or z < 0
                or x >= self._width or y >= self._height or z >= self._depth)

    def is_player_out_of_bounds(self, x: int, y: int, z: int) -> bool:
        """Check a fine-position coordinate against the grid."""
        return self.is_out_of_bounds(x // SPAWN_UNIT, y // SPAWN_UNIT, z // SPAWN_UNIT)

    def _block_offset(self, x: int, y: int, z: int) -> int:
        if self.is_out_of_bounds(x, y, z):
            raise OutOfBoundsError(
                f"Block ({x}, {y}, {z}) outside map of size "
                f"{self._width}x{self._height}x{self._depth}"
            )
        return (y * self._depth + z) * self._width + x

    # =========================================================================
    # Spawn
    # =========================================================================

    @property
    def spawn(self) -> Spawn:
        return self._spawn

    @property
    def spawn_x(self) -> int:
        return self._spawn.x

    @property
    def spawn_y(self) -> int:
        return self._spawn.y

    @property
    def spawn_z(self) -> int:
        return self._spawn.z

    @property
    def spawn_rotation(self) -> int:
        return self._spawn.rotation

    @property
    def spawn_pitch(self) -> int:
        return self._spawn.pitch

    def set_spawn(self, x: int, y: int, z: int, rotation: int, pitch: int):
        """
        Move the spawn point.

        Raises:
            InvalidMapError: If any field is out of range or the position
                is outside the map; the previous spawn is kept
        """
        self._spawn = self._validated_spawn(x, y, z, rotation, pitch)

    # =========================================================================
    # Blocks (implemented by storage subclasses)
    # =========================================================================

    def get_block(self, x: int, y: int, z: int) -> int:
        raise NotImplementedError

    def set_block(self, x: int, y: int, z: int, value: int):
        raise NotImplementedError

    def get_blocks(self) -> np.ndarray:
        """Flat uint8 copy of the block ids."""
        raise NotImplementedError

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self, target, version: Optional[int] = None, config=None):
        """
        Save the map in its own format.

        Args:
            target: Output path or writable binary stream
            version: Format version (default: the format's current version)
            config: Optional CodecConfig
        """
        if self.format is None:
            raise NotImplementedError(f"Saving not implemented for {type(self).__name__}")
        self.format.save(self, target, version=version, config=config)

    def copy(self) -> 'VoxelMap':
        raise NotImplementedError

    def _state(self) -> tuple:
        """Format-specific state compared by __eq__."""
        return ()

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return (self.dimensions == other.dimensions
                and self._spawn == other._spawn
                and np.array_equal(self._storage(), other._storage())
                and self._state() == other._state())

    __hash__ = None

    def _storage(self) -> np.ndarray:
        return self.get_blocks()

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self._width}x{self._height}x{self._depth}, "
                f"spawn={self._spawn})")


class BlockMap(VoxelMap):
    """
    Map with one byte per block.

    Usage:
        level = BlockMap(bytes(16 * 16 * 16), 16, 16, 16, spawn_x=8, spawn_y=16, spawn_z=8)
        level.set_block(1, 2, 3, 20)
        assert level.get_block(1, 2, 3) == 20
    """

    def __init__(self, blocks: BlockSource,
                 width: int, height: int, depth: int,
                 spawn_x: int = 0, spawn_y: int = 0, spawn_z: int = 0,
                 spawn_rotation: int = 0, spawn_pitch: int = 0):
        """
        Args:
            blocks: Block ids, width * height * depth of them; copied
            width, height, depth: Dimensions in blocks (16-65535)
            spawn_x, spawn_y, spawn_z: Spawn position in fine units (0-65535)
            spawn_rotation, spawn_pitch: Spawn angles (0-255)
        """
        super().__init__(width, height, depth,
                         spawn_x, spawn_y, spawn_z, spawn_rotation, spawn_pitch)
        self._blocks = check_block_array(blocks, self.volume)

    @classmethod
    def from_map(cls, other: VoxelMap) -> 'BlockMap':
        """Build a map of this class from any map's base fields."""
        return cls(
            other.get_blocks(),
            other.width, other.height, other.depth,
            other.spawn_x, other.spawn_y, other.spawn_z,
            other.spawn_rotation, other.spawn_pitch,
        )

    def get_block(self, x: int, y: int, z: int) -> int:
        return int(self._blocks[self._block_offset(x, y, z)])

    def set_block(self, x: int, y: int, z: int, value: int):
        offset = self._block_offset(x, y, z)
        self._blocks[offset] = check_range(value, MIN_BLOCK_ID, MAX_BLOCK_ID, "block id")

    def get_blocks(self) -> np.ndarray:
        return self._blocks.copy()

    def get_block_bytes(self) -> bytes:
        """Block ids as raw bytes, in file order."""
        return self._blocks.tobytes()

    def copy(self) -> 'BlockMap':
        return self.from_map(self)

    def _storage(self) -> np.ndarray:
        return self._blocks
