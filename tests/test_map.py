import numpy as np
import pytest

from blockmaps.errors import InvalidMapError, OutOfBoundsError
from blockmaps.formats import ClassicMap, FCraftMap, MCSharpMap, RUMMap
from blockmaps.map import BlockMap, Spawn

from conftest import SIZE, VOLUME, make_block_map, pattern_blocks


def test_index_layout():
    level = make_block_map(width=16, height=17, depth=18)
    x, y, z = 3, 5, 7
    assert level.get_block(x, y, z) == ((y * 18 + z) * 16 + x) % 50


def any_map(cls, width, height, depth, volume):
    if cls is RUMMap:
        return RUMMap(np.zeros((volume, 2), dtype=np.uint8), width, height, depth)
    return cls(bytes(volume), width, height, depth)


MAP_CLASSES = [BlockMap, ClassicMap, FCraftMap, MCSharpMap, RUMMap]


@pytest.mark.parametrize("dims", [
    (15, 16, 16), (16, 15, 16), (16, 16, 15),
    (65536, 16, 16), (16, 65536, 16), (16, 16, 65536), (0, 16, 16),
])
@pytest.mark.parametrize("cls", MAP_CLASSES)
def test_dimensions_out_of_range(cls, dims):
    with pytest.raises(InvalidMapError):
        any_map(cls, *dims, volume=VOLUME)


@pytest.mark.parametrize("cls", MAP_CLASSES)
def test_dimension_limits_are_inclusive(cls):
    level = any_map(cls, 16, 16, 65535, volume=16 * 16 * 65535)
    assert level.dimensions == (16, 16, 65535)


def test_block_array_must_match_dimensions():
    with pytest.raises(InvalidMapError):
        BlockMap(bytes(VOLUME + 1), SIZE, SIZE, SIZE)


def test_block_ids_out_of_range():
    blocks = np.zeros(VOLUME, dtype=np.int32)
    blocks[10] = 256
    with pytest.raises(InvalidMapError):
        BlockMap(blocks, SIZE, SIZE, SIZE)


@pytest.mark.parametrize("coords", [(16, 0, 0), (0, 16, 0), (0, 0, 16), (-1, 0, 0), (0, -1, 0), (0, 0, -1)])
@pytest.mark.parametrize("cls", [BlockMap, ClassicMap, FCraftMap, MCSharpMap])
def test_out_of_bounds_access(cls, coords):
    level = make_block_map(cls)
    with pytest.raises(OutOfBoundsError):
        level.get_block(*coords)
    with pytest.raises(IndexError):
        level.set_block(*coords, 1)


@pytest.mark.parametrize("coords", [(16, 0, 0), (0, 0, -1)])
def test_rum_out_of_bounds_access(coords):
    level = RUMMap(np.zeros((VOLUME, 2), dtype=np.uint8), SIZE, SIZE, SIZE)
    with pytest.raises(OutOfBoundsError):
        level.get_block(*coords)
    with pytest.raises(OutOfBoundsError):
        level.get_record(*coords)


def test_set_block_validates_value():
    level = make_block_map()
    with pytest.raises(InvalidMapError):
        level.set_block(0, 0, 0, 256)
    with pytest.raises(InvalidMapError):
        level.set_block(0, 0, 0, 1.0)
    level.set_block(0, 0, 0, 255)
    assert level.get_block(0, 0, 0) == 255


def test_spawn_must_be_inside_map():
    # 16 blocks * 32 units per block
    make_block_map(spawn_x=511, spawn_y=511, spawn_z=511)
    with pytest.raises(InvalidMapError):
        make_block_map(spawn_x=512)


def test_set_spawn_keeps_old_spawn_on_failure(base_map):
    before = base_map.spawn
    with pytest.raises(InvalidMapError):
        base_map.set_spawn(0, 0, 0, 256, 0)
    with pytest.raises(InvalidMapError):
        base_map.set_spawn(600, 0, 0, 0, 0)
    assert base_map.spawn == before

    base_map.set_spawn(32, 64, 96, 10, 20)
    assert base_map.spawn == Spawn(32, 64, 96, 10, 20)


def test_storage_is_owned():
    source = pattern_blocks()
    level = BlockMap(source, SIZE, SIZE, SIZE)
    source[0] = 42
    assert level.get_block(0, 0, 0) == 0

    blocks = level.get_blocks()
    blocks[0] = 42
    assert level.get_block(0, 0, 0) == 0


def test_copy_is_independent(base_map):
    clone = base_map.copy()
    assert clone == base_map
    assert type(clone) is BlockMap
    clone.set_block(1, 1, 1, 7)
    assert clone != base_map


def test_equality_requires_same_type(base_map):
    assert ClassicMap.from_map(base_map) != base_map


def test_player_bounds_uses_floor_division(base_map):
    assert not base_map.is_player_out_of_bounds(31, 0, 0)
    assert base_map.is_player_out_of_bounds(16 * 32, 0, 0)
    assert base_map.is_player_out_of_bounds(-1, 0, 0)
