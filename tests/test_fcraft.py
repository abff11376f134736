import gzip
import io
import struct
import threading

import numpy as np
import pytest

from blockmaps.errors import (
    MapFormatError, UnsupportedVersionError, IncompleteDataError, InvalidMapError,
)
from blockmaps.formats import fcraft
from blockmaps.formats.fcraft import FCraftMap

from conftest import SIZE, VOLUME, make_block_map


def fcm_header(width=SIZE, height=SIZE, depth=SIZE, spawn=(8, 16, 8), rotation=1, pitch=2,
               metadata=(), version=0xFC000002):
    data = struct.pack('<I3H3HBB', version, width, height, depth, *spawn, rotation, pitch)
    data += struct.pack('<H', len(metadata))
    for key, value in metadata:
        data += struct.pack('<H', len(key)) + key + struct.pack('<H', len(value)) + value
    return data


def test_load_hand_built_file():
    blocks = bytes(i % 7 for i in range(VOLUME))
    data = fcm_header(metadata=[(b'author', b'me'), (b'caf\xc3\xa9', b'')]) + gzip.compress(blocks)

    level = fcraft.load(io.BytesIO(data))

    assert level.dimensions == (SIZE, SIZE, SIZE)
    assert level.spawn.rotation == 1 and level.spawn.pitch == 2
    assert level.get_metadata_map() == {"author": "me", "café": ""}
    assert level.get_block_bytes() == blocks


def test_round_trip(base_map):
    level = FCraftMap.from_map(base_map)
    level.set_metadata("motd", "welcome")
    level.set_metadata("ключ", "значение")

    out = io.BytesIO()
    fcraft.save(level, out)
    loaded = fcraft.load(io.BytesIO(out.getvalue()))

    assert loaded == level
    assert loaded.get_metadata("ключ") == "значение"


def test_saved_header_layout(base_map):
    level = FCraftMap.from_map(base_map)
    level.set_metadata("k", "vv")
    out = io.BytesIO()
    fcraft.save(level, out)

    expected = fcm_header(spawn=(8, 16, 8), rotation=64, pitch=32, metadata=[(b'k', b'vv')])
    data = out.getvalue()
    assert data.startswith(expected)
    assert gzip.decompress(data[len(expected):]) == base_map.get_blocks().tobytes()


def test_unsupported_version():
    data = fcm_header(version=0xFC000001) + gzip.compress(bytes(VOLUME))
    with pytest.raises(UnsupportedVersionError):
        fcraft.load(io.BytesIO(data))


def test_foreign_magic_rejected():
    with pytest.raises(MapFormatError):
        fcraft.load(io.BytesIO(b'\x88\xb7\x1b\x27' + bytes(40)))


def test_oversized_dimensions_rejected_before_allocation():
    data = fcm_header(width=65535, height=65535, depth=65535, spawn=(0, 0, 0))
    with pytest.raises(MapFormatError):
        fcraft.load(io.BytesIO(data))


def test_truncated_metadata():
    data = fcm_header(metadata=[(b'author', b'me')])[:-1]
    with pytest.raises(IncompleteDataError):
        fcraft.load(io.BytesIO(data))


def test_truncated_blocks():
    data = fcm_header() + gzip.compress(bytes(VOLUME - 1))
    with pytest.raises(IncompleteDataError):
        fcraft.load(io.BytesIO(data))


def test_invalid_utf8_metadata():
    data = fcm_header(metadata=[(b'\xff\xfe', b'x')]) + gzip.compress(bytes(VOLUME))
    with pytest.raises(MapFormatError):
        fcraft.load(io.BytesIO(data))


def test_invalid_spawn_from_file():
    data = fcm_header(spawn=(SIZE * 32, 0, 0)) + gzip.compress(bytes(VOLUME))
    with pytest.raises(InvalidMapError):
        fcraft.load(io.BytesIO(data))


def test_metadata_is_copied():
    level = make_block_map(FCraftMap, metadata={"a": "1"})
    snapshot = level.get_metadata_map()
    snapshot["b"] = "2"
    assert level.get_metadata("b") is None

    level.remove_metadata("a")
    level.remove_metadata("missing")
    assert level.get_metadata_map() == {}


def test_metadata_limits():
    level = make_block_map(FCraftMap)
    with pytest.raises(InvalidMapError):
        level.set_metadata("k", "x" * 65536)
    with pytest.raises(InvalidMapError):
        level.set_metadata("é" * 32768, "v")
    with pytest.raises(InvalidMapError):
        level.set_metadata("k", b"bytes")
    level.set_metadata("k", "x" * 65535)


def test_concurrent_metadata_updates():
    level = make_block_map(FCraftMap)

    def worker(prefix):
        for i in range(200):
            level.set_metadata(f"{prefix}{i}", str(i))
            level.get_metadata_map()
            if i % 2:
                level.remove_metadata(f"{prefix}{i}")

    threads = [threading.Thread(target=worker, args=(name,)) for name in "abcd"]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(level.get_metadata_map()) == 4 * 100


def test_convert_from_other_format_starts_empty(base_map):
    level = fcraft.FORMAT.convert(base_map)
    assert isinstance(level, FCraftMap)
    assert level.get_metadata_map() == {}
    assert np.array_equal(level.get_blocks(), base_map.get_blocks())


def test_convert_same_format_keeps_metadata():
    level = make_block_map(FCraftMap, metadata={"a": "1"})
    converted = fcraft.FORMAT.convert(level)
    assert converted == level
    assert converted is not level


def test_failed_path_save_leaves_no_file(tmp_path, base_map):
    path = tmp_path / "world.fcm"
    with pytest.raises(UnsupportedVersionError):
        fcraft.save(base_map, path, version=1)
    assert not path.exists()

    level = FCraftMap.from_map(base_map)
    fcraft.save(level, path)
    original = path.read_bytes()

    class Boom(Exception):
        pass

    class BrokenMap(FCraftMap):
        def get_blocks(self):
            raise Boom()

    broken = BrokenMap(base_map.get_blocks(), SIZE, SIZE, SIZE)
    with pytest.raises(Boom):
        fcraft.save(broken, path)
    assert path.read_bytes() == original
    assert [p.name for p in tmp_path.iterdir()] == ["world.fcm"]
