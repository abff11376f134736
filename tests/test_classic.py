import gzip
import io
import struct

import numpy as np
import pytest

from blockmaps.config import CodecConfig
from blockmaps.errors import MapFormatError, UnsupportedVersionError, IncompleteDataError, InvalidMapError
from blockmaps.formats import classic
from blockmaps.formats.classic import (
    ClassicMap, LevelRecord, LEVEL_CLASS, rotation_from_float, rotation_to_float, write_level_record,
)
from blockmaps.formats.object_stream import ObjectStreamWriter, ClassDesc

from conftest import SIZE, VOLUME, make_block_map


def utf(text):
    data = text.encode('utf-8')
    return struct.pack('>H', len(data)) + data


def classic_file(record, magic=0x271BB788, version=2, class_desc=LEVEL_CLASS):
    body = io.BytesIO()
    body.write(struct.pack('>IB', magic, version))
    write_level_record(body, record, class_desc)
    return gzip.compress(body.getvalue())


def zero_record(rot_spawn, x_spawn=8, y_spawn=16, z_spawn=8):
    return LevelRecord(width=SIZE, height=SIZE, depth=SIZE, blocks=bytes(VOLUME),
                       x_spawn=x_spawn, y_spawn=y_spawn, z_spawn=z_spawn, rot_spawn=rot_spawn)


def expected_payload(blocks, x_spawn, y_spawn, z_spawn, rot_spawn):
    """Level object stream assembled byte by byte."""
    primitives = [
        ('I', 'cloudColor'), ('J', 'createTime'), ('Z', 'creativeMode'), ('I', 'depth'),
        ('I', 'fogColor'), ('Z', 'growTrees'), ('I', 'height'), ('Z', 'networkMode'),
        ('F', 'rotSpawn'), ('I', 'skyColor'), ('I', 'waterLevel'), ('I', 'width'),
        ('I', 'xSpawn'), ('I', 'ySpawn'), ('I', 'zSpawn'),
    ]
    desc = b'\x72' + utf("com.mojang.minecraft.level.Level") + struct.pack('>q', 0) + b'\x03'
    desc += struct.pack('>H', 18)
    for code, name in primitives:
        desc += code.encode() + utf(name)
    desc += b'[' + utf("blocks") + b'\x74' + utf("[B")
    desc += b'L' + utf("creator") + b'\x74' + utf("Ljava/lang/String;")
    desc += b'L' + utf("name") + b'\x71' + struct.pack('>i', 0x7E0002)
    desc += b'\x78\x70'

    values = struct.pack('>i', 0xFFFFFF)        # cloudColor
    values += struct.pack('>q', 0)              # createTime
    values += b'\x00'                           # creativeMode
    values += struct.pack('>i', SIZE)           # depth
    values += struct.pack('>i', 0xFFFFFF)       # fogColor
    values += b'\x00'                           # growTrees
    values += struct.pack('>i', SIZE)           # height
    values += b'\x00'                           # networkMode
    values += struct.pack('>f', rot_spawn)      # rotSpawn
    values += struct.pack('>i', 0x99CCFF)       # skyColor
    values += struct.pack('>i', SIZE // 2)      # waterLevel
    values += struct.pack('>i', SIZE)           # width
    values += struct.pack('>iii', x_spawn, y_spawn, z_spawn)
    values += (b'\x75\x72' + utf("[B") + bytes.fromhex('acf317f8060854e0') + b'\x02\x00\x00\x78\x70'
               + struct.pack('>i', len(blocks)) + blocks)
    values += b'\x70\x70'                       # creator, name

    return (b'\x27\x1b\xb7\x88\x02' + b'\xac\xed\x00\x05'
            + b'\x73' + desc + values + b'\x78')


def test_saved_payload_matches_golden_bytes():
    blocks = bytes(i % 50 for i in range(VOLUME))
    level = ClassicMap(blocks, SIZE, SIZE, SIZE, 8, 16, 8, 128, 150)

    out = io.BytesIO()
    classic.save(level, out)

    payload = gzip.decompress(out.getvalue())
    assert payload == expected_payload(blocks, 8, 16, 8, rotation_to_float(128))


def test_sixteen_cube_scenario():
    data = classic_file(zero_record(0.5))
    level = classic.load(io.BytesIO(data))

    assert isinstance(level, ClassicMap)
    assert level.dimensions == (SIZE, SIZE, SIZE)
    assert (level.spawn_x, level.spawn_y, level.spawn_z) == (8, 16, 8)
    assert level.spawn_rotation == 128
    assert level.spawn_pitch == 150
    assert not level.get_blocks().any()

    out = io.BytesIO()
    level.save(out)
    assert classic.load(io.BytesIO(out.getvalue())) == level


@pytest.mark.parametrize("rot_spawn, rotation", [
    (1.0, 0),
    (0.5, 128),
    (-0.5, 128),
    (0.0, 0),
    (0.25, 64),
    (2.0, 0),
])
def test_rotation_decoding(rot_spawn, rotation):
    assert rotation_from_float(rot_spawn) == rotation
    level = classic.load(io.BytesIO(classic_file(zero_record(rot_spawn))))
    assert level.spawn_rotation == rotation


def test_rotation_encoding_reads_back():
    for rotation in range(256):
        assert rotation_from_float(rotation_to_float(rotation)) == rotation


@pytest.mark.parametrize("rot_spawn", [float('nan'), float('inf'), -float('inf'), 2e36, -3e38])
def test_unusable_rotation_rejected(rot_spawn):
    with pytest.raises(MapFormatError):
        rotation_from_float(rot_spawn)
    with pytest.raises(MapFormatError):
        classic.load(io.BytesIO(classic_file(zero_record(rot_spawn))))


def test_round_trip_keeps_everything_but_pitch(base_map):
    level = ClassicMap.from_map(base_map)
    out = io.BytesIO()
    classic.save(level, out)
    loaded = classic.load(io.BytesIO(out.getvalue()))

    assert np.array_equal(loaded.get_blocks(), level.get_blocks())
    assert loaded.spawn_rotation == level.spawn_rotation
    assert loaded.spawn_pitch == 150
    level.set_spawn(level.spawn_x, level.spawn_y, level.spawn_z, level.spawn_rotation, 150)
    assert loaded == level


def test_level_name_and_creator_from_config():
    level = make_block_map(ClassicMap)
    out = io.BytesIO()
    classic.save(level, out, config=CodecConfig(level_name="World", level_creator="builder"))

    obj_stream = io.BytesIO(gzip.decompress(out.getvalue())[5:])
    record = classic.read_level_record(obj_stream)
    assert record.name == "World"
    assert record.creator == "builder"


def test_uncompressed_header_variant_is_read():
    body = io.BytesIO()
    write_level_record(body, zero_record(0.5))
    data = struct.pack('>IB', 0x271BB788, 2) + gzip.compress(body.getvalue())

    level = classic.load(io.BytesIO(data))
    assert level.spawn_rotation == 128


def test_bad_magic():
    with pytest.raises(MapFormatError):
        classic.load(io.BytesIO(classic_file(zero_record(0.5), magic=0x271BB789)))


def test_bad_magic_uncompressed():
    with pytest.raises(MapFormatError):
        classic.load(io.BytesIO(b'\x00\x01\x02\x03\x04\x05'))


def test_unsupported_version():
    with pytest.raises(UnsupportedVersionError):
        classic.load(io.BytesIO(classic_file(zero_record(0.5), version=1)))


def test_save_rejects_unknown_version(base_map):
    with pytest.raises(UnsupportedVersionError):
        classic.save(ClassicMap.from_map(base_map), io.BytesIO(), version=3)


def test_wrong_class_name():
    other = ClassDesc("com.example.NotALevel", 0, LEVEL_CLASS.flags, LEVEL_CLASS.fields)
    with pytest.raises(MapFormatError):
        classic.load(io.BytesIO(classic_file(zero_record(0.5), class_desc=other)))


def test_missing_field():
    desc = ClassDesc(LEVEL_CLASS.name, 0, LEVEL_CLASS.flags,
                     tuple(f for f in LEVEL_CLASS.fields if f.name != 'xSpawn'))
    with pytest.raises(MapFormatError):
        classic.load(io.BytesIO(classic_file(zero_record(0.5), class_desc=desc)))


def test_not_an_object():
    body = io.BytesIO()
    body.write(struct.pack('>IB', 0x271BB788, 2))
    writer = ObjectStreamWriter(body)
    writer.write_header()
    writer.write_object("a string")
    with pytest.raises(MapFormatError):
        classic.load(io.BytesIO(gzip.compress(body.getvalue())))


def test_truncated_file():
    data = gzip.compress(gzip.decompress(classic_file(zero_record(0.5)))[:-100])
    with pytest.raises(IncompleteDataError):
        classic.load(io.BytesIO(data))


def test_corrupt_gzip():
    # gzip magic followed by an unknown compression method
    with pytest.raises(MapFormatError):
        classic.load(io.BytesIO(b"\x1f\x8b\x09" + bytes(20)))


def test_invalid_dimensions_propagate():
    record = LevelRecord(width=8, height=16, depth=32, blocks=bytes(VOLUME),
                         x_spawn=0, y_spawn=0, z_spawn=0, rot_spawn=0.0)
    with pytest.raises(InvalidMapError):
        classic.load(io.BytesIO(classic_file(record)))


def test_path_round_trip(tmp_path, base_map):
    path = tmp_path / "level.dat"
    classic.FORMAT.save(base_map, path)
    loaded = classic.FORMAT.load(path)
    assert np.array_equal(loaded.get_blocks(), base_map.get_blocks())
    assert list(tmp_path.iterdir()) == [path]
