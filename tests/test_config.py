import io

import pytest

from blockmaps.config import (
    CodecConfig, CONFIG_ENV_VAR, get_config, load_config, resolve_config, set_config,
)
from blockmaps.errors import UnsupportedVersionError
from blockmaps.formats import mcsharp

from test_mcsharp import lvl_file


def write_ini(tmp_path, text):
    path = tmp_path / "codecs.ini"
    path.write_text(text, encoding='utf-8')
    return path


def test_load_all_keys(tmp_path):
    path = write_ini(tmp_path, """
[codecs]
compression_level = 1
allow_legacy_byte_order = no
level_name = Spawn Town
level_creator = builder
origin_tag = converter
""")
    config = load_config(path)
    assert config == CodecConfig(compression_level=1, allow_legacy_byte_order=False,
                                 level_name="Spawn Town", level_creator="builder",
                                 origin_tag="converter")


def test_missing_keys_keep_defaults(tmp_path):
    path = write_ini(tmp_path, "[codecs]\nlevel_name = x\n")
    config = load_config(path)
    assert config.compression_level == CodecConfig().compression_level
    assert config.allow_legacy_byte_order
    assert config.origin_tag == "blockmaps"


def test_missing_section_gives_defaults(tmp_path):
    path = write_ini(tmp_path, "[other]\nkey = value\n")
    assert load_config(path) == CodecConfig()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.ini")


@pytest.mark.parametrize("text", [
    "[codecs]\ncompression_level = fast\n",
    "[codecs]\ncompression_level = 10\n",
    "[codecs]\nallow_legacy_byte_order = maybe\n",
])
def test_invalid_values(tmp_path, text):
    with pytest.raises(ValueError):
        load_config(write_ini(tmp_path, text))


def test_oversized_strings_rejected():
    with pytest.raises(ValueError):
        CodecConfig(level_name="x" * 65536)
    with pytest.raises(ValueError):
        CodecConfig(origin_tag="é" * 32768)


def test_default_config_from_environment(tmp_path, monkeypatch):
    path = write_ini(tmp_path, "[codecs]\nallow_legacy_byte_order = false\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    set_config(None)

    assert get_config().allow_legacy_byte_order is False
    assert resolve_config(None) is get_config()
    with pytest.raises(UnsupportedVersionError):
        mcsharp.load(io.BytesIO(lvl_file(order='<')))


def test_explicit_config_wins():
    explicit = CodecConfig(origin_tag="explicit")
    set_config(CodecConfig(origin_tag="default"))
    assert resolve_config(explicit) is explicit
    assert resolve_config(None).origin_tag == "default"
