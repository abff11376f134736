import numpy as np
import pytest

from blockmaps.config import CodecConfig, set_config
from blockmaps.map import BlockMap

SIZE = 16
VOLUME = SIZE ** 3


def pattern_blocks(volume=VOLUME, modulo=50):
    """Deterministic block ids in 0..modulo-1."""
    return (np.arange(volume) % modulo).astype(np.uint8)


def make_block_map(cls=BlockMap, width=SIZE, height=SIZE, depth=SIZE, blocks=None, **kwargs):
    if blocks is None:
        blocks = pattern_blocks(width * height * depth)
    return cls(blocks, width, height, depth, **kwargs)


@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    """Every test starts from the built-in codec defaults."""
    monkeypatch.delenv("BLOCKMAPS_CONFIG", raising=False)
    set_config(CodecConfig())
    yield
    set_config(None)


@pytest.fixture
def base_map():
    return make_block_map(spawn_x=8, spawn_y=16, spawn_z=8, spawn_rotation=64, spawn_pitch=32)
