"""
MCSharp overlay block table.

MCSharp stores server-side block types (op blocks, doors, active liquids,
message and portal blocks, ...) as ids 100-206. Clients only know the
vanilla ids, so each overlay id folds to the vanilla block it looks like.
Overlay ids without an entry fold to air; ids outside 100-206 are vanilla
and pass through unchanged.
"""

import numpy as np

OVERLAY_MIN = 100
OVERLAY_MAX = 206

# Vanilla ids used as fold targets
AIR = 0
STONE = 1
GRASS = 2
DIRT = 3
COBBLESTONE = 4
WOOD = 5
WATER = 8
STILL_WATER = 9
LAVA = 10
STILL_LAVA = 11
SAND = 12
GRAVEL = 13
LOG = 17
LEAVES = 18
SPONGE = 19
GLASS = 20
RED_CLOTH = 21
ORANGE_CLOTH = 22
GREEN_CLOTH = 25
BLUE_CLOTH = 28
PURPLE_CLOTH = 29
GRAY_CLOTH = 34
WHITE_CLOTH = 36
GOLD = 41
IRON = 42
STAIR = 44
BRICK = 45
TNT = 46
BOOKSHELF = 47
MOSSY_COBBLESTONE = 48
OBSIDIAN = 49

OVERLAY_BLOCKS = {
    # Op blocks: indestructible copies of vanilla blocks
    100: GLASS,
    101: OBSIDIAN,
    102: BRICK,
    103: STONE,
    104: COBBLESTONE,
    105: AIR,
    106: STILL_WATER,
    107: STILL_LAVA,
    108: STONE,
    109: SPONGE,
    110: WOOD,

    # Doors
    111: LOG,
    112: OBSIDIAN,
    113: GLASS,
    114: STONE,
    115: LEAVES,
    116: SAND,
    117: WOOD,
    118: GREEN_CLOTH,
    119: TNT,
    120: STAIR,

    # Toggle doors
    121: LOG,
    122: OBSIDIAN,
    123: GLASS,
    124: STONE,
    125: LEAVES,
    126: SAND,
    127: WOOD,
    128: GREEN_CLOTH,
    129: TNT,

    # Message blocks
    130: WHITE_CLOTH,
    131: GRAY_CLOTH,
    132: AIR,
    133: STILL_WATER,
    134: STILL_LAVA,

    # Explosives and fire
    135: TNT,
    136: STAIR,
    137: AIR,
    138: STILL_WATER,
    139: STILL_LAVA,

    # Active liquids
    140: WATER,
    141: LAVA,
    143: BLUE_CLOTH,
    144: ORANGE_CLOTH,
    145: WATER,
    146: LAVA,
    147: PURPLE_CLOTH,

    # Portals
    160: AIR,
    161: STILL_WATER,
    162: STILL_LAVA,
    164: AIR,
    165: AIR,
    166: STILL_WATER,
    167: STILL_LAVA,

    # Magic and fast liquids
    175: PURPLE_CLOTH,
    176: ORANGE_CLOTH,

    # Tnt variants and finite liquids
    182: TNT,
    183: RED_CLOTH,
    184: TNT,
    185: TNT,
    186: STILL_LAVA,
    187: MOSSY_COBBLESTONE,
    188: STILL_WATER,

    # Air switches and train tracks
    190: AIR,
    191: GRAVEL,
    192: GOLD,
    193: IRON,
    194: BOOKSHELF,

    # Zombie and creeper heads, bird bodies
    200: DIRT,
    201: GRASS,
    202: TNT,
    203: STILL_LAVA,
    204: LEAVES,
    205: SAND,
    206: STILL_WATER,
}


def _build_lookup() -> np.ndarray:
    lookup = np.arange(256, dtype=np.uint8)
    lookup[OVERLAY_MIN:OVERLAY_MAX + 1] = AIR
    for code, vanilla in OVERLAY_BLOCKS.items():
        lookup[code] = vanilla
    return lookup


# Indexed by raw id, gives the id a client should see
NORMALIZE_LOOKUP = _build_lookup()


def normalize_block(block_id: int) -> int:
    """Fold one raw id to its vanilla id."""
    return int(NORMALIZE_LOOKUP[block_id])


def normalize_blocks(blocks: np.ndarray) -> np.ndarray:
    """Fold an array of raw ids; returns a new uint8 array."""
    return NORMALIZE_LOOKUP[blocks]
