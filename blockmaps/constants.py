"""
Constants used across the map models and codecs.

Consolidates limits, magic numbers and format versions so the codecs
share one definition of each.
"""

# Map dimension limits (blocks)
MIN_WIDTH = MIN_HEIGHT = MIN_DEPTH = 16
MAX_WIDTH = MAX_HEIGHT = MAX_DEPTH = 65535

# Spawn position limits (fine-position units)
MIN_SPAWN_COORD = 0
MAX_SPAWN_COORD = 65535

# Spawn angle limits
MIN_SPAWN_ANGLE = 0
MAX_SPAWN_ANGLE = 255

# Fine-position units per block; spawn / SPAWN_UNIT must be inside the map
SPAWN_UNIT = 32

# Block array size limits
MIN_BLOCK_DATA_SIZE = MIN_WIDTH * MIN_HEIGHT * MIN_DEPTH
MAX_BLOCK_DATA_SIZE = 2 ** 31 - 1

# Block id range
MIN_BLOCK_ID = 0
MAX_BLOCK_ID = 255

# Largest value of the u16 length and count fields used by the metadata tables
MAX_U16 = 0xFFFF
MAX_U32 = 0xFFFFFFFF

# Classic (.dat) format
CLASSIC_MAGIC = 0x271BB788
CLASSIC_VERSION_2 = 2
# Pitch is not stored by version 2 files
CLASSIC_DEFAULT_PITCH = 150
CLASSIC_LEVEL_CLASS = "com.mojang.minecraft.level.Level"
# Level fields the map model does not carry, written with the game's defaults
CLASSIC_SKY_COLOR = 0x99CCFF
CLASSIC_FOG_COLOR = 0xFFFFFF
CLASSIC_CLOUD_COLOR = 0xFFFFFF

# fCraft (.fcm) format
FCRAFT_VERSION_2 = 0xFC000002

# MCSharp (.lvl) format
MCSHARP_VERSION_1 = 1874

# RUM (.rum) format
RUM_VERSION_1 = 0xAA000001
RUM_MIN_RECORD_LENGTH = 2
RUM_MAX_RECORD_LENGTH = 257
RUM_MAX_METADATA_ENTRIES = 65535
RUM_ORIGIN_KEY = "_origin"

# Default gzip compression level for compressed regions
DEFAULT_COMPRESSION_LEVEL = 9
