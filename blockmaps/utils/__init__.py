# Shared utilities
from .logging import (
    MAX_RECORDED_MESSAGES,
    log, logWarning, logError, logDebug, init_logging, close_logging, log_context,
    get_counts, get_warnings, get_errors,
)
from .binary import BinaryReader, BinaryWriter, BIG_ENDIAN, LITTLE_ENDIAN
