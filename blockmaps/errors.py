"""
Error types raised by map models and codecs.

Every codec failure surfaces as one of these kinds:
- MapFormatError: bad magic, corrupt structure, length mismatch
- IncompleteDataError: the stream ended before a field was fully read
- UnsupportedVersionError: known format, unknown version
- InvalidMapError: a field outside its legal range
- OutOfBoundsError: block access outside the grid
"""


class MapError(Exception):
    """Base class for all blockmaps errors."""


class MapFormatError(MapError, ValueError):
    """The byte stream does not hold a well-formed map of the expected format."""


class IncompleteDataError(MapFormatError, EOFError):
    """The byte stream ended before a fixed field or bulk region was read."""


class UnsupportedVersionError(MapFormatError):
    """The format was recognized but its version is not supported."""

    def __init__(self, message: str, version: int = None):
        super().__init__(message)
        self.version = version


class InvalidMapError(MapError, ValueError):
    """A map field (dimension, spawn, angle, metadata, record length) is out of range."""


class OutOfBoundsError(MapError, IndexError):
    """A block coordinate lies outside the map."""
