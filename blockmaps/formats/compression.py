"""
Gzip helpers for the compressed regions of map files.

gzip failures are reported as map errors: a bad header or corrupt
deflate data is a MapFormatError, a stream that stops before the end
marker is an IncompleteDataError. The wrapped stream is never closed.
"""

import gzip
import zlib
from contextlib import contextmanager
from typing import BinaryIO, Iterator

from ..errors import MapError, MapFormatError, IncompleteDataError


@contextmanager
def gzip_reader(stream: BinaryIO) -> Iterator[BinaryIO]:
    """Yield a decompressing reader over the rest of ``stream``."""
    try:
        with gzip.GzipFile(fileobj=stream, mode='rb') as gz:
            yield gz
    except MapError:
        raise
    except gzip.BadGzipFile as e:
        raise MapFormatError(f"Compressed region is not gzip data: {e}") from e
    except zlib.error as e:
        raise MapFormatError(f"Corrupt compressed data: {e}") from e
    except EOFError as e:
        raise IncompleteDataError(f"Compressed data ended early: {e}") from e


@contextmanager
def gzip_writer(stream: BinaryIO, compression_level: int) -> Iterator[BinaryIO]:
    """
    Yield a compressing writer into ``stream``.

    The gzip trailer is written when the block exits. The header carries no
    file name and a zero timestamp, so equal input gives equal output.
    """
    with gzip.GzipFile(filename='', fileobj=stream, mode='wb',
                       compresslevel=compression_level, mtime=0) as gz:
        yield gz
