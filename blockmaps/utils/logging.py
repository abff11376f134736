"""
Logging for the map codecs.

Nothing is printed until init_logging() is called; after that messages go
to the console (unless console=False) and, when a path is given, to a log
file. Debug messages are written to the log file only. Warnings and errors
are counted, and the most recent MAX_RECORDED_MESSAGES of each are kept so
a batch conversion can report them at the end. Inside a log_context()
block every message is tagged with the name of the map file being read or
written.

Usage:
    from blockmaps.utils import log, logWarning, logError, logDebug, init_logging

    init_logging(Path("convert.log"))         # console plus log file

    with log_context("main.lvl"):
        logWarning("legacy byte order")       # "main.lvl: legacy byte order"
    log("Converted 3 maps")                   # Info
    logError("world.rum could not be saved")  # Operation failed
    logDebug("fCraft map 64x64x64")           # Log file only
"""

import sys
import atexit
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime
from collections import deque
from typing import Deque, Iterator, List, Optional, Tuple


# ANSI color codes
class Colors:
    YELLOW = '\033[93m'
    RED = '\033[91m'
    RESET = '\033[0m'


RULE = "=" * 70
MAX_RECORDED_MESSAGES = 1000

_log_file = None
_log_path: Optional[Path] = None
_atexit_registered = False
_console = False
_context: Optional[str] = None
_warning_count = 0
_error_count = 0
_warnings: Deque[str] = deque(maxlen=MAX_RECORDED_MESSAGES)
_errors: Deque[str] = deque(maxlen=MAX_RECORDED_MESSAGES)


def _stamp() -> str:
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S')


def init_logging(log_path: Optional[Path] = None, console: bool = True):
    """
    Begin a logging session and clear the warning and error records.

    Args:
        log_path: Log file to mirror messages into. When omitted, debug
            output is discarded.
        console: Echo info, warnings and errors to stdout/stderr
    """
    global _log_file, _log_path, _atexit_registered, _console
    global _warning_count, _error_count

    close_logging()
    _console = console
    _warning_count = 0
    _error_count = 0
    _warnings.clear()
    _errors.clear()

    if log_path is None:
        return

    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        _log_file = open(path, 'w', encoding='utf-8')
    except OSError as e:
        print(f"Warning: Could not open log file {path}: {e}", file=sys.stderr)
        return
    _log_path = path
    _write_to_file(f"Log started: {_stamp()}\n{RULE}\n")

    if not _atexit_registered:
        atexit.register(close_logging)
        _atexit_registered = True


def close_logging():
    """Write the closing line and close the log file, if one is open."""
    global _log_file, _log_path

    if _log_file is None:
        return
    _write_to_file(f"\n{RULE}\nLog finished: {_stamp()}")
    try:
        _log_file.close()
    except OSError:
        pass
    _log_file = None
    _log_path = None


@contextmanager
def log_context(name: Optional[str]) -> Iterator[None]:
    """Tag messages logged inside the block with ``name``; nests."""
    global _context
    previous = _context
    _context = name
    try:
        yield
    finally:
        _context = previous


def get_counts() -> Tuple[int, int]:
    """Return (error_count, warning_count)."""
    return _error_count, _warning_count


def get_warnings() -> List[str]:
    """Most recent warnings, oldest first."""
    return list(_warnings)


def get_errors() -> List[str]:
    return list(_errors)


def _tagged(msg: str) -> str:
    return f"{_context}: {msg}" if _context else msg


def _write_to_file(msg: str, end: str = "\n"):
    if _log_file is None:
        return
    try:
        _log_file.write(msg + end)
        _log_file.flush()
    except OSError:
        pass


def log(msg: str = "", end: str = "\n"):
    """Info message, to the console and the log file."""
    msg = _tagged(msg) if msg else msg
    if _console:
        print(msg, end=end)
    _write_to_file(msg, end)


def logWarning(msg: str, end: str = "\n"):
    """
    Warning message, shown in yellow and recorded.

    Used when input is accepted through a compatibility path, such as an
    MCSharp map in the legacy byte order.
    """
    global _warning_count
    msg = _tagged(msg)
    _warning_count += 1
    _warnings.append(msg)
    line = f"Warning: {msg}"
    if _console:
        print(f"{Colors.YELLOW}{line}{Colors.RESET}", end=end)
    _write_to_file(line, end)


def logError(msg: str, end: str = "\n"):
    """Error message, shown in red on stderr and recorded."""
    global _error_count
    msg = _tagged(msg)
    _error_count += 1
    _errors.append(msg)
    line = f"ERROR: {msg}"
    if _console:
        print(f"{Colors.RED}{line}{Colors.RESET}", end=end, file=sys.stderr)
    _write_to_file(line, end)


def logDebug(msg: str, end: str = "\n"):
    """Debug message, written to the log file only."""
    _write_to_file(f"[DEBUG] {_tagged(msg)}", end)
