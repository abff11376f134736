#!/usr/bin/env python3
"""
Codec Configuration

Parser for the optional codec settings INI file.

INI Format:
    [codecs]
    compression_level = 9
    allow_legacy_byte_order = true
    level_name = My World
    level_creator = someone
    origin_tag = blockmaps

Every key is optional; missing keys keep their defaults. The process-wide
default configuration is read from the file named by the BLOCKMAPS_CONFIG
environment variable on first use, or built from defaults when unset.
"""

import os
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..constants import DEFAULT_COMPRESSION_LEVEL, MAX_U16
from ..utils import logDebug

CONFIG_ENV_VAR = "BLOCKMAPS_CONFIG"
CONFIG_SECTION = "codecs"

_TRUE_VALUES = ('true', '1', 'yes', 'on')
_FALSE_VALUES = ('false', '0', 'no', 'off')


@dataclass(frozen=True)
class CodecConfig:
    """Settings shared by the map codecs"""
    compression_level: int = DEFAULT_COMPRESSION_LEVEL  # gzip level for compressed regions
    allow_legacy_byte_order: bool = True  # Accept little-endian MCSharp files on load
    level_name: str = ""  # Classic Level.name, empty writes null
    level_creator: str = ""  # Classic Level.creator, empty writes null
    origin_tag: str = "blockmaps"  # RUM _origin metadata for converted maps

    def __post_init__(self):
        """Validate codec configuration"""
        if not 0 <= self.compression_level <= 9:
            raise ValueError(f"compression_level {self.compression_level} out of range (0-9)")

        for key in ('level_name', 'level_creator'):
            if len(getattr(self, key).encode('utf-8')) > MAX_U16:
                raise ValueError(f"{key} is longer than {MAX_U16} bytes")

        if len(self.origin_tag.encode('utf-8')) > MAX_U16:
            raise ValueError(f"origin_tag is longer than {MAX_U16} bytes")


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for '{key}': {value}")


def load_config(config_path: Union[str, Path]) -> CodecConfig:
    """
    Load codec configuration from an INI file.

    Args:
        config_path: Path to the INI file

    Returns:
        Validated CodecConfig

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If a value cannot be parsed or is out of range
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_path, encoding='utf-8')

    if not parser.has_section(CONFIG_SECTION):
        logDebug(f"No [{CONFIG_SECTION}] section in {config_path}, using defaults")
        return CodecConfig()

    data = parser[CONFIG_SECTION]
    kwargs = {}

    level_str = data.get('compression_level')
    if level_str is not None:
        try:
            kwargs['compression_level'] = int(level_str)
        except ValueError as e:
            raise ValueError(f"Invalid compression_level: {level_str}") from e

    legacy_str = data.get('allow_legacy_byte_order')
    if legacy_str is not None:
        kwargs['allow_legacy_byte_order'] = _parse_bool('allow_legacy_byte_order', legacy_str)

    for key in ('level_name', 'level_creator', 'origin_tag'):
        value = data.get(key)
        if value is not None:
            kwargs[key] = value.strip()

    config = CodecConfig(**kwargs)
    logDebug(f"Loaded codec config from {config_path}: {config}")
    return config


_default_config: Optional[CodecConfig] = None


def get_config() -> CodecConfig:
    """
    Get the process-wide default configuration.

    Loaded lazily from BLOCKMAPS_CONFIG when that variable is set.
    """
    global _default_config
    if _default_config is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        _default_config = load_config(env_path) if env_path else CodecConfig()
    return _default_config


def set_config(config: Optional[CodecConfig]):
    """
    Replace the process-wide default configuration.

    Args:
        config: New default, or None to reload from the environment on next use
    """
    global _default_config
    _default_config = config


def resolve_config(config: Optional[CodecConfig]) -> CodecConfig:
    """Return ``config`` or the process default when it is None."""
    return config if config is not None else get_config()
