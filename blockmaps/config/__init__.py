#!/usr/bin/env python3
"""
Config module for codec settings.
"""

from .codec_config import (
    CodecConfig, CONFIG_ENV_VAR, load_config, get_config, set_config, resolve_config,
)

__all__ = ['CodecConfig', 'CONFIG_ENV_VAR', 'load_config', 'get_config', 'set_config', 'resolve_config']
