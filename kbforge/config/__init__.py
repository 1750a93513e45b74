"""Configuration module for kbforge."""

from .settings import (
    KBConfig,
    ZoneWeights,
    DEFAULT_CATEGORIES,
    ROOT_CATEGORY,
    OTHER_CATEGORY,
    find_config_file,
    load_config
)

__all__ = [
    'KBConfig',
    'ZoneWeights',
    'DEFAULT_CATEGORIES',
    'ROOT_CATEGORY',
    'OTHER_CATEGORY',
    'find_config_file',
    'load_config'
]
