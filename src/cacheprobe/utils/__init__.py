"""
Cache Probe Utils Module

- logger: Logging setup and configuration

Usage:
    from cacheprobe.utils import setup_logger
"""

from .logger import setup_logger, normalize_module_name, parse_module_levels

__all__ = [
    'setup_logger',
    'normalize_module_name',
    'parse_module_levels',
]
