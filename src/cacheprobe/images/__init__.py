"""
Cache Probe Images Module

- ImageReference: `[registry/]repository[:tag][@digest]` parsing
- RegistryClient: anonymous OCI distribution client (httpx)
- ImageBinaryLocator: pulls one file out of a remote image's layers
"""

from .reference import ImageReference
from .registry import RegistryClient, RemoteImage, RemoteLayer
from .locator import ImageBinaryLocator, normalize_entry

__all__ = [
    'ImageReference',
    'RegistryClient',
    'RemoteImage',
    'RemoteLayer',
    'ImageBinaryLocator',
    'normalize_entry',
]
