"""
Cache Probe

Resolves the options of a cached envbuilder image and checks a registry
cache for an image built from them, without building anything.

Main modules:
- options: option table, provider options, extra_env overrides and the
  derived environment
- images: image references, an anonymous registry client and the binary
  locator that pulls the builder out of its image
- probe: runs the builder in cache-only mode
- reconciler: create / read / update / delete of one cached-image resource
- config: configuration loading and validation
- datacls: diagnostics and persisted state
- utils: logging setup

Quick start example:
```python
import asyncio
from cacheprobe import CacheProbeReconciler, Config, RegistryClient, BinaryProbe, setup_logger

setup_logger()

config = Config.from_file("cached_image.yml")
async with RegistryClient() as registry:
    result = await CacheProbeReconciler(registry, BinaryProbe()).create(config)
print(result.phase, result.state)
```
"""

from .protocols import ImageProtocol, LayerProtocol, RegistryProtocol, ProbeProtocol, ProbeRequest, ManifestInfo
from .config import Config, ConfigModel
from .options import OptionResolver, OverrideEngine, OptionSet, compute_env
from .images import ImageReference, RegistryClient, ImageBinaryLocator
from .probe import BinaryProbe
from .reconciler import CacheProbeReconciler, ProbePhase, ReconcileResult
from .datacls.diagnostics import Diagnostic, Diagnostics, Severity
from .datacls.state import ResourceState
from .utils import setup_logger
from .exceptions import (
    CacheProbeError,
    ConfigurationError,
    ConfigValidationError,
    OptionError,
    RegistryError,
    NotFoundError,
    ProbeError,
)

__version__ = "0.3.0"

__all__ = [
    # Version
    '__version__',
    # Protocols
    'ImageProtocol',
    'LayerProtocol',
    'RegistryProtocol',
    'ProbeProtocol',
    'ProbeRequest',
    'ManifestInfo',
    # Config
    'Config',
    'ConfigModel',
    # Options
    'OptionResolver',
    'OverrideEngine',
    'OptionSet',
    'compute_env',
    # Images
    'ImageReference',
    'RegistryClient',
    'ImageBinaryLocator',
    # Probe
    'BinaryProbe',
    # Reconciler
    'CacheProbeReconciler',
    'ProbePhase',
    'ReconcileResult',
    # Data
    'Diagnostic',
    'Diagnostics',
    'Severity',
    'ResourceState',
    # Logging
    'setup_logger',
    # Exceptions
    'CacheProbeError',
    'ConfigurationError',
    'ConfigValidationError',
    'OptionError',
    'RegistryError',
    'NotFoundError',
    'ProbeError',
]
