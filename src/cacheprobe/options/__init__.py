"""
Cache Probe Options Module

- Option / OptionKind: one typed, settable option
- OptionSet: the full option table, looked up by external key
- OptionResolver: configuration plus extra_env into one option set
- OverrideEngine: extra_env overrides with auditable diagnostics
- compute_env: option set into a sorted KEY=VALUE environment

Usage:
    from cacheprobe.options import OptionResolver, compute_env

    resolved = OptionResolver(config.model).resolve()
    env = compute_env(resolved.options, resolved.passthrough)
"""

from .option import Option, OptionKind
from .option_set import OptionSet, OptionSpec, OPTION_TABLE, is_legacy_option
from .override import OverrideEngine
from .resolve import OptionResolver, ResolvedOptions, options_from_model
from .environ import ComputedEnv, compute_env, docker_env

__all__ = [
    'Option',
    'OptionKind',
    'OptionSet',
    'OptionSpec',
    'OPTION_TABLE',
    'is_legacy_option',
    'OverrideEngine',
    'OptionResolver',
    'ResolvedOptions',
    'options_from_model',
    'ComputedEnv',
    'compute_env',
    'docker_env',
]
