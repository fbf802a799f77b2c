import logging
from typing import Callable, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .. import constants
from .option_set import OptionSet, is_legacy_option

logger = logging.getLogger(__name__)


class ComputedEnv(BaseModel):
    """
        Class represents the environment derived from a resolved option set.
    """
    model_config = ConfigDict(frozen=True)

    env: Tuple[str, ...] = ()
    env_map: Dict[str, str] = {}


def docker_env(env_map: Mapping[str, str]) -> Tuple[str, ...]:
    """Render a mapping as KEY=VALUE strings sorted by key."""
    return tuple(f"{key}={env_map[key]}" for key in sorted(env_map))


def compute_env(
    options: OptionSet,
    passthrough: Optional[Mapping[str, str]] = None,
    is_legacy: Callable[[str], bool] = is_legacy_option,
) -> ComputedEnv:
    """
    Project an option set and pass-through entries onto an environment.

    Options with a zero value ("", "false", "0") are left out, and so are
    legacy (non-namespaced) options: those may only reach the environment
    as explicit pass-through entries. Pass-through entries are applied last
    and always win.
    """
    computed: Dict[str, str] = {}
    for opt in options:
        if is_legacy(opt.env):
            continue
        val = opt.string()
        if val in constants.ZERO_VALUE_STRINGS:
            continue
        computed[opt.env] = val

    for key, val in (passthrough or {}).items():
        if key in computed:
            logger.debug(f"[EnvironmentComputer] Pass-through entry '{key}' replaces the option value.")
        computed[key] = val

    env_map = {key: computed[key] for key in sorted(computed)}
    return ComputedEnv(env=docker_env(env_map), env_map=env_map)
