import logging
from typing import Dict, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .. import constants
from ..config import ConfigModel
from ..datacls.diagnostics import Diagnostics
from .option_set import OptionSet
from .override import OverrideEngine

logger = logging.getLogger(__name__)

# Optional configuration fields that map one-to-one onto an option attribute.
PROVIDER_FIELDS = (
    "base_image_cache_dir",
    "build_context_path",
    "cache_ttl_days",
    "devcontainer_dir",
    "devcontainer_json_path",
    "dockerfile_path",
    "docker_config_base64",
    "exit_on_build_failure",
    "fallback_image",
    "git_clone_depth",
    "git_clone_single_branch",
    "git_http_proxy_url",
    "git_password",
    "git_ssh_private_key_path",
    "git_ssh_private_key_base64",
    "git_username",
    "ignore_paths",
    "insecure",
    "ssl_cert_base64",
    "verbose",
    "workspace_folder",
)


def options_from_model(model: ConfigModel) -> Tuple[OptionSet, Set[str]]:
    """
    Convert a configuration model into an option set.

    Returns the options and the keys that were set explicitly (provenance).
    The required options are always taken from the model and are never
    recorded as provenance: nothing may override them anyway.
    """
    opts = OptionSet()
    provenance: Set[str] = set()

    opts.assign(constants.CACHE_REPO_KEY, model.cache_repo)
    opts.assign(constants.GIT_URL_KEY, model.git_url)

    for field in PROVIDER_FIELDS:
        value = getattr(model, field)
        if value is None:
            continue
        key = opts.key_for(field)
        opts.assign(key, value)
        provenance.add(key)

    if model.build_secrets is not None:
        # Secrets come in as a map but the builder expects sorted KEY=VALUE items.
        key = opts.key_for("build_secrets")
        opts.assign(key, sorted(f"{k}={v}" for k, v in model.build_secrets.items()))
        provenance.add(key)

    # Always build from the remote repository unless told otherwise. The
    # default is not provenance, so overriding it is not a provider conflict.
    if model.remote_repo_build_mode is None:
        opts.assign(constants.REMOTE_REPO_BUILD_MODE_KEY, True)
    else:
        opts.assign(constants.REMOTE_REPO_BUILD_MODE_KEY, model.remote_repo_build_mode)
        provenance.add(constants.REMOTE_REPO_BUILD_MODE_KEY)

    logger.debug(f"[OptionResolver] {len(provenance)} options set by the provider.")
    return opts, provenance


class ResolvedOptions(BaseModel):
    """
        Class holds the outcome of resolving a configuration into options.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    options: OptionSet
    provenance: Set[str] = Field(default_factory=set)
    passthrough: Dict[str, str] = Field(default_factory=dict)
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


class OptionResolver:
    """Runs explicit configuration and then extra_env overrides into one option set."""

    def __init__(self, model: ConfigModel):
        self.model = model

    def resolve(self) -> ResolvedOptions:
        logger.debug("[OptionResolver] Resolving options from configuration...")
        opts, provenance = options_from_model(self.model)
        engine = OverrideEngine(opts, provenance)
        diags = engine.apply(self.model.extra_env)
        passthrough = engine.passthrough(self.model.extra_env)
        logger.debug(
            f"[OptionResolver] Resolved with {diags.warnings_count} warnings, "
            f"{diags.errors_count} errors and {len(passthrough)} pass-through entries."
        )
        return ResolvedOptions(
            options=opts,
            provenance=provenance,
            passthrough=passthrough,
            diagnostics=diags,
        )
