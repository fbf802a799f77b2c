"""
The canonical option table.

Every option the builder understands is listed once in `OPTION_TABLE`,
keyed by its external environment name. An `OptionSet` instantiates the
whole table, so lookups by name never need a runtime type check: each entry
already knows whether it holds a bool, an int, a string or a string list.
"""

import logging
from typing import Any, Dict, Iterator, List, NamedTuple

from .. import constants
from ..exceptions import UnknownOptionError
from .option import Option, OptionKind

logger = logging.getLogger(__name__)


class OptionSpec(NamedTuple):
    env: str
    kind: OptionKind
    attr: str
    description: str


B, I, S, L = OptionKind.BOOL, OptionKind.INT, OptionKind.STRING, OptionKind.STRING_LIST

OPTION_TABLE = (
    OptionSpec("ENVBUILDER_BASE_IMAGE_CACHE_DIR", S, "base_image_cache_dir",
               "Read-only directory where the base image can be found."),
    OptionSpec("ENVBUILDER_BINARY_PATH", S, "binary_path",
               "Path to the builder binary used to reproduce the final layer."),
    OptionSpec("ENVBUILDER_BUILD_CONTEXT_PATH", S, "build_context_path",
               "Build context relative to the workspace folder."),
    OptionSpec("ENVBUILDER_BUILD_SECRETS", L, "build_secrets",
               "KEY=VALUE secrets made available during the build."),
    OptionSpec("ENVBUILDER_CACHE_REPO", S, "cache_repo",
               "Registry repository used as the layer cache."),
    OptionSpec("ENVBUILDER_CACHE_TTL_DAYS", I, "cache_ttl_days",
               "Days to use cached layers before expiring them."),
    OptionSpec("CODER_AGENT_SUBSYSTEM", L, "coder_agent_subsystem",
               "Agent subsystems to report."),
    OptionSpec("CODER_AGENT_TOKEN", S, "coder_agent_token",
               "Authentication token for the agent."),
    OptionSpec("CODER_AGENT_URL", S, "coder_agent_url",
               "URL the agent reports logs to."),
    OptionSpec("ENVBUILDER_DEVCONTAINER_DIR", S, "devcontainer_dir",
               "Folder containing devcontainer.json."),
    OptionSpec("ENVBUILDER_DEVCONTAINER_JSON_PATH", S, "devcontainer_json_path",
               "Path to the devcontainer.json file."),
    OptionSpec("ENVBUILDER_DOCKER_CONFIG_BASE64", S, "docker_config_base64",
               "Base64 encoded Docker config for private registries."),
    OptionSpec("ENVBUILDER_DOCKERFILE_PATH", S, "dockerfile_path",
               "Relative path to a Dockerfile."),
    OptionSpec("ENVBUILDER_EXIT_ON_BUILD_FAILURE", B, "exit_on_build_failure",
               "Terminate on build failure instead of using the fallback image."),
    OptionSpec("ENVBUILDER_EXPORT_ENV_FILE", S, "export_env_file",
               "File to export the resulting environment to."),
    OptionSpec("ENVBUILDER_FALLBACK_IMAGE", S, "fallback_image",
               "Image used when no build definition is found."),
    OptionSpec("ENVBUILDER_FORCE_SAFE", B, "force_safe",
               "Ignore filesystem safety checks."),
    OptionSpec("ENVBUILDER_GET_CACHED_IMAGE", B, "get_cached_image",
               "Only check the cache for a built image."),
    OptionSpec("ENVBUILDER_GIT_CLONE_DEPTH", I, "git_clone_depth",
               "Depth to use when cloning the repository."),
    OptionSpec("ENVBUILDER_GIT_CLONE_SINGLE_BRANCH", B, "git_clone_single_branch",
               "Clone only a single branch."),
    OptionSpec("ENVBUILDER_GIT_HTTP_PROXY_URL", S, "git_http_proxy_url",
               "HTTP proxy URL used for cloning."),
    OptionSpec("ENVBUILDER_GIT_PASSWORD", S, "git_password",
               "Password for Git authentication."),
    OptionSpec("ENVBUILDER_GIT_SSH_PRIVATE_KEY_BASE64", S, "git_ssh_private_key_base64",
               "Base64 encoded SSH private key for Git authentication."),
    OptionSpec("ENVBUILDER_GIT_SSH_PRIVATE_KEY_PATH", S, "git_ssh_private_key_path",
               "Path to an SSH private key for Git authentication."),
    OptionSpec("ENVBUILDER_GIT_URL", S, "git_url",
               "URL of the repository to clone."),
    OptionSpec("ENVBUILDER_GIT_USERNAME", S, "git_username",
               "Username for Git authentication."),
    OptionSpec("ENVBUILDER_IGNORE_PATHS", L, "ignore_paths",
               "Paths to ignore when building the workspace."),
    OptionSpec("ENVBUILDER_INIT_ARGS", S, "init_args",
               "Arguments passed to the init command."),
    OptionSpec("ENVBUILDER_INIT_COMMAND", S, "init_command",
               "Command run after the build."),
    OptionSpec("ENVBUILDER_INIT_SCRIPT", S, "init_script",
               "Script run after the build."),
    OptionSpec("ENVBUILDER_INSECURE", B, "insecure",
               "Bypass TLS verification for Git and registries."),
    OptionSpec("ENVBUILDER_LAYER_CACHE_DIR", S, "layer_cache_dir",
               "Local directory used as a layer cache."),
    OptionSpec("ENVBUILDER_POST_START_SCRIPT_PATH", S, "post_start_script_path",
               "Path to the post-start script."),
    OptionSpec("ENVBUILDER_PUSH_IMAGE", B, "push_image",
               "Push the built image to the cache repository."),
    OptionSpec("ENVBUILDER_REMOTE_REPO_BUILD_MODE", B, "remote_repo_build_mode",
               "Build from the remote repository instead of a local checkout."),
    OptionSpec("ENVBUILDER_SETUP_SCRIPT", S, "setup_script",
               "Script run before the init script."),
    OptionSpec("ENVBUILDER_SKIP_REBUILD", B, "skip_rebuild",
               "Skip rebuilding when a previous build exists."),
    OptionSpec("ENVBUILDER_SSL_CERT_BASE64", S, "ssl_cert_base64",
               "Content of an SSL certificate for self-signed registries."),
    OptionSpec("ENVBUILDER_VERBOSE", B, "verbose",
               "Enable verbose output."),
    OptionSpec("ENVBUILDER_WORKSPACE_FOLDER", S, "workspace_folder",
               "Folder the repository is cloned into."),
)

del B, I, S, L


def is_legacy_option(key: str) -> bool:
    """Legacy options are those without the ENVBUILDER_ namespace prefix."""
    return not key.startswith(constants.OPTION_PREFIX)


class OptionSet:
    """A full instance of the option table, looked up by external key."""

    def __init__(self):
        self._options: Dict[str, Option] = {
            spec.env: Option(spec.env, spec.kind, spec.attr, spec.description)
            for spec in OPTION_TABLE
        }
        self._by_attr: Dict[str, str] = {spec.attr: spec.env for spec in OPTION_TABLE}

    def __contains__(self, key: object) -> bool:
        return key in self._options

    def __getitem__(self, key: str) -> Option:
        try:
            return self._options[key]
        except KeyError:
            raise UnknownOptionError(f"unknown option: {key}") from None

    def __iter__(self) -> Iterator[Option]:
        return iter(self._options.values())

    def __len__(self) -> int:
        return len(self._options)

    def __getattr__(self, name: str) -> Any:
        # Only called when normal lookup fails; guard against recursion before __init__ ran
        by_attr = self.__dict__.get("_by_attr")
        if by_attr is None or name not in by_attr:
            raise AttributeError(f"{type(self).__name__!s} has no option attribute {name!r}")
        return self._options[by_attr[name]].get()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OptionSet):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        changed = {opt.env: opt.value for opt in self if not opt.is_zero()}
        return f"OptionSet({changed!r})"

    def keys(self) -> List[str]:
        return list(self._options)

    def key_for(self, attr: str) -> str:
        try:
            return self._by_attr[attr]
        except KeyError:
            raise UnknownOptionError(f"unknown option attribute: {attr}") from None

    def assign(self, key: str, value: Any) -> None:
        self[key].assign(value)

    def as_dict(self) -> Dict[str, Any]:
        return {key: opt.get() for key, opt in self._options.items()}

    def copy(self) -> "OptionSet":
        clone = OptionSet()
        for key, opt in self._options.items():
            clone._options[key] = opt.copy()
        return clone
