import uuid

# --- Log and Debug ---
# Short aliases for module names to keep env concise
LOG_ALIAS_MAP = {
    "opt": "cacheprobe.options.option",
    "opts": "cacheprobe.options.option_set",
    "rsv": "cacheprobe.options.resolve",
    "ovr": "cacheprobe.options.override",
    "env": "cacheprobe.options.environ",
    "ref": "cacheprobe.images.reference",
    "reg": "cacheprobe.images.registry",
    "loc": "cacheprobe.images.locator",
    "probe": "cacheprobe.probe",
    "rec": "cacheprobe.reconciler",
    "conf": "cacheprobe.config",
    "diag": "cacheprobe.datacls.diagnostics",
}

# Top-level modules within cacheprobe for auto-prefixing
KNOWN_TOP_MODULES = {
    "options",
    "images",
    "probe",
    "reconciler",
    "datacls",
    "utils",
    "config",
    "exceptions",
}

LOG_LEVELS_ENV = "CACHEPROBE_LOG_LEVELS"

# HTTP libraries log every registry request at INFO; held at WARNING unless debugging
CHATTY_LIBRARY_LOGGERS = ("httpx", "httpcore")

# --- Options ---
OPTION_PREFIX = "ENVBUILDER_"

CACHE_REPO_KEY = "ENVBUILDER_CACHE_REPO"
GIT_URL_KEY = "ENVBUILDER_GIT_URL"
REMOTE_REPO_BUILD_MODE_KEY = "ENVBUILDER_REMOTE_REPO_BUILD_MODE"
GIT_SSH_PRIVATE_KEY_PATH_KEY = "ENVBUILDER_GIT_SSH_PRIVATE_KEY_PATH"
GIT_SSH_PRIVATE_KEY_BASE64_KEY = "ENVBUILDER_GIT_SSH_PRIVATE_KEY_BASE64"

# Options that extra_env can never override.
IMMUTABLE_OPTIONS = frozenset({CACHE_REPO_KEY, GIT_URL_KEY})

# Groups of options where at most one member may be set.
EXCLUSIVE_OPTION_GROUPS = (
    (GIT_SSH_PRIVATE_KEY_PATH_KEY, GIT_SSH_PRIVATE_KEY_BASE64_KEY),
)

# Stringified values treated as "unset" when computing the environment.
ZERO_VALUE_STRINGS = frozenset({"", "false", "0"})

# --- Images ---
# Location of the builder binary inside the builder image.
MAGIC_BINARY_LOCATION = "/.envbuilder/bin/envbuilder"
MAGIC_DIR = ".envbuilder"
BINARY_FILENAME = "envbuilder"
BINARY_MODE = 0o755

DEFAULT_REGISTRY = "index.docker.io"
DOCKER_HUB_ALIASES = frozenset({"docker.io", "index.docker.io", "registry-1.docker.io"})
DOCKER_HUB_API_HOST = "registry-1.docker.io"
DEFAULT_TAG = "latest"
LOCAL_REGISTRY_HOSTS = frozenset({"localhost", "127.0.0.1", "[::1]"})
DEFAULT_PLATFORM = ("linux", "amd64")

MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"
MEDIA_TYPE_DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

MANIFEST_ACCEPT = ", ".join([
    MEDIA_TYPE_OCI_MANIFEST,
    MEDIA_TYPE_OCI_INDEX,
    MEDIA_TYPE_DOCKER_MANIFEST,
    MEDIA_TYPE_DOCKER_MANIFEST_LIST,
])
INDEX_MEDIA_TYPES = frozenset({MEDIA_TYPE_OCI_INDEX, MEDIA_TYPE_DOCKER_MANIFEST_LIST})
NOT_FOUND_ERROR_CODES = frozenset({"MANIFEST_UNKNOWN", "NAME_UNKNOWN"})

GZIP_MAGIC = b"\x1f\x8b"
# Spool blobs to disk above this size.
BLOB_SPOOL_MAX_SIZE = 16 * 1024 * 1024

# --- Reconciliation ---
# Identifier used when no cached image exists.
NIL_ID = str(uuid.UUID(int=0))
TEMP_DIR_PREFIX = "cacheprobe-cached-image-"
WORKSPACE_SUBDIR = "workspace"

# Line printed by the builder binary in get-cached-image mode.
CACHED_IMAGE_MARKER = "ENVBUILDER_CACHED_IMAGE="
