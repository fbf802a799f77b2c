class CacheProbeError(Exception):
    """Base exception for all application-specific errors."""

    pass


# --- 1. Errors related to loading and parsing the configuration ---
class ConfigurationError(CacheProbeError):
    """Base class for errors encountered while finding, reading, or parsing configuration."""

    pass


class ConfigFileMissingError(ConfigurationError):
    """Raised when a configuration file cannot be found."""

    pass


class ConfigParsingError(ConfigurationError):
    """Raised when a YAML configuration file is syntactically incorrect."""

    pass


class ConfigValidationError(ConfigurationError):
    """Raised when the configuration fails structural validation (e.g., Pydantic)."""

    pass


# --- 2. Errors related to options and overrides ---
class OptionError(CacheProbeError):
    """Base class for errors raised by the option table."""

    pass


class OptionParseError(OptionError):
    """Raised when a string cannot be parsed into an option's typed value."""

    def __init__(self, key: str, raw: str, reason: str):
        self.key = key
        self.raw = raw
        self.reason = reason
        super().__init__(f"invalid value {raw!r} for {key}: {reason}")


class UnknownOptionError(OptionError, KeyError):
    """Raised when an option key is not part of the option table."""

    def __str__(self) -> str:
        return Exception.__str__(self)


# --- 3. Errors related to the remote registry ---
class RegistryError(CacheProbeError):
    """Base class for registry failures. Treated as transient unless more specific."""

    pass


class InvalidReferenceError(RegistryError, ValueError):
    """Raised when an image reference cannot be parsed."""

    pass


class NotFoundError(CacheProbeError):
    """Base class for expected 'absent' conditions that drive a state transition."""

    pass


class ManifestUnknownError(NotFoundError, RegistryError):
    """Raised when the registry reports the manifest (or repository) does not exist."""

    pass


class BinaryNotFoundError(NotFoundError):
    """Raised when the target binary is absent from every layer of an image."""

    def __init__(self, image_ref: str, target: str):
        self.image_ref = image_ref
        self.target = target
        super().__init__(f"binary '/{target}' not found in image {image_ref!r}")


# --- 4. Errors raised while probing ---
class ProbeError(CacheProbeError):
    """Raised when the cache probe reports a miss or otherwise fails."""

    pass


class DigestError(ProbeError):
    """Raised when the digest of a probed image cannot be read."""

    pass


class FatalProbeError(CacheProbeError):
    """Raised when a probe succeeded but its result cannot be trusted."""

    pass
