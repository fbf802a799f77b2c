import yaml
import logging
from typing import Any, Dict, List, Mapping, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator, ConfigDict

from .exceptions import (
    ConfigParsingError,
    ConfigFileMissingError,
    ConfigValidationError,
)


logger = logging.getLogger(__name__)


class ConfigModel(BaseModel):
    """
        Class Config-Validation Model describing one cached image.

        `None` means "not configured", which is different from a zero value:
        only configured fields are recorded as set by the provider.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Required inputs
    builder_image: str
    cache_repo: str
    git_url: str

    # Optional inputs
    base_image_cache_dir: Optional[str] = None
    build_context_path: Optional[str] = None
    build_secrets: Optional[Dict[str, str]] = None
    cache_ttl_days: Optional[int] = None
    devcontainer_dir: Optional[str] = None
    devcontainer_json_path: Optional[str] = None
    dockerfile_path: Optional[str] = None
    docker_config_base64: Optional[str] = None
    exit_on_build_failure: Optional[bool] = None
    fallback_image: Optional[str] = None
    git_clone_depth: Optional[int] = None
    git_clone_single_branch: Optional[bool] = None
    git_http_proxy_url: Optional[str] = None
    git_password: Optional[str] = Field(default=None, repr=False)
    git_ssh_private_key_path: Optional[str] = None
    git_ssh_private_key_base64: Optional[str] = Field(default=None, repr=False)
    git_username: Optional[str] = None
    ignore_paths: Optional[List[str]] = None
    insecure: Optional[bool] = None
    remote_repo_build_mode: Optional[bool] = None
    ssl_cert_base64: Optional[str] = None
    verbose: Optional[bool] = None
    workspace_folder: Optional[str] = None

    # Overrides and pass-through environment
    extra_env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("builder_image", "cache_repo", "git_url")
    @classmethod
    def check_required_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("extra_env", mode="before")
    @classmethod
    def normalize_extra_env(cls, value: Any) -> Any:
        """Null extra_env is the same as an empty one; YAML scalars become env strings."""
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            return value
        normalized = {}
        for key, item in value.items():
            if isinstance(item, bool):
                item = "true" if item else "false"
            elif isinstance(item, (int, float)):
                item = str(item)
            normalized[key] = item
        return normalized

    @model_validator(mode="after")
    def check_positive_counts(self) -> "ConfigModel":
        if self.cache_ttl_days is not None and self.cache_ttl_days < 0:
            raise ValueError("'cache_ttl_days' cannot be negative.")
        if self.git_clone_depth is not None and self.git_clone_depth < 0:
            raise ValueError("'git_clone_depth' cannot be negative.")
        return self


class Config:
    """
    Loads and validates cached image configuration using Pydantic models.
    It is the sole gatekeeper for configuration.
    """
    def __init__(self, model: ConfigModel, path: Optional[str] = None):
        self.model = model
        self.path = path

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], path: Optional[str] = None) -> "Config":
        logger.debug("Validating configuration structure with Pydantic...")
        try:
            model = ConfigModel.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigValidationError(f"Configuration validation failed:\n{e}")
        logger.debug(f"Configuration model validated successfully: \n{model!r}")
        return cls(model, path)

    @classmethod
    def from_file(cls, path: str) -> "Config":
        logger.info(f"Loading configuration from '{path}'...")
        raw_data = cls._load_raw_config(path)
        return cls.from_dict(raw_data, path)

    @staticmethod
    def _load_raw_config(path: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigFileMissingError(f"Configuration file not found at: {path}")
        except yaml.YAMLError as e:
            raise ConfigParsingError(f"Error parsing YAML file: {e}")
        if not isinstance(config_data, dict):
            raise ConfigParsingError("Configuration file must be a YAML document containing a dictionary.")
        logger.debug(f"Successfully parsed YAML from '{path}'.")
        return config_data

    @property
    def builder_image(self) -> str:
        return self.model.builder_image

    @property
    def cache_repo(self) -> str:
        return self.model.cache_repo

    @property
    def git_url(self) -> str:
        return self.model.git_url

    @property
    def extra_env(self) -> Dict[str, str]:
        return dict(self.model.extra_env)
