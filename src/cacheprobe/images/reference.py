import logging
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .. import constants
from ..exceptions import InvalidReferenceError

logger = logging.getLogger(__name__)

_REPO_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_REPOSITORY_PATTERN = re.compile(rf"{_REPO_COMPONENT}(?:/{_REPO_COMPONENT})*")
_TAG_PATTERN = re.compile(r"[\w][\w.-]{0,127}")
_DIGEST_PATTERN = re.compile(r"[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]{32,}")


def _host(registry: str) -> str:
    """Registry host without its port; IPv6 literals keep their brackets."""
    if registry.startswith("["):
        return registry.split("]", 1)[0] + "]"
    return registry.split(":", 1)[0]


class ImageReference(BaseModel):
    """
        Class represents a parsed `[registry/]repository[:tag][@digest]` reference.
    """
    model_config = ConfigDict(frozen=True)

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @classmethod
    def parse(cls, ref: str) -> "ImageReference":
        if not ref or ref != ref.strip():
            raise InvalidReferenceError(f"invalid image reference {ref!r}")

        name, digest = ref, None
        if "@" in ref:
            name, digest = ref.rsplit("@", 1)
            if not _DIGEST_PATTERN.fullmatch(digest):
                raise InvalidReferenceError(f"invalid digest {digest!r} in reference {ref!r}")

        tag = None
        last_slash = name.rfind("/")
        colon = name.rfind(":")
        if colon > last_slash:
            name, tag = name[:colon], name[colon + 1:]
            if not _TAG_PATTERN.fullmatch(tag):
                raise InvalidReferenceError(f"invalid tag {tag!r} in reference {ref!r}")

        registry = constants.DEFAULT_REGISTRY
        repository = name
        first, sep, rest = name.partition("/")
        if sep and ("." in first or ":" in first or first == "localhost"):
            registry, repository = first, rest
        if registry in constants.DOCKER_HUB_ALIASES:
            registry = constants.DEFAULT_REGISTRY
            if "/" not in repository:
                repository = f"library/{repository}"

        if not _REPOSITORY_PATTERN.fullmatch(repository):
            raise InvalidReferenceError(f"invalid repository {repository!r} in reference {ref!r}")

        if tag is None and digest is None:
            tag = constants.DEFAULT_TAG
        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.repository}"

    @property
    def identifier(self) -> str:
        """The manifest identifier: digest when pinned, tag otherwise."""
        return self.digest or self.tag or constants.DEFAULT_TAG

    @property
    def api_host(self) -> str:
        if self.registry == constants.DEFAULT_REGISTRY:
            return constants.DOCKER_HUB_API_HOST
        return self.registry

    def scheme(self, insecure: bool = False) -> str:
        if insecure or _host(self.registry) in constants.LOCAL_REGISTRY_HOSTS:
            return "http"
        return "https"

    def with_digest(self, digest: str) -> "ImageReference":
        return self.model_copy(update={"digest": digest, "tag": None})

    def __str__(self) -> str:
        if self.digest:
            return f"{self.name}@{self.digest}"
        return f"{self.name}:{self.tag}"
