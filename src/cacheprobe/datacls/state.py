from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from .. import constants


class ResourceState(BaseModel):
    """
        Class represents the persisted state of one cached image.

        `exists=False` means the cache missed: `image` then falls back to the
        builder image and `id` is the nil sentinel, and the next pass has to
        probe again.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    exists: bool
    image: str
    env: Tuple[str, ...] = ()
    env_map: Dict[str, str] = {}
    builder_image: str
    cache_repo: str

    @model_validator(mode="after")
    def check_miss_falls_back(self) -> "ResourceState":
        if not self.exists:
            if self.image != self.builder_image:
                raise ValueError(
                    f"a state without a cached image must use the builder image "
                    f"'{self.builder_image}', got '{self.image}'"
                )
            if self.id != constants.NIL_ID:
                raise ValueError(f"a state without a cached image must have the nil id, got '{self.id}'")
        return self

    @classmethod
    def missing(cls, builder_image: str, cache_repo: str, env: Tuple[str, ...], env_map: Dict[str, str]) -> "ResourceState":
        return cls(
            id=constants.NIL_ID,
            exists=False,
            image=builder_image,
            env=env,
            env_map=env_map,
            builder_image=builder_image,
            cache_repo=cache_repo,
        )

    @classmethod
    def found(cls, digest: str, builder_image: str, cache_repo: str, env: Tuple[str, ...], env_map: Dict[str, str]) -> "ResourceState":
        return cls(
            id=digest,
            exists=True,
            image=f"{cache_repo}@{digest}",
            env=env,
            env_map=env_map,
            builder_image=builder_image,
            cache_repo=cache_repo,
        )
