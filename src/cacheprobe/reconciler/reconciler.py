import logging
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .. import constants
from ..config import Config, ConfigModel
from ..datacls.diagnostics import Diagnostics
from ..datacls.state import ResourceState
from ..exceptions import (
    DigestError,
    FatalProbeError,
    ManifestUnknownError,
    NotFoundError,
    ProbeError,
    RegistryError,
)
from ..images.locator import ImageBinaryLocator
from ..options.environ import ComputedEnv, compute_env
from ..options.option_set import OptionSet
from ..options.resolve import OptionResolver, ResolvedOptions
from ..protocols import ProbeProtocol, ProbeRequest, RegistryProtocol

logger = logging.getLogger(__name__)


class ProbePhase(str, Enum):
    UNRESOLVED = "unresolved"
    PROBING = "probing"
    FOUND = "found"
    NOT_FOUND = "not_found"
    STILL_FOUND = "still_found"
    INVALIDATED = "invalidated"


class ReconcileResult(BaseModel):
    """
        Class holds the outcome of one reconciliation pass.

        `state` is None when the caller must not persist anything; `remove`
        tells the caller to discard the stored state so the next pass creates
        it again.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    phase: ProbePhase
    state: Optional[ResourceState] = None
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)
    remove: bool = False


def _model_of(config: Union[Config, ConfigModel]) -> ConfigModel:
    return config.model if isinstance(config, Config) else config


class CacheProbeReconciler:
    """
    Decides, for one cached-image resource, whether a previously built image
    exists in the cache repository.

    A miss is not a failure: the state falls back to the builder image and the
    next pass probes again.
    """

    def __init__(
        self,
        registry: RegistryProtocol,
        probe: ProbeProtocol,
        locator: Optional[ImageBinaryLocator] = None,
    ):
        self.registry = registry
        self.probe = probe
        self.locator = locator or ImageBinaryLocator(registry)

    async def create(self, config: Union[Config, ConfigModel]) -> ReconcileResult:
        model = _model_of(config)
        logger.info(f"[CacheProbeReconciler] Probing '{model.cache_repo}' for a cached build of '{model.git_url}'...")

        resolved = OptionResolver(model).resolve()
        diags = resolved.diagnostics
        if diags.has_error():
            logger.debug("[CacheProbeReconciler] Option resolution failed, nothing to probe.")
            return ReconcileResult(phase=ProbePhase.UNRESOLVED, diagnostics=diags)

        computed = compute_env(resolved.options, resolved.passthrough)

        try:
            digest = await self._probe(model, resolved)
        except FatalProbeError as e:
            diags.add_error("Failed to get cached image digest", str(e))
            return ReconcileResult(phase=ProbePhase.UNRESOLVED, diagnostics=diags)
        except (NotFoundError, RegistryError, ProbeError, OSError) as e:
            diags.add_warning(
                "Cached image not found",
                f"Failed to find cached image in repository {model.cache_repo!r}. "
                f"It will be rebuilt in the next apply. Error: {e}",
            )
            state = ResourceState.missing(model.builder_image, model.cache_repo, computed.env, computed.env_map)
            return ReconcileResult(phase=ProbePhase.NOT_FOUND, state=state, diagnostics=diags)

        state = ResourceState.found(digest, model.builder_image, model.cache_repo, computed.env, computed.env_map)
        logger.info(f"[CacheProbeReconciler] Found cached image '{state.image}'.")
        return ReconcileResult(phase=ProbePhase.FOUND, state=state, diagnostics=diags)

    async def _probe(self, model: ConfigModel, resolved: ResolvedOptions) -> str:
        """Extract the builder binary, run the probe and return the digest it found."""
        with tempfile.TemporaryDirectory(prefix=constants.TEMP_DIR_PREFIX) as tmp:
            tmp_dir = Path(tmp)
            binary_path = tmp_dir / constants.BINARY_FILENAME
            logger.debug(f"[CacheProbeReconciler] Extracting builder binary from '{model.builder_image}'")
            await self.locator.extract(model.builder_image, binary_path)

            request = ProbeRequest(
                options=self._probe_options(resolved.options, binary_path, tmp_dir),
                binary_path=binary_path,
                work_dir=tmp_dir / constants.MAGIC_DIR,
            )
            logger.debug(f"[CacheProbeReconciler] Phase {ProbePhase.PROBING.value}: running probe")
            image = await self.probe(request)
            try:
                return image.digest()
            except DigestError as e:
                raise FatalProbeError(str(e)) from e

    @staticmethod
    def _probe_options(options: OptionSet, binary_path: Path, tmp_dir: Path) -> OptionSet:
        """Options only the probe sees; they never reach the persisted env."""
        opts = options.copy()
        opts.assign("ENVBUILDER_BINARY_PATH", str(binary_path))
        opts.assign("ENVBUILDER_GET_CACHED_IMAGE", True)
        opts.assign("ENVBUILDER_FORCE_SAFE", False)
        opts.assign("ENVBUILDER_PUSH_IMAGE", False)
        if not opts.workspace_folder:
            opts.assign("ENVBUILDER_WORKSPACE_FOLDER", str(tmp_dir / constants.WORKSPACE_SUBDIR))
        return opts

    async def read(self, state: ResourceState, config: Union[Config, ConfigModel]) -> ReconcileResult:
        model = _model_of(config)
        resolved = OptionResolver(model).resolve()
        diags = resolved.diagnostics
        if diags.has_error():
            phase = ProbePhase.FOUND if state.exists else ProbePhase.NOT_FOUND
            return ReconcileResult(phase=phase, state=state, diagnostics=diags)

        computed = compute_env(resolved.options, resolved.passthrough)

        if not state.exists or state.image == state.builder_image:
            logger.info("[CacheProbeReconciler] No cached image recorded, the image will be probed again.")
            return ReconcileResult(phase=ProbePhase.INVALIDATED, diagnostics=diags, remove=True)

        try:
            manifest = await self.registry.fetch_manifest(state.image)
        except ManifestUnknownError as e:
            diags.add_warning(
                "Cached image not found",
                f"The cached image {state.image!r} is no longer in the registry. "
                f"It will be rebuilt in the next apply. Error: {e}",
            )
            return ReconcileResult(phase=ProbePhase.INVALIDATED, diagnostics=diags, remove=True)
        except RegistryError as e:
            diags.add_warning("Failed to check cached image", f"Keeping {state.image!r}. Error: {e}")
            kept = self._with_env(state, computed)
            return ReconcileResult(phase=ProbePhase.FOUND, state=kept, diagnostics=diags)

        repo = state.image.rpartition("@")[0] or state.cache_repo
        refreshed = self._with_env(state, computed).model_copy(
            update={"id": manifest.digest, "image": f"{repo}@{manifest.digest}"}
        )
        logger.debug(f"[CacheProbeReconciler] Cached image '{refreshed.image}' still present.")
        return ReconcileResult(phase=ProbePhase.STILL_FOUND, state=refreshed, diagnostics=diags)

    @staticmethod
    def _with_env(state: ResourceState, computed: ComputedEnv) -> ResourceState:
        return state.model_copy(update={"env": computed.env, "env_map": computed.env_map})

    def update(self, state: ResourceState) -> ReconcileResult:
        phase = ProbePhase.FOUND if state.exists else ProbePhase.NOT_FOUND
        return ReconcileResult(phase=phase, state=state)

    def delete(self, state: ResourceState) -> ReconcileResult:
        logger.debug(f"[CacheProbeReconciler] Forgetting '{state.image}', nothing to remove remotely.")
        return ReconcileResult(phase=ProbePhase.INVALIDATED, remove=True)
