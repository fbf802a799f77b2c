"""
Cache Probe Protocol Definitions

This module contains the Protocol definitions for the collaborators the
reconciler talks to: the remote registry, the images and layers it serves,
and the external cache probe.

Protocols are the foundation layer with zero dependencies on other cacheprobe
modules apart from plain data classes.
"""

from pathlib import Path
from typing import Any, BinaryIO, List, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class ManifestInfo(BaseModel):
    """
        Class describes a manifest fetched from a registry.
    """
    model_config = ConfigDict(frozen=True)

    reference: str
    digest: str
    media_type: str = ""


# ============================================================================
# Registry Protocols
# ============================================================================

@runtime_checkable
class LayerProtocol(Protocol):
    """
    Protocol for one filesystem layer of an image.
    """

    async def uncompressed(self) -> BinaryIO:
        """
        Open the layer as an uncompressed, sequentially readable tar stream.

        The caller closes the returned stream.
        """
        ...


@runtime_checkable
class ImageProtocol(Protocol):
    """
    Protocol for a remote image.
    """

    def layers(self) -> List[LayerProtocol]:
        """
        Returns:
            Layers ordered as stored, oldest first.
        """
        ...

    def digest(self) -> str:
        """
        Returns:
            Content digest of the image manifest.
        """
        ...


@runtime_checkable
class RegistryProtocol(Protocol):
    """
    Protocol for the read side of a container registry.
    """

    async def fetch_image(self, reference: str) -> ImageProtocol:
        """
        Resolve a reference into an image whose layers can be read.

        Raises:
            ManifestUnknownError: the reference does not exist
            RegistryError: any other registry failure
        """
        ...

    async def fetch_manifest(self, reference: str) -> ManifestInfo:
        """
        Fetch a manifest and its digest without downloading layers.

        Raises:
            ManifestUnknownError: the reference does not exist
            RegistryError: any other registry failure
        """
        ...


# ============================================================================
# Probe Protocols
# ============================================================================

@runtime_checkable
class ArtifactImageProtocol(Protocol):
    """
    Protocol for the image a successful probe found in the cache.
    """

    def digest(self) -> str:
        """
        Raises:
            DigestError: the digest cannot be determined
        """
        ...


class ProbeRequest(BaseModel):
    """
        Class carries everything a cache probe needs for one call.

        `options` is a copy of the resolved option set with the probe-only
        options applied; `work_dir` is the scratch directory the probe may use
        in place of any process-wide working directory.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    options: Any
    binary_path: Path
    work_dir: Path


@runtime_checkable
class ProbeProtocol(Protocol):
    """
    Protocol for the external dry-run build that checks the cache.
    """

    async def __call__(self, request: ProbeRequest) -> ArtifactImageProtocol:
        """
        Returns:
            The cached image when every layer is present in the cache.

        Raises:
            ProbeError: the image is not cached, or the probe failed
        """
        ...
