import io
import tarfile
from typing import Dict, List, Optional, Tuple, Union

import pytest

from cacheprobe.exceptions import ManifestUnknownError, ProbeError
from cacheprobe.protocols import ManifestInfo

DIGEST_A = "sha256:" + "a" * 64
DIGEST_B = "sha256:" + "b" * 64


def build_tar(entries: List[Tuple[str, Union[bytes, str, None]]]) -> bytes:
    """
    Build an in-memory tar archive.

    Each entry is (name, content): bytes make a regular file, a str makes a
    symlink pointing at it, None makes a directory.
    """
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, content in entries:
            info = tarfile.TarInfo(name)
            if content is None:
                info.type = tarfile.DIRTYPE
                tar.addfile(info)
            elif isinstance(content, str):
                info.type = tarfile.SYMTYPE
                info.linkname = content
                tar.addfile(info)
            else:
                info.size = len(content)
                tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


class FakeLayer:
    def __init__(self, index: int, data: bytes, visits: List[int]):
        self.index = index
        self.data = data
        self.visits = visits

    async def uncompressed(self):
        self.visits.append(self.index)
        return io.BytesIO(self.data)


class FakeImage:
    def __init__(self, layer_data: List[bytes], digest: str = DIGEST_A):
        self.visits: List[int] = []
        self._layers = [FakeLayer(i, data, self.visits) for i, data in enumerate(layer_data)]
        self._digest = digest

    def layers(self):
        return list(self._layers)

    def digest(self) -> str:
        return self._digest


class FakeRegistry:
    """In-memory registry: images by reference, manifests by reference (digest or exception)."""

    def __init__(
        self,
        images: Optional[Dict[str, FakeImage]] = None,
        manifests: Optional[Dict[str, Union[str, Exception]]] = None,
    ):
        self.images = images or {}
        self.manifests = manifests or {}
        self.image_calls: List[str] = []
        self.manifest_calls: List[str] = []

    async def fetch_image(self, reference: str) -> FakeImage:
        self.image_calls.append(reference)
        if reference not in self.images:
            raise ManifestUnknownError(f"manifest unknown: {reference}")
        return self.images[reference]

    async def fetch_manifest(self, reference: str) -> ManifestInfo:
        self.manifest_calls.append(reference)
        result = self.manifests.get(reference)
        if result is None:
            raise ManifestUnknownError(f"manifest unknown: {reference}")
        if isinstance(result, Exception):
            raise result
        return ManifestInfo(reference=reference, digest=result)


class FakeArtifact:
    def __init__(self, digest: Union[str, Exception]):
        self._digest = digest

    def digest(self) -> str:
        if isinstance(self._digest, Exception):
            raise self._digest
        return self._digest


class FakeProbe:
    """Records each request along with what the probe could see on disk."""

    def __init__(self, result: Union[FakeArtifact, Exception]):
        self.result = result
        self.requests = []
        self.binary_contents: List[bytes] = []

    async def __call__(self, request):
        self.requests.append(request)
        self.binary_contents.append(request.binary_path.read_bytes())
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def builder_image_layers():
    """Layers of a builder image: the binary lives in layer 1, layer 2 is unrelated."""
    return [
        build_tar([("etc/os-release", b"ID=test\n")]),
        build_tar([(".envbuilder", None), (".envbuilder/bin", None), (".envbuilder/bin/envbuilder", b"#!binary v1")]),
        build_tar([("usr/share/doc/readme", b"docs")]),
    ]


@pytest.fixture
def base_config():
    return {
        "builder_image": "ghcr.io/coder/envbuilder:latest",
        "cache_repo": "localhost:5000/cache",
        "git_url": "git@git.local/devcontainer.git",
    }


@pytest.fixture
def registry_factory():
    return FakeRegistry


@pytest.fixture
def image_factory():
    return FakeImage


@pytest.fixture
def probe_hit():
    return FakeProbe(FakeArtifact(DIGEST_A))


@pytest.fixture
def probe_miss():
    return FakeProbe(ProbeError("uncached layer in the build"))


@pytest.fixture
def probe_factory():
    """probe_factory(digest) succeeds with `digest` (which may be an exception); probe_factory(error=e) raises on call."""
    def _make(digest: Union[str, Exception] = DIGEST_A, error: Optional[Exception] = None):
        return FakeProbe(error if error is not None else FakeArtifact(digest))
    return _make


@pytest.fixture
def tar_factory():
    return build_tar
