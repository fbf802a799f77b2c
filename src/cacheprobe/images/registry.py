"""
Anonymous read-only client for OCI distribution (v2) registries.

Only what the reconciler needs is implemented: resolving a manifest and its
digest, and downloading layer blobs as uncompressed tar streams. Registry
credentials are out of scope; the anonymous bearer-token challenge used by
public registries is answered without sending any credentials.
"""

import gzip
import hashlib
import json
import logging
import re
import tempfile
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

import httpx

from .. import constants
from ..exceptions import ManifestUnknownError, RegistryError
from ..protocols import ManifestInfo
from .reference import ImageReference

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')
_STREAM_CHUNK = 1024 * 1024


class _OwnedGzipFile(gzip.GzipFile):
    """GzipFile that also closes the file object it decompresses."""

    def __init__(self, fileobj: BinaryIO):
        super().__init__(fileobj=fileobj, mode="rb")
        self._owned = fileobj

    def close(self) -> None:
        try:
            super().close()
        finally:
            self._owned.close()


class RemoteLayer:
    """A layer descriptor whose blob is downloaded on demand."""

    def __init__(self, client: "RegistryClient", ref: ImageReference, descriptor: Dict[str, Any]):
        self._client = client
        self._ref = ref
        self.digest: str = descriptor["digest"]
        self.media_type: str = descriptor.get("mediaType", "")
        self.size: int = descriptor.get("size", 0)

    async def uncompressed(self) -> BinaryIO:
        return await self._client.open_blob(self._ref, self.digest)

    def __repr__(self) -> str:
        return f"RemoteLayer({self.digest})"


class RemoteImage:
    """An image manifest resolved from a registry."""

    def __init__(self, client: "RegistryClient", ref: ImageReference, manifest: Dict[str, Any], digest: str):
        self._client = client
        self.ref = ref
        self.manifest = manifest
        self._digest = digest

    def layers(self) -> List[RemoteLayer]:
        return [RemoteLayer(self._client, self.ref, desc) for desc in self.manifest.get("layers", [])]

    def digest(self) -> str:
        return self._digest


class RegistryClient:
    """
    Read-only registry client built on httpx.AsyncClient.

    Usable as an async context manager; a client passed in by the caller is
    left open on exit.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        insecure: bool = False,
        platform: Tuple[str, str] = constants.DEFAULT_PLATFORM,
        timeout: float = 30.0,
    ):
        self._client = client
        self._owns_client = client is None
        self.insecure = insecure
        self.platform = platform
        self.timeout = timeout
        self._tokens: Dict[str, str] = {}

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=not self.insecure,
                follow_redirects=True,
            )
        return self._client

    def _url(self, ref: ImageReference, path: str) -> str:
        return f"{ref.scheme(self.insecure)}://{ref.api_host}/v2/{ref.repository}/{path}"

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    async def fetch_manifest(self, reference: str) -> ManifestInfo:
        ref = ImageReference.parse(reference)
        _, info = await self._resolve_manifest(ref)
        return info

    async def fetch_image(self, reference: str) -> RemoteImage:
        ref = ImageReference.parse(reference)
        manifest, info = await self._resolve_manifest(ref)
        logger.debug(f"[Registry] Resolved '{reference}' to {info.digest} with {len(manifest.get('layers', []))} layers.")
        return RemoteImage(self, ref, manifest, info.digest)

    async def _resolve_manifest(self, ref: ImageReference) -> Tuple[Dict[str, Any], ManifestInfo]:
        manifest, info = await self._get_manifest(ref, ref.identifier)
        if info.media_type in constants.INDEX_MEDIA_TYPES:
            child = self._select_platform(ref, manifest)
            manifest, child_info = await self._get_manifest(ref, child)
            # A digest-pinned reference keeps its own digest, not the platform child's.
            info = child_info if ref.digest is None else child_info.model_copy(update={"digest": ref.digest})
        return manifest, info

    def _select_platform(self, ref: ImageReference, index: Dict[str, Any]) -> str:
        want_os, want_arch = self.platform
        for desc in index.get("manifests", []):
            platform = desc.get("platform", {})
            if platform.get("os") == want_os and platform.get("architecture") == want_arch:
                return desc["digest"]
        raise RegistryError(f"no manifest for platform {want_os}/{want_arch} in {ref}")

    async def _get_manifest(self, ref: ImageReference, identifier: str) -> Tuple[Dict[str, Any], ManifestInfo]:
        url = self._url(ref, f"manifests/{identifier}")
        resp = await self._request(ref, "GET", url, {"Accept": constants.MANIFEST_ACCEPT})
        if resp.status_code != 200:
            self._raise_for_manifest(ref, resp)
        body = resp.content
        try:
            manifest = json.loads(body)
        except json.JSONDecodeError as e:
            raise RegistryError(f"malformed manifest for {ref}: {e}")
        digest = resp.headers.get("Docker-Content-Digest") or "sha256:" + hashlib.sha256(body).hexdigest()
        media_type = manifest.get("mediaType") or resp.headers.get("Content-Type", "").split(";")[0]
        return manifest, ManifestInfo(reference=str(ref), digest=digest, media_type=media_type)

    def _raise_for_manifest(self, ref: ImageReference, resp: httpx.Response) -> None:
        codes = _error_codes(resp)
        if resp.status_code == 404 or codes & constants.NOT_FOUND_ERROR_CODES:
            raise ManifestUnknownError(f"manifest unknown: {ref} ({', '.join(sorted(codes)) or resp.status_code})")
        raise RegistryError(f"fetch manifest {ref}: HTTP {resp.status_code} {resp.reason_phrase}")

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    async def open_blob(self, ref: ImageReference, digest: str) -> BinaryIO:
        """Download a blob into a spooled file and return it uncompressed."""
        url = self._url(ref, f"blobs/{digest}")
        spool = tempfile.SpooledTemporaryFile(max_size=constants.BLOB_SPOOL_MAX_SIZE)
        try:
            await self._download(ref, url, digest, spool)
            spool.seek(0)
            magic = spool.read(len(constants.GZIP_MAGIC))
            spool.seek(0)
        except BaseException:
            spool.close()
            raise
        if magic == constants.GZIP_MAGIC:
            return _OwnedGzipFile(spool)
        return spool

    async def _download(self, ref: ImageReference, url: str, digest: str, out: BinaryIO) -> None:
        algo, _, expected = digest.partition(":")
        hasher = hashlib.new(algo) if algo in hashlib.algorithms_available else None
        resp = await self._request(ref, "GET", url, {}, stream=True)
        try:
            if resp.status_code != 200:
                raise RegistryError(f"fetch blob {digest} from {ref.name}: HTTP {resp.status_code}")
            async for chunk in resp.aiter_bytes(_STREAM_CHUNK):
                out.write(chunk)
                if hasher is not None:
                    hasher.update(chunk)
        except httpx.HTTPError as e:
            raise RegistryError(f"download blob {digest} from {ref.name}: {e}") from e
        finally:
            await resp.aclose()
        if hasher is not None and hasher.hexdigest() != expected:
            raise RegistryError(f"blob {digest} from {ref.name} failed digest verification")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self, ref: ImageReference, method: str, url: str, headers: Dict[str, str], stream: bool = False
    ) -> httpx.Response:
        resp = await self._send(ref, method, url, headers, stream)
        if resp.status_code == 401 and ref.name not in self._tokens:
            challenge = resp.headers.get("WWW-Authenticate", "")
            await resp.aclose()
            if not challenge.lower().startswith("bearer "):
                raise RegistryError(f"{ref.name} requires authentication")
            self._tokens[ref.name] = await self._anonymous_token(ref, challenge)
            resp = await self._send(ref, method, url, headers, stream)
        return resp

    async def _send(
        self, ref: ImageReference, method: str, url: str, headers: Dict[str, str], stream: bool
    ) -> httpx.Response:
        headers = dict(headers)
        token = self._tokens.get(ref.name)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        client = self._get_client()
        try:
            request = client.build_request(method, url, headers=headers)
            return await client.send(request, stream=stream)
        except httpx.HTTPError as e:
            raise RegistryError(f"{method} {url}: {e}") from e

    async def _anonymous_token(self, ref: ImageReference, challenge: str) -> str:
        params = dict(_CHALLENGE_PARAM.findall(challenge))
        realm = params.pop("realm", None)
        if not realm:
            raise RegistryError(f"malformed auth challenge from {ref.name}: {challenge!r}")
        params.setdefault("scope", f"repository:{ref.repository}:pull")
        logger.debug(f"[Registry] Requesting anonymous token for {ref.name} from {realm}")
        try:
            resp = await self._get_client().get(realm, params=params)
        except httpx.HTTPError as e:
            raise RegistryError(f"token request to {realm}: {e}") from e
        if resp.status_code != 200:
            raise RegistryError(f"token request to {realm}: HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise RegistryError(f"malformed token response from {realm}: {e}")
        token = payload.get("token") or payload.get("access_token")
        if not token:
            raise RegistryError(f"no token in response from {realm}")
        return token


def _error_codes(resp: httpx.Response) -> set:
    """Registry error codes from an error response body, if any."""
    try:
        payload = resp.json()
    except ValueError:
        return set()
    if not isinstance(payload, dict):
        return set()
    return {str(err.get("code", "")).upper() for err in payload.get("errors", []) if isinstance(err, dict)}
