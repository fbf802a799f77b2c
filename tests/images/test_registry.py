import asyncio
import gzip
import hashlib
import json

import httpx
import pytest

from cacheprobe import constants
from cacheprobe.exceptions import ManifestUnknownError, RegistryError
from cacheprobe.images.registry import RegistryClient


def sha(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def manifest_body(*layers: bytes) -> bytes:
    return json.dumps({
        "schemaVersion": 2,
        "mediaType": constants.MEDIA_TYPE_OCI_MANIFEST,
        "layers": [
            {"mediaType": "application/vnd.oci.image.layer.v1.tar+gzip", "digest": sha(layer), "size": len(layer)}
            for layer in layers
        ],
    }).encode()


def run_with(handler, coro_fn, **kwargs):
    """Run `coro_fn(client)` against a RegistryClient backed by `handler`."""
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RegistryClient(client=http, **kwargs)
            return await coro_fn(client)
    return asyncio.run(_run())


class TestFetchManifest:
    """Tests for resolving manifests and their digests."""

    def test_digest_from_header(self):
        body = manifest_body()
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=body, headers={"Docker-Content-Digest": "sha256:" + "d" * 64})

        info = run_with(handler, lambda c: c.fetch_manifest("localhost:5000/cache:latest"))
        assert info.digest == "sha256:" + "d" * 64
        assert info.media_type == constants.MEDIA_TYPE_OCI_MANIFEST
        assert str(seen[0].url) == "http://localhost:5000/v2/cache/manifests/latest"
        assert constants.MEDIA_TYPE_OCI_MANIFEST in seen[0].headers["Accept"]

    def test_digest_from_body(self):
        body = manifest_body()

        def handler(request):
            return httpx.Response(200, content=body)

        info = run_with(handler, lambda c: c.fetch_manifest("ghcr.io/coder/cache:v1"))
        assert info.digest == sha(body)

    def test_index_selects_platform(self):
        child = manifest_body()
        child_digest = sha(child)
        index = json.dumps({
            "schemaVersion": 2,
            "mediaType": constants.MEDIA_TYPE_OCI_INDEX,
            "manifests": [
                {"digest": "sha256:" + "e" * 64, "platform": {"os": "linux", "architecture": "arm64"}},
                {"digest": child_digest, "platform": {"os": "linux", "architecture": "amd64"}},
            ],
        }).encode()
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith("/latest"):
                return httpx.Response(200, content=index)
            return httpx.Response(200, content=child)

        info = run_with(handler, lambda c: c.fetch_manifest("localhost:5000/envbuilder"))
        assert info.digest == child_digest
        assert paths == ["/v2/envbuilder/manifests/latest", f"/v2/envbuilder/manifests/{child_digest}"]

    def test_pinned_index_keeps_requested_digest(self):
        child = manifest_body()
        index = json.dumps({
            "schemaVersion": 2,
            "mediaType": constants.MEDIA_TYPE_OCI_INDEX,
            "manifests": [{"digest": sha(child), "platform": {"os": "linux", "architecture": "amd64"}}],
        }).encode()
        index_digest = sha(index)

        def handler(request):
            if request.url.path.endswith(index_digest):
                return httpx.Response(200, content=index)
            return httpx.Response(200, content=child)

        ref = f"localhost:5000/cache@{index_digest}"
        first = run_with(handler, lambda c: c.fetch_manifest(ref))
        second = run_with(handler, lambda c: c.fetch_manifest(ref))
        assert first.digest == second.digest == index_digest

    def test_index_without_platform_raises(self):
        index = json.dumps({"mediaType": constants.MEDIA_TYPE_OCI_INDEX, "manifests": []}).encode()

        def handler(request):
            return httpx.Response(200, content=index)

        with pytest.raises(RegistryError, match="linux/amd64"):
            run_with(handler, lambda c: c.fetch_manifest("localhost:5000/envbuilder"))

    @pytest.mark.parametrize("status, payload", [
        (404, None),
        (400, {"errors": [{"code": "MANIFEST_UNKNOWN", "message": "manifest unknown"}]}),
        (403, {"errors": [{"code": "NAME_UNKNOWN", "message": "repository name not known"}]}),
    ])
    def test_not_found(self, status, payload):
        def handler(request):
            if payload is None:
                return httpx.Response(status)
            return httpx.Response(status, json=payload)

        with pytest.raises(ManifestUnknownError):
            run_with(handler, lambda c: c.fetch_manifest("localhost:5000/cache@sha256:" + "f" * 64))

    def test_server_error_is_not_not_found(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(RegistryError) as exc_info:
            run_with(handler, lambda c: c.fetch_manifest("localhost:5000/cache"))
        assert not isinstance(exc_info.value, ManifestUnknownError)

    def test_transport_error_becomes_registry_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RegistryError, match="connection refused"):
            run_with(handler, lambda c: c.fetch_manifest("localhost:5000/cache"))


class TestAnonymousToken:
    """Tests for the anonymous bearer-token challenge."""

    def test_token_challenge(self):
        body = manifest_body()
        calls = []

        def handler(request):
            calls.append(request)
            if request.url.host == "auth.example.com":
                assert request.url.params["scope"] == "repository:coder/cache:pull"
                assert request.url.params["service"] == "registry.example.com"
                return httpx.Response(200, json={"token": "anon-token"})
            if request.headers.get("Authorization") != "Bearer anon-token":
                return httpx.Response(401, headers={
                    "WWW-Authenticate": 'Bearer realm="https://auth.example.com/token",'
                                        'service="registry.example.com",scope="repository:coder/cache:pull"',
                })
            return httpx.Response(200, content=body)

        info = run_with(handler, lambda c: c.fetch_manifest("registry.example.com/coder/cache:v1"))
        assert info.digest == sha(body)
        assert len(calls) == 3
        assert "Authorization" not in calls[1].headers

    def test_basic_challenge_is_not_answered(self):
        def handler(request):
            return httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="registry"'})

        with pytest.raises(RegistryError, match="requires authentication"):
            run_with(handler, lambda c: c.fetch_manifest("registry.example.com/coder/cache:v1"))


class TestFetchImage:
    """Tests for reading image layers."""

    @staticmethod
    def serve(blobs):
        def handler(request):
            path = request.url.path
            if "/manifests/" in path:
                return httpx.Response(200, content=manifest_body(*blobs))
            for blob in blobs:
                if path.endswith(sha(blob)):
                    return httpx.Response(200, content=blob)
            return httpx.Response(404)
        return handler

    def test_layers_are_decompressed(self):
        plain = b"plain tar bytes"
        zipped = gzip.compress(b"gzipped tar bytes")

        async def read_layers(client):
            image = await client.fetch_image("localhost:5000/envbuilder:latest")
            out = []
            for layer in image.layers():
                stream = await layer.uncompressed()
                try:
                    out.append(stream.read())
                finally:
                    stream.close()
            return image, out

        image, contents = run_with(self.serve([plain, zipped]), read_layers)
        assert contents == [b"plain tar bytes", b"gzipped tar bytes"]
        assert len(image.layers()) == 2

    def test_blob_digest_is_verified(self):
        blob = b"layer"

        def handler(request):
            if "/manifests/" in request.url.path:
                return httpx.Response(200, content=manifest_body(blob))
            return httpx.Response(200, content=b"tampered")

        async def read_first(client):
            image = await client.fetch_image("localhost:5000/envbuilder:latest")
            await image.layers()[0].uncompressed()

        with pytest.raises(RegistryError, match="digest verification"):
            run_with(handler, read_first)

    def test_missing_blob_raises(self):
        def handler(request):
            if "/manifests/" in request.url.path:
                return httpx.Response(200, content=manifest_body(b"layer"))
            return httpx.Response(404)

        async def read_first(client):
            image = await client.fetch_image("localhost:5000/envbuilder:latest")
            await image.layers()[0].uncompressed()

        with pytest.raises(RegistryError, match="HTTP 404"):
            run_with(handler, read_first)
