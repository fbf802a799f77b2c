import asyncio
import logging
import os
import re
from typing import Dict, Optional

from .. import constants
from ..exceptions import DigestError, ProbeError
from ..options.environ import compute_env
from ..protocols import ProbeRequest

logger = logging.getLogger(__name__)

_DIGEST_PATTERN = re.compile(r"[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-fA-F0-9]{32,}")
_STDERR_TAIL_LINES = 20


class ProbedImage:
    """
    The image a successful probe reported.

    The probe announces its result as an `ENVBUILDER_CACHED_IMAGE=<repo>@<digest>`
    line; the digest is only validated when asked for.
    """

    def __init__(self, reference: Optional[str]):
        self.reference = reference

    @classmethod
    def from_output(cls, stdout: str) -> "ProbedImage":
        reference = None
        for line in stdout.splitlines():
            line = line.strip()
            if line.startswith(constants.CACHED_IMAGE_MARKER):
                reference = line[len(constants.CACHED_IMAGE_MARKER):]
        return cls(reference)

    def digest(self) -> str:
        if not self.reference:
            raise DigestError("probe output did not name a cached image")
        _, sep, digest = self.reference.rpartition("@")
        if not sep or not _DIGEST_PATTERN.fullmatch(digest):
            raise DigestError(f"cached image reference {self.reference!r} has no valid digest")
        return digest

    def __repr__(self) -> str:
        return f"ProbedImage({self.reference!r})"


class BinaryProbe:
    """
    Runs the builder binary in cache-only mode as a subprocess.

    The request's options become the child's environment, so nothing of the
    current process leaks in apart from PATH.
    """

    def __init__(self, extra_env: Optional[Dict[str, str]] = None):
        self.extra_env = dict(extra_env or {})

    def build_env(self, request: ProbeRequest) -> Dict[str, str]:
        env = dict(compute_env(request.options).env_map)
        env["KANIKO_DIR"] = str(request.work_dir)
        if "PATH" in os.environ:
            env.setdefault("PATH", os.environ["PATH"])
        env.update(self.extra_env)
        return env

    async def __call__(self, request: ProbeRequest) -> ProbedImage:
        request.work_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"[BinaryProbe] Running '{request.binary_path}' in '{request.work_dir}'")
        try:
            proc = await asyncio.create_subprocess_exec(
                str(request.binary_path),
                cwd=str(request.work_dir),
                env=self.build_env(request),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeError(f"failed to start probe '{request.binary_path}': {e}") from e

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            logger.warning(f"[BinaryProbe] Cancelled, killing probe process {proc.pid}")
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            tail = "\n".join(stderr.decode(errors="replace").splitlines()[-_STDERR_TAIL_LINES:])
            raise ProbeError(f"probe exited with status {proc.returncode}: {tail}")

        image = ProbedImage.from_output(stdout.decode(errors="replace"))
        logger.debug(f"[BinaryProbe] Probe reported {image!r}")
        return image
