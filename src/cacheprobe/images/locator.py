import asyncio
import logging
import lzma
import os
import posixpath
import shutil
import tarfile
import threading
import zlib
from pathlib import Path
from typing import BinaryIO, Optional

from .. import constants
from ..exceptions import BinaryNotFoundError, RegistryError
from ..protocols import RegistryProtocol

logger = logging.getLogger(__name__)

# Raised by tarfile and the decompressors it wraps on a layer that is not a readable tar.
_UNREADABLE_LAYER_ERRORS = (tarfile.TarError, EOFError, zlib.error, lzma.LZMAError)


def normalize_entry(name: str) -> str:
    """Normalize a tar entry or target path for exact comparison."""
    return posixpath.normpath("/" + name).lstrip("/")


def _copy_from_layer(stream: BinaryIO, target: str, dest: Path, stop: Optional[threading.Event] = None) -> bool:
    """
    Scan one uncompressed layer for a regular file named `target`.

    Returns True once the file was written to `dest`. Setting `stop` makes
    the scan return False before anything is written.
    """
    with tarfile.open(fileobj=stream, mode="r|*") as tar:
        for member in tar:
            if stop is not None and stop.is_set():
                return False
            if not member.isreg():
                continue
            if normalize_entry(member.name) != target:
                continue
            src = tar.extractfile(member)
            if src is None:
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            with src, open(dest, "wb") as out:
                shutil.copyfileobj(src, out)
            os.chmod(dest, constants.BINARY_MODE)
            return True
    return False


class ImageBinaryLocator:
    """
    Pulls one file out of a remote image without unpacking the image.

    Layers are scanned newest first, because the topmost copy of a path is
    the one the container sees.
    """

    def __init__(self, registry: RegistryProtocol):
        self.registry = registry

    async def extract(
        self, image_ref: str, dest: Path, target: str = constants.MAGIC_BINARY_LOCATION
    ) -> Path:
        """
        Args:
            image_ref: image to search
            dest: path the file is written to (parents are created)
            target: absolute path of the file inside the image

        Raises:
            BinaryNotFoundError: no layer contains `target` as a regular file
            RegistryError: fetching the image or a layer failed
        """
        dest = Path(dest)
        wanted = normalize_entry(target)
        image = await self.registry.fetch_image(image_ref)
        layers = image.layers()
        logger.debug(f"[ImageBinaryLocator] Searching {len(layers)} layers of '{image_ref}' for '/{wanted}'")

        loop = asyncio.get_running_loop()
        for idx in range(len(layers) - 1, -1, -1):
            stream = await layers[idx].uncompressed()
            try:
                found = await self._scan_layer(loop, stream, wanted, dest)
            except _UNREADABLE_LAYER_ERRORS as e:
                raise RegistryError(f"layer {idx} of {image_ref} is not a readable tar archive: {e}") from e
            finally:
                stream.close()
            if found:
                logger.info(f"[ImageBinaryLocator] Found '/{wanted}' in layer {idx} of '{image_ref}'.")
                return dest
        raise BinaryNotFoundError(image_ref, wanted)

    @staticmethod
    async def _scan_layer(loop: asyncio.AbstractEventLoop, stream: BinaryIO, wanted: str, dest: Path) -> bool:
        """Scan a layer in a worker thread; on cancellation, wait for the worker to stop first."""
        stop = threading.Event()
        future = loop.run_in_executor(None, _copy_from_layer, stream, wanted, dest, stop)
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            stop.set()
            await asyncio.wait([future])
            raise
