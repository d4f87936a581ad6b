"""Image compression stage."""
import asyncio
import io
import logging
import os
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from sitephotos.core.config import settings
from sitephotos.services.error_handling import CompressionError
from sitephotos.services.upload_models import CompressedFile, SourceFile

logger = logging.getLogger(__name__)

QUALITY_STEP = 10


@dataclass
class CompressionOptions:
    max_dimension: int = settings.IMAGE_MAX_DIMENSION
    max_bytes: int = settings.IMAGE_MAX_BYTES
    initial_quality: int = settings.IMAGE_INITIAL_QUALITY
    min_quality: int = settings.IMAGE_MIN_QUALITY
    timeout: float = settings.COMPRESSION_TIMEOUT


def jpeg_name(file_name: str) -> str:
    """Swap the extension of ``file_name`` for ``.jpg``."""
    stem, _ = os.path.splitext(file_name)
    return f"{stem or file_name}.jpg"


def compress_image_bytes(data: bytes, options: CompressionOptions) -> bytes:
    """Downscale and re-encode an image as JPEG.

    The longest side is capped at ``options.max_dimension`` and the JPEG quality
    is stepped down from ``initial_quality`` until the result fits in
    ``max_bytes`` or ``min_quality`` is reached. Raises ``CompressionError`` for
    anything Pillow cannot decode.
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            image = ImageOps.exif_transpose(opened)
            image.thumbnail((options.max_dimension, options.max_dimension))
            if image.mode != "RGB":
                image = image.convert("RGB")

            quality = options.initial_quality
            while True:
                buffer = io.BytesIO()
                image.save(buffer, format="JPEG", quality=quality, optimize=True)
                if buffer.tell() <= options.max_bytes or quality <= options.min_quality:
                    return buffer.getvalue()
                quality = max(quality - QUALITY_STEP, options.min_quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise CompressionError(f"Unsupported or corrupt image: {e}") from e


class CompressionStage:
    """Turns a captured image into an upload-sized JPEG off the event loop."""

    def __init__(self, options: CompressionOptions = None):
        self.options = options or CompressionOptions()

    async def compress(self, source: SourceFile) -> CompressedFile:
        """Compress ``source`` in a worker thread.

        The timeout only stops waiting: a thread cannot be interrupted, so an
        encode that overruns keeps its executor slot and CPU until Pillow
        returns, and its result is discarded.
        """
        if not source.data:
            raise CompressionError(f"{source.name} is empty")

        try:
            data = await asyncio.wait_for(
                asyncio.to_thread(compress_image_bytes, source.data, self.options),
                timeout=self.options.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Compression of {source.name} exceeded {self.options.timeout:g}s; "
                f"the encode is still running in its worker thread"
            )
            raise CompressionError(
                f"Compression of {source.name} timed out after {self.options.timeout:g}s"
            ) from e

        logger.debug(f"Compressed {source.name}: {len(source.data)} -> {len(data)} bytes")
        return CompressedFile(name=jpeg_name(source.name), data=data)
