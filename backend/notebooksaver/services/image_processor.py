"""
NotebookSaver Backend — Image Decoding & Preparation
======================================================

What:  Decodes uploaded bytes into a Pillow image and prepares images for
       upload to Gemini (fit inside the target box, re-encode as JPEG).
Why:   Phone photos of notebook pages are 12+ megapixels; Gemini reads a
       page just as well at ~1365×1536 and the upload shrinks by an order of
       magnitude.
How:   Pillow. decode_image() validates by actually decoding (a renamed or
       truncated file fails here rather than at the OCR engine or upstream).

Flow:
    bytes ─decode_image()─▶ Image ─ImageProcessor.prepare()─▶ PreparedImage
                                                              (JPEG bytes + ImageMetadata)
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from notebooksaver.exceptions import InvalidImageDataError, PreprocessingError
from notebooksaver.schemas.telemetry import ImageMetadata

logger = logging.getLogger(__name__)

# Key in Image.info carrying the encoded size of the upload
SOURCE_SIZE_KEY = "notebooksaver.source_size"


def decode_image(data: bytes) -> Image.Image:
    """
    Decode encoded image bytes.

    EXIF orientation is applied so a portrait page shot sideways reaches the
    recognizer upright.

    Raises:
        InvalidImageDataError: empty input or bytes Pillow cannot decode
    """
    if not data:
        raise InvalidImageDataError("No image data was supplied")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise InvalidImageDataError(
            context={"bytes": len(data), "error": str(e)},
        ) from e

    source_format = image.format
    image = ImageOps.exif_transpose(image)
    image.info[SOURCE_SIZE_KEY] = len(data)
    if source_format and not image.format:
        image.format = source_format
    return image


@dataclass(frozen=True)
class PreparedImage:
    data: bytes
    mime_type: str
    metadata: ImageMetadata


class ImageProcessor:
    """
    Resizes and re-encodes images for upload.

    Images already inside the target box are not upscaled.
    """

    MIME_TYPE = "image/jpeg"

    def __init__(
        self,
        target_width: int = 1365,
        target_height: int = 1536,
        quality: int = 60,
    ):
        self.target_width = target_width
        self.target_height = target_height
        self.quality = quality

    def resize_to_fit(self, image: Image.Image) -> Image.Image:
        """Copy of `image` scaled down (aspect preserved) to fit the target box."""
        resized = image.copy()
        resized.thumbnail(
            (self.target_width, self.target_height),
            Image.Resampling.LANCZOS,
        )
        return resized

    def encode(self, image: Image.Image) -> bytes:
        """JPEG-encode; modes JPEG cannot store (RGBA, P, ...) are flattened to RGB."""
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.quality, optimize=True)
        return buffer.getvalue()

    def prepare(self, image: Image.Image, original_size_bytes: Optional[int] = None) -> PreparedImage:
        """
        Resize and encode `image`, recording before/after dimensions and sizes.

        original_size_bytes defaults to the size decode_image() recorded, or 0
        when the image did not come from decode_image().

        Raises:
            PreprocessingError: Pillow failed to resize or encode
        """
        if original_size_bytes is None:
            original_size_bytes = int(image.info.get(SOURCE_SIZE_KEY, 0))
        try:
            resized = self.resize_to_fit(image)
            data = self.encode(resized)
        except (OSError, ValueError) as e:
            raise PreprocessingError(context={"error": str(e), "mode": image.mode}) from e

        metadata = ImageMetadata(
            original_width=image.width,
            original_height=image.height,
            processed_width=resized.width,
            processed_height=resized.height,
            original_file_size_bytes=original_size_bytes,
            processed_file_size_bytes=len(data),
            compression_quality=self.quality / 100,
            image_format="JPEG",
        )
        logger.debug(
            "Prepared image %dx%d -> %dx%d (%d -> %d bytes)",
            image.width,
            image.height,
            resized.width,
            resized.height,
            original_size_bytes,
            len(data),
        )
        return PreparedImage(data=data, mime_type=self.MIME_TYPE, metadata=metadata)
