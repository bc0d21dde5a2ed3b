"""
NotebookSaver Backend — Abstract Text Extractor Interface
===========================================================

What:  Abstract base class for turning an image of a notebook page into text.
Why:   The pipeline, the routes and the tests call extract_text() without
       knowing whether the text comes from Gemini or the local OCR engine.
       This is the Strategy design pattern.
How:   Concrete implementations inherit from TextExtractor and implement
       extract_from_image(), health_check() and model_info().

Implementations:
    - CloudExtractor: Gemini generateContent over REST
    - LocalExtractor: on-device OCR through a RecognitionEngine (Tesseract)

Contract:
    - extract_text() accepts encoded bytes or an already decoded Pillow image;
      both end up in extract_from_image()
    - undecodable input fails with InvalidImageDataError before any back-end
      work happens
    - implementations never retry; the caller decides (ExtractionPipeline)
    - back-end errors propagate uninterpreted as NotebookSaverError subclasses
"""

from abc import ABC, abstractmethod
from typing import Union

from PIL import Image

from notebooksaver.schemas.telemetry import ModelInfo
from notebooksaver.services.image_processor import decode_image

ImageInput = Union[bytes, bytearray, memoryview, Image.Image]


class TextExtractor(ABC):
    """Abstract interface for image → text back-ends."""

    service_name: str = "Unknown"

    async def extract_text(self, image: ImageInput) -> str:
        """
        Extract text from an image.

        Args:
            image: Encoded image bytes (JPEG, PNG, HEIC where Pillow supports
                   it, ...) or a decoded Pillow image.

        Returns:
            The recognized text. Never empty: a back-end that finds nothing
            raises NoTextFoundError instead.

        Raises:
            InvalidImageDataError: bytes could not be decoded
            NotebookSaverError: any back-end specific failure
        """
        if isinstance(image, Image.Image):
            decoded = image
        else:
            decoded = decode_image(bytes(image))
        return await self.extract_from_image(decoded)

    @abstractmethod
    async def extract_from_image(self, image: Image.Image) -> str:
        """Back-end specific extraction from a decoded image."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check whether the back-end is usable right now.

        Lightweight, never raises; used by GET /health and to warm up the
        connection before the first capture.
        """
        ...

    @abstractmethod
    def model_info(self) -> ModelInfo:
        """Describe the back-end (and, where known, the last prepared image) for telemetry."""
        ...
