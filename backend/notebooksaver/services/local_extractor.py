"""
NotebookSaver Backend — Local OCR Extractor
=============================================

What:  TextExtractor that runs recognition on this machine.
Why:   Works offline and without an API key; also the fallback when Cloud is
       selected but no key is configured.
How:   Delegates to a RecognitionEngine. The default engine wraps Tesseract
       via pytesseract; the engine call is blocking, so it runs in a worker
       thread to keep the event loop free.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import pytesseract
from PIL import Image

from notebooksaver.exceptions import NoTextFoundError, RecognitionFailedError
from notebooksaver.schemas.telemetry import ModelInfo
from notebooksaver.services.extractor_base import TextExtractor

logger = logging.getLogger(__name__)


class RecognitionEngine(ABC):
    """Opaque on-device recognizer: image in, recognized lines out."""

    name: str = "engine"

    @abstractmethod
    def recognize(self, image: Image.Image) -> List[str]:
        """
        Return recognized lines in reading order (possibly empty).

        Raises:
            RecognitionFailedError: the engine could not run
        """
        ...

    def is_available(self) -> bool:
        return True


class TesseractRecognitionEngine(RecognitionEngine):
    """Tesseract through pytesseract. Blank lines are dropped."""

    name = "Tesseract"

    def __init__(self, language: str = "eng", config: str = ""):
        self.language = language
        self.config = config

    def recognize(self, image: Image.Image) -> List[str]:
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        try:
            raw = pytesseract.image_to_string(image, lang=self.language, config=self.config)
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionFailedError(
                "The tesseract binary is not installed or not on PATH",
                context={"error": str(e)},
            ) from e
        except (pytesseract.TesseractError, RuntimeError) as e:
            raise RecognitionFailedError(context={"error": str(e)}) from e
        return [line.strip() for line in raw.splitlines() if line.strip()]

    def is_available(self) -> bool:
        try:
            pytesseract.get_tesseract_version()
            return True
        except pytesseract.TesseractNotFoundError:
            return False

    @property
    def version(self) -> Optional[str]:
        try:
            return str(pytesseract.get_tesseract_version())
        except pytesseract.TesseractNotFoundError:
            return None


class LocalExtractor(TextExtractor):
    """On-device implementation of TextExtractor. No network failure modes."""

    service_name = "Local"

    def __init__(self, engine: Optional[RecognitionEngine] = None):
        self.engine = engine or TesseractRecognitionEngine()

    async def extract_from_image(self, image: Image.Image) -> str:
        lines = await asyncio.to_thread(self.engine.recognize, image)
        if not lines:
            raise NoTextFoundError(context={"engine": self.engine.name})
        logger.info("%s recognized %d lines", self.engine.name, len(lines))
        return "\n".join(lines)

    async def health_check(self) -> bool:
        return await asyncio.to_thread(self.engine.is_available)

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            service_name=self.service_name,
            model_name=self.engine.name,
        )
