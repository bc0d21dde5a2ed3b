"""
NotebookSaver Backend — Extraction Pipeline (Business Logic Orchestrator)
===========================================================================

What:  Runs one capture end-to-end: decode → (archive photo) → extract text
       → hand off to Drafts, inside one telemetry session.
Why:   Keeps the capture workflow in one place, independent of HTTP concerns.
How:   Composes a TextExtractor (chosen per capture from the current
       settings), PhotoArchive, DraftHandoffQueue and TelemetryService.

Orchestration Flow (POST /api/extract):
    ┌─────────┐   ┌──────────┐   ┌──────────────┐   ┌──────────────┐
    │ Decode  │──▶│ Archive  │──▶│  Extract     │──▶│  Hand off    │
    │ (Pillow)│   │(optional)│   │ Cloud/Local  │   │ now / queue  │
    └─────────┘   └──────────┘   └──────────────┘   └──────────────┘

Error Recovery:
    Decode fails       → InvalidImageDataError (400), nothing else runs
    Archive fails      → logged; extraction continues (the archive is optional)
    Gemini 5xx         → retried with exponential backoff + jitter (tenacity);
                         the last ServerError propagates when attempts run out
    Any other failure  → propagates unchanged; the session is marked failed
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx
from PIL import Image
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from notebooksaver.config import Settings
from notebooksaver.exceptions import FileStorageError, NotebookSaverError, ServerError
from notebooksaver.schemas.extraction import ExtractorConfig, ServiceKind
from notebooksaver.schemas.handoff import HandoffOutcome
from notebooksaver.schemas.telemetry import ModelInfo
from notebooksaver.services.cloud_extractor import CloudExtractor
from notebooksaver.services.extractor_base import TextExtractor
from notebooksaver.services.handoff import DraftHandoffQueue
from notebooksaver.services.image_processor import ImageProcessor, decode_image
from notebooksaver.services.local_extractor import LocalExtractor, RecognitionEngine
from notebooksaver.services.photo_archive import PhotoArchive, extension_for_format
from notebooksaver.services.telemetry import TelemetryService

logger = logging.getLogger(__name__)


def is_retryable(error: BaseException) -> bool:
    """Only upstream 5xx responses are worth another attempt."""
    return isinstance(error, ServerError) and error.is_retryable


@dataclass(frozen=True)
class PipelineResult:
    text: str
    outcome: HandoffOutcome
    model_info: ModelInfo
    session_id: uuid.UUID
    photo_path: Optional[str] = None


class ExtractionPipeline:
    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        recognition_engine: RecognitionEngine,
        handoff_queue: DraftHandoffQueue,
        telemetry: TelemetryService,
        image_processor: Optional[ImageProcessor] = None,
        photo_archive: Optional[PhotoArchive] = None,
    ):
        self.settings = settings
        self.http_client = http_client
        self.recognition_engine = recognition_engine
        self.handoff_queue = handoff_queue
        self.telemetry = telemetry
        self.image_processor = image_processor or ImageProcessor(
            target_width=settings.target_image_width,
            target_height=settings.target_image_height,
            quality=settings.image_quality,
        )
        self.photo_archive = photo_archive

    def build_extractor(self, config: ExtractorConfig) -> TextExtractor:
        """The extractor for `config`; call sites never branch on the kind themselves."""
        if config.service_kind is ServiceKind.CLOUD:
            return CloudExtractor(
                config,
                self.http_client,
                image_processor=self.image_processor,
                api_endpoint=self.settings.api_endpoint_url,
                timeout=self.settings.request_timeout,
                warm_up_timeout=self.settings.warm_up_timeout,
            )
        return LocalExtractor(self.recognition_engine)

    def current_extractor(self) -> TextExtractor:
        return self.build_extractor(ExtractorConfig.from_settings(self.settings))

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.settings.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.settings.retry_min_wait,
                max=self.settings.retry_max_wait,
                jitter=self.settings.retry_min_wait / 2,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def extract(self, extractor: TextExtractor, image: Image.Image) -> str:
        """extract_text with the retry policy applied."""
        return await self._retrying()(extractor.extract_text, image)

    async def process_image(
        self,
        content: bytes,
        tag: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run one capture.

        Args:
            content: encoded image bytes as uploaded
            tag: Drafts tag override; defaults to the configured tag when
                 tagging is enabled

        Raises:
            InvalidImageDataError, NoTextFoundError, the cloud errors, and the
            hand-off errors of DraftHandoffQueue.submit
        """
        extractor = self.current_extractor()
        photo_path: Optional[str] = None

        with self.telemetry.session() as scope:
            with self.telemetry.timed("Decode Image", scope.id):
                image = await asyncio.to_thread(decode_image, content)

            if self.settings.save_photos_enabled and self.photo_archive is not None:
                photo_path = await self._archive(content, image.format, scope.id)

            token = self.telemetry.start_timing("Text Extraction", scope.id)
            try:
                text = await self.extract(extractor, image)
            except NotebookSaverError as e:
                self.telemetry.end_timing(token, error=e, model_info=extractor.model_info())
                raise
            model_info = extractor.model_info()
            self.telemetry.end_timing(token, model_info=model_info)

            if tag is None and self.settings.add_draft_tag_enabled:
                tag = self.settings.drafts_tag
            token = self.telemetry.start_timing("Create Draft", scope.id)
            try:
                outcome = await self.handoff_queue.submit(text, tag)
            except NotebookSaverError as e:
                self.telemetry.end_timing(token, error=e)
                raise
            self.telemetry.end_timing(token)

        logger.info(
            "Capture %s: %d chars via %s, hand-off %s",
            scope.id,
            len(text),
            model_info.service_name,
            outcome.value,
        )
        return PipelineResult(
            text=text,
            outcome=outcome,
            model_info=model_info,
            session_id=scope.id,
            photo_path=photo_path,
        )

    async def _archive(self, content: bytes, image_format: Optional[str], session_id: uuid.UUID) -> Optional[str]:
        token = self.telemetry.start_timing("Save Photo", session_id)
        try:
            path = await self.photo_archive.save(content, extension_for_format(image_format))
        except FileStorageError as e:
            self.telemetry.end_timing(token, error=e)
            logger.warning("Photo not archived: %s", e.message)
            return None
        self.telemetry.end_timing(token)
        return path
