"""
NotebookSaver Backend — Service Wiring
========================================

What:  Builds every service once, hands each its collaborators, and tears
       them down again.
Why:   Services never reach for globals; the container is the only place
       that knows how the graph fits together. Tests build the same graph
       with fakes (in-memory store, fake URL opener, fake recognizer).
When:  ServiceContainer.create() runs in the FastAPI lifespan; aclose() on
       shutdown.

Wiring:
    host.on_foreground   → handoff_queue.drain_on_foreground
    host.on_background   → telemetry.cancel_all_active_sessions
    notifier.subscribe   → handoff_queue.handle_notification
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from notebooksaver.config import Settings
from notebooksaver.database import (
    create_session_factory,
    create_store_engine,
    dispose_engine,
    init_models,
)
from notebooksaver.services.handoff import (
    DraftHandoffQueue,
    HandoffTarget,
    SystemUrlOpener,
    UrlOpener,
)
from notebooksaver.services.host import HostLifecycle
from notebooksaver.services.local_extractor import RecognitionEngine, TesseractRecognitionEngine
from notebooksaver.services.model_catalog import ModelCatalogService
from notebooksaver.services.notifier import HandoffNotifier, NotificationPresenter
from notebooksaver.services.photo_archive import PhotoArchive
from notebooksaver.services.pipeline import ExtractionPipeline
from notebooksaver.services.store import KeyValueStore, SqlKeyValueStore
from notebooksaver.services.telemetry import TelemetryService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    http_client: httpx.AsyncClient
    store: KeyValueStore
    telemetry: TelemetryService
    host: HostLifecycle
    notifier: HandoffNotifier
    handoff_queue: DraftHandoffQueue
    catalog: ModelCatalogService
    pipeline: ExtractionPipeline
    engine: Optional[AsyncEngine] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: KeyValueStore,
        http_client: httpx.AsyncClient,
        url_opener: Optional[UrlOpener] = None,
        recognition_engine: Optional[RecognitionEngine] = None,
        presenter: Optional[NotificationPresenter] = None,
        engine: Optional[AsyncEngine] = None,
        telemetry: Optional[TelemetryService] = None,
    ) -> "ServiceContainer":
        """Wire the service graph around already-created resources."""
        telemetry = telemetry or TelemetryService(
            max_completed_sessions=settings.telemetry_max_sessions
        )
        host = HostLifecycle(active=settings.host_start_active)
        notifier = HandoffNotifier(presenter)
        target = HandoffTarget(
            url_opener or SystemUrlOpener(),
            scheme=settings.handoff_scheme,
            action=settings.handoff_action,
        )
        handoff_queue = DraftHandoffQueue(store, target, host, telemetry, notifier)
        catalog = ModelCatalogService(
            store,
            http_client,
            api_key=settings.gemini_api_key,
            api_endpoint=settings.api_endpoint_url,
            timeout=settings.request_timeout,
        )
        pipeline = ExtractionPipeline(
            settings,
            http_client,
            recognition_engine or TesseractRecognitionEngine(
                language=settings.tesseract_language,
                config=settings.tesseract_config,
            ),
            handoff_queue,
            telemetry,
            photo_archive=PhotoArchive(settings.photo_folder),
        )

        host.on_foreground(handoff_queue.drain_on_foreground)
        host.on_background(telemetry.cancel_all_active_sessions)
        notifier.subscribe(handoff_queue.handle_notification)

        return cls(
            settings=settings,
            http_client=http_client,
            store=store,
            telemetry=telemetry,
            host=host,
            notifier=notifier,
            handoff_queue=handoff_queue,
            catalog=catalog,
            pipeline=pipeline,
            engine=engine,
        )

    @classmethod
    async def create(cls, settings: Settings) -> "ServiceContainer":
        """Open the store and HTTP client, then wire everything."""
        engine = create_store_engine(settings.store_url, echo=settings.log_level == "DEBUG")
        if settings.store_auto_create:
            await init_models(engine)
        store = SqlKeyValueStore(create_session_factory(engine))
        http_client = httpx.AsyncClient(timeout=settings.request_timeout)
        container = cls.build(settings, store, http_client, engine=engine)
        await container.catalog.initialize_if_needed()
        if container.host.is_active:
            # Starting in the foreground counts as a transition for drafts queued before a restart
            await container.handoff_queue.drain_on_foreground()
        logger.info(
            "Services ready (extractor=%s, host %s)",
            settings.text_extractor_service,
            "active" if container.host.is_active else "inactive",
        )
        return container

    async def aclose(self) -> None:
        """Cancel open sessions, close the HTTP client and dispose the engine."""
        self.telemetry.cancel_all_active_sessions()
        await self.http_client.aclose()
        await dispose_engine(self.engine)
