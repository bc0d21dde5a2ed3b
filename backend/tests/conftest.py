"""
NotebookSaver Backend — Test Configuration (conftest.py)
=========================================================

What:  Shared fixtures and fakes for the test suite.
Why:   Tests never touch the network, the real Drafts app, Tesseract or a
       database file unless they ask for one explicitly.

Fixture Hierarchy (all function-scoped):
    ├── test_settings:      Settings isolated from the environment / .env
    ├── store:              InMemoryKeyValueStore
    ├── telemetry:          TelemetryService with a fixed device snapshot
    ├── opener:             FakeUrlOpener (installed, accepts every URL)
    ├── host:               HostLifecycle, inactive
    ├── handoff_queue:      DraftHandoffQueue wired to the above
    ├── engine:             FakeRecognitionEngine
    ├── sample_image_bytes: a real 64×48 PNG
    ├── container:          ServiceContainer built from fakes
    └── test_client:        HTTPX AsyncClient over ASGITransport
"""

import asyncio
import io
import os
import tempfile
from datetime import datetime, timezone
from typing import Callable, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Before any notebooksaver import: the module-level settings read these
os.environ["STORE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="notebooksaver_test_"), "test.db"
)
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["PHOTO_FOLDER"] = tempfile.mkdtemp(prefix="notebooksaver_photos_")
os.environ["LOG_LEVEL"] = "WARNING"

from notebooksaver.config import Settings  # noqa: E402
from notebooksaver.schemas.telemetry import DeviceContextSnapshot  # noqa: E402
from notebooksaver.services.container import ServiceContainer  # noqa: E402
from notebooksaver.services.handoff import DraftHandoffQueue, HandoffTarget, UrlOpener  # noqa: E402
from notebooksaver.services.host import HostLifecycle  # noqa: E402
from notebooksaver.services.local_extractor import RecognitionEngine  # noqa: E402
from notebooksaver.services.notifier import HandoffNotifier, NotificationPresenter  # noqa: E402
from notebooksaver.services.store import InMemoryKeyValueStore  # noqa: E402
from notebooksaver.services.telemetry import TelemetryService  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════

class FakeUrlOpener(UrlOpener):
    """
    Records opened URLs.

    open() pops results from `results` (default True when exhausted), or
    raises `error` when set. `gate`, when set, is awaited inside open() so a
    test can hold a hand-off in flight.
    """

    def __init__(self, installed: bool = True, results: Optional[List[bool]] = None):
        self.installed = installed
        self.results = list(results or [])
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.probed: List[str] = []
        self.opened: List[str] = []

    async def can_open(self, url: str) -> bool:
        self.probed.append(url)
        return self.installed

    async def open(self, url: str) -> bool:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.opened.append(url)
        return self.results.pop(0) if self.results else True


class FakeRecognitionEngine(RecognitionEngine):
    name = "FakeOCR"

    def __init__(self, lines: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.lines = lines if lines is not None else ["Line one", "Line two"]
        self.error = error
        self.calls = 0

    def recognize(self, image: Image.Image) -> List[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.lines)


class RecordingPresenter(NotificationPresenter):
    def __init__(self):
        self.presented = []

    async def present(self, correlation_id: str, title: str, body: str) -> None:
        self.presented.append((correlation_id, title, body))


def fixed_device_context() -> DeviceContextSnapshot:
    return DeviceContextSnapshot(
        device_model="x86_64",
        os_version="Linux 6.0",
        app_version="test",
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        memory_pressure="Low (100MB)",
        thermal_state="Normal",
    )


def mock_http_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose every request is answered by `handler`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_image_bytes(size=(64, 48), fmt: str = "PNG", color: str = "white") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key="test-key-not-real",
        text_extractor_service="Local",
        store_url=f"sqlite+aiosqlite:///{tmp_path / 'store.db'}",
        photo_folder=str(tmp_path / "photos"),
        retry_min_wait=0,
        retry_max_wait=0,
        host_start_active=False,
        log_level="WARNING",
    )


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def telemetry() -> TelemetryService:
    return TelemetryService(max_completed_sessions=50, context_provider=fixed_device_context)


@pytest.fixture
def opener() -> FakeUrlOpener:
    return FakeUrlOpener()


@pytest.fixture
def host() -> HostLifecycle:
    return HostLifecycle(active=False)


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def handoff_queue(store, opener, host, telemetry, presenter) -> DraftHandoffQueue:
    return DraftHandoffQueue(
        store,
        HandoffTarget(opener),
        host,
        telemetry,
        HandoffNotifier(presenter),
    )


@pytest.fixture
def engine() -> FakeRecognitionEngine:
    return FakeRecognitionEngine()


@pytest.fixture
def sample_image_bytes() -> bytes:
    return make_image_bytes()


@pytest_asyncio.fixture
async def container(test_settings, store, opener, engine, presenter, telemetry):
    http_client = mock_http_client(lambda request: httpx.Response(503))
    built = ServiceContainer.build(
        test_settings,
        store,
        http_client,
        url_opener=opener,
        recognition_engine=engine,
        presenter=presenter,
        telemetry=telemetry,
    )
    yield built
    await http_client.aclose()


@pytest_asyncio.fixture
async def test_client(container):
    """HTTPX client talking to an app that uses the fake-backed container."""
    from notebooksaver.main import create_app

    app = create_app(container.settings, container=container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
