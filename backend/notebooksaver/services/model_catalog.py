"""
NotebookSaver Backend — Gemini Model Catalog
=============================================

What:  Discovers which Gemini models can read an image, and caches the list.
Why:   Model ids change every few months. A fresh install fetches the list
       once; afterwards the cached list (or the built-in defaults) is used
       until the user asks for a refresh.
How:   GET {endpoint}?key=… → filter → strip "models/" → persist under
       cachedGeminiModels and set hasInitiallyFetchedModels.

Filter rules (a model is kept when both hold):
    1. its supported generation methods are unknown/empty, or include
       "generateContent" (any case)
    2. its name contains none of: embedding, imagen, veo, tts (any case)
"""

import asyncio
import json
import logging
from typing import Iterable, List, Optional

import httpx
from pydantic import SecretStr
from pydantic import ValidationError as PydanticValidationError

from notebooksaver.config import DEFAULT_API_ENDPOINT
from notebooksaver.exceptions import NotebookSaverError, ResponseDecodingError
from notebooksaver.schemas.catalog import ModelCatalog, ModelDescriptor, ModelListResponse
from notebooksaver.services.cloud_protocol import (
    build_authenticated_url,
    require_api_key,
    send_request,
)
from notebooksaver.services.store import KeyValueStore

logger = logging.getLogger(__name__)

CACHED_MODELS_KEY = "cachedGeminiModels"
FETCHED_ONCE_KEY = "hasInitiallyFetchedModels"

# Newest first
DEFAULT_MODEL_IDS: List[str] = [
    "gemini-3-pro-preview",
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-1.5-pro",
    "gemini-1.5-flash",
    "gemini-1.5-flash-8b",
]

EXCLUDED_NAME_FRAGMENTS = ("embedding", "imagen", "veo", "tts")
MODEL_NAME_PREFIX = "models/"


def filter_model_ids(models: Iterable[ModelDescriptor]) -> List[str]:
    """Ids of the models that can generate text from an image, in response order."""
    ids: List[str] = []
    for model in models:
        methods = [m.lower() for m in (model.supported_generation_methods or [])]
        if methods and "generatecontent" not in methods:
            continue
        lowered = model.name.lower()
        if any(fragment in lowered for fragment in EXCLUDED_NAME_FRAGMENTS):
            continue
        name = model.name
        if name.startswith(MODEL_NAME_PREFIX):
            name = name[len(MODEL_NAME_PREFIX):]
        ids.append(name)
    return ids


class ModelCatalogService:
    """
    Owns the model catalog cache.

    available_models mirrors the persisted list; call load_cached_model_ids()
    once after construction to populate it. Cache reads and writes go through
    one asyncio.Lock so a refresh never interleaves with a load.
    """

    def __init__(
        self,
        store: KeyValueStore,
        http_client: httpx.AsyncClient,
        api_key: Optional[SecretStr] = None,
        api_endpoint: Optional[str] = DEFAULT_API_ENDPOINT,
        timeout: float = 30.0,
    ):
        self.store = store
        self.http_client = http_client
        self.api_key = api_key
        self.api_endpoint = api_endpoint
        self.timeout = timeout
        self.available_models: List[str] = []
        self._lock = asyncio.Lock()

    async def should_fetch(self) -> bool:
        """True until a fetch has completed once (even one that returned nothing)."""
        raw = await self.store.get(FETCHED_ONCE_KEY)
        if raw is None:
            return True
        try:
            return json.loads(raw) is not True
        except ValueError:
            return True

    async def fetch_available_models(self) -> List[str]:
        """
        Fetch, filter and cache the model list.

        Returns:
            The filtered ids; the built-in defaults when the response has no
            `models` key. Either way the result replaces the cache and the
            fetched-once flag is set.

        Raises:
            MissingApiKeyError, InvalidApiEndpointError: before any request
            NetworkError, AuthenticationError, ServerError: request failed
            ResponseDecodingError: 200 with an undecodable body
        """
        api_key = require_api_key(self.api_key)
        url = build_authenticated_url(self.api_endpoint, api_key)
        response = await send_request(self.http_client, "GET", url, timeout=self.timeout)

        try:
            listing = ModelListResponse.model_validate_json(response.content)
        except PydanticValidationError as e:
            raise ResponseDecodingError(
                "Could not decode the Gemini model list",
                context={"errors": e.error_count()},
            ) from e

        if listing.models is None:
            logger.warning("Model list response has no 'models' key; using defaults")
            ids = list(DEFAULT_MODEL_IDS)
        else:
            ids = filter_model_ids(listing.models)
            logger.info(
                "Fetched %d models, %d usable for text extraction",
                len(listing.models),
                len(ids),
            )

        async with self._lock:
            await self.store.set(CACHED_MODELS_KEY, json.dumps(ids))
            await self.store.set(FETCHED_ONCE_KEY, json.dumps(True))
            self.available_models = ids
        return ids

    async def load_cached_model_ids(self) -> List[str]:
        """The persisted list when present and decodable, otherwise the defaults."""
        async with self._lock:
            raw = await self.store.get(CACHED_MODELS_KEY)
            ids = self._decode_cached(raw)
            self.available_models = ids
            return list(ids)

    async def snapshot(self) -> ModelCatalog:
        ids = await self.load_cached_model_ids()
        return ModelCatalog(ids=ids, fetched_once=not await self.should_fetch())

    async def initialize_if_needed(self) -> bool:
        """
        First-launch fetch.

        Fetches only when no fetch has completed yet and a key is configured.
        Failures are logged and swallowed: the defaults stay usable and the
        next launch tries again.

        Returns:
            True when a fetch ran and succeeded.
        """
        await self.load_cached_model_ids()
        if not await self.should_fetch():
            return False
        if self.api_key is None or not self.api_key.get_secret_value().strip():
            logger.info("Skipping initial model fetch: no API key configured")
            return False
        try:
            await self.fetch_available_models()
            return True
        except NotebookSaverError as e:
            logger.warning("Initial model fetch failed (defaults in use): %s", e.message)
            return False

    @staticmethod
    def _decode_cached(raw: Optional[str]) -> List[str]:
        if raw is None:
            return list(DEFAULT_MODEL_IDS)
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Cached model list is not valid JSON; using defaults")
            return list(DEFAULT_MODEL_IDS)
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            logger.warning("Cached model list has an unexpected shape; using defaults")
            return list(DEFAULT_MODEL_IDS)
        return value
