"""
NotebookSaver Backend — Model Catalog Unit Tests
==================================================

What:  ModelCatalogService against an httpx MockTransport and an in-memory store.

What we test:
    ✅ Filtering by generation method and excluded model families
    ✅ "models/" prefix stripping
    ✅ should_fetch flips after any completed fetch, even an empty one
    ✅ Defaults when the response has no models key, and for an empty cache
    ✅ Error mapping: missing key, bad endpoint, 401, 5xx, network, bad JSON
    ❌ The real Gemini API
"""

import json

import httpx
import pytest
from pydantic import SecretStr

from conftest import mock_http_client
from notebooksaver.exceptions import (
    AuthenticationError,
    InvalidApiEndpointError,
    MissingApiKeyError,
    NetworkError,
    ResponseDecodingError,
    ServerError,
)
from notebooksaver.schemas.catalog import ModelDescriptor
from notebooksaver.services.model_catalog import (
    CACHED_MODELS_KEY,
    DEFAULT_MODEL_IDS,
    FETCHED_ONCE_KEY,
    ModelCatalogService,
    filter_model_ids,
)
from notebooksaver.services.store import InMemoryKeyValueStore


def make_service(store, handler, api_key="test-key", endpoint="https://example.test/v1beta/models/"):
    return ModelCatalogService(
        store,
        mock_http_client(handler),
        api_key=SecretStr(api_key) if api_key is not None else None,
        api_endpoint=endpoint,
    )


def json_response(payload, status=200):
    return lambda request: httpx.Response(status, json=payload)


class TestFilterModelIds:
    """Tests for the model filter rules."""

    def test_keeps_only_generate_content_models_outside_excluded_families(self):
        """Embedding-only and excluded-family models are dropped."""
        models = [
            ModelDescriptor(name="models/gemini-pro", supported_generation_methods=["generateContent"]),
            ModelDescriptor(name="models/text-embedding-004", supported_generation_methods=["embedContent"]),
            ModelDescriptor(name="models/imagen-3", supported_generation_methods=["generateContent"]),
        ]
        assert filter_model_ids(models) == ["gemini-pro"]

    def test_empty_method_list_is_kept(self):
        """Unknown capabilities are given the benefit of the doubt."""
        models = [ModelDescriptor(name="models/gemini-x", supported_generation_methods=[])]
        assert filter_model_ids(models) == ["gemini-x"]

    def test_missing_method_list_is_kept(self):
        """A model without the methods field behaves like an empty list."""
        assert filter_model_ids([ModelDescriptor(name="models/gemini-y")]) == ["gemini-y"]

    def test_method_match_is_case_insensitive(self):
        """GENERATECONTENT counts as generateContent."""
        models = [ModelDescriptor(name="models/a", supported_generation_methods=["GENERATECONTENT"])]
        assert filter_model_ids(models) == ["a"]

    @pytest.mark.parametrize("name", ["models/VEO-2", "models/gemini-tts", "models/Gemini-Embedding-Exp"])
    def test_excluded_fragments_are_case_insensitive(self, name):
        """veo / tts / embedding are matched regardless of case."""
        models = [ModelDescriptor(name=name, supported_generation_methods=["generateContent"])]
        assert filter_model_ids(models) == []

    def test_name_without_prefix_is_kept_as_is(self):
        """Only a leading 'models/' is stripped."""
        assert filter_model_ids([ModelDescriptor(name="tuned/gemini")]) == ["tuned/gemini"]

    def test_accepts_camel_case_field(self):
        """The REST API's supportedGenerationMethods spelling is understood."""
        model = ModelDescriptor.model_validate(
            {"name": "models/m", "supportedGenerationMethods": ["countTokens"]}
        )
        assert filter_model_ids([model]) == []


class TestFetchAvailableModels:
    """Tests for fetch_available_models()."""

    def setup_method(self):
        self.store = InMemoryKeyValueStore()

    @pytest.mark.asyncio
    async def test_fetch_filters_caches_and_sets_flag(self):
        """The filtered ids are returned, persisted and mirrored in memory."""
        payload = {
            "models": [
                {"name": "models/gemini-pro", "supported_generation_methods": ["generateContent"]},
                {"name": "models/text-embedding-004", "supported_generation_methods": ["embedContent"]},
                {"name": "models/imagen-3", "supported_generation_methods": ["generateContent"]},
            ]
        }
        service = make_service(self.store, json_response(payload))
        assert await service.should_fetch() is True

        ids = await service.fetch_available_models()

        assert ids == ["gemini-pro"]
        assert service.available_models == ["gemini-pro"]
        assert json.loads(await self.store.get(CACHED_MODELS_KEY)) == ["gemini-pro"]
        assert await service.should_fetch() is False

    @pytest.mark.asyncio
    async def test_empty_result_still_sets_flag(self):
        """A fetch that filters everything out still counts as done."""
        payload = {"models": [{"name": "models/veo-2", "supported_generation_methods": []}]}
        service = make_service(self.store, json_response(payload))

        assert await service.fetch_available_models() == []
        assert await service.should_fetch() is False
        assert await self.store.get(FETCHED_ONCE_KEY) == "true"

    @pytest.mark.asyncio
    async def test_missing_models_key_yields_defaults(self):
        """A body without 'models' returns and caches the built-in defaults."""
        service = make_service(self.store, json_response({}))

        ids = await service.fetch_available_models()

        assert ids == DEFAULT_MODEL_IDS
        assert json.loads(await self.store.get(CACHED_MODELS_KEY)) == DEFAULT_MODEL_IDS
        assert await service.should_fetch() is False

    @pytest.mark.asyncio
    async def test_sends_key_as_query_parameter(self):
        """The API key travels in the `key` query parameter of a GET."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"models": []})

        service = make_service(self.store, handler, api_key="  abc123 ")
        await service.fetch_available_models()

        assert seen[0].method == "GET"
        assert seen[0].url.params["key"] == "abc123"
        assert seen[0].url.host == "example.test"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("api_key", [None, "", "   "])
    async def test_missing_key_raises_before_request(self, api_key):
        """No key means MissingApiKeyError and no network traffic."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        service = make_service(self.store, handler, api_key=api_key)
        with pytest.raises(MissingApiKeyError):
            await service.fetch_available_models()
        assert calls == []
        assert await service.should_fetch() is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("endpoint", [None, "", "not a url", "ftp://example.test/models"])
    async def test_invalid_endpoint(self, endpoint):
        """An unusable base URL is reported as InvalidApiEndpointError."""
        service = make_service(self.store, json_response({}), endpoint=endpoint)
        with pytest.raises(InvalidApiEndpointError) as exc_info:
            await service.fetch_available_models()
        assert exc_info.value.reason == "Invalid URL configuration"

    @pytest.mark.asyncio
    async def test_401_maps_to_authentication_error(self):
        """A rejected key is an AuthenticationError, and nothing is cached."""
        service = make_service(self.store, json_response({"error": "bad key"}, status=401))
        with pytest.raises(AuthenticationError):
            await service.fetch_available_models()
        assert await self.store.get(CACHED_MODELS_KEY) is None
        assert await service.should_fetch() is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 403, 429, 500, 503])
    async def test_other_statuses_map_to_server_error(self, status):
        """Every other non-200 status is a ServerError carrying the status."""
        service = make_service(self.store, json_response({}, status=status))
        with pytest.raises(ServerError) as exc_info:
            await service.fetch_available_models()
        assert exc_info.value.upstream_status == status

    @pytest.mark.asyncio
    async def test_transport_failure_maps_to_network_error(self):
        """Connection failures surface as NetworkError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = make_service(self.store, handler)
        with pytest.raises(NetworkError) as exc_info:
            await service.fetch_available_models()
        assert isinstance(exc_info.value.underlying, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        """A 200 with a non-JSON body is a ResponseDecodingError."""
        service = make_service(self.store, lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(ResponseDecodingError):
            await service.fetch_available_models()


class TestCachedModels:
    """Tests for load_cached_model_ids() and initialize_if_needed()."""

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_cached(self):
        """A fresh store yields the default list verbatim."""
        service = make_service(InMemoryKeyValueStore(), json_response({}))
        assert await service.load_cached_model_ids() == DEFAULT_MODEL_IDS

    @pytest.mark.asyncio
    async def test_returns_persisted_list(self):
        """A cached list (even an empty one) is returned as stored."""
        store = InMemoryKeyValueStore({CACHED_MODELS_KEY: json.dumps(["a", "b"])})
        service = make_service(store, json_response({}))
        assert await service.load_cached_model_ids() == ["a", "b"]
        assert service.available_models == ["a", "b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["{not json", json.dumps({"a": 1}), json.dumps([1, 2])])
    async def test_undecodable_cache_falls_back_to_defaults(self, raw):
        """Garbage in the cache is ignored in favour of the defaults."""
        store = InMemoryKeyValueStore({CACHED_MODELS_KEY: raw})
        service = make_service(store, json_response({}))
        assert await service.load_cached_model_ids() == DEFAULT_MODEL_IDS

    @pytest.mark.asyncio
    async def test_initialize_fetches_once(self):
        """The first-launch fetch runs when needed and not again afterwards."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"models": [{"name": "models/gemini-pro"}]})

        service = make_service(InMemoryKeyValueStore(), handler)
        assert await service.initialize_if_needed() is True
        assert await service.initialize_if_needed() is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_initialize_swallows_fetch_errors(self):
        """A failing first-launch fetch leaves the defaults in place."""
        service = make_service(InMemoryKeyValueStore(), json_response({}, status=500))
        assert await service.initialize_if_needed() is False
        assert service.available_models == DEFAULT_MODEL_IDS
        assert await service.should_fetch() is True

    @pytest.mark.asyncio
    async def test_initialize_skips_without_key(self):
        """No key, no request."""
        service = make_service(InMemoryKeyValueStore(), json_response({}), api_key=None)
        assert await service.initialize_if_needed() is False

    @pytest.mark.asyncio
    async def test_snapshot(self):
        """snapshot() reports the ids together with the fetched-once flag."""
        service = make_service(InMemoryKeyValueStore(), json_response({"models": []}))
        before = await service.snapshot()
        await service.fetch_available_models()
        after = await service.snapshot()
        assert before.fetched_once is False and before.ids == DEFAULT_MODEL_IDS
        assert after.fetched_once is True and after.ids == []
