"""
NotebookSaver Backend — Gemini Cloud Extractor
================================================

What:  TextExtractor backed by the Gemini generateContent REST endpoint.
Why:   Gemini reads handwriting far better than classic OCR, at the cost of
       a network round trip and an API key.
How:   1. Check the key, the model id and the endpoint (no network yet)
       2. Fit the image inside the target box and re-encode as JPEG
       3. POST prompt + base64 image to {endpoint}/{model}:generateContent?key=…
       4. Join the text parts of the first candidate

Request body:
    {"contents": [{"parts": [
        {"text": "<prompt>"},
        {"inline_data": {"mime_type": "image/jpeg", "data": "<base64>"}}
    ]}],
     "generationConfig": {"thinkingConfig": {"thinkingBudget": N}}}   # only with a budget

Design Decision:
    The extractor does not retry. A 503 surfaces as ServerError(503) and the
    caller (ExtractionPipeline) decides whether to try again, so catalog
    refreshes, health checks and tests see exactly one request per call.
"""

import asyncio
import base64
import logging
import time
from typing import Optional

import httpx
from PIL import Image
from pydantic import ValidationError as PydanticValidationError

from notebooksaver.config import DEFAULT_API_ENDPOINT
from notebooksaver.exceptions import (
    MissingModelConfigurationError,
    NoTextFoundError,
    NotebookSaverError,
    ResponseDecodingError,
)
from notebooksaver.schemas.extraction import (
    Content,
    ContentPart,
    ExtractorConfig,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerationConfig,
    InlineData,
    ThinkingConfig,
)
from notebooksaver.schemas.telemetry import ImageMetadata, ModelInfo
from notebooksaver.services.cloud_protocol import (
    build_authenticated_url,
    redact,
    require_api_key,
    send_request,
)
from notebooksaver.services.extractor_base import TextExtractor
from notebooksaver.services.image_processor import ImageProcessor, PreparedImage

logger = logging.getLogger(__name__)


def build_request_body(config: ExtractorConfig, prepared: PreparedImage) -> dict:
    """The generateContent JSON body for one prepared image."""
    request = GenerateContentRequest(
        contents=[
            Content(
                parts=[
                    ContentPart(text=config.effective_prompt),
                    ContentPart(
                        inline_data=InlineData(
                            mime_type=prepared.mime_type,
                            data=base64.b64encode(prepared.data).decode("ascii"),
                        )
                    ),
                ]
            )
        ],
    )
    if config.token_budget is not None:
        request.generationConfig = GenerationConfig(
            thinkingConfig=ThinkingConfig(thinkingBudget=config.token_budget)
        )
    return request.model_dump(exclude_none=True)


def parse_generated_text(payload: bytes) -> str:
    """
    Pull the text out of a generateContent response body.

    Raises:
        ResponseDecodingError: body is not the expected JSON shape
        NoTextFoundError: well-formed response without any text
    """
    try:
        response = GenerateContentResponse.model_validate_json(payload)
    except PydanticValidationError as e:
        raise ResponseDecodingError(context={"errors": e.error_count()}) from e
    text = response.joined_text()
    if not text:
        reason = None
        if response.candidates:
            reason = response.candidates[0].finishReason
        raise NoTextFoundError(context={"finish_reason": reason})
    return text


class CloudExtractor(TextExtractor):
    """
    Gemini implementation of TextExtractor.

    One instance serves one ExtractorConfig; the pipeline builds a fresh one
    per capture so settings changes apply to the next capture only.
    """

    service_name = "Gemini"

    def __init__(
        self,
        config: ExtractorConfig,
        http_client: httpx.AsyncClient,
        image_processor: Optional[ImageProcessor] = None,
        api_endpoint: str = DEFAULT_API_ENDPOINT,
        timeout: float = 30.0,
        warm_up_timeout: float = 10.0,
    ):
        self.config = config
        self.http_client = http_client
        self.image_processor = image_processor or ImageProcessor()
        self.api_endpoint = api_endpoint
        self.timeout = timeout
        self.warm_up_timeout = warm_up_timeout
        self.last_image_metadata: Optional[ImageMetadata] = None

    async def extract_from_image(self, image: Image.Image) -> str:
        """
        Send one image to Gemini.

        Raises:
            MissingApiKeyError, MissingModelConfigurationError,
            InvalidApiEndpointError: configuration problems, raised before
                any network traffic
            PreprocessingError: the image could not be re-encoded
            NetworkError, AuthenticationError, ServerError: transport / HTTP
            ResponseDecodingError, NoTextFoundError: unusable 200 response
        """
        api_key = require_api_key(self.config.credential)
        model_id = self.config.model_id.strip()
        if not model_id:
            raise MissingModelConfigurationError()
        url = build_authenticated_url(self.api_endpoint, api_key, f"{model_id}:generateContent")

        prepared = await asyncio.to_thread(self.image_processor.prepare, image)
        self.last_image_metadata = prepared.metadata
        body = build_request_body(self.config, prepared)

        start = time.perf_counter()
        logger.info(
            "Sending %d-byte image to %s (model=%s, thinking=%s)",
            len(prepared.data),
            redact(url),
            model_id,
            self.config.thinking_enabled,
        )
        response = await send_request(
            self.http_client,
            "POST",
            url,
            timeout=self.timeout,
            json=body,
        )
        text = parse_generated_text(response.content)
        logger.info(
            "Gemini returned %d chars in %.0fms",
            len(text),
            (time.perf_counter() - start) * 1000,
        )
        return text

    async def health_check(self) -> bool:
        """
        GET the models list with the configured key.

        Also warms up the TLS connection in the shared client so the first
        real capture does not pay for the handshake.
        """
        try:
            api_key = require_api_key(self.config.credential)
            url = build_authenticated_url(self.api_endpoint, api_key)
            await send_request(self.http_client, "GET", url, timeout=self.warm_up_timeout)
            return True
        except NotebookSaverError as e:
            logger.warning("Gemini health check failed: %s", e.message)
            return False

    def model_info(self) -> ModelInfo:
        configuration = {
            "thinking": "on" if self.config.thinking_enabled else "off",
            "prompt_chars": str(len(self.config.effective_prompt)),
        }
        if self.config.token_budget is not None:
            configuration["token_budget"] = str(self.config.token_budget)
        return ModelInfo(
            service_name=self.service_name,
            model_name=self.config.model_id or "unconfigured",
            configuration=configuration,
            image_metadata=self.last_image_metadata,
        )
