"""
NotebookSaver Backend — Gemini REST Protocol Helpers
======================================================

What:  URL construction, request sending and status mapping shared by
       CloudExtractor and ModelCatalogService.
Why:   Both talk to the same API with the same key-in-query authentication
       and must map failures identically:

           no / blank key            → MissingApiKeyError      (no request sent)
           unusable base URL         → InvalidApiEndpointError
           transport failure/timeout → NetworkError
           HTTP 401                  → AuthenticationError
           any other non-200         → ServerError(status)

How:   httpx. The AsyncClient is owned by the ServiceContainer and shared;
       each call passes its own timeout.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import SecretStr

from notebooksaver.exceptions import (
    AuthenticationError,
    InvalidApiEndpointError,
    MissingApiKeyError,
    NetworkError,
    ServerError,
)

logger = logging.getLogger(__name__)

# Upstream error bodies can be long; only this much goes into the exception
_ERROR_DETAIL_LIMIT = 300


def require_api_key(credential: Optional[SecretStr]) -> str:
    """Return the trimmed key or raise MissingApiKeyError."""
    if credential is None:
        raise MissingApiKeyError()
    key = credential.get_secret_value().strip()
    if not key:
        raise MissingApiKeyError()
    return key


def build_authenticated_url(base_url: Optional[str], api_key: str, path: str = "") -> httpx.URL:
    """
    Append `path` to `base_url` and add the key as the `key` query parameter.

    Raises:
        InvalidApiEndpointError("Invalid URL configuration"): base URL missing,
            not http(s), or without a host
        InvalidApiEndpointError("Failed to construct URL with API key"): the
            path or key could not be merged into a valid URL
    """
    if not base_url or not base_url.strip():
        raise InvalidApiEndpointError("Invalid URL configuration")
    try:
        base = httpx.URL(base_url.strip())
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise InvalidApiEndpointError("Invalid URL configuration") from e
    if base.scheme not in ("http", "https") or not base.host:
        raise InvalidApiEndpointError("Invalid URL configuration")

    try:
        url = base
        if path:
            joined_path = base.path.rstrip("/") + "/" + path.lstrip("/")
            url = base.copy_with(path=joined_path)
        return url.copy_merge_params({"key": api_key})
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise InvalidApiEndpointError("Failed to construct URL with API key") from e


def redact(url: httpx.URL) -> str:
    """The URL without its query string, safe to log."""
    return str(url.copy_with(query=None))


def check_response_status(response: httpx.Response) -> None:
    """Map anything but HTTP 200 onto the cloud error hierarchy."""
    status = response.status_code
    if status == 200:
        return
    if status == 401:
        raise AuthenticationError()
    detail = response.text[:_ERROR_DETAIL_LIMIT] if response.content else ""
    raise ServerError(status, detail=detail)


async def send_request(
    client: httpx.AsyncClient,
    method: str,
    url: httpx.URL,
    timeout: float,
    **kwargs: Any,
) -> httpx.Response:
    """
    Send one request and validate its status.

    Raises:
        NetworkError: DNS, connect, TLS, read failures and timeouts
        AuthenticationError / ServerError: non-200 responses
    """
    try:
        response = await client.request(method, url, timeout=timeout, **kwargs)
    except httpx.RequestError as e:
        logger.warning("%s %s failed: %s", method, redact(url), type(e).__name__)
        raise NetworkError(e) from e
    check_response_status(response)
    return response
