"""
NotebookSaver Backend — Custom Exception Hierarchy
====================================================

What:  Application-specific exceptions for extraction, catalog, hand-off and
       telemetry failures.
Why:   Callers can tell "fix your configuration" apart from "the upstream
       service is struggling, retry later" and from "the Drafts app is not
       reachable", and the HTTP layer can map each to a status code.
How:   Each exception carries a message and optional context dict. Each class
       also declares `status_code` and `error_code`; the handler registered in
       main.py renders them as structured JSON.

Exception Hierarchy:
    NotebookSaverError (base)                       → 500
    ├── InvalidImageDataError                       → 400
    ├── PreprocessingError                          → 500
    ├── NoTextFoundError                            → 422
    ├── RecognitionFailedError                      → 500
    ├── CloudServiceError
    │   ├── MissingApiKeyError                      → 503
    │   ├── InvalidApiEndpointError                 → 503
    │   ├── MissingModelConfigurationError          → 503
    │   ├── AuthenticationError                     → 502
    │   ├── ServerError                             → 502
    │   ├── NetworkError                            → 504
    │   └── ResponseDecodingError                   → 502
    ├── HandoffError
    │   ├── NotInstalledError                       → 409
    │   ├── InvalidURLError                         → 400
    │   └── HandoffFailedError                      → 502
    ├── FileStorageError                            → 500
    └── SessionNotFoundError                        → 404
"""

from typing import Any, Dict, Optional


class NotebookSaverError(Exception):
    """
    Base exception for all NotebookSaver application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


# ══════════════════════════════════════════════════════════════════════════
# Image & Recognition
# ══════════════════════════════════════════════════════════════════════════

class InvalidImageDataError(NotebookSaverError):
    """The supplied bytes are empty or cannot be decoded as an image."""

    status_code = 400
    error_code = "invalid_image"

    def __init__(
        self,
        message: str = "The uploaded data is not a decodable image",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PreprocessingError(NotebookSaverError):
    """Resizing or re-encoding the image before upload failed."""

    error_code = "preprocessing_failed"

    def __init__(
        self,
        message: str = "Failed to prepare the image for upload",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NoTextFoundError(NotebookSaverError):
    """
    Raised when a back-end answered successfully but produced no text.

    HTTP: 422 — the request was fine, the page just had nothing legible.
    """

    status_code = 422
    error_code = "no_text_found"

    def __init__(
        self,
        message: str = "No text was found in the image",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RecognitionFailedError(NotebookSaverError):
    """The local OCR engine failed to run."""

    error_code = "recognition_failed"

    def __init__(
        self,
        message: str = "Local text recognition failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


# ══════════════════════════════════════════════════════════════════════════
# Cloud (Gemini REST)
# ══════════════════════════════════════════════════════════════════════════

class CloudServiceError(NotebookSaverError):
    """Base for failures talking to the cloud extraction service."""

    status_code = 502
    error_code = "cloud_service_error"


class MissingApiKeyError(CloudServiceError):
    """
    No usable API key is configured.

    Raised before any network traffic; the fix is configuration, so the HTTP
    layer reports 503 rather than blaming the upstream.
    """

    status_code = 503
    error_code = "missing_api_key"

    def __init__(
        self,
        message: str = "No Gemini API key is configured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidApiEndpointError(CloudServiceError):
    """The configured endpoint is not a usable URL."""

    status_code = 503
    error_code = "invalid_api_endpoint"

    def __init__(
        self,
        reason: str = "Invalid URL configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=f"Invalid API endpoint: {reason}", context=context)
        self.reason = reason


class MissingModelConfigurationError(CloudServiceError):
    """No model id is selected (e.g. "Custom" with an empty custom name)."""

    status_code = 503
    error_code = "missing_model_configuration"

    def __init__(
        self,
        message: str = "No Gemini model is configured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(CloudServiceError):
    """The service rejected the API key (HTTP 401)."""

    error_code = "authentication_failed"

    def __init__(
        self,
        message: str = "The Gemini API rejected the API key",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ServerError(CloudServiceError):
    """
    Any non-200 status other than 401.

    `upstream_status` on the instance is the Gemini status (used by the
    pipeline's retry predicate); `status_code` stays 502 for the HTTP layer.
    """

    error_code = "upstream_error"

    def __init__(
        self,
        status_code: int,
        detail: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["upstream_status"] = status_code
        message = f"The Gemini API returned HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message=message, context=ctx)
        self.upstream_status = status_code
        self.detail = detail

    @property
    def is_retryable(self) -> bool:
        """5xx responses are worth another attempt; 4xx are not."""
        return self.upstream_status >= 500


class NetworkError(CloudServiceError):
    """Transport-level failure: DNS, connect, TLS, timeout."""

    status_code = 504
    error_code = "network_error"

    def __init__(
        self,
        underlying: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if underlying is not None:
            ctx["underlying"] = type(underlying).__name__
        super().__init__(
            message=f"Network error contacting the Gemini API: {underlying}",
            context=ctx,
        )
        self.underlying = underlying


class ResponseDecodingError(CloudServiceError):
    """A 200 response whose body could not be decoded."""

    error_code = "response_decoding_failed"

    def __init__(
        self,
        message: str = "Could not decode the Gemini API response",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


# ══════════════════════════════════════════════════════════════════════════
# Drafts hand-off
# ══════════════════════════════════════════════════════════════════════════

class HandoffError(NotebookSaverError):
    """Base for failures delivering text to the Drafts app."""

    status_code = 502
    error_code = "handoff_error"


class NotInstalledError(HandoffError):
    """No handler is registered for the hand-off URL scheme."""

    status_code = 409
    error_code = "target_not_installed"

    def __init__(
        self,
        scheme: str = "drafts",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["scheme"] = scheme
        super().__init__(
            message=f"No application is registered for '{scheme}://' URLs. Install Drafts.",
            context=ctx,
        )
        self.scheme = scheme


class InvalidURLError(HandoffError):
    """The hand-off URL could not be built from the given text and tag."""

    status_code = 400
    error_code = "invalid_handoff_url"

    def __init__(
        self,
        message: str = "Could not build the Drafts URL",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class HandoffFailedError(HandoffError):
    """The URL opener reported that the hand-off URL was not opened."""

    error_code = "handoff_failed"

    def __init__(
        self,
        message: str = "Drafts did not accept the hand-off",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


# ══════════════════════════════════════════════════════════════════════════
# Storage & Telemetry
# ══════════════════════════════════════════════════════════════════════════

class FileStorageError(NotebookSaverError):
    """
    Raised when archiving a photo to disk fails.

    Recovery: the archive is optional, so the pipeline logs and carries on.
    """

    error_code = "file_storage_error"

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class SessionNotFoundError(NotebookSaverError):
    """A timing was requested against a telemetry session that is not open."""

    status_code = 404
    error_code = "session_not_found"

    def __init__(
        self,
        session_id: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["session_id"] = str(session_id)
        super().__init__(
            message=f"Telemetry session '{session_id}' is not open",
            context=ctx,
        )
        self.session_id = session_id
