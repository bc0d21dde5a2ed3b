"""
NotebookSaver Backend — Application Configuration
==================================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides the `settings` object that the
       ServiceContainer reads once while wiring services.
Who:   Read by the container and the app factory. Services never import it;
       they receive the values they need as constructor arguments.
When:  Loaded once at module import time; validated before the app starts.

Setting names mirror the preference keys the capture app persists
(selectedModelId, userPrompt, apiEndpointUrlString, thinkingEnabled,
textExtractorService, geminiPhotoTokenBudget, draftsTag, photoFolderName,
savePhotosEnabled, addDraftTagEnabled) in snake_case.
"""

from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

DEFAULT_API_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/"
DEFAULT_MODEL_ID = "gemini-2.5-flash"
DEFAULT_PROMPT = "Extract text accurately from this image of a notebook page."
CUSTOM_MODEL_SENTINEL = "Custom"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for local use. Cloud extraction
    additionally needs GEMINI_API_KEY.
    """

    # ── Text extraction ───────────────────────────────────────────────────
    # What: Which back-end turns images into text
    # Cloud without a key silently falls back to Local (see ExtractorConfig)
    text_extractor_service: Literal["Cloud", "Local"] = Field(default="Local")

    # What: API key for the Gemini REST API
    # SecretStr keeps it out of reprs and logs
    gemini_api_key: Optional[SecretStr] = Field(default=None)

    # What: Base URL the model path and ":generateContent" are appended to
    api_endpoint_url: str = Field(default=DEFAULT_API_ENDPOINT)

    # What: Model id sent to Gemini; "Custom" means use custom_model_name
    selected_model_id: str = Field(default=DEFAULT_MODEL_ID)
    custom_model_name: str = Field(default="")

    user_prompt: str = Field(default=DEFAULT_PROMPT)
    thinking_enabled: bool = Field(default=False)

    # What: Gemini thinking token budget; unset leaves the model default
    photo_token_budget: Optional[int] = Field(default=None, ge=0, le=32768)

    # What: Tesseract language pack and extra CLI flags for LocalExtractor
    tesseract_language: str = Field(default="eng")
    tesseract_config: str = Field(default="")

    # ── Image preparation ─────────────────────────────────────────────────
    # Uploads are fitted inside this box and re-encoded as JPEG before upload
    target_image_width: int = Field(default=1365, ge=64, le=8192)
    target_image_height: int = Field(default=1536, ge=64, le=8192)
    image_quality: int = Field(default=60, ge=1, le=95)

    # ── HTTP ──────────────────────────────────────────────────────────────
    request_timeout: float = Field(default=30.0, gt=0, le=300)
    warm_up_timeout: float = Field(default=10.0, gt=0, le=120)

    # ── Retry Configuration ───────────────────────────────────────────────
    # What: Tenacity retry settings for 5xx responses from Gemini
    # The extractor itself never retries; the pipeline wraps it
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=0.5, ge=0, le=30)
    retry_max_wait: float = Field(default=4.0, ge=0, le=120)

    # ── Drafts hand-off ───────────────────────────────────────────────────
    handoff_scheme: str = Field(default="drafts")
    handoff_action: str = Field(default="create")
    drafts_tag: str = Field(default="notebook")
    add_draft_tag_enabled: bool = Field(default=True)

    # What: Whether the host counts as foregrounded when the server starts
    # A capture client reports later transitions via /api/host/*
    host_start_active: bool = Field(default=True)

    # ── Persistence ───────────────────────────────────────────────────────
    # What: Async SQLAlchemy URL of the key-value store
    store_url: str = Field(default="sqlite+aiosqlite:///./notebooksaver.db")

    # What: Create the kv_entries table on startup instead of running Alembic
    store_auto_create: bool = Field(default=True)

    # ── Photo archive ─────────────────────────────────────────────────────
    save_photos_enabled: bool = Field(default=False)
    photo_folder: str = Field(default="./photos")

    # ── Telemetry ─────────────────────────────────────────────────────────
    telemetry_max_sessions: int = Field(default=50, ge=1, le=1000)

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="127.0.0.1")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("handoff_scheme")
    @classmethod
    def validate_handoff_scheme(cls, v: str) -> str:
        """URL schemes are letters first, then letters, digits, '+', '-' or '.'."""
        v = v.strip()
        if not v or not v[0].isalpha() or not all(c.isalnum() or c in "+-." for c in v):
            raise ValueError(f"Invalid handoff_scheme '{v}'")
        return v.lower()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def api_key_value(self) -> str:
        """The raw API key, or an empty string when unset."""
        if self.gemini_api_key is None:
            return ""
        return self.gemini_api_key.get_secret_value().strip()

    @property
    def resolved_model_id(self) -> str:
        """
        The model id actually sent to Gemini.

        "Custom" resolves to the trimmed custom_model_name (possibly empty,
        which CloudExtractor reports as a missing model configuration).
        """
        if self.selected_model_id == CUSTOM_MODEL_SENTINEL:
            return self.custom_model_name.strip()
        return self.selected_model_id.strip()

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        Why:   Cloud extraction without a key degrades to Local; say so loudly.
        """
        errors = []
        if self.text_extractor_service == "Cloud" and not self.api_key_value:
            errors.append(
                "GEMINI_API_KEY is not set but TEXT_EXTRACTOR_SERVICE=Cloud. "
                "Extraction will fall back to the local OCR engine."
            )
        if self.text_extractor_service == "Cloud" and not self.resolved_model_id:
            errors.append("No Gemini model configured (SELECTED_MODEL_ID / CUSTOM_MODEL_NAME).")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


settings = Settings()
