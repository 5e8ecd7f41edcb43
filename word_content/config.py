"""Configuration and runtime constants."""

import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, model_validator

from .errors import ConfigurationError, MissingCredentialError

DEFAULT_TEXT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4-turbo",
}
DEFAULT_IMAGE_MODELS = {
    # SDXL Lightning
    "replicate": "39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b",
    "openai": "gpt-image-1",
}

IMAGE_KEY_PREFIX = "word-images"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Everything the generator needs, validated once at startup."""

    text_provider: Literal["anthropic", "openai"] = "anthropic"
    image_provider: Literal["replicate", "openai"] = "replicate"

    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    replicate_api_token: Optional[str] = None

    text_model: Optional[str] = None
    image_model: Optional[str] = None
    max_tokens: int = 1000
    image_size: str = "1024x1024"

    image_generation_enabled: bool = True
    image_failure_policy: Literal["degrade", "fail"] = "degrade"

    poll_interval: float = 2.0
    poll_max_attempts: int = 30
    handler_timeout: float = 90.0
    request_timeout: float = 60.0

    storage_bucket: Optional[str] = None
    storage_base_url: Optional[str] = None
    storage_signing_secret: Optional[str] = None

    @model_validator(mode="after")
    def _check_budgets(self):
        if self.poll_max_attempts < 1:
            raise ValueError("poll_max_attempts must be at least 1")
        if self.poll_interval < 0:
            raise ValueError("poll_interval must not be negative")
        # The poll loop has to finish well inside the outer handler timeout
        poll_budget = self.poll_interval * (self.poll_max_attempts - 1)
        if poll_budget >= self.handler_timeout:
            raise ValueError(
                f"poll budget {poll_budget:.0f}s must stay below handler timeout {self.handler_timeout:.0f}s"
            )
        return self

    @property
    def resolved_text_model(self) -> str:
        return self.text_model or DEFAULT_TEXT_MODELS[self.text_provider]

    @property
    def resolved_image_model(self) -> str:
        return self.image_model or DEFAULT_IMAGE_MODELS[self.image_provider]

    @property
    def storage_enabled(self) -> bool:
        return bool(self.storage_bucket)

    def text_credential(self) -> Optional[str]:
        if self.text_provider == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key

    def image_credential(self) -> Optional[str]:
        if self.image_provider == "replicate":
            return self.replicate_api_token
        return self.openai_api_key

    def validate_credentials(self):
        """Fail fast when a selected provider has no key configured."""
        if not self.text_credential():
            raise MissingCredentialError(
                "Text provider credential is not set", provider=self.text_provider
            )
        if self.image_generation_enabled and not self.image_credential():
            raise MissingCredentialError(
                "Image provider credential is not set", provider=self.image_provider
            )
        return self

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from the environment (and a local .env file)."""
        load_dotenv()

        values = {
            "text_provider": os.getenv("TEXT_PROVIDER", "anthropic").strip().lower(),
            "image_provider": os.getenv("IMAGE_PROVIDER", "replicate").strip().lower(),
            "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY") or None,
            "openai_api_key": os.getenv("OPENAI_API_KEY") or None,
            "replicate_api_token": os.getenv("REPLICATE_API_TOKEN") or None,
            "text_model": os.getenv("TEXT_MODEL") or None,
            "image_model": os.getenv("IMAGE_MODEL") or None,
            "max_tokens": os.getenv("MAX_TOKENS", "1000"),
            "image_size": os.getenv("IMAGE_SIZE", "1024x1024"),
            "image_generation_enabled": _env_bool("IMAGE_GENERATION_ENABLED", True),
            "image_failure_policy": os.getenv("IMAGE_FAILURE_POLICY", "degrade").strip().lower(),
            "poll_interval": os.getenv("POLL_INTERVAL_SECONDS", "2"),
            "poll_max_attempts": os.getenv("POLL_MAX_ATTEMPTS", "30"),
            "handler_timeout": os.getenv("HANDLER_TIMEOUT_SECONDS", "90"),
            "request_timeout": os.getenv("REQUEST_TIMEOUT_SECONDS", "60"),
            "storage_bucket": os.getenv("STORAGE_BUCKET") or None,
            "storage_base_url": os.getenv("STORAGE_BASE_URL") or None,
            "storage_signing_secret": os.getenv("STORAGE_SIGNING_SECRET") or None,
        }
        values.update(overrides)

        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError("Invalid configuration", detail=str(e)) from e


# Testing Configuration
LIVE_TESTING = os.getenv("WORD_CONTENT_LIVE", "0") == "1"
