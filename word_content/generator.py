"""Orchestrates prompt, text, image and upload stages for one headword."""

import time
from typing import Optional

import structlog

from .assembler import ResultAssembler
from .config import Settings
from .errors import ImageGenError, MissingCredentialError
from .image_providers import ImageProvider, OpenAIImageProvider, ReplicateImageProvider
from .models import GeneratedText, GenerationRequest, GenerationResult, ImageRef
from .prompts import compose_prompt
from .storage import LocalObjectStore, ObjectStore
from .text_providers import AnthropicTextProvider, OpenAITextProvider, TextProvider

log = structlog.get_logger()


def build_text_provider(settings: Settings) -> TextProvider:
    if settings.text_provider == "openai":
        return OpenAITextProvider(
            settings.openai_api_key, settings.resolved_text_model,
            max_tokens=settings.max_tokens, timeout=settings.request_timeout,
        )
    return AnthropicTextProvider(
        settings.anthropic_api_key, settings.resolved_text_model,
        max_tokens=settings.max_tokens, timeout=settings.request_timeout,
    )


def build_image_provider(settings: Settings) -> Optional[ImageProvider]:
    if not settings.image_generation_enabled:
        return None
    if settings.image_provider == "openai":
        return OpenAIImageProvider(
            settings.openai_api_key, settings.resolved_image_model,
            size=settings.image_size, timeout=settings.request_timeout,
        )
    return ReplicateImageProvider(
        settings.replicate_api_token, settings.resolved_image_model,
        poll_interval=settings.poll_interval,
        poll_max_attempts=settings.poll_max_attempts,
        timeout=settings.request_timeout,
    )


def build_object_store(settings: Settings) -> Optional[ObjectStore]:
    if not settings.storage_enabled:
        return None
    return LocalObjectStore(
        settings.storage_bucket,
        base_url=settings.storage_base_url,
        signing_secret=settings.storage_signing_secret,
    )


class ContentGenerator:
    """Generates meaning, example and image for a single word."""

    def __init__(self, settings: Settings, text_provider: Optional[TextProvider] = None,
                 image_provider: Optional[ImageProvider] = None,
                 store: Optional[ObjectStore] = None,
                 assembler: Optional[ResultAssembler] = None):
        self.settings = settings
        self.text_provider = text_provider or build_text_provider(settings)
        if settings.image_generation_enabled:
            self.image_provider = image_provider or build_image_provider(settings)
        else:
            self.image_provider = None
        if store is None:
            store = build_object_store(settings)
        self.assembler = assembler or ResultAssembler(store, timeout=settings.request_timeout)

    @classmethod
    def from_env(cls, **overrides) -> "ContentGenerator":
        settings = Settings.from_env(**overrides).validate_credentials()
        return cls(settings)

    def check_credentials(self):
        """Raise ``MissingCredentialError`` before any provider is called."""
        if not self.text_provider.api_key:
            raise MissingCredentialError("Text provider credential is not set", provider=self.text_provider.name)
        if self.image_provider is not None and not self.image_provider.api_key:
            raise MissingCredentialError("Image provider credential is not set", provider=self.image_provider.name)

    async def generate(self, word, language=None) -> GenerationResult:
        """Run all stages. Only input, configuration and text failures are fatal
        unless ``image_failure_policy`` is ``"fail"``."""
        request = GenerationRequest.build(word, language)
        self.check_credentials()
        bound = log.bind(word=request.word, language=request.language.value if request.language else None)

        prompt = compose_prompt(request)
        bound.info("Generating content", text_provider=self.text_provider.name)

        t0 = time.perf_counter()
        try:
            text = await self.text_provider.generate(prompt)
        except Exception as e:
            bound.error("Text generation failed", stage="text", provider=self.text_provider.name, error=str(e))
            raise
        bound.info("Text generated", elapsed_ms=round(1000 * (time.perf_counter() - t0)),
                   image_prompt=text.image_prompt)

        image = await self._generate_image(request, text, bound)
        result = await self.assembler.assemble(request.word, text, image)
        bound.info("Content generated", has_image=bool(result.image_url))
        return result

    async def _generate_image(self, request: GenerationRequest, text: GeneratedText, bound) -> Optional[ImageRef]:
        if self.image_provider is None:
            bound.info("Image generation disabled")
            return None

        t0 = time.perf_counter()
        try:
            image = await self.image_provider.generate(text.image_prompt, request.word)
        except ImageGenError as e:
            bound.error("Image generation failed", stage="image", provider=self.image_provider.name,
                        status=e.status, error=str(e), policy=self.settings.image_failure_policy)
            if self.settings.image_failure_policy == "fail":
                raise
            return None

        bound.info("Image generated", provider=self.image_provider.name,
                   elapsed_ms=round(1000 * (time.perf_counter() - t0)))
        return image

