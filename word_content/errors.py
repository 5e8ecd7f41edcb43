"""Error taxonomy for word content generation."""

from typing import Optional


class WordContentError(Exception):
    """Base class for every failure raised by the generator."""

    stage: str = "generate"

    def __init__(self, message: str, *, provider: Optional[str] = None,
                 detail: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.detail = detail
        self.status = status

    def __str__(self) -> str:
        parts = [self.message]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.detail:
            parts.append(self.detail)
        return " - ".join(parts)


class InputError(WordContentError):
    stage = "input"


class ConfigurationError(WordContentError):
    stage = "config"


class MissingCredentialError(ConfigurationError):
    """A provider key is unset; raised before any network call."""


class TextGenError(WordContentError):
    stage = "text"


class TextProviderUnavailable(TextGenError):
    pass


class MalformedResponse(TextGenError):
    """The reply had no text part or was not valid JSON."""


class SchemaValidationError(MalformedResponse):
    """The reply was JSON but lacked the expected string fields."""


class ImageGenError(WordContentError):
    stage = "image"


class ImageProviderUnavailable(ImageGenError):
    pass


class GenerationFailed(ImageGenError):
    pass


class GenerationTimeout(ImageGenError):
    pass


class UploadError(WordContentError):
    stage = "upload"
