"""Data models for word content generation."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InputError


class Language(str, Enum):
    JAPANESE = "japanese"
    FINNISH = "finnish"


class GenerationRequest(BaseModel):
    """A single headword to generate content for."""

    model_config = ConfigDict(frozen=True)

    word: str
    language: Optional[Language] = None

    @field_validator("word")
    @classmethod
    def _word_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("word must not be empty")
        return value

    @field_validator("language", mode="before")
    @classmethod
    def _normalize_language(cls, value):
        if isinstance(value, str):
            value = value.strip().lower() or None
        return value

    @classmethod
    def build(cls, word, language=None) -> "GenerationRequest":
        """Validate raw input, raising ``InputError`` instead of pydantic errors."""
        try:
            return cls(word=word, language=language)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise InputError(f"Invalid generation request ({fields})", detail=str(e)) from e


class GeneratedText(BaseModel):
    """Structured payload parsed out of the text provider's reply."""

    model_config = ConfigDict(populate_by_name=True, strict=True)

    meaning: str
    example: str
    image_prompt: str = Field(alias="imagePrompt")


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "JobStatus":
        """Map a provider status string; anything unrecognised counts as processing."""
        try:
            return cls(raw)
        except ValueError:
            return cls.PROCESSING

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED)


class ImageJob(BaseModel):
    """Transient state of an asynchronous image generation job."""

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    result_url: Optional[str] = None
    error_detail: Optional[str] = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ImageRef(BaseModel):
    """Either raw image bytes with a content type, or a URL."""

    data: Optional[bytes] = None
    content_type: str = "image/png"
    url: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_source(self):
        if (self.data is None) == (self.url is None):
            raise ValueError("ImageRef needs exactly one of data or url")
        return self

    @property
    def is_url(self) -> bool:
        return self.url is not None


class GenerationResult(BaseModel):
    """The generator's output contract."""

    model_config = ConfigDict(populate_by_name=True)

    meaning: str
    example: str
    image_url: str = Field(default="", alias="imageUrl")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class WordRecord(BaseModel):
    """Word record as stored by the flashcard data store."""

    word: str
    meaning: Optional[str] = None
    example: Optional[str] = None
    image: Optional[str] = None
    language: Optional[Language] = None

    @classmethod
    def from_result(cls, request: GenerationRequest, result: GenerationResult) -> "WordRecord":
        return cls(
            word=request.word,
            meaning=result.meaning,
            example=result.example,
            image=result.image_url or None,
            language=request.language,
        )
