"""Text generation providers and reply parsing."""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp
import openai
import structlog
from pydantic import ValidationError

from .errors import MalformedResponse, MissingCredentialError, SchemaValidationError, TextProviderUnavailable
from .models import GeneratedText
from .sessions import read_error_detail, session_scope

log = structlog.get_logger()

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

_LEADING_FENCE = re.compile(r"\A```(?:json)?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"```\Z")


def strip_code_fences(text: str) -> str:
    """Trim a wrapping ```json ... ``` fence; fences inside the payload are kept."""
    text = _LEADING_FENCE.sub("", text.strip())
    text = _TRAILING_FENCE.sub("", text.strip())
    return text.strip()


def parse_generated_text(raw: str, provider: Optional[str] = None) -> GeneratedText:
    """Turn an untrusted model reply into a validated ``GeneratedText``."""
    cleaned = strip_code_fences(raw or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        log.error("Failed to parse JSON response", error=str(e), response=cleaned[:200], provider=provider)
        raise MalformedResponse("Text provider reply is not valid JSON", provider=provider, detail=str(e)) from e

    if not isinstance(data, dict):
        raise SchemaValidationError(
            "Text provider reply is not a JSON object", provider=provider, detail=type(data).__name__
        )

    try:
        return GeneratedText.model_validate(data)
    except ValidationError as e:
        log.error("Text provider reply failed validation", error=str(e), provider=provider)
        raise SchemaValidationError(
            "Text provider reply is missing required fields", provider=provider, detail=str(e)
        ) from e


class TextProvider(ABC):
    """A text-generation service that answers a prompt with JSON content."""

    name: str = "text"

    def __init__(self, api_key: Optional[str], model: str):
        self.api_key = api_key
        self.model = model

    async def generate(self, prompt: str) -> GeneratedText:
        if not self.api_key:
            raise MissingCredentialError("Text provider credential is not set", provider=self.name)
        raw = await self._complete(prompt)
        return parse_generated_text(raw, provider=self.name)

    @abstractmethod
    async def _complete(self, prompt: str) -> str:
        """Send the prompt and return the first text part of the reply."""


class AnthropicTextProvider(TextProvider):
    """Claude over the Messages API."""

    name = "anthropic"

    def __init__(self, api_key: Optional[str], model: str, max_tokens: int = 1000,
                 timeout: float = 60, session: Optional[aiohttp.ClientSession] = None):
        super().__init__(api_key, model)
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.session = session

    async def _complete(self, prompt: str) -> str:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            async with session_scope(self.session) as session:
                async with session.post(
                    ANTHROPIC_MESSAGES_URL,
                    headers=headers,
                    json=body,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        detail = await read_error_detail(response)
                        log.error("Claude API request failed", status=response.status, detail=detail)
                        raise TextProviderUnavailable(
                            "Claude API error", provider=self.name, status=response.status, detail=detail
                        )
                    try:
                        data = await response.json(content_type=None)
                    except ValueError as e:
                        log.error("Claude reply envelope is not JSON", error=str(e), model=self.model)
                        raise MalformedResponse(
                            "Claude reply envelope is not valid JSON", provider=self.name, detail=str(e)
                        ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error("Claude API call failed", error=str(e), model=self.model)
            raise TextProviderUnavailable("Claude API unreachable", provider=self.name, detail=str(e)) from e

        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, list):
            content = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                return block.get("text") or ""
        raise MalformedResponse("Claude reply has no text content", provider=self.name)


class OpenAITextProvider(TextProvider):
    """OpenAI chat completions."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str, max_tokens: int = 1000,
                 timeout: float = 60, client=None):
        super().__init__(api_key, model)
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = client

    @property
    def client(self):
        if self._client is None:
            # Single attempt only; the SDK retries twice by default
            self._client = openai.OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    async def _complete(self, prompt: str) -> str:
        messages = [{"role": "user", "content": prompt}]
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.max_tokens,
                    timeout=self.timeout,
                )
            )
        except openai.APIStatusError as e:
            log.error("OpenAI API call failed", error=str(e), model=self.model, status=e.status_code)
            raise TextProviderUnavailable(
                "OpenAI API error", provider=self.name, status=e.status_code, detail=str(e)
            ) from e
        except openai.APIConnectionError as e:
            log.error("OpenAI API call failed", error=str(e), model=self.model)
            raise TextProviderUnavailable("OpenAI API unreachable", provider=self.name, detail=str(e)) from e

        if not getattr(response, "choices", None):
            raise MalformedResponse("OpenAI reply has no choices", provider=self.name)
        content = response.choices[0].message.content
        if not content:
            raise MalformedResponse("OpenAI reply has no text content", provider=self.name)
        return content
