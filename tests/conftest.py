"""Pytest configuration and fixtures."""

import hashlib
import json
import os
import pathlib
from collections import defaultdict, deque
from typing import List, Optional

import pytest
import vcr

from word_content.config import Settings
from word_content.image_providers import ImageProvider
from word_content.models import GeneratedText, ImageRef
from word_content.text_providers import TextProvider, parse_generated_text

# Calculate hash of prompts.py for cassette invalidation
PROMPTS_HASH = hashlib.sha256(
    (pathlib.Path(__file__).parent.parent / "word_content" / "prompts.py").read_bytes()
).hexdigest()[:8]

ONE_PIXEL_PNG_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

SERENDIPITY_REPLY = json.dumps({
    "meaning": "a pleasant surprise",
    "example": "Finding this book was pure serendipity.",
    "imagePrompt": "a person discovering a treasure",
})


def cassette(name: str) -> str:
    """Generate cassette filename with prompt hash."""
    return f"{name}_{PROMPTS_HASH}.yaml"


@pytest.fixture
def my_vcr():
    """VCR fixture for recording/replaying HTTP interactions."""
    return vcr.VCR(
        cassette_library_dir="tests/fixtures",
        filter_headers=[("authorization", "DUMMY"), ("x-api-key", "DUMMY")],
        record_mode="once",
    )


def live_guard():
    """Check if live testing is enabled."""
    if not os.getenv("WORD_CONTENT_LIVE"):
        pytest.skip("Live LLM disabled (set WORD_CONTENT_LIVE=1)")


class FakeResponse:
    """Stands in for ``aiohttp.ClientResponse`` inside ``async with``."""

    def __init__(self, status: int = 200, payload=None, body: bytes = b"",
                 headers: Optional[dict] = None, reason: str = "OK"):
        self.status = status
        self.payload = payload
        self.body = body
        self.headers = headers or {}
        self.reason = reason

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, **kwargs):
        if self.payload is not None:
            return self.payload
        return json.loads(self.body.decode("utf-8", errors="replace"))

    async def text(self):
        if self.payload is not None:
            return json.dumps(self.payload)
        return self.body.decode("utf-8", errors="replace")

    async def read(self):
        return self.body


class FakeSession:
    """Queues canned responses per HTTP method and records every call."""

    def __init__(self):
        self.responses = defaultdict(deque)
        self.calls: List[tuple] = []

    def queue(self, method: str, response: FakeResponse):
        self.responses[method].append(response)
        return self

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses[method]:
            raise AssertionError(f"Unexpected {method.upper()} {url}")
        return self.responses[method].popleft()

    def post(self, url, **kwargs):
        return self._next("post", url, kwargs)

    def get(self, url, **kwargs):
        return self._next("get", url, kwargs)

    def calls_for(self, method: str):
        return [c for c in self.calls if c[0] == method]


class FakeTextProvider(TextProvider):
    name = "fake-text"

    def __init__(self, reply: str = SERENDIPITY_REPLY, api_key: Optional[str] = "test-key"):
        super().__init__(api_key, "fake-model")
        self.reply = reply
        self.prompts: List[str] = []

    async def _complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


class FakeImageProvider(ImageProvider):
    name = "fake-image"

    def __init__(self, ref: Optional[ImageRef] = None, error: Optional[Exception] = None,
                 api_key: Optional[str] = "test-key"):
        super().__init__(api_key, "fake-model")
        self.ref = ref
        self.error = error
        self.prompts: List[str] = []

    async def _generate(self, prompt: str) -> ImageRef:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.ref


class FakeClock:
    """Simulated time advanced only by ``FakeClock.sleep``."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        anthropic_api_key="anthropic-test",
        openai_api_key="openai-test",
        replicate_api_token="replicate-test",
    )


@pytest.fixture
def serendipity_text() -> GeneratedText:
    return parse_generated_text(SERENDIPITY_REPLY)
