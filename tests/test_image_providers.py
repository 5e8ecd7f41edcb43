"""Tests for image generation providers."""

import asyncio
import base64
from types import SimpleNamespace

import pytest

from word_content.errors import (
    GenerationFailed,
    GenerationTimeout,
    ImageProviderUnavailable,
    MissingCredentialError,
)
from word_content.image_providers import (
    REPLICATE_PREDICTIONS_URL,
    OpenAIImageProvider,
    ReplicateImageProvider,
)
from word_content.models import ImageRef
from tests.conftest import ONE_PIXEL_PNG_B64, FakeImageProvider, FakeResponse

OUTPUT_URL = "https://replicate.delivery/pbxt/out-0.png"


def replicate(session, clock, max_attempts=30, api_key="r8_test"):
    return ReplicateImageProvider(
        api_key, "sdxl-version", poll_interval=2.0, poll_max_attempts=max_attempts,
        session=session, sleep=clock.sleep, clock=clock,
    )


@pytest.mark.parametrize("prompt", [None, "", "   "])
def test_empty_prompt_uses_fallback(prompt):
    provider = FakeImageProvider(ref=ImageRef(url=OUTPUT_URL))

    asyncio.run(provider.generate(prompt, "serendipity"))

    assert provider.prompts == ["a simple illustration of serendipity"]


def test_missing_credential_skips_provider():
    provider = FakeImageProvider(ref=ImageRef(url=OUTPUT_URL), api_key=None)

    with pytest.raises(MissingCredentialError):
        asyncio.run(provider.generate("a cat", "kissa"))

    assert provider.prompts == []


def test_replicate_submits_then_polls_until_succeeded(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=201, payload={"id": "pred-1", "status": "starting"}))
    fake_session.queue("get", FakeResponse(payload={"id": "pred-1", "status": "starting"}))
    fake_session.queue("get", FakeResponse(payload={"id": "pred-1", "status": "processing"}))
    fake_session.queue("get", FakeResponse(payload={"id": "pred-1", "status": "succeeded", "output": [OUTPUT_URL]}))

    ref = asyncio.run(replicate(fake_session, fake_clock).generate("a treasure chest", "serendipity"))

    assert ref.url == OUTPUT_URL
    _, url, kwargs = fake_session.calls_for("post")[0]
    assert url == REPLICATE_PREDICTIONS_URL
    assert kwargs["headers"]["Authorization"] == "Token r8_test"
    assert kwargs["json"]["version"] == "sdxl-version"
    assert kwargs["json"]["input"]["prompt"] == "a treasure chest"
    assert [c[1] for c in fake_session.calls_for("get")] == [f"{REPLICATE_PREDICTIONS_URL}/pred-1"] * 3
    assert fake_clock.sleeps == [2.0, 2.0]


def test_replicate_failed_prediction_carries_detail(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=201, payload={"id": "pred-2", "status": "starting"}))
    fake_session.queue("get", FakeResponse(payload={"id": "pred-2", "status": "failed", "error": "CUDA out of memory"}))

    with pytest.raises(GenerationFailed) as exc_info:
        asyncio.run(replicate(fake_session, fake_clock).generate("a cat", "kissa"))

    assert exc_info.value.detail == "CUDA out of memory"


def test_replicate_times_out(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=201, payload={"id": "pred-3", "status": "starting"}))
    for _ in range(3):
        fake_session.queue("get", FakeResponse(payload={"id": "pred-3", "status": "processing"}))

    with pytest.raises(GenerationTimeout):
        asyncio.run(replicate(fake_session, fake_clock, max_attempts=3).generate("a cat", "kissa"))

    assert len(fake_session.calls_for("get")) == 3


def test_replicate_submit_error_is_provider_unavailable(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=422, payload={"detail": "Invalid version"}, reason="Unprocessable"))

    with pytest.raises(ImageProviderUnavailable) as exc_info:
        asyncio.run(replicate(fake_session, fake_clock).generate("a cat", "kissa"))

    assert exc_info.value.status == 422
    assert fake_session.calls_for("get") == []


def test_replicate_status_error_is_provider_unavailable(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=201, payload={"id": "pred-4", "status": "starting"}))
    fake_session.queue("get", FakeResponse(status=500, payload={"detail": "boom"}))

    with pytest.raises(ImageProviderUnavailable):
        asyncio.run(replicate(fake_session, fake_clock).generate("a cat", "kissa"))


def test_replicate_missing_token_makes_no_call(fake_session, fake_clock):
    with pytest.raises(MissingCredentialError):
        asyncio.run(replicate(fake_session, fake_clock, api_key=None).generate("a cat", "kissa"))

    assert fake_session.calls == []


def test_replicate_invalid_json_reply_is_provider_unavailable(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=201, body=b"<html>Bad gateway</html>"))

    with pytest.raises(ImageProviderUnavailable) as exc_info:
        asyncio.run(replicate(fake_session, fake_clock).generate("a cat", "kissa"))

    assert "not valid JSON" in str(exc_info.value)
    assert fake_session.calls_for("get") == []


def test_replicate_non_object_reply_is_provider_unavailable(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=201, payload=["pred-5"]))

    with pytest.raises(ImageProviderUnavailable) as exc_info:
        asyncio.run(replicate(fake_session, fake_clock).generate("a cat", "kissa"))

    assert exc_info.value.detail == "list"


def test_replicate_non_url_output_fails(fake_session, fake_clock):
    fake_session.queue("post", FakeResponse(status=201, payload={"id": "pred-6", "status": "starting"}))
    fake_session.queue("get", FakeResponse(payload={"id": "pred-6", "status": "succeeded", "output": {"image": "x"}}))

    with pytest.raises(GenerationFailed):
        asyncio.run(replicate(fake_session, fake_clock).generate("a cat", "kissa"))


class FakeImages:
    def __init__(self, b64_json):
        self.b64_json = b64_json
        self.calls = []

    def generate(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(data=[SimpleNamespace(b64_json=self.b64_json)])


def test_openai_image_provider_decodes_base64():
    images = FakeImages(ONE_PIXEL_PNG_B64)
    provider = OpenAIImageProvider("key", "gpt-image-1", client=SimpleNamespace(images=images))

    ref = asyncio.run(provider.generate("a treasure chest", "serendipity"))

    assert ref.data == base64.b64decode(ONE_PIXEL_PNG_B64)
    assert ref.content_type == "image/png"
    assert "response_format" not in images.calls[0]


def test_openai_dalle_requests_base64():
    images = FakeImages(ONE_PIXEL_PNG_B64)
    provider = OpenAIImageProvider("key", "dall-e-3", client=SimpleNamespace(images=images))

    asyncio.run(provider.generate("a treasure chest", "serendipity"))

    assert images.calls[0]["response_format"] == "b64_json"


def test_openai_image_without_data_fails():
    provider = OpenAIImageProvider("key", "gpt-image-1", client=SimpleNamespace(images=FakeImages(None)))

    with pytest.raises(GenerationFailed):
        asyncio.run(provider.generate("a cat", "kissa"))
