"""Image generation providers."""

import asyncio
import base64
import binascii
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import aiohttp
import openai
import structlog

from .errors import GenerationFailed, ImageProviderUnavailable, MissingCredentialError
from .models import ImageJob, ImageRef, JobStatus
from .polling import JobPoller
from .prompts import fallback_image_prompt
from .sessions import read_error_detail, session_scope

log = structlog.get_logger()

REPLICATE_PREDICTIONS_URL = "https://api.replicate.com/v1/predictions"
NEGATIVE_PROMPT = "blurry, bad quality, distorted, ugly, low resolution, text, watermark"

# Replicate reports "starting" before a worker picks the job up
REPLICATE_STATUS_ALIASES = {"starting": JobStatus.QUEUED.value}


class ImageProvider(ABC):
    """An image-generation service resolving a prompt to an ``ImageRef``."""

    name: str = "image"

    def __init__(self, api_key: Optional[str], model: str):
        self.api_key = api_key
        self.model = model

    async def generate(self, prompt: Optional[str], fallback_subject: str) -> ImageRef:
        if not self.api_key:
            raise MissingCredentialError("Image provider credential is not set", provider=self.name)
        if not prompt or not prompt.strip():
            prompt = fallback_image_prompt(fallback_subject)
            log.info("Using fallback image prompt", word=fallback_subject, prompt=prompt, provider=self.name)
        return await self._generate(prompt.strip())

    @abstractmethod
    async def _generate(self, prompt: str) -> ImageRef:
        pass


class OpenAIImageProvider(ImageProvider):
    """Synchronous shape: one call returns base64-encoded image data."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str, size: str = "1024x1024",
                 timeout: float = 60, client=None):
        super().__init__(api_key, model)
        self.size = size
        self.timeout = timeout
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    async def _generate(self, prompt: str) -> ImageRef:
        kwargs = {"model": self.model, "prompt": prompt, "size": self.size, "n": 1, "timeout": self.timeout}
        if self.model.startswith("dall-e"):
            kwargs["response_format"] = "b64_json"

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(None, lambda: self.client.images.generate(**kwargs))
        except openai.APIStatusError as e:
            log.error("Image generation request failed", error=str(e), status=e.status_code, model=self.model)
            raise ImageProviderUnavailable(
                "OpenAI image API error", provider=self.name, status=e.status_code, detail=str(e)
            ) from e
        except openai.APIConnectionError as e:
            log.error("Image generation request failed", error=str(e), model=self.model)
            raise ImageProviderUnavailable("OpenAI image API unreachable", provider=self.name, detail=str(e)) from e

        # Validate schema
        if not getattr(response, "data", None):
            raise GenerationFailed("Image generation response missing data", provider=self.name)

        b64_blob = getattr(response.data[0], "b64_json", None)
        if not b64_blob:
            raise GenerationFailed("Image generation response missing b64_json", provider=self.name)

        try:
            decoded_bytes = base64.b64decode(b64_blob, validate=True)
        except (binascii.Error, ValueError) as e:
            raise GenerationFailed("Image data is not valid base64", provider=self.name, detail=str(e)) from e

        log.info("Image generated", provider=self.name, model=self.model, size=len(decoded_bytes))
        return ImageRef(data=decoded_bytes, content_type="image/png")


class ReplicateImageProvider(ImageProvider):
    """Asynchronous shape: submit a prediction, then poll it to completion."""

    name = "replicate"

    def __init__(self, api_key: Optional[str], model: str, poll_interval: float = 2.0,
                 poll_max_attempts: int = 30, timeout: float = 60,
                 session: Optional[aiohttp.ClientSession] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(api_key, model)
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self.timeout = timeout
        self.session = session
        self.sleep = sleep
        self.clock = clock

    @property
    def headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Token {self.api_key}",
        }

    async def _generate(self, prompt: str) -> ImageRef:
        async with session_scope(self.session) as session:
            job = await self.submit(session, prompt)
            poller = JobPoller(
                lambda job_id: self.fetch_status(session, job_id),
                interval=self.poll_interval,
                max_attempts=self.poll_max_attempts,
                sleep=self.sleep,
                clock=self.clock,
                provider=self.name,
            )
            finished = await poller.wait(job)
        return ImageRef(url=finished.result_url)

    async def submit(self, session, prompt: str) -> ImageJob:
        body = {
            "version": self.model,
            "input": {
                "prompt": prompt,
                "negative_prompt": NEGATIVE_PROMPT,
                "width": 512,
                "height": 512,
                "num_outputs": 1,
                "num_inference_steps": 4,
                "guidance_scale": 7.5,
            },
        }
        data = await self._request(session, "post", REPLICATE_PREDICTIONS_URL, json=body)
        job_id = data.get("id")
        if not job_id:
            raise ImageProviderUnavailable("Replicate prediction has no id", provider=self.name, detail=str(data)[:200])
        log.info("Prediction created", job_id=job_id, provider=self.name)
        return self._to_job(data)

    async def fetch_status(self, session, job_id: str) -> ImageJob:
        data = await self._request(session, "get", f"{REPLICATE_PREDICTIONS_URL}/{job_id}")
        return self._to_job(data, job_id)

    async def _request(self, session, method: str, url: str, **kwargs) -> dict:
        try:
            async with getattr(session, method)(
                url, headers=self.headers, timeout=aiohttp.ClientTimeout(total=self.timeout), **kwargs
            ) as response:
                if not 200 <= response.status < 300:
                    detail = await read_error_detail(response)
                    log.error("Replicate API request failed", method=method.upper(), url=url,
                              status=response.status, detail=detail)
                    raise ImageProviderUnavailable(
                        "Replicate API error", provider=self.name, status=response.status, detail=detail
                    )
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    log.error("Replicate reply is not JSON", method=method.upper(), url=url, error=str(e))
                    raise ImageProviderUnavailable(
                        "Replicate reply is not valid JSON", provider=self.name, detail=str(e)
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error("Replicate API call failed", method=method.upper(), url=url, error=str(e))
            raise ImageProviderUnavailable("Replicate API unreachable", provider=self.name, detail=str(e)) from e

        if not isinstance(data, dict):
            raise ImageProviderUnavailable(
                "Replicate reply is not a JSON object", provider=self.name, detail=type(data).__name__
            )
        return data

    def _to_job(self, data: dict, job_id: Optional[str] = None) -> ImageJob:
        raw_status = data.get("status")
        if isinstance(raw_status, str):
            raw_status = REPLICATE_STATUS_ALIASES.get(raw_status, raw_status)
        else:
            raw_status = None

        output = data.get("output")
        if isinstance(output, list):
            output = output[0] if output else None
        if output is not None and not isinstance(output, str):
            raise GenerationFailed(
                "Replicate output is not an image URL", provider=self.name, detail=str(output)[:200]
            )

        error = data.get("error")
        return ImageJob(
            job_id=job_id or str(data.get("id")),
            status=JobStatus.parse(raw_status),
            result_url=output or None,
            error_detail=str(error) if error else None,
        )
