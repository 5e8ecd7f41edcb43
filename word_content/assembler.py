"""Normalize generated images into the final ``imageUrl`` reference."""

import asyncio
import base64
import time
from typing import Optional

import aiohttp
import structlog

from .errors import UploadError
from .models import GeneratedText, GenerationResult, ImageRef
from .storage import ObjectStore, download_image, generate_image_key

log = structlog.get_logger()


def to_data_uri(data: bytes, content_type: str = "image/png") -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


class ResultAssembler:
    """Turns an ``ImageRef`` into a URL, data-URI or object-store key."""

    def __init__(self, store: Optional[ObjectStore] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 timeout: float = 60, clock=time.time):
        self.store = store
        self.session = session
        self.timeout = timeout
        self.clock = clock

    async def assemble(self, word: str, text: GeneratedText, image: Optional[ImageRef]) -> GenerationResult:
        image_url = await self.resolve_image(word, image) if image is not None else ""
        return GenerationResult(meaning=text.meaning, example=text.example, image_url=image_url)

    async def resolve_image(self, word: str, image: ImageRef) -> str:
        if image.is_url:
            if self.store is None:
                return image.url
            try:
                data, content_type = await download_image(image.url, self.session, self.timeout)
                return await self._upload(word, data, content_type, image.url)
            except UploadError as e:
                # Provider URLs are transient but still usable for a while
                log.error("Image upload failed", stage="upload", word=word, error=str(e))
                return image.url

        if self.store is None:
            return to_data_uri(image.data, image.content_type)
        try:
            return await self._upload(word, image.data, image.content_type)
        except UploadError as e:
            log.error("Image upload failed", stage="upload", word=word, error=str(e))
            return ""

    async def _upload(self, word: str, data: bytes, content_type: str, url: Optional[str] = None) -> str:
        key = generate_image_key(word, content_type, url, timestamp=int(self.clock() * 1000))
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self.store.put(key, data, content_type))
        log.info("Image uploaded", word=word, key=key)
        return key
