"""Object storage for generated word images."""

import asyncio
import hashlib
import hmac
import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import quote, urlencode

import aiohttp
import structlog

from .config import IMAGE_KEY_PREFIX
from .errors import UploadError
from .sessions import session_scope

log = structlog.get_logger()

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def extension_for(content_type: Optional[str], url: Optional[str] = None) -> str:
    if content_type:
        ext = EXTENSIONS.get(content_type.split(";")[0].strip().lower())
        if ext:
            return ext
    if url:
        suffix = Path(url.split("?")[0]).suffix.lstrip(".").lower()
        if suffix in EXTENSIONS.values() or suffix == "jpeg":
            return "jpg" if suffix == "jpeg" else suffix
    return "png"


def generate_image_key(word: str, content_type: Optional[str] = None,
                       url: Optional[str] = None, timestamp: Optional[int] = None) -> str:
    """Deterministic key, e.g. ``word-images/serendipity-1700000000000.png``."""
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    safe_word = re.sub(r"[\s/\\?#%]+", "_", word.strip()) or "word"
    return f"{IMAGE_KEY_PREFIX}/{safe_word}-{timestamp}.{extension_for(content_type, url)}"


async def download_image(url: str, session: Optional[aiohttp.ClientSession] = None,
                         timeout: float = 60) -> Tuple[bytes, str]:
    """Download an image and return its bytes and content type."""
    try:
        async with session_scope(session) as s:
            async with s.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                if response.status != 200:
                    raise UploadError("Failed to download image", status=response.status, detail=url)
                content = await response.read()
                content_type = response.headers.get("Content-Type", "image/png")
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise UploadError("Failed to download image", detail=f"{url}: {e}") from e

    log.info("Image downloaded", url=url, size=len(content), content_type=content_type)
    return content, content_type


class ObjectStore(ABC):
    """Minimal object store contract."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return the key."""

    @abstractmethod
    def get_signed_url(self, key: str, ttl: int = 3600) -> str:
        pass


class LocalObjectStore(ObjectStore):
    """Filesystem-backed bucket with HMAC-signed read URLs."""

    def __init__(self, root, base_url: Optional[str] = None, signing_secret: Optional[str] = None,
                 clock=time.time):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/") if base_url else None
        self.signing_secret = signing_secret
        self.clock = clock

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise UploadError("Object key escapes the bucket", detail=key)
        return path

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            path = self._path(key)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise UploadError("Failed to write object", detail=f"{key}: {e}") from e
        log.info("Object stored", key=key, size=len(data), content_type=content_type)
        return key

    def get_signed_url(self, key: str, ttl: int = 3600) -> str:
        path = self._path(key)
        if not path.exists():
            raise UploadError("Object not found", detail=key)
        if not self.base_url:
            return path.as_uri()

        expires = int(self.clock()) + ttl
        query = {"expires": expires}
        if self.signing_secret:
            message = f"{key}:{expires}".encode("utf-8")
            query["signature"] = hmac.new(
                self.signing_secret.encode("utf-8"), message, hashlib.sha256
            ).hexdigest()
        return f"{self.base_url}/{quote(key)}?{urlencode(query)}"

    def verify_signature(self, key: str, expires: int, signature: str) -> bool:
        if not self.signing_secret or expires < self.clock():
            return False
        message = f"{key}:{expires}".encode("utf-8")
        expected = hmac.new(self.signing_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)


class MemoryObjectStore(ObjectStore):
    """In-process store, handy for local runs."""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self.objects[key] = (data, content_type)
        return key

    def get_signed_url(self, key: str, ttl: int = 3600) -> str:
        if key not in self.objects:
            raise UploadError("Object not found", detail=key)
        return f"memory://{key}?ttl={ttl}"
