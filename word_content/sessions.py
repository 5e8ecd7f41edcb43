"""Shared aiohttp helpers."""

from contextlib import asynccontextmanager
from typing import Optional

import aiohttp


@asynccontextmanager
async def session_scope(session: Optional[aiohttp.ClientSession] = None):
    """Yield the given session, or a fresh one closed on exit."""
    if session is not None:
        yield session
        return
    async with aiohttp.ClientSession() as owned:
        yield owned


async def read_error_detail(response) -> str:
    try:
        return (await response.text())[:500]
    except (aiohttp.ClientError, UnicodeDecodeError):
        return getattr(response, "reason", "") or ""
