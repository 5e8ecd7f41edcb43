"""Serverless entry point: ``{word, language?}`` in, ``{meaning, example, imageUrl}`` out."""

import asyncio
import json
from typing import Optional

import structlog

from .errors import InputError, WordContentError
from .generator import ContentGenerator
from .log_config import configure_logging

log = structlog.get_logger()

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
}

_generator: Optional[ContentGenerator] = None


def _response(status_code: int, payload: dict) -> dict:
    return {"statusCode": status_code, "headers": dict(CORS_HEADERS), "body": json.dumps(payload, ensure_ascii=False)}


def parse_event(event) -> dict:
    """Accept a bare dict, an API-gateway ``body`` (string or dict) or GraphQL ``arguments``."""
    if not isinstance(event, dict):
        raise InputError("Event must be an object")
    if "arguments" in event and isinstance(event["arguments"], dict):
        return event["arguments"]
    if "body" in event:
        body = event["body"]
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except json.JSONDecodeError as e:
                raise InputError("Request body is not valid JSON", detail=str(e)) from e
        if not isinstance(body, dict):
            raise InputError("Request body must be an object")
        return body
    return event


async def handle(event, generator: ContentGenerator) -> dict:
    log.info("Event received", payload=event)
    try:
        body = parse_event(event)
        if not body.get("word"):
            raise InputError("Word is required")
        result = await generator.generate(body["word"], body.get("language"))
    except InputError as e:
        return _response(400, {"error": str(e)})
    except WordContentError as e:
        log.error("Error generating word content", stage=e.stage, provider=e.provider, error=str(e))
        return _response(500, {"error": "Failed to generate content", "details": str(e)})
    except Exception as e:
        log.exception("Unexpected error generating word content", error=str(e))
        return _response(500, {"error": "Failed to generate content", "details": str(e)})
    return _response(200, result.to_payload())


def handler(event, context=None) -> dict:
    global _generator
    if _generator is None:
        configure_logging()
        try:
            _generator = ContentGenerator.from_env()
        except WordContentError as e:
            log.error("Generator configuration failed", error=str(e))
            return _response(500, {"error": "Failed to generate content", "details": str(e)})
    return asyncio.run(handle(event, _generator))
