"""
Request helpers shared by the streaming scoping routes.
"""
import asyncio
import re
from datetime import datetime, timezone
from typing import AsyncIterator, Coroutine, Optional, Set

from bson import ObjectId
from fastapi import HTTPException, Request, status
from loguru import logger

from agents.scoping_agent.exceptions import AdmissionDenied
from agents.scoping_agent.streaming.events import Frame
from agents.scoping_agent.streaming.sinks import QueueSink, SinkClosed
from security.rate_limiter import RateLimiter

SCRIPT_TAG_PATTERN = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
HTML_TAG_PATTERN = re.compile(r"<[^>]+>")

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."
RATE_LIMITED_MESSAGE = "You've reached the limit for now. Try again in a few minutes."

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}

# Producers still draining a provider stream after their client went away.
_background_tasks: Set[asyncio.Task] = set()


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def sanitize_text(text: Optional[str]) -> Optional[str]:
    """Strip script blocks and HTML tags from free-text input."""
    if not text:
        return text
    text = SCRIPT_TAG_PATTERN.sub("", text)
    return HTML_TAG_PATTERN.sub("", text).strip()


def require_object_id(value: str, field_name: str = "project_id") -> str:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {field_name} format")
    return value


def enforce_rate_limit(limiter: RateLimiter, request: Request, is_authenticated: bool = False) -> None:
    try:
        limiter.enforce(get_client_ip(request), is_authenticated)
    except AdmissionDenied as e:
        reset_at = datetime.fromtimestamp(e.reset_at, tz=timezone.utc)
        retry_after = max(int(e.reset_at - datetime.now(timezone.utc).timestamp()), 0)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": RATE_LIMITED_MESSAGE, "code": 429, "resetAt": reset_at.isoformat()},
            headers={"Retry-After": str(retry_after)},
        ) from e


async def _produce(sink: QueueSink, producer: Coroutine) -> None:
    try:
        await producer
    except Exception:
        logger.exception("Unhandled error while streaming a scoping response")
        try:
            sink.write(Frame.error(UNEXPECTED_ERROR_MESSAGE, True).encode())
        except SinkClosed:
            pass
    finally:
        sink.finish()


async def stream_frames(sink: QueueSink, producer: Coroutine) -> AsyncIterator[bytes]:
    """
    Run the producer in a task and relay the frames it writes into the sink.

    If the client disconnects the sink is closed and the producer keeps
    running to completion in the background so its result is still persisted.
    """
    task = asyncio.create_task(_produce(sink, producer))
    try:
        async for chunk in sink:
            yield chunk
    finally:
        if not task.done():
            sink.disconnect()
            _background_tasks.add(task)
            task.add_done_callback(_background_tasks.discard)
