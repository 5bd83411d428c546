"""
Server-Sent Events framing for wiki generation progress.
"""

import asyncio
import json
import logging
from typing import AsyncIterator

from pydantic import TypeAdapter

from repowiki.config import SSE_KEEPALIVE_SECONDS
from repowiki.errors import to_error_event
from repowiki.events import (
    CompleteEvent,
    ErrorEvent,
    FeatureCompleteEvent,
    ProgressEvent,
    WikiEvent,
)

logger = logging.getLogger(__name__)

KEEPALIVE = ": keep-alive\n\n"

_event_adapter = TypeAdapter(WikiEvent)


def format_sse(event_name: str, payload: dict) -> str:
    return f"event: {event_name}\ndata: {json.dumps(payload)}\n\n"


def event_name(event) -> str:
    if isinstance(event, ProgressEvent):
        return "progress"
    if isinstance(event, FeatureCompleteEvent):
        return "feature_complete"
    if isinstance(event, CompleteEvent):
        return "complete"
    if isinstance(event, ErrorEvent):
        return "error"
    raise TypeError(f"Not a wiki event: {type(event).__name__}")


def encode_event(event) -> str:
    return format_sse(event_name(event), event.to_payload())


def parse_event_payload(payload: dict):
    """Rebuild a typed event from its JSON payload (``phase`` selects the type)."""
    return _event_adapter.validate_python(payload)


async def stream_wiki_events(
    generator,
    owner: str,
    repo: str,
    keepalive_seconds: float = SSE_KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Run ``generator.generate_wiki`` and yield its events as SSE frames.

    The stream always ends with exactly one ``complete`` or ``error`` frame.
    A keep-alive comment is sent whenever no event arrived for
    ``keepalive_seconds``. If the client goes away, events are dropped but
    the run itself keeps going so its result still lands in the cache.
    """
    queue: "asyncio.Queue" = asyncio.Queue()
    closed = False

    def _sink(event) -> None:
        if closed:
            raise RuntimeError("event stream closed")
        queue.put_nowait(event)

    async def _run() -> None:
        try:
            wiki = await generator.generate_wiki(owner, repo, on_progress=_sink)
            queue.put_nowait(CompleteEvent(wiki=wiki))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Wiki generation failed for %s/%s: %s", owner, repo, exc)
            queue.put_nowait(to_error_event(exc))

    task = asyncio.ensure_future(_run())
    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield KEEPALIVE
                continue
            yield encode_event(event)
            if isinstance(event, (CompleteEvent, ErrorEvent)):
                break
    finally:
        closed = True
        if not task.done():
            logger.info("Client disconnected from %s/%s stream; generation continues", owner, repo)
