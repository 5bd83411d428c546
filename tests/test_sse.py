"""Tests for Server-Sent Events framing of generation runs."""

from __future__ import annotations

import asyncio
import json
from typing import List

import pytest

from repowiki.errors import NOT_FOUND, GitHubError
from repowiki.events import CompleteEvent, ErrorEvent, ProgressEvent
from repowiki.models import Wiki
from repowiki.sse import KEEPALIVE, encode_event, event_name, format_sse, parse_event_payload, stream_wiki_events

WIKI = Wiki(
    repo_url="https://github.com/o/r",
    repo_name="r",
    description="d",
    generated_at="2026-01-01T00:00:00+00:00",
)


def _collect(agen) -> List[str]:
    async def _go():
        return [frame async for frame in agen]

    return asyncio.run(_go())


def _parse(frame: str):
    lines = frame.strip("\n").split("\n")
    assert lines[0].startswith("event: ")
    assert lines[1].startswith("data: ")
    return lines[0][len("event: "):], json.loads(lines[1][len("data: "):])


class ScriptedGenerator:
    def __init__(self, events=(), result=None, error=None, delay=0.0):
        self.events = events
        self.result = result
        self.error = error
        self.delay = delay

    async def generate_wiki(self, owner, repo, on_progress=None):
        for event in self.events:
            on_progress(event)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


def test_format_sse_framing() -> None:
    assert format_sse("progress", {"a": 1}) == 'event: progress\ndata: {"a": 1}\n\n'


def test_event_names_follow_the_event_type() -> None:
    assert event_name(ProgressEvent(phase="assembling", message="m", progress=95)) == "progress"
    assert event_name(CompleteEvent(wiki=WIKI)) == "complete"
    assert event_name(ErrorEvent(code="X", message="m")) == "error"
    with pytest.raises(TypeError):
        event_name(object())


def test_payloads_use_camel_case_and_omit_missing_fields() -> None:
    frame = encode_event(ProgressEvent(
        phase="generating_features", message="m", progress=30, features_total=4, features_complete=0,
    ))

    name, payload = _parse(frame)

    assert name == "progress"
    assert payload == {
        "phase": "generating_features",
        "message": "m",
        "progress": 30,
        "featuresTotal": 4,
        "featuresComplete": 0,
    }


def test_payload_parses_back_into_the_tagged_event() -> None:
    event = parse_event_payload({"phase": "error", "code": "NOT_FOUND", "message": "gone"})

    assert isinstance(event, ErrorEvent)


def test_stream_ends_with_complete() -> None:
    progress = ProgressEvent(phase="fetching_metadata", message="Fetching repository data...", progress=5)
    frames = _collect(stream_wiki_events(ScriptedGenerator([progress], result=WIKI), "o", "r"))

    names = [_parse(f)[0] for f in frames]
    assert names == ["progress", "complete"]
    assert _parse(frames[-1])[1]["wiki"]["repoUrl"] == "https://github.com/o/r"


def test_stream_ends_with_error_event() -> None:
    gen = ScriptedGenerator(error=GitHubError("missing", NOT_FOUND, 404))

    frames = _collect(stream_wiki_events(gen, "o", "r"))

    name, payload = _parse(frames[-1])
    assert name == "error"
    assert payload["code"] == NOT_FOUND
    assert payload["phase"] == "error"


def test_keepalive_is_sent_while_idle() -> None:
    gen = ScriptedGenerator(result=WIKI, delay=0.05)

    frames = _collect(stream_wiki_events(gen, "o", "r", keepalive_seconds=0.01))

    assert frames[0] == KEEPALIVE
    assert _parse(frames[-1])[0] == "complete"


def test_closed_stream_drops_later_events_but_run_finishes() -> None:
    results = {}

    class SlowGenerator:
        async def generate_wiki(self, owner, repo, on_progress=None):
            on_progress(ProgressEvent(phase="fetching_metadata", message="m", progress=5))
            await asyncio.sleep(0.01)
            try:
                on_progress(ProgressEvent(phase="assembling", message="m", progress=95))
            except RuntimeError:
                results["dropped"] = True
            results["done"] = True
            return WIKI

    async def _go():
        agen = stream_wiki_events(SlowGenerator(), "o", "r")
        first = await agen.__anext__()
        await agen.aclose()
        await asyncio.sleep(0.05)
        return first

    first = asyncio.run(_go())

    assert _parse(first)[0] == "progress"
    assert results == {"dropped": True, "done": True}
