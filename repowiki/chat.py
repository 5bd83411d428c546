"""
Chat API Module

Answers follow-up questions about a generated wiki. The cached wiki is
rendered to markdown and supplied as the only grounding context; the
model's answer is streamed back as plain text.
"""

import logging
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from repowiki.models import Wiki
from repowiki.prompts import build_chat_system_prompt
from repowiki.serialize import serialize_wiki_to_markdown

logger = logging.getLogger(__name__)

MAX_CHAT_MESSAGES = 50

chat_router = APIRouter(prefix="/api", tags=["chat"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    owner: Optional[str] = None
    repo: Optional[str] = None
    messages: Optional[List[ChatMessage]] = Field(default=None)
    active_feature_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def validate_chat_request(body: ChatRequest) -> None:
    """Raise a 400 for a request missing owner/repo or with a bad message list."""
    if not body.owner or not body.repo:
        raise HTTPException(status_code=400, detail="owner and repo are required")
    if not body.messages:
        raise HTTPException(status_code=400, detail="messages must be a non-empty array")
    if len(body.messages) > MAX_CHAT_MESSAGES:
        raise HTTPException(
            status_code=400,
            detail=f"Too many messages (max {MAX_CHAT_MESSAGES})",
        )


def build_chat_system(wiki: Wiki, active_feature_id: Optional[str]) -> str:
    return build_chat_system_prompt(
        wiki.repo_name, serialize_wiki_to_markdown(wiki), active_feature_id,
    )


async def _relay(tokens: AsyncIterator[str], label: str) -> AsyncIterator[str]:
    count = 0
    try:
        async for token in tokens:
            count += 1
            yield token
    except Exception as exc:
        logger.error("Chat stream for %s failed after %d chunks: %s", label, count, exc)
        raise
    logger.info("Chat stream for %s finished (%d chunks)", label, count)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@chat_router.post("/chat")
async def chat(body: ChatRequest, request: Request):
    """Stream an answer grounded in the cached wiki for ``owner/repo``."""
    validate_chat_request(body)

    wiki = request.app.state.cache.get(body.owner, body.repo)
    if wiki is None:
        raise HTTPException(
            status_code=404,
            detail="Wiki not found in cache. Please regenerate the wiki first.",
        )

    system = build_chat_system(wiki, body.active_feature_id)
    messages = [m.model_dump() for m in body.messages]
    label = f"{body.owner}/{body.repo}"
    logger.info("Chat request for %s: %d messages, %d chars context", label, len(messages), len(system))

    return StreamingResponse(
        _relay(request.app.state.llm.stream_chat(system, messages), label),
        media_type="text/plain; charset=utf-8",
    )
