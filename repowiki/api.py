"""
HTTP surface

FastAPI application exposing wiki generation as a Server-Sent Events
stream, a read of the cached wiki, the chat endpoint and a health check.
The result cache and the in-flight registry live on ``app.state`` and are
shared by every request of the process.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from repowiki.chat import chat_router
from repowiki.config import SSE_KEEPALIVE_SECONDS, PipelineSettings
from repowiki.github_client import GitHubClient
from repowiki.llm import LLMClient
from repowiki.sse import stream_wiki_events
from repowiki.wiki_cache import WikiCache
from repowiki.wiki_generator import InflightRegistry, WikiGenerator

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _validate_repo_name(owner: str, repo: str) -> None:
    if not _NAME_PATTERN.match(owner) or not _NAME_PATTERN.match(repo):
        raise HTTPException(status_code=400, detail="Invalid owner or repo name")


def create_app(
    llm=None,
    github: Optional[GitHubClient] = None,
    cache: Optional[WikiCache] = None,
    settings: Optional[PipelineSettings] = None,
    keepalive_seconds: float = SSE_KEEPALIVE_SECONDS,
) -> FastAPI:
    """Build the application. Collaborators default to process-wide instances."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "repowiki API starting (provider=%s, model=%s)",
            getattr(app.state.llm, "provider", "custom"),
            getattr(app.state.llm, "model", "custom"),
        )
        yield
        await app.state.github.aclose()

    app = FastAPI(
        title="RepoWiki API",
        description="Generates citation-backed feature wikis for public GitHub repositories",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.llm = llm if llm is not None else LLMClient()
    app.state.github = github if github is not None else GitHubClient()
    app.state.cache = cache if cache is not None else WikiCache()
    app.state.inflight = InflightRegistry()
    app.state.settings = settings or PipelineSettings()
    app.state.keepalive_seconds = keepalive_seconds

    app.include_router(chat_router)

    def _generator(request: Request) -> WikiGenerator:
        state = request.app.state
        return WikiGenerator(
            github=state.github,
            llm=state.llm,
            cache=state.cache,
            inflight=state.inflight,
            settings=state.settings,
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/wiki/{owner}/{repo}")
    async def generate_wiki(owner: str, repo: str, request: Request):
        """Stream generation progress for ``owner/repo`` as Server-Sent Events."""
        _validate_repo_name(owner, repo)
        logger.info("Wiki requested for %s/%s", owner, repo)
        return StreamingResponse(
            stream_wiki_events(
                _generator(request), owner, repo,
                keepalive_seconds=request.app.state.keepalive_seconds,
            ),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/api/wiki/{owner}/{repo}/cached")
    async def get_cached_wiki(owner: str, repo: str, request: Request):
        _validate_repo_name(owner, repo)
        wiki = request.app.state.cache.get(owner, repo)
        if wiki is None:
            raise HTTPException(status_code=404, detail="Wiki not found in cache")
        return JSONResponse(wiki.model_dump(mode="json", by_alias=True))

    return app


app = create_app()
