"""
GitHub Repository Gateway

Thin async client over the GitHub REST API: repository metadata, the
recursive file tree of a branch, and single file contents (with a blob
fallback for files the contents API refuses to inline).

All failures leave this module as classified ``GitHubError`` instances.
"""

import asyncio
import base64
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from repowiki.config import GITHUB_API_URL, GITHUB_TIMEOUT
from repowiki.errors import (
    FILE_TOO_LARGE,
    NOT_FOUND,
    UNKNOWN,
    GitHubError,
    map_http_error,
    map_transport_error,
)
from repowiki.models import FileContent, RepoMeta, RepoTree, TreeNode

logger = logging.getLogger(__name__)

_JSON_ACCEPT = "application/vnd.github+json"
_RAW_ACCEPT = "application/vnd.github.raw"
_BINARY_SAMPLE = 512


def is_binary(content: str) -> bool:
    """A null byte in the first 512 characters marks the file as binary."""
    return "\0" in content[:_BINARY_SAMPLE]


def _decode_base64(data: str) -> str:
    return base64.b64decode(data).decode("utf-8", errors="replace")


def _is_too_large(response: httpx.Response) -> bool:
    if response.status_code != 403:
        return False
    try:
        message = str(response.json().get("message", ""))
    except (ValueError, AttributeError):
        message = response.text
    return "too large" in message.lower()


class GitHubClient:
    """Unauthenticated GitHub REST client for public repositories.

    Typical usage::

        async with GitHubClient() as gh:
            meta = await gh.fetch_repo_meta("octocat", "hello-world")
            tree = await gh.fetch_repo_tree("octocat", "hello-world", meta.default_branch)
    """

    def __init__(
        self,
        base_url: str = GITHUB_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = GITHUB_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---- low-level ----

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        accept: str = _JSON_ACCEPT,
    ) -> httpx.Response:
        try:
            return await self._client.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"Accept": accept, "X-GitHub-Api-Version": "2022-11-28"},
            )
        except httpx.HTTPError as exc:
            logger.warning("GitHub request %s failed: %s", path, exc)
            raise map_transport_error(exc) from exc

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = await self._get(path, params=params)
        if resp.status_code != 200:
            raise map_http_error(resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise GitHubError(f"Invalid JSON from GitHub for {path}", UNKNOWN, resp.status_code) from exc

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    # ---- metadata ----

    async def _fetch_readme(self, owner: str, repo: str) -> str:
        resp = await self._get(f"{self._repo_path(owner, repo)}/readme", accept=_RAW_ACCEPT)
        if resp.status_code != 200:
            raise map_http_error(resp)
        return resp.text

    async def fetch_repo_meta(self, owner: str, repo: str) -> RepoMeta:
        """Fetch the repo record, language histogram and README concurrently.

        Only the repo record is required; a missing README or language
        histogram degrades to ``None`` / ``{}``.
        """
        base = self._repo_path(owner, repo)
        repo_result, languages_result, readme_result = await asyncio.gather(
            self._get_json(base),
            self._get_json(f"{base}/languages"),
            self._fetch_readme(owner, repo),
            return_exceptions=True,
        )

        if isinstance(repo_result, BaseException):
            raise map_transport_error(repo_result)

        if isinstance(languages_result, BaseException):
            logger.info("No language histogram for %s/%s: %s", owner, repo, languages_result)
            languages: Dict[str, int] = {}
        else:
            languages = languages_result or {}

        if isinstance(readme_result, BaseException):
            logger.info("No README for %s/%s: %s", owner, repo, readme_result)
            readme = None
        else:
            readme = readme_result

        return RepoMeta(
            owner=owner,
            repo=repo,
            full_name=repo_result.get("full_name", f"{owner}/{repo}"),
            description=repo_result.get("description"),
            default_branch=repo_result.get("default_branch") or "main",
            language=repo_result.get("language"),
            languages=languages,
            stars=repo_result.get("stargazers_count", 0),
            readme=readme,
            topics=repo_result.get("topics") or [],
        )

    # ---- tree ----

    async def fetch_repo_tree(self, owner: str, repo: str, default_branch: str = "main") -> RepoTree:
        """Fetch the full recursive listing of ``default_branch`` (unfiltered)."""
        data = await self._get_json(
            f"{self._repo_path(owner, repo)}/git/trees/{quote(default_branch, safe='')}",
            params={"recursive": "1"},
        )
        raw_nodes = data.get("tree", [])
        nodes = [
            TreeNode(
                path=n["path"],
                type=n["type"],
                size=n.get("size"),
                sha=n.get("sha", ""),
            )
            for n in raw_nodes
            if n.get("type") in ("blob", "tree") and n.get("path")
        ]
        total_files = sum(1 for n in nodes if n.type == "blob")
        return RepoTree(
            total_files=total_files,
            truncated=bool(data.get("truncated", False)),
            nodes=nodes,
        )

    # ---- files ----

    async def fetch_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        sha: Optional[str] = None,
    ) -> FileContent:
        """Fetch one file's text.

        Binary files come back with empty content and ``truncated=True``.
        Files too large for the contents API are re-read through the blob API.
        """
        resp = await self._get(f"{self._repo_path(owner, repo)}/contents/{quote(path)}")

        if _is_too_large(resp):
            return await self._fetch_via_blob(owner, repo, path, sha)
        if resp.status_code != 200:
            raise map_http_error(resp)

        try:
            data = resp.json()
        except ValueError as exc:
            raise GitHubError(f"Invalid JSON from GitHub for {path}", UNKNOWN, resp.status_code) from exc
        if isinstance(data, list) or data.get("type") != "file":
            raise GitHubError(f"Path is not a file: {path}", NOT_FOUND, 404)

        # Files between 1MB and 100MB are listed without inline content
        if data.get("encoding") == "none" or (not data.get("content") and data.get("size", 0) > 0):
            return await self._fetch_via_blob(owner, repo, path, sha or data.get("sha"))

        return self._to_file_content(path, data.get("content", ""), data.get("size", 0), data.get("sha", ""))

    async def _fetch_via_blob(
        self,
        owner: str,
        repo: str,
        path: str,
        sha: Optional[str],
    ) -> FileContent:
        base = self._repo_path(owner, repo)
        try:
            file_sha = sha
            if not file_sha:
                file_sha = await self._resolve_sha(owner, repo, path)
            data = await self._get_json(f"{base}/git/blobs/{file_sha}")
            return self._to_file_content(path, data.get("content", ""), data.get("size") or 0, file_sha)
        except GitHubError as exc:
            if exc.code != UNKNOWN:
                raise
            logger.warning("Blob fallback failed for %s: %s", path, exc)
            raise GitHubError(f"File too large to fetch: {path}", FILE_TOO_LARGE) from exc

    async def _resolve_sha(self, owner: str, repo: str, path: str) -> str:
        """Look up a file's blob sha through its parent directory listing."""
        parent, _, name = path.rpartition("/")
        listing = await self._get_json(f"{self._repo_path(owner, repo)}/contents/{quote(parent)}")
        for entry in listing if isinstance(listing, list) else []:
            if entry.get("name") == name and entry.get("type") == "file":
                return entry["sha"]
        raise GitHubError(f"Path is not a file: {path}", NOT_FOUND, 404)

    @staticmethod
    def _to_file_content(path: str, encoded: str, size: int, sha: str) -> FileContent:
        content = _decode_base64(encoded)
        if is_binary(content):
            return FileContent(path=path, content="", size=size, sha=sha, truncated=True)
        return FileContent(path=path, content=content, size=size, sha=sha, truncated=False)
