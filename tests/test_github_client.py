"""Tests for the GitHub gateway against a mocked transport."""

from __future__ import annotations

import asyncio
import base64
from typing import Callable

import httpx
import pytest

from repowiki.errors import (
    FILE_TOO_LARGE,
    NETWORK_ERROR,
    NOT_FOUND,
    RATE_LIMITED,
    UNKNOWN,
    GitHubError,
)
from repowiki.github_client import GitHubClient, is_binary


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _run(handler: Callable[[httpx.Request], httpx.Response], coro_factory):
    async def _go():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as http:
            gh = GitHubClient(base_url="https://api.test", client=http)
            return await coro_factory(gh)

    return asyncio.run(_go())


def test_fetch_repo_meta_tolerates_missing_readme_and_languages() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/repos/octocat/hello-world":
            return httpx.Response(200, json={
                "full_name": "octocat/hello-world",
                "description": "Hi",
                "default_branch": "trunk",
                "language": "Go",
                "stargazers_count": 7,
                "topics": ["demo"],
            })
        return httpx.Response(404, json={"message": "Not Found"})

    meta = _run(handler, lambda gh: gh.fetch_repo_meta("octocat", "hello-world"))

    assert meta.full_name == "octocat/hello-world"
    assert meta.default_branch == "trunk"
    assert meta.stars == 7
    assert meta.readme is None
    assert meta.languages == {}


def test_fetch_repo_meta_includes_readme_and_languages() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/languages"):
            return httpx.Response(200, json={"Python": 1200})
        if path.endswith("/readme"):
            return httpx.Response(200, text="# Title")
        return httpx.Response(200, json={"full_name": "a/b", "default_branch": "main"})

    meta = _run(handler, lambda gh: gh.fetch_repo_meta("a", "b"))

    assert meta.readme == "# Title"
    assert meta.languages == {"Python": 1200}


def test_missing_repository_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_repo_meta("nobody", "nothing"))

    assert excinfo.value.code == NOT_FOUND


def test_exhausted_rate_limit_carries_retry_after() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={"message": "API rate limit exceeded"},
            headers={"x-ratelimit-remaining": "0", "retry-after": "120"},
        )

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_repo_tree("a", "b", "main"))

    assert excinfo.value.code == RATE_LIMITED
    assert excinfo.value.retry_after == 120


def test_other_forbidden_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"message": "Forbidden"})

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_repo_tree("a", "b", "main"))

    assert excinfo.value.code == NOT_FOUND


def test_server_error_keeps_upstream_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, json={"message": "Bad gateway"})

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_repo_tree("a", "b", "main"))

    assert excinfo.value.code == UNKNOWN
    assert excinfo.value.message == "Bad gateway"


def test_transport_failure_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_repo_tree("a", "b", "main"))

    assert excinfo.value.code == NETWORK_ERROR


def test_fetch_repo_tree_counts_blobs_and_flags_truncation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["recursive"] == "1"
        return httpx.Response(200, json={
            "truncated": True,
            "tree": [
                {"path": "src", "type": "tree", "sha": "t1"},
                {"path": "src/a.py", "type": "blob", "sha": "b1", "size": 10},
                {"path": "node_modules/x.js", "type": "blob", "sha": "b2", "size": 5},
                {"path": "sub", "type": "commit", "sha": "c1"},
            ],
        })

    tree = _run(handler, lambda gh: gh.fetch_repo_tree("a", "b", "main"))

    assert tree.truncated is True
    assert tree.total_files == 2
    assert [n.path for n in tree.nodes] == ["src", "src/a.py", "node_modules/x.js"]


def test_fetch_file_content_decodes_base64() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={
            "type": "file", "encoding": "base64", "size": 11,
            "sha": "abc", "content": _b64("print('hi')"),
        })

    file = _run(handler, lambda gh: gh.fetch_file_content("a", "b", "main.py"))

    assert file.content == "print('hi')"
    assert file.truncated is False


def test_binary_content_is_returned_empty_and_truncated() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={
            "type": "file", "encoding": "base64", "size": 4,
            "sha": "abc", "content": _b64("PK\0\0"),
        })

    file = _run(handler, lambda gh: gh.fetch_file_content("a", "b", "archive.bin"))

    assert file.content == ""
    assert file.truncated is True


def test_directory_path_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"name": "a.py", "type": "file"}])

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_file_content("a", "b", "src"))

    assert excinfo.value.code == NOT_FOUND


def test_too_large_file_falls_back_to_blob_api() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if "/contents/" in request.url.path:
            return httpx.Response(403, json={"message": "This API returns blobs up to 1 MB in size. The requested blob is too large"})
        return httpx.Response(200, json={"sha": "deadbeef", "size": 5, "content": _b64("hello")})

    file = _run(handler, lambda gh: gh.fetch_file_content("a", "b", "big.txt", sha="deadbeef"))

    assert file.content == "hello"
    assert seen[-1] == "/repos/a/b/git/blobs/deadbeef"


def test_encoding_none_falls_back_to_blob_api() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "/contents/" in request.url.path:
            return httpx.Response(200, json={
                "type": "file", "encoding": "none", "size": 2_000_000,
                "sha": "cafe", "content": "",
            })
        assert request.url.path == "/repos/a/b/git/blobs/cafe"
        return httpx.Response(200, json={"sha": "cafe", "size": 2, "content": _b64("ok")})

    file = _run(handler, lambda gh: gh.fetch_file_content("a", "b", "huge.json"))

    assert file.content == "ok"


def test_blob_fallback_failure_is_file_too_large() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "/contents/" in request.url.path:
            return httpx.Response(403, json={"message": "too large"})
        return httpx.Response(500, json={"message": "Internal error"})

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_file_content("a", "b", "big.txt", sha="x"))

    assert excinfo.value.code == FILE_TOO_LARGE


def test_is_binary_only_samples_the_head() -> None:
    assert is_binary("abc\0def")
    assert not is_binary("a" * 600 + "\0")


def test_non_json_file_response_is_classified() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(GitHubError) as excinfo:
        _run(handler, lambda gh: gh.fetch_file_content("a", "b", "main.py"))

    assert excinfo.value.code == UNKNOWN
