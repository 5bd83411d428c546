"""
File prefetching

Fetches a batch of file contents with bounded concurrency and truncates
each one to a fixed line budget. One bad file never fails the batch: it
is logged and left out of the result.
"""

import asyncio
import logging
from typing import List, Mapping, Optional

from repowiki.config import CONFIG_MAX_LINES, PREFETCH_CONCURRENCY
from repowiki.github_client import GitHubClient
from repowiki.models import PreFetchedFile

logger = logging.getLogger(__name__)


def truncate_lines(content: str, max_lines: int) -> str:
    """Cut ``content`` to ``max_lines`` lines plus one marker line."""
    lines = content.split("\n")
    if len(lines) <= max_lines:
        return content
    kept = "\n".join(lines[:max_lines])
    return f"{kept}\n[Truncated: showing {max_lines} of {len(lines)} lines]"


async def prefetch_files(
    github: GitHubClient,
    owner: str,
    repo: str,
    paths: List[str],
    shas: Optional[Mapping[str, str]] = None,
    max_lines: int = CONFIG_MAX_LINES,
    concurrency: int = PREFETCH_CONCURRENCY,
) -> List[PreFetchedFile]:
    """Fetch ``paths`` concurrently; return the textual files that succeeded.

    Result order follows completion, not ``paths``.
    """
    if not paths:
        return []

    semaphore = asyncio.Semaphore(max(1, min(concurrency, len(paths))))
    fetched: List[PreFetchedFile] = []
    failed: List[str] = []
    binary: List[str] = []

    async def _fetch_one(path: str) -> None:
        async with semaphore:
            try:
                file = await github.fetch_file_content(
                    owner, repo, path, shas.get(path) if shas else None
                )
            except Exception as exc:
                logger.debug("Prefetch of %s failed: %s", path, exc)
                failed.append(path)
                return
        if file.truncated and not file.content:
            binary.append(path)
            return
        fetched.append(PreFetchedFile(path=path, content=truncate_lines(file.content, max_lines)))

    await asyncio.gather(*[_fetch_one(p) for p in paths])

    if failed:
        logger.warning(
            "Failed to fetch %d/%d files: %s",
            len(failed), len(paths), ", ".join(failed),
        )
    if binary:
        logger.info("Skipped %d binary files: %s", len(binary), ", ".join(binary))

    return fetched
