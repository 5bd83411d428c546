"""
Error taxonomy

Every fatal condition of a generation run is raised as a ``WikiError``
subclass carrying a machine-readable code. ``to_error_event`` turns any
exception into the short, user-facing ``error`` event sent to clients.
"""

import logging
import time
from typing import Mapping, Optional

import httpx

from repowiki.events import ErrorEvent

logger = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"
RATE_LIMITED = "RATE_LIMITED"
FILE_TOO_LARGE = "FILE_TOO_LARGE"
NETWORK_ERROR = "NETWORK_ERROR"
UNKNOWN = "UNKNOWN"
AI_ERROR = "AI_ERROR"
PIPELINE_ERROR = "PIPELINE_ERROR"


class WikiError(Exception):
    code = PIPELINE_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.status = status
        self.retry_after = retry_after


class GitHubError(WikiError):
    """Classified failure from the GitHub REST API."""

    code = UNKNOWN


class GenerationError(WikiError):
    """A model call produced no usable structured output."""

    code = AI_ERROR


class PipelineError(WikiError):
    code = PIPELINE_ERROR


# ---------------------------------------------------------------------------
# GitHub boundary classification
# ---------------------------------------------------------------------------


def _upstream_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"HTTP {response.status_code}"


def _rate_limit_retry_after(headers: Mapping[str, str], now: Optional[float] = None) -> Optional[int]:
    retry_header = headers.get("retry-after")
    if retry_header and retry_header.isdigit():
        return int(retry_header)
    reset_header = headers.get("x-ratelimit-reset")
    if reset_header and reset_header.isdigit():
        current = int(now if now is not None else time.time())
        return max(int(reset_header) - current, 0)
    return None


def map_http_error(response: httpx.Response, now: Optional[float] = None) -> GitHubError:
    """Classify a non-success GitHub response."""
    status = response.status_code
    if status == 404:
        return GitHubError("Repository not found or is private", NOT_FOUND, status)

    if status == 429 or (status == 403 and response.headers.get("x-ratelimit-remaining") == "0"):
        return GitHubError(
            "GitHub API rate limit exceeded",
            RATE_LIMITED,
            status,
            _rate_limit_retry_after(response.headers, now),
        )

    if status == 403:
        return GitHubError("Repository not found or is private", NOT_FOUND, status)

    return GitHubError(_upstream_message(response), UNKNOWN, status)


def map_transport_error(exc: Exception) -> GitHubError:
    """Classify an exception raised while talking to GitHub."""
    if isinstance(exc, GitHubError):
        return exc
    if isinstance(exc, httpx.TransportError):
        return GitHubError("Network error connecting to GitHub", NETWORK_ERROR)
    return GitHubError(str(exc) or "Unknown error", UNKNOWN)


# ---------------------------------------------------------------------------
# User-facing mapping
# ---------------------------------------------------------------------------


def format_duration(seconds: int) -> str:
    """Render a retry-after hint, e.g. ``45 seconds`` or ``2 minutes``."""
    if seconds < 60:
        return f"{seconds} second{'' if seconds == 1 else 's'}"
    minutes = -(-seconds // 60)
    return f"{minutes} minute{'' if minutes == 1 else 's'}"


def _github_user_message(error: GitHubError) -> str:
    if error.code == NOT_FOUND:
        return "This repository was not found. It may be private or the URL may be incorrect."
    if error.code == RATE_LIMITED:
        if error.retry_after:
            return f"GitHub API rate limit exceeded. Try again in {format_duration(error.retry_after)}."
        return "GitHub API rate limit exceeded. Try again later."
    if error.code == FILE_TOO_LARGE:
        return "This repository is too large to process."
    if error.code == NETWORK_ERROR:
        return "Could not connect to GitHub. Please check your connection and try again."
    return error.message


def to_error_event(exc: BaseException) -> ErrorEvent:
    if isinstance(exc, GitHubError):
        return ErrorEvent(
            code=exc.code,
            message=_github_user_message(exc),
            retry_after=exc.retry_after,
        )
    if isinstance(exc, GenerationError):
        return ErrorEvent(
            code=AI_ERROR,
            message="The AI model failed to generate structured output. Please try again.",
        )
    if isinstance(exc, WikiError):
        return ErrorEvent(code=exc.code, message=exc.message, retry_after=exc.retry_after)
    return ErrorEvent(
        code=PIPELINE_ERROR,
        message=str(exc) or "An unexpected error occurred",
    )
