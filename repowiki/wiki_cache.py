"""
In-memory wiki cache

Bounded, TTL-based store of generated wikis keyed by case-insensitive
``owner/repo``. Entries expire lazily on read. At capacity the oldest
inserted entry is evicted; this is a size bound, not an LRU.

Owned by one event loop; no locking.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from repowiki.config import WIKI_CACHE_MAX_SIZE, WIKI_CACHE_TTL
from repowiki.models import Wiki

logger = logging.getLogger(__name__)


def repo_key(owner: str, repo: str) -> str:
    return f"{owner.lower()}/{repo.lower()}"


class WikiCache:
    def __init__(
        self,
        ttl: float = WIKI_CACHE_TTL,
        max_size: int = WIKI_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Wiki, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, owner: str, repo: str) -> Optional[Wiki]:
        key = repo_key(owner, repo)
        entry = self._entries.get(key)
        if entry is None:
            return None
        wiki, stored_at = entry
        if self._clock() - stored_at > self.ttl:
            logger.debug("Wiki cache entry for %s expired", key)
            del self._entries[key]
            return None
        return wiki

    def put(self, owner: str, repo: str, wiki: Wiki) -> None:
        if self.max_size <= 0:
            return
        key = repo_key(owner, repo)
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Wiki cache full, evicted %s", evicted)
        self._entries[key] = (wiki, self._clock())

    def clear(self) -> None:
        self._entries.clear()
