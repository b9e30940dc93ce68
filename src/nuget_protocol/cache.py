import asyncio
import logging
from typing import Awaitable, Callable, Dict

from .core.models import Metadata, PackageSource

logger = logging.getLogger(__name__)

MetadataFetcher = Callable[[PackageSource], Awaitable[Metadata]]


class MetadataCache:
    """
    Single-flight memo of source metadata.

    The first request for a source key starts the fetch; every later request
    for that key, in flight or completed, awaits the same task and sees the
    same value or the same exception. Entries are never evicted, and a failed
    fetch stays cached.
    """

    def __init__(self, fetch: MetadataFetcher):
        self._fetch = fetch
        self._tasks: Dict[str, "asyncio.Task[Metadata]"] = {}

    async def get(self, source: PackageSource) -> Metadata:
        task = self._tasks.get(source.key)
        if task is None:
            logger.info(f"Fetching metadata for {source.key}")
            task = asyncio.ensure_future(self._fetch(source))
            self._tasks[source.key] = task

        # A cancelled caller must not cancel the fetch shared with the others
        return await asyncio.shield(task)

    def __contains__(self, source: PackageSource) -> bool:
        return source.key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
