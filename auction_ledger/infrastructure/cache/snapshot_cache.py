import asyncio
import logging
import time
from typing import Awaitable, Callable, NamedTuple, Optional

from auction_ledger.core.entities.ledger import CacheStatus, Snapshot, SnapshotResponse
from auction_ledger.core.errors import NoDataAvailable

logger = logging.getLogger(__name__)


class _CacheEntry(NamedTuple):
    snapshot: Snapshot
    stored_at: float  # clock() reading at capture


class SnapshotCache:
    """
    Process-wide holder of the last good Snapshot.

    EMPTY -> FRESH on the first successful refresh; FRESH turns stale once the
    TTL elapses and the next get() refreshes. A failed refresh serves the old
    snapshot marked stale, or raises NoDataAvailable when there is none.

    At most one refresh runs at a time. Callers that arrive while it runs get
    the previous snapshot straight away, or join the refresh when the cache is
    still empty. The entry is swapped in one assignment, so readers never see
    a half-updated value.
    """

    def __init__(
        self,
        refresher: Callable[[], Awaitable[Snapshot]],
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.refresher = refresher
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.refresh_attempts = 0
        self._entry: Optional[_CacheEntry] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        if self._refresh_task is not None:
            return "refreshing"
        if self._entry is None:
            return "empty"
        return "fresh" if self._is_fresh(self._entry) else "stale"

    def peek(self) -> Optional[Snapshot]:
        """Current snapshot without triggering a refresh."""
        entry = self._entry
        return entry.snapshot if entry else None

    async def get(self, force_refresh: bool = False) -> SnapshotResponse:
        entry = self._entry

        if entry is not None and not force_refresh and self._is_fresh(entry):
            age = self._age(entry)
            logger.info(f"Serving from cache (age: {round(age)}s)")
            return entry.snapshot.to_response(CacheStatus.HIT, age)

        if self._refresh_task is not None:
            if entry is not None:
                status = CacheStatus.HIT if self._is_fresh(entry) else CacheStatus.STALE
                logger.info(f"Refresh in flight; serving previous snapshot ({status.value})")
                return entry.snapshot.to_response(status, self._age(entry))
            return await self._await_refresh(self._refresh_task)

        logger.info("Cache miss - fetching fresh data..." if entry is None else "Cache stale - refreshing...")
        return await self._await_refresh(self._start_refresh())

    def _start_refresh(self) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run_refresh())
        self._refresh_task = task
        task.add_done_callback(self._refresh_done)
        return task

    async def _run_refresh(self) -> Snapshot:
        self.refresh_attempts += 1
        snapshot = await self.refresher()
        self._entry = _CacheEntry(snapshot, self.clock())
        logger.info(f"Cache updated at {snapshot.captured_at.isoformat()}")
        return snapshot

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Snapshot refresh failed: {task.exception()}")

    async def _await_refresh(self, task: asyncio.Task) -> SnapshotResponse:
        # shielded: a caller going away does not cancel the refresh
        try:
            snapshot = await asyncio.shield(task)
        except Exception as e:
            entry = self._entry
            if entry is not None:
                logger.warning(f"Serving stale cache due to error: {e}")
                return entry.snapshot.to_response(CacheStatus.STALE, self._age(entry))
            logger.error(f"No snapshot to fall back to: {e}")
            raise NoDataAvailable("Failed to fetch data and no cached snapshot exists") from e

        entry = self._entry
        age = self._age(entry) if entry is not None and entry.snapshot is snapshot else 0.0
        return snapshot.to_response(CacheStatus.MISS, age)

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        return self._age(entry) < self.ttl_seconds

    def _age(self, entry: _CacheEntry) -> float:
        return max(0.0, self.clock() - entry.stored_at)
