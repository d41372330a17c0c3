import asyncio
import logging
from typing import Awaitable, Callable, List

from auction_ledger.core.entities.log_entry import EventFilter, FetchedStream, RawLogEntry
from auction_ledger.core.errors import IngestionError, UpstreamError
from auction_ledger.core.interfaces.log_source import ILogSource

logger = logging.getLogger(__name__)


class Paginator:
    """
    Walks pages 1..N of one event stream strictly in sequence.

    Stops on the first short page, or at `max_pages`. Hitting the ceiling on a
    full page returns the data flagged `truncated`. Any source failure aborts the
    stream with an IngestionError that carries the prefix fetched so far.
    """

    def __init__(
        self,
        source: ILogSource,
        page_size: int = 1000,
        max_pages: int = 100,
        inter_page_delay: float = 0.2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.page_size = page_size
        self.max_pages = max_pages
        self.inter_page_delay = inter_page_delay
        self.sleep = sleep

    async def fetch_all(self, event_filter: EventFilter) -> FetchedStream:
        label = event_filter.label
        all_logs: List[RawLogEntry] = []
        skipped = 0

        for page in range(1, self.max_pages + 1):
            try:
                result = await self.source.fetch_page(event_filter, page, self.page_size)
            except UpstreamError as e:
                raise self._abort(label, page, all_logs, skipped, str(e)) from e
            except Exception as e:
                # e.g. a closed HTTP client; treated like an exhausted page
                raise self._abort(label, page, all_logs, skipped, f"{type(e).__name__}: {e}") from e

            all_logs.extend(result.entries)
            skipped += result.skipped
            logger.info(
                f"{label} page {page}: fetched {len(result.entries)} logs "
                f"({result.skipped} skipped), total: {len(all_logs)}"
            )

            # short-page test uses what the upstream returned, dropped records included
            if result.raw_count < self.page_size:
                return FetchedStream(label=label, entries=all_logs, skipped=skipped, pages=page)

            if page < self.max_pages:
                await self.sleep(self.inter_page_delay)

        logger.warning(
            f"{label}: reached page ceiling ({self.max_pages}) with a full last page; "
            f"{len(all_logs)} logs may be incomplete"
        )
        return FetchedStream(label=label, entries=all_logs, skipped=skipped, pages=self.max_pages, truncated=True)

    @staticmethod
    def _abort(label: str, page: int, logs: List[RawLogEntry], skipped: int, reason: str) -> IngestionError:
        logger.error(f"Incomplete log fetch for {label}: aborted at page {page} with {len(logs)} logs: {reason}")
        return IngestionError(
            streams=[label],
            recovered={label: len(logs)},
            partial_entries=logs,
            pages=page - 1,
            reason=reason,
            skipped=skipped,
        )
