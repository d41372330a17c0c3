from abc import ABC, abstractmethod

from auction_ledger.core.entities.log_entry import EventFilter, LogPage


class ILogSource(ABC):
    @abstractmethod
    async def fetch_page(self, event_filter: EventFilter, page: int, page_size: int) -> LogPage:
        """
        Returns one page (1-based) of logs matching the filter.
        An explicit "no records" answer is an empty page; unparseable records
        are dropped and counted in `skipped`. Raises UpstreamError once
        retries are exhausted.
        """
        pass

    async def aclose(self) -> None:
        pass
