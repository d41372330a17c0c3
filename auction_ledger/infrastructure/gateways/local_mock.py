from typing import Dict, Iterable, List, Set, Tuple

from auction_ledger.core.entities.log_entry import EventFilter, LogPage, RawLogEntry
from auction_ledger.core.errors import UpstreamError
from auction_ledger.core.interfaces.log_source import ILogSource


class LocalMockLogSource(ILogSource):
    """
    In-memory log source for offline runs and tests.
    Serves pages by slicing whatever entries match the filter; pages listed
    in `failing_pages` (label, page) raise UpstreamError instead.
    """

    def __init__(self, entries: Iterable[RawLogEntry] = (), failing_pages: Iterable[Tuple[str, int]] = ()):
        self.entries: List[RawLogEntry] = list(entries)
        self.failing_pages: Set[Tuple[str, int]] = set(failing_pages)
        self.calls: List[Tuple[str, int]] = []
        self.closed = False

    async def fetch_page(self, event_filter: EventFilter, page: int, page_size: int) -> LogPage:
        self.calls.append((event_filter.label, page))
        if (event_filter.label, page) in self.failing_pages:
            raise UpstreamError(page=page, attempts=3, reason="mock failure")
        matching = [e for e in self.entries if event_filter.matches(e)]
        start = (page - 1) * page_size
        return LogPage(entries=matching[start:start + page_size])

    def calls_for(self, label: str) -> List[int]:
        return [page for lbl, page in self.calls if lbl == label]

    def pages_requested(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for label, _ in self.calls:
            counts[label] = counts.get(label, 0) + 1
        return counts

    async def aclose(self) -> None:
        self.closed = True
