from typing import Dict, List, Optional

from auction_ledger.core.entities.log_entry import RawLogEntry


class LedgerError(Exception):
    """Base class for ingestion pipeline failures."""


class UpstreamError(LedgerError):
    """A single page fetch failed after all retry attempts."""

    def __init__(self, page: int, attempts: int, reason: str):
        self.page = page
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Failed to fetch page {page} after {attempts} attempts: {reason}")


class IngestionError(LedgerError):
    """
    One or more event streams failed during a refresh.

    :param streams: labels of the failed streams.
    :param recovered: number of entries recovered per failed stream before it aborted.
    :param partial_entries: the recovered prefix (single-stream errors raised by the Paginator).
    :param skipped: unparseable records dropped from that prefix.
    """

    def __init__(
        self,
        streams: List[str],
        recovered: Optional[Dict[str, int]] = None,
        partial_entries: Optional[List[RawLogEntry]] = None,
        pages: int = 0,
        reason: str = "",
        skipped: int = 0,
    ):
        self.streams = list(streams)
        self.recovered = dict(recovered or {})
        self.partial_entries = list(partial_entries or [])
        self.pages = pages
        self.reason = reason
        self.skipped = skipped
        detail = ", ".join(f"{s} ({self.recovered.get(s, 0)} recovered)" for s in self.streams)
        super().__init__(f"Ingestion failed for {detail}" + (f": {reason}" if reason else ""))


class NoDataAvailable(LedgerError):
    """Ingestion failed and there is no earlier snapshot to fall back to."""
