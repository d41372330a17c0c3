"""
Raw log entities for the ingestion pipeline.

Everything the Log Source Client hands upward is typed here; untyped API
payloads never leave the gateway.
"""
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def _hex_to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text in ("", "0x"):
        return 0
    if text.startswith(("0x", "0X")):
        return int(text, 16)
    return int(text)


class RawLogEntry(BaseModel):
    """
    One emitted event log as returned by the indexed-log API.
    topics[0] is the event signature hash.
    """
    model_config = ConfigDict(frozen=True)

    topics: Tuple[str, ...]
    data: str = "0x"
    transaction_hash: str = ""
    block_timestamp: int = 0  # seconds
    block_number: int = 0
    log_index: int = 0
    address: Optional[str] = None

    @classmethod
    def from_api(cls, record: dict) -> "RawLogEntry":
        """Builds an entry from one Etherscan `result` record. Raises on non-dict input."""
        if not isinstance(record, dict):
            raise ValueError(f"log record must be an object, got {type(record).__name__}")
        topics = tuple(str(t).lower() for t in (record.get("topics") or []) if t)
        address = record.get("address")
        return cls(
            topics=topics,
            data=str(record.get("data") or "0x"),
            transaction_hash=str(record.get("transactionHash") or "").lower(),
            block_timestamp=_hex_to_int(record.get("timeStamp")),
            block_number=_hex_to_int(record.get("blockNumber")),
            log_index=_hex_to_int(record.get("logIndex")),
            address=str(address).lower() if address else None,
        )

    def topic(self, index: int) -> Optional[str]:
        return self.topics[index] if index < len(self.topics) else None


class EventFilter(BaseModel):
    """
    One logical event stream: contract + positional topic filter.
    Topics beyond topic0 are AND-combined with topic0 and with each other.
    """
    model_config = ConfigDict(frozen=True)

    label: str
    contract_address: str
    topic0: str
    topic1: Optional[str] = None
    topic2: Optional[str] = None
    from_block: int = 0

    def topics(self) -> List[Optional[str]]:
        return [self.topic0, self.topic1, self.topic2]

    def matches(self, entry: RawLogEntry) -> bool:
        if entry.address and entry.address != self.contract_address.lower():
            return False
        if entry.block_number and entry.block_number < self.from_block:
            return False
        for position, wanted in enumerate(self.topics()):
            if wanted is not None and entry.topic(position) != wanted.lower():
                return False
        return True


class LogQueryStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"


class LogQueryResult(BaseModel):
    """Tagged outcome of one upstream page request: Ok(records) | Empty | Error(message)."""
    status: LogQueryStatus
    records: List[RawLogEntry] = Field(default_factory=list)
    skipped: int = 0  # records in the body that could not be parsed
    message: Optional[str] = None

    @classmethod
    def ok(cls, records: List[RawLogEntry], skipped: int = 0) -> "LogQueryResult":
        return cls(status=LogQueryStatus.OK, records=records, skipped=skipped)

    @classmethod
    def empty(cls) -> "LogQueryResult":
        return cls(status=LogQueryStatus.EMPTY)

    @classmethod
    def error(cls, message: str) -> "LogQueryResult":
        return cls(status=LogQueryStatus.ERROR, message=message)


class LogPage(BaseModel):
    """
    One upstream page. `skipped` counts records dropped as unparseable, so
    `raw_count` is what the upstream actually returned (the short-page signal).
    """
    entries: List[RawLogEntry] = Field(default_factory=list)
    skipped: int = 0

    @property
    def raw_count(self) -> int:
        return len(self.entries) + self.skipped


class FetchedStream(BaseModel):
    """Result of paginating one event stream."""
    label: str
    entries: List[RawLogEntry] = Field(default_factory=list)
    skipped: int = 0  # unparseable records dropped at the gateway
    pages: int = 0
    truncated: bool = False  # page ceiling hit while pages were still full
    error: Optional[str] = None  # set when only a prefix was recovered

    @property
    def raw_count(self) -> int:
        return len(self.entries) + self.skipped

    @property
    def complete(self) -> bool:
        return not self.truncated and self.error is None
