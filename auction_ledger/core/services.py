import asyncio
import logging
from typing import Dict, List, Sequence, Union

from auction_ledger.config import Settings
from auction_ledger.core.entities.events import TransferDirection
from auction_ledger.core.entities.ledger import Snapshot, StreamStats
from auction_ledger.core.entities.log_entry import EventFilter, FetchedStream
from auction_ledger.core.errors import IngestionError
from auction_ledger.core.interfaces.log_source import ILogSource
from auction_ledger.core.use_cases.event_decoder import (
    address_to_topic,
    decode_bids,
    decode_cancellations,
    decode_transfers,
)
from auction_ledger.core.use_cases.ledger_aggregator import LedgerAggregator
from auction_ledger.core.use_cases.paginator import Paginator

logger = logging.getLogger(__name__)

DEPOSITS = "deposits"
WITHDRAWALS = "withdrawals"
BIDS = "bids"
CANCELLATIONS = "cancellations"


def build_stream_filters(settings: Settings) -> Dict[str, EventFilter]:
    """The four event streams: token transfers into/out of the wrapper, bid submissions, bid cancellations."""
    wrapper_topic = address_to_topic(settings.wrapper_contract)
    return {
        DEPOSITS: EventFilter(
            label=DEPOSITS,
            contract_address=settings.token_contract,
            topic0=settings.transfer_topic,
            topic2=wrapper_topic,
            from_block=settings.from_block,
        ),
        WITHDRAWALS: EventFilter(
            label=WITHDRAWALS,
            contract_address=settings.token_contract,
            topic0=settings.transfer_topic,
            topic1=wrapper_topic,
            from_block=settings.from_block,
        ),
        BIDS: EventFilter(
            label=BIDS,
            contract_address=settings.auction_contract,
            topic0=settings.bid_submitted_topic,
            from_block=settings.from_block,
        ),
        CANCELLATIONS: EventFilter(
            label=CANCELLATIONS,
            contract_address=settings.auction_contract,
            topic0=settings.bid_canceled_topic,
            from_block=settings.from_block,
        ),
    }


class AuctionIngestionService:
    """
    One full ingestion pass: fetch the four streams, decode, aggregate.

    Streams are fetched as (deposits, withdrawals) then (bids, cancellations),
    each pair concurrently; aggregation only starts once every stream is joined.
    """

    def __init__(
        self,
        paginator: Paginator,
        aggregator: LedgerAggregator,
        filters: Dict[str, EventFilter],
        token_decimals: int = 6,
        allow_partial_streams: bool = True,
        all_streams_concurrent: bool = False,
    ):
        self.paginator = paginator
        self.aggregator = aggregator
        self.filters = filters
        self.token_decimals = token_decimals
        self.allow_partial_streams = allow_partial_streams
        self.all_streams_concurrent = all_streams_concurrent

    @classmethod
    def from_settings(cls, settings: Settings, source: ILogSource) -> "AuctionIngestionService":
        paginator = Paginator(
            source,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            inter_page_delay=settings.inter_page_delay_seconds,
        )
        aggregator = LedgerAggregator(
            per_bid_quantity_cap=settings.per_bid_quantity_cap,
            max_bids_per_participant=settings.max_bids_per_participant,
            excluded_addresses=settings.excluded_addresses,
            live_bids_limit=settings.live_bids_limit,
        )
        return cls(
            paginator,
            aggregator,
            build_stream_filters(settings),
            token_decimals=settings.token_decimals,
            allow_partial_streams=settings.allow_partial_streams,
            all_streams_concurrent=settings.all_streams_concurrent,
        )

    async def refresh(self) -> Snapshot:
        """Raises IngestionError when a stream cannot be used; never returns half-joined data."""
        if self.all_streams_concurrent:
            streams = await self._fetch_group([DEPOSITS, WITHDRAWALS, BIDS, CANCELLATIONS])
        else:
            logger.info("Fetching deposits and withdrawals in parallel...")
            streams = await self._fetch_group([DEPOSITS, WITHDRAWALS])
            logger.info(f"Deposits: {len(streams[DEPOSITS].entries)} Withdrawals: {len(streams[WITHDRAWALS].entries)}")
            logger.info("Fetching bids and canceled bids in parallel...")
            streams.update(await self._fetch_group([BIDS, CANCELLATIONS]))
            logger.info(f"Bids: {len(streams[BIDS].entries)} Canceled: {len(streams[CANCELLATIONS].entries)}")

        d = self.token_decimals
        snapshot = self.aggregator.aggregate(
            deposits=decode_transfers(streams[DEPOSITS].entries, TransferDirection.DEPOSIT, d),
            withdrawals=decode_transfers(streams[WITHDRAWALS].entries, TransferDirection.WITHDRAWAL, d),
            bids=decode_bids(streams[BIDS].entries, d),
            cancellations=decode_cancellations(streams[CANCELLATIONS].entries),
            raw_bid_count=streams[BIDS].raw_count,
            raw_cancellation_count=streams[CANCELLATIONS].raw_count,
        )

        warnings = self._stream_warnings(streams.values())
        return snapshot.model_copy(update={
            "streams": tuple(
                StreamStats(
                    label=s.label, entries=len(s.entries), pages=s.pages,
                    skipped=s.skipped, truncated=s.truncated, error=s.error,
                )
                for s in streams.values()
            ),
            "warnings": tuple(warnings),
            "partial": bool(warnings),
        })

    async def _fetch_group(self, labels: Sequence[str]) -> Dict[str, FetchedStream]:
        results: List[Union[FetchedStream, BaseException]] = await asyncio.gather(
            *(self.paginator.fetch_all(self.filters[label]) for label in labels),
            return_exceptions=True,
        )

        streams: Dict[str, FetchedStream] = {}
        fatal: List[IngestionError] = []
        for label, result in zip(labels, results):
            if isinstance(result, FetchedStream):
                streams[label] = result
            elif isinstance(result, IngestionError):
                if self.allow_partial_streams and result.pages > 0:
                    logger.warning(
                        f"Partial data for {label}: using {len(result.partial_entries)} logs "
                        f"from {result.pages} page(s) ({result.reason})"
                    )
                    streams[label] = FetchedStream(
                        label=label,
                        entries=result.partial_entries,
                        skipped=result.skipped,
                        pages=result.pages,
                        error=result.reason,
                    )
                else:
                    fatal.append(result)
            else:
                raise result

        if fatal:
            failed = [s for err in fatal for s in err.streams]
            recovered = {k: v for err in fatal for k, v in err.recovered.items()}
            raise IngestionError(streams=failed, recovered=recovered, reason="; ".join(e.reason for e in fatal))
        return streams

    @staticmethod
    def _stream_warnings(streams) -> List[str]:
        warnings = []
        for s in streams:
            if s.error is not None:
                warnings.append(f"{s.label}: partial data, fetch aborted after {s.pages} page(s): {s.error}")
            if s.truncated:
                warnings.append(f"{s.label}: page ceiling reached after {s.pages} pages, data may be incomplete")
        return warnings
