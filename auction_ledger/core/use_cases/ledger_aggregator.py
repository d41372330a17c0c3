import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from auction_ledger.core.entities.events import DecodedBid, DecodedCancellation, DecodedTransfer
from auction_ledger.core.entities.ledger import (
    ZERO,
    AttributionAnomaly,
    LiveBid,
    Snapshot,
    SummaryTotals,
    UserLedger,
)
from auction_ledger.core.use_cases.event_decoder import canonical_address

logger = logging.getLogger(__name__)


def mark_canceled(bids: Iterable[DecodedBid], canceled_ids: set) -> List[DecodedBid]:
    """Flags every bid whose id appears in the canceled set. Arrival order is irrelevant."""
    return [
        b.model_copy(update={"is_canceled": True}) if b.bid_id in canceled_ids else b
        for b in bids
    ]


class LedgerAggregator:
    """
    Folds decoded events into per-address ledgers and a summary.
    Pure: no I/O, and identical inputs give an identical Snapshot.
    """

    def __init__(
        self,
        per_bid_quantity_cap: int = 88_000_000,
        max_bids_per_participant: int = 10,
        excluded_addresses: Iterable[str] = (),
        live_bids_limit: int = 50,
    ):
        self.per_bid_quantity_cap = Decimal(per_bid_quantity_cap)
        self.max_bids_per_participant = max_bids_per_participant
        self.excluded_addresses = frozenset(canonical_address(a) for a in excluded_addresses)
        self.live_bids_limit = live_bids_limit

    def aggregate(
        self,
        deposits: Sequence[DecodedTransfer],
        withdrawals: Sequence[DecodedTransfer],
        bids: Sequence[DecodedBid],
        cancellations: Sequence[DecodedCancellation],
        captured_at: Optional[datetime] = None,
        raw_bid_count: Optional[int] = None,
        raw_cancellation_count: Optional[int] = None,
    ) -> Snapshot:
        """
        Folds decoded events into a Snapshot. `raw_bid_count` and
        `raw_cancellation_count` are the fetched log counts, undecodable logs
        included; they default to the decoded lengths.
        """
        # 1. Canceled ids
        canceled_ids = {c.bid_id for c in cancellations}

        users: Dict[str, UserLedger] = {}

        def get_user(addr: str) -> UserLedger:
            key = canonical_address(addr)
            if key not in users:
                users[key] = UserLedger(address=key)
            return users[key]

        # 2. Deposits
        for d in deposits:
            user = get_user(d.counterparty_address)
            user.total_deposited += d.amount
            user.deposit_count += 1

        # 3. Withdrawals
        for w in withdrawals:
            user = get_user(w.counterparty_address)
            user.total_withdrawn += w.amount

        # 4. Bids (canceled ones contribute nothing)
        active_bids = [b for b in mark_canceled(bids, canceled_ids) if not b.is_canceled]
        for b in active_bids:
            user = get_user(b.bidder_address)
            user.bid_count += 1
            user.bid_prices.append(b.price)

        # 5 & 6. Averages and capped estimates
        for user in users.values():
            self._derive_estimates(user)

        # 7. Publish filter
        published: List[UserLedger] = []
        anomalies: List[AttributionAnomaly] = []
        for user in users.values():
            if user.address in self.excluded_addresses:
                continue
            if user.net_balance < 0:
                logger.warning(
                    f"Attribution anomaly: {user.address} net balance {user.net_balance} "
                    f"(deposited {user.total_deposited}, withdrawn {user.total_withdrawn}); excluded"
                )
                anomalies.append(AttributionAnomaly(
                    address=user.address,
                    totalDeposited=user.total_deposited,
                    totalWithdrawn=user.total_withdrawn,
                    netBalance=user.net_balance,
                ))
                continue
            if not user.has_activity:
                continue
            published.append(user)

        # 8. Sort by net balance, descending (stable for ties)
        published.sort(key=lambda u: u.net_balance, reverse=True)

        # 9. Summary
        summary = SummaryTotals(
            totalDeposited=sum((u.total_deposited for u in published), ZERO),
            totalWithdrawn=sum((u.total_withdrawn for u in published), ZERO),
            totalValueLocked=sum((u.net_balance for u in published), ZERO),
            totalBids=len(bids) if raw_bid_count is None else raw_bid_count,
            canceledBids=len(cancellations) if raw_cancellation_count is None else raw_cancellation_count,
            activeBids=len(active_bids),
            participantCount=len(published),
        )
        logger.info(
            f"Aggregated {len(users)} addresses, published {summary.participantCount}, "
            f"TVL {summary.totalValueLocked}, bids {summary.activeBids}/{summary.totalBids}"
        )

        return Snapshot(
            ledgers=tuple(u.to_entry() for u in published),
            summary=summary,
            recent_bids=tuple(self.live_bids(active_bids)),
            anomalies=tuple(anomalies),
            captured_at=captured_at or datetime.now(timezone.utc),
        )

    def _derive_estimates(self, user: UserLedger) -> None:
        if not user.bid_prices:
            return
        user.avg_bid_price = sum(user.bid_prices, ZERO) / len(user.bid_prices)
        if user.avg_bid_price > 0:
            raw_estimate = user.net_balance / user.avg_bid_price
            # at least one bid's worth so a filtered-out bid count never zeroes the cap
            bids_allowed = max(1, min(user.bid_count, self.max_bids_per_participant))
            cap = bids_allowed * self.per_bid_quantity_cap
            user.estimated_quantity = min(raw_estimate, cap)

    def live_bids(self, active_bids: Sequence[DecodedBid], limit: Optional[int] = None) -> List[LiveBid]:
        """Most recent non-canceled bids, newest first."""
        limit = self.live_bids_limit if limit is None else limit
        newest = sorted(
            active_bids,
            key=lambda b: (b.timestamp, b.block_number, b.log_index),
            reverse=True,
        )[:limit]
        return [
            LiveBid(txHash=b.transaction_hash, bidder=b.bidder_address, price=b.price, timestampMs=b.timestamp * 1000)
            for b in newest
        ]
