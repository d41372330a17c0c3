"""
Tests for LedgerAggregator: balances, cancellation filtering, capped
estimates, publish filter, ordering and summary totals.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from auction_ledger.core.entities.events import TransferDirection
from auction_ledger.core.use_cases.event_decoder import (
    decode_bids,
    decode_cancellations,
    decode_transfers,
)
from auction_ledger.core.use_cases.ledger_aggregator import LedgerAggregator

from factories import ALICE, AUCTION, BOB, CAROL, TOKEN, WRAPPER, bid_log, cancel_log, deposit_log, withdrawal_log

CAPTURED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)
PER_BID_CAP = 88_000_000


@pytest.fixture
def aggregator():
    return LedgerAggregator(
        per_bid_quantity_cap=PER_BID_CAP,
        max_bids_per_participant=10,
        excluded_addresses=[TOKEN, WRAPPER, AUCTION],
    )


def run(aggregator, deposits=(), withdrawals=(), bids=(), cancellations=()):
    return aggregator.aggregate(
        deposits=decode_transfers(deposits, TransferDirection.DEPOSIT),
        withdrawals=decode_transfers(withdrawals, TransferDirection.WITHDRAWAL),
        bids=decode_bids(bids),
        cancellations=decode_cancellations(cancellations),
        captured_at=CAPTURED_AT,
    )


def ledger_for(snapshot, address):
    return next(entry for entry in snapshot.ledgers if entry.address == address)


def test_single_deposit_and_bid_scenario(aggregator):
    snapshot = run(aggregator, deposits=[deposit_log(ALICE, 1_000_000)], bids=[bid_log(1, ALICE, 50_000)])

    alice = ledger_for(snapshot, ALICE)
    assert alice.totalDeposited == Decimal("1")
    assert alice.netBalance == Decimal("1")
    assert alice.bidCount == 1
    assert alice.avgBidPrice == Decimal("0.05")
    assert alice.estimatedQuantity == Decimal("20")


def test_net_balance_is_exact(aggregator):
    snapshot = run(
        aggregator,
        deposits=[deposit_log(ALICE, 100_000), deposit_log(ALICE, 200_000)],
        withdrawals=[withdrawal_log(ALICE, 100_001)],
    )
    alice = ledger_for(snapshot, ALICE)
    assert alice.totalDeposited == Decimal("0.3")
    assert alice.totalWithdrawn == Decimal("0.100001")
    assert alice.netBalance == alice.totalDeposited - alice.totalWithdrawn == Decimal("0.199999")
    assert alice.depositCount == 2


def test_canceled_bid_is_ignored_regardless_of_order(aggregator):
    bids = [bid_log(1, ALICE, 50_000, block=24_100_000), bid_log(2, ALICE, 150_000, block=24_100_005)]
    early_cancel = cancel_log(2, block=24_000_000)  # logged before the bid it cancels
    late_cancel = cancel_log(2, block=24_200_000)
    deposits = [deposit_log(ALICE, 1_000_000)]

    snapshots = [
        run(aggregator, deposits=deposits, bids=ordered, cancellations=[cancel])
        for ordered in (bids, list(reversed(bids)))
        for cancel in (early_cancel, late_cancel)
    ]

    for snapshot in snapshots:
        assert snapshot.ledgers == snapshots[0].ledgers
        assert snapshot.summary == snapshots[0].summary
        assert snapshot.recent_bids == snapshots[0].recent_bids
    alice = ledger_for(snapshots[0], ALICE)
    assert alice.bidCount == 1
    assert alice.avgBidPrice == Decimal("0.05")
    assert snapshots[0].summary.totalBids == 2
    assert snapshots[0].summary.canceledBids == 1
    assert snapshots[0].summary.activeBids == 1
    assert [b.price for b in snapshots[0].recent_bids] == [Decimal("0.05")]


def test_fully_canceled_bidder_without_deposits_is_not_published(aggregator):
    snapshot = run(aggregator, bids=[bid_log(1, CAROL, 50_000)], cancellations=[cancel_log(1)])
    assert all(entry.address != CAROL for entry in snapshot.ledgers)


def test_estimate_is_capped_per_bid(aggregator):
    # 1,000,000 units at a price of 0.000001 would be 10^12 tokens uncapped
    snapshot = run(
        aggregator,
        deposits=[deposit_log(ALICE, 1_000_000_000_000)],
        bids=[bid_log(1, ALICE, 1), bid_log(2, ALICE, 1)],
    )
    alice = ledger_for(snapshot, ALICE)
    assert alice.estimatedQuantity == Decimal(2 * PER_BID_CAP)


def test_estimate_cap_stops_at_max_bids(aggregator):
    bids = [bid_log(n, ALICE, 1) for n in range(1, 16)]
    snapshot = run(aggregator, deposits=[deposit_log(ALICE, 10 ** 15)], bids=bids)
    alice = ledger_for(snapshot, ALICE)
    assert alice.bidCount == 15
    assert alice.estimatedQuantity == Decimal(10 * PER_BID_CAP)


def test_no_bids_means_zero_estimate(aggregator):
    snapshot = run(aggregator, deposits=[deposit_log(ALICE, 1_000_000)])
    alice = ledger_for(snapshot, ALICE)
    assert alice.avgBidPrice == 0
    assert alice.estimatedQuantity == 0


def test_negative_balance_is_excluded_and_recorded(aggregator):
    snapshot = run(
        aggregator,
        deposits=[deposit_log(ALICE, 1_000_000), deposit_log(BOB, 1_000_000)],
        withdrawals=[withdrawal_log(BOB, 3_000_000)],
    )
    assert [entry.address for entry in snapshot.ledgers] == [ALICE]
    assert len(snapshot.anomalies) == 1
    assert snapshot.anomalies[0].address == BOB
    assert snapshot.anomalies[0].netBalance == Decimal("-2")
    assert snapshot.summary.totalWithdrawn == 0


def test_contract_addresses_are_excluded(aggregator):
    snapshot = run(aggregator, deposits=[deposit_log(WRAPPER, 1_000_000), deposit_log(ALICE, 1)])
    assert [entry.address for entry in snapshot.ledgers] == [ALICE]


def test_ordering_and_summary(aggregator):
    snapshot = run(
        aggregator,
        deposits=[deposit_log(ALICE, 1_000_000), deposit_log(BOB, 5_000_000), deposit_log(CAROL, 2_000_000)],
        withdrawals=[withdrawal_log(BOB, 1_000_000)],
        bids=[bid_log(1, ALICE, 50_000), bid_log(2, BOB, 100_000), bid_log(3, BOB, 100_000)],
        cancellations=[cancel_log(3), cancel_log(99)],
    )
    assert [entry.address for entry in snapshot.ledgers] == [BOB, CAROL, ALICE]

    summary = snapshot.summary
    assert summary.totalDeposited == Decimal("8")
    assert summary.totalWithdrawn == Decimal("1")
    assert summary.totalValueLocked == Decimal("7")
    assert summary.totalBids == 3
    assert summary.canceledBids == 2
    assert summary.activeBids == 2
    assert summary.participantCount == 3


def test_aggregation_is_deterministic(aggregator):
    kwargs = dict(
        deposits=[deposit_log(ALICE, 1_000_000), deposit_log(BOB, 3_000_000)],
        withdrawals=[withdrawal_log(ALICE, 250_000)],
        bids=[bid_log(1, ALICE, 50_000), bid_log(2, BOB, 70_000), bid_log(3, BOB, 90_000)],
        cancellations=[cancel_log(2)],
    )
    first = run(aggregator, **kwargs)
    second = run(aggregator, **kwargs)
    assert first.model_dump_json() == second.model_dump_json()


def test_recent_bids_newest_first_without_canceled():
    aggregator = LedgerAggregator(live_bids_limit=2)
    snapshot = run(
        aggregator,
        bids=[
            bid_log(1, ALICE, 10, timestamp=100),
            bid_log(2, BOB, 20, timestamp=300),
            bid_log(3, CAROL, 30, timestamp=200),
            bid_log(4, ALICE, 40, timestamp=400),
        ],
        cancellations=[cancel_log(4)],
    )
    assert [b.bidder for b in snapshot.recent_bids] == [BOB, CAROL]
    assert snapshot.recent_bids[0].timestampMs == 300_000
    assert snapshot.recent_bids[0].price == Decimal("0.00002")


def test_bid_totals_use_fetched_log_counts(aggregator):
    snapshot = aggregator.aggregate(
        deposits=[],
        withdrawals=[],
        bids=decode_bids([bid_log(1, ALICE, 50_000)]),
        cancellations=[],
        captured_at=CAPTURED_AT,
        raw_bid_count=3,
        raw_cancellation_count=1,
    )
    assert snapshot.summary.totalBids == 3
    assert snapshot.summary.canceledBids == 1
    assert snapshot.summary.activeBids == 1
