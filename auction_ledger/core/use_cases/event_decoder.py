"""
Stateless decoding of raw logs into typed events.

Layouts (data payload, 32-byte words):
- Transfer(address indexed from, address indexed to, uint256 value): [value]
- BidSubmitted(bytes32 indexed bidId, address indexed bidder, ...): [eQuantity, price, ePaid]
- BidCanceled(bytes32 indexed bidId, ...): topic1 carries the bid id

A malformed entry is skipped with a warning; it never aborts the batch.
"""
import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, keccak, remove_0x_prefix, to_normalized_address

from auction_ledger.core.entities.events import (
    DecodedBid,
    DecodedCancellation,
    DecodedTransfer,
    TransferDirection,
)
from auction_ledger.core.entities.log_entry import RawLogEntry

logger = logging.getLogger(__name__)

TRANSFER_DATA_LAYOUT = ["uint256"]
BID_DATA_LAYOUT = ["bytes32", "uint256", "bytes32"]

_TOPIC_HEX_LEN = 64


def event_topic(signature: str) -> str:
    """topic0 for a canonical event signature, e.g. 'Transfer(address,address,uint256)'."""
    return "0x" + keccak(text=signature).hex()


def address_to_topic(address: str) -> str:
    """Left-pads a 20-byte address into a 32-byte topic value."""
    return "0x" + remove_0x_prefix(canonical_address(address)).rjust(_TOPIC_HEX_LEN, "0")


def canonical_address(value: str) -> str:
    """The single canonical (lowercase, 0x-prefixed) form used for every ledger key."""
    return to_normalized_address(value)


def topic_to_address(topic: str) -> str:
    body = remove_0x_prefix(topic)
    if len(body) != _TOPIC_HEX_LEN:
        raise ValueError(f"topic must be 32 bytes, got {len(body) // 2}")
    return canonical_address("0x" + body[-40:])


def scale_amount(raw: int, decimals: int) -> Decimal:
    return Decimal(raw).scaleb(-decimals)


def _decode_data(entry: RawLogEntry, layout: List[str]) -> tuple:
    return decode(layout, decode_hex(entry.data))


def decode_transfer(entry: RawLogEntry, direction: TransferDirection, decimals: int = 6) -> Optional[DecodedTransfer]:
    # deposits credit the sender (topic1), withdrawals credit the recipient (topic2)
    position = 1 if direction == TransferDirection.DEPOSIT else 2
    topic = entry.topic(position)
    if topic is None:
        logger.warning(f"Skipping {direction.value} {entry.transaction_hash or '?'}: missing topic{position}")
        return None
    try:
        (value,) = _decode_data(entry, TRANSFER_DATA_LAYOUT)
        return DecodedTransfer(
            counterparty_address=topic_to_address(topic),
            amount=scale_amount(value, decimals),
            direction=direction,
            transaction_hash=entry.transaction_hash,
        )
    except (DecodingError, ValueError) as e:
        logger.warning(f"Skipping malformed {direction.value} {entry.transaction_hash or '?'}: {e}")
        return None


def decode_bid(entry: RawLogEntry, decimals: int = 6) -> Optional[DecodedBid]:
    bid_id, bidder_topic = entry.topic(1), entry.topic(2)
    if bid_id is None or bidder_topic is None:
        logger.warning(f"Skipping bid {entry.transaction_hash or '?'}: missing bid id or bidder topic")
        return None
    try:
        _, price, _ = _decode_data(entry, BID_DATA_LAYOUT)
        return DecodedBid(
            bid_id=bid_id.lower(),
            bidder_address=topic_to_address(bidder_topic),
            price=scale_amount(price, decimals),
            transaction_hash=entry.transaction_hash,
            timestamp=entry.block_timestamp,
            block_number=entry.block_number,
            log_index=entry.log_index,
        )
    except (DecodingError, ValueError) as e:
        logger.warning(f"Skipping malformed bid {entry.transaction_hash or '?'}: {e}")
        return None


def decode_cancellation(entry: RawLogEntry) -> Optional[DecodedCancellation]:
    bid_id = entry.topic(1)
    if bid_id is None:
        logger.warning(f"Skipping cancellation {entry.transaction_hash or '?'}: missing bid id")
        return None
    return DecodedCancellation(bid_id=bid_id.lower(), transaction_hash=entry.transaction_hash)


def decode_transfers(entries: Iterable[RawLogEntry], direction: TransferDirection, decimals: int = 6) -> List[DecodedTransfer]:
    decoded = (decode_transfer(e, direction, decimals) for e in entries)
    return [t for t in decoded if t is not None]


def decode_bids(entries: Iterable[RawLogEntry], decimals: int = 6) -> List[DecodedBid]:
    decoded = (decode_bid(e, decimals) for e in entries)
    return [b for b in decoded if b is not None]


def decode_cancellations(entries: Iterable[RawLogEntry]) -> List[DecodedCancellation]:
    decoded = (decode_cancellation(e) for e in entries)
    return [c for c in decoded if c is not None]
