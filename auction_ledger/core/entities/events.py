from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict


class TransferDirection(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class DecodedTransfer(BaseModel):
    """A token transfer into (deposit) or out of (withdrawal) the wrapper contract."""
    model_config = ConfigDict(frozen=True)

    counterparty_address: str  # canonical lowercase
    amount: Decimal
    direction: TransferDirection
    transaction_hash: str = ""


class DecodedBid(BaseModel):
    """
    A bid-submitted event. `bid_id` is the raw topic value and the
    correlation key against bid-canceled events.
    """
    model_config = ConfigDict(frozen=True)

    bid_id: str
    bidder_address: str
    price: Decimal
    is_canceled: bool = False
    transaction_hash: str = ""
    timestamp: int = 0  # block timestamp, seconds
    block_number: int = 0
    log_index: int = 0


class DecodedCancellation(BaseModel):
    model_config = ConfigDict(frozen=True)

    bid_id: str
    transaction_hash: str = ""
