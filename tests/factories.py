"""Builders for raw logs shaped like the upstream API returns them."""
from auction_ledger.config import BID_CANCELED_TOPIC, BID_SUBMITTED_TOPIC, TRANSFER_TOPIC, Settings
from auction_ledger.core.entities.log_entry import RawLogEntry
from auction_ledger.core.use_cases.event_decoder import address_to_topic

SETTINGS = Settings(_env_file=None)
TOKEN = SETTINGS.token_contract
WRAPPER = SETTINGS.wrapper_contract
AUCTION = SETTINGS.auction_contract

ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20
CAROL = "0x" + "cc" * 20


def word(value: int) -> str:
    return format(value, "064x")


def bid_id(n: int) -> str:
    return "0x" + word(n)


def transfer_log(sender: str, recipient: str, raw_amount: int, tx: str = "0x01", block: int = 24_100_000) -> RawLogEntry:
    return RawLogEntry(
        topics=(TRANSFER_TOPIC, address_to_topic(sender), address_to_topic(recipient)),
        data="0x" + word(raw_amount),
        transaction_hash=tx,
        block_number=block,
        address=TOKEN,
    )


def deposit_log(user: str, raw_amount: int, **kwargs) -> RawLogEntry:
    return transfer_log(user, WRAPPER, raw_amount, **kwargs)


def withdrawal_log(user: str, raw_amount: int, **kwargs) -> RawLogEntry:
    return transfer_log(WRAPPER, user, raw_amount, **kwargs)


def bid_log(n: int, bidder: str, raw_price: int, timestamp: int = 1_760_000_000, block: int = 24_100_000, log_index: int = 0) -> RawLogEntry:
    # eQuantity and ePaid are opaque 32-byte handles
    data = "0x" + "11" * 32 + word(raw_price) + "22" * 32
    return RawLogEntry(
        topics=(BID_SUBMITTED_TOPIC, bid_id(n), address_to_topic(bidder)),
        data=data,
        transaction_hash="0x" + format(n, "064x"),
        block_timestamp=timestamp,
        block_number=block,
        log_index=log_index,
        address=AUCTION,
    )


def cancel_log(n: int, block: int = 24_100_001) -> RawLogEntry:
    return RawLogEntry(
        topics=(BID_CANCELED_TOPIC, bid_id(n)),
        data="0x",
        transaction_hash="0xc" + format(n, "063x"),
        block_number=block,
        address=AUCTION,
    )


def api_record(entry: RawLogEntry) -> dict:
    """The JSON shape of one `result` item from the logs API."""
    return {
        "address": entry.address,
        "topics": list(entry.topics),
        "data": entry.data,
        "blockNumber": hex(entry.block_number),
        "timeStamp": hex(entry.block_timestamp),
        "logIndex": hex(entry.log_index),
        "transactionHash": entry.transaction_hash,
    }


async def no_sleep(_seconds: float) -> None:
    return None
