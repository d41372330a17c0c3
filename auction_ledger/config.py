from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
BID_SUBMITTED_TOPIC = "0x5986d4da84b4e4719683f1ba6994a5bac9ff76c75db61b1a949e5b7d3424e892"
BID_CANCELED_TOPIC = "0xbd8de31a25c2b7c2ddafffe72dab91b4ce5826cfd5664793eb206f572f732c27"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # --- Upstream log API ---
    etherscan_api_key: str = Field("", description="Etherscan API key (never logged)")
    etherscan_base_url: str = "https://api.etherscan.io/v2/api"
    chain_id: int = 1
    from_block: int = 24096698
    request_timeout_seconds: float = Field(30.0, gt=0)

    # --- Contracts & topics ---
    token_contract: str = "0xdac17f958d2ee523a2206206994597c13d831ec7"
    wrapper_contract: str = "0xae0207c757aa2b4019ad96edd0092ddc63ef0c50"
    auction_contract: str = "0x04a5b8c32f9c38092b008a4939f1f91d550c4345"
    transfer_topic: str = TRANSFER_TOPIC
    bid_submitted_topic: str = BID_SUBMITTED_TOPIC
    bid_canceled_topic: str = BID_CANCELED_TOPIC
    token_decimals: int = Field(6, ge=0)

    # --- Pagination & retry ---
    page_size: int = Field(1000, ge=1)
    max_pages: int = Field(100, ge=1)
    inter_page_delay_seconds: float = Field(0.2, ge=0)
    max_attempts: int = Field(3, ge=1)
    backoff_unit_seconds: float = Field(1.0, ge=0)

    # --- Cache & estimates ---
    cache_ttl_seconds: float = Field(60.0, gt=0)
    per_bid_quantity_cap: int = Field(88_000_000, gt=0)
    max_bids_per_participant: int = Field(10, gt=0)
    allow_partial_streams: bool = True
    all_streams_concurrent: bool = False
    live_bids_limit: int = Field(50, ge=0)

    log_level: str = "INFO"

    @field_validator(
        "token_contract",
        "wrapper_contract",
        "auction_contract",
        "transfer_topic",
        "bid_submitted_topic",
        "bid_canceled_topic",
    )
    @classmethod
    def _lowercase_hex(cls, value: str) -> str:
        value = value.strip().lower()
        if not value.startswith("0x"):
            raise ValueError(f"expected 0x-prefixed hex, got {value!r}")
        return value

    @property
    def excluded_addresses(self) -> frozenset:
        """Contract addresses whose self-referential transfers are never published."""
        return frozenset({self.token_contract, self.wrapper_contract, self.auction_contract})


@lru_cache
def get_settings() -> Settings:
    return Settings()
