import logging
from typing import Any, Dict, List, Optional

import httpx

from auction_ledger.config import Settings
from auction_ledger.core.entities.log_entry import EventFilter, LogPage, LogQueryResult, LogQueryStatus, RawLogEntry
from auction_ledger.core.interfaces.log_source import ILogSource
from auction_ledger.infrastructure.gateways.retry import RetryPolicy, TransientFetchError, linear_backoff

logger = logging.getLogger(__name__)
# httpx request lines include the full query string, api key included
logging.getLogger("httpx").setLevel(logging.WARNING)

NO_RECORDS_MESSAGE = "No records found"
REDACTED = "API_KEY"


def parse_log_response(payload: Any) -> LogQueryResult:
    """
    Turns an Etherscan `{status, message, result}` body into a tagged result.
    status "0" + "No records found" is an empty success; any other "0" is an error.
    """
    if not isinstance(payload, dict):
        return LogQueryResult.error("malformed response: body is not an object")

    status = str(payload.get("status", ""))
    message = str(payload.get("message", ""))
    result = payload.get("result")

    if status == "0" and message == NO_RECORDS_MESSAGE:
        return LogQueryResult.empty()

    if status == "1":
        if not isinstance(result, list):
            return LogQueryResult.error("malformed response: result is not a list")
        records: List[RawLogEntry] = []
        skipped = 0
        for position, record in enumerate(result):
            try:
                records.append(RawLogEntry.from_api(record))
            except ValueError as e:
                logger.warning(f"Skipping malformed log record #{position}: {e}")
                skipped += 1
        return LogQueryResult.ok(records, skipped=skipped)

    # Etherscan puts the real reason (e.g. rate limit) in `result`
    detail = result if isinstance(result, str) and result else None
    return LogQueryResult.error(f"{message or 'unknown error'}" + (f" ({detail})" if detail else ""))


class EtherscanLogGateway(ILogSource):
    """
    ILogSource backed by the Etherscan v2 `logs/getLogs` endpoint.
    One GET per page; retries are delegated to a RetryPolicy.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.etherscan.io/v2/api",
        chain_id: int = 1,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.chain_id = chain_id
        self.retry_policy = retry_policy or RetryPolicy()
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
        logger.info(f"EtherscanLogGateway initialized. URL: {base_url}, chain: {chain_id}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EtherscanLogGateway":
        policy = RetryPolicy(
            max_attempts=settings.max_attempts,
            backoff=linear_backoff(settings.backoff_unit_seconds),
        )
        return cls(
            api_key=settings.etherscan_api_key,
            base_url=settings.etherscan_base_url,
            chain_id=settings.chain_id,
            retry_policy=policy,
            timeout_seconds=settings.request_timeout_seconds,
        )

    def build_params(self, event_filter: EventFilter, page: int, page_size: int) -> Dict[str, str]:
        params = {
            "chainid": str(self.chain_id),
            "module": "logs",
            "action": "getLogs",
            "fromBlock": str(event_filter.from_block),
            "toBlock": "latest",
            "address": event_filter.contract_address,
            "topic0": event_filter.topic0,
            "page": str(page),
            "offset": str(page_size),
            "apikey": self.api_key,
        }
        if event_filter.topic1:
            params["topic1"] = event_filter.topic1
            params["topic0_1_opr"] = "and"
        if event_filter.topic2:
            params["topic2"] = event_filter.topic2
            params["topic0_2_opr"] = "and"
            if event_filter.topic1:
                params["topic1_2_opr"] = "and"
        return params

    def redact(self, url: str) -> str:
        if not self.api_key:
            return url
        return url.replace(self.api_key, REDACTED)

    async def fetch_page(self, event_filter: EventFilter, page: int, page_size: int) -> LogPage:
        params = self.build_params(event_filter, page, page_size)
        safe_url = self.redact(str(httpx.URL(self.base_url, params=params)))

        async def attempt_fetch(attempt: int) -> LogPage:
            logger.info(f"Fetching {event_filter.label} page {page} (attempt {attempt}): {safe_url}")
            try:
                res = await self.client.get(self.base_url, params=params)
                res.raise_for_status()
                payload = res.json()
            except httpx.HTTPError as e:
                # httpx error text can carry the full request URL
                raise TransientFetchError(self.redact(f"{type(e).__name__}: {e}")) from None
            except ValueError as e:
                raise TransientFetchError(f"invalid JSON: {e}") from None

            outcome = parse_log_response(payload)
            if outcome.status == LogQueryStatus.ERROR:
                logger.warning(f"Etherscan error ({event_filter.label} page {page}): {outcome.message}")
                raise TransientFetchError(outcome.message or "upstream error")
            logger.info(
                f"{event_filter.label} page {page} attempt {attempt}: "
                f"{outcome.status.value}, {len(outcome.records)} logs, {outcome.skipped} skipped"
            )
            return LogPage(entries=outcome.records, skipped=outcome.skipped)

        return await self.retry_policy.run(attempt_fetch, page=page)

    async def aclose(self) -> None:
        await self.client.aclose()
