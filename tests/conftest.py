"""
Pytest configuration and shared fixtures.
"""
import pytest
from httpx import ASGITransport, AsyncClient

from auction_ledger.api.main import app, get_snapshot_cache
from auction_ledger.core.services import AuctionIngestionService
from auction_ledger.infrastructure.cache.snapshot_cache import SnapshotCache
from auction_ledger.infrastructure.gateways.local_mock import LocalMockLogSource

from factories import ALICE, BOB, SETTINGS, bid_log, cancel_log, deposit_log, no_sleep, withdrawal_log


@pytest.fixture
def settings():
    return SETTINGS.model_copy(update={"inter_page_delay_seconds": 0.0, "page_size": 2})


@pytest.fixture
def sample_logs():
    return [
        deposit_log(ALICE, 1_000_000, tx="0xd1"),
        deposit_log(BOB, 5_000_000, tx="0xd2"),
        withdrawal_log(BOB, 2_000_000, tx="0xw1"),
        bid_log(1, ALICE, 50_000, timestamp=1_760_000_100),
        bid_log(2, BOB, 100_000, timestamp=1_760_000_200),
        bid_log(3, BOB, 300_000, timestamp=1_760_000_300),
        cancel_log(3),
    ]


@pytest.fixture
def mock_source(sample_logs):
    return LocalMockLogSource(sample_logs)


@pytest.fixture
def ingestion_service(settings, mock_source):
    service = AuctionIngestionService.from_settings(settings, mock_source)
    service.paginator.sleep = no_sleep
    return service


@pytest.fixture
async def client(ingestion_service):
    """Async HTTP client for testing FastAPI endpoints against the mock log source."""
    cache = SnapshotCache(ingestion_service.refresh, ttl_seconds=60)
    app.dependency_overrides[get_snapshot_cache] = lambda: cache
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
