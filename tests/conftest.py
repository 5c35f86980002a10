import pytest
import pytest_asyncio

from leadmagnet_service.core import LeadMagnetCore
from leadmagnet_service.prometheus import LeadMetrics
from leadmagnet_service.provider import EmailProvider
from leadmagnet_service.rate_limit import RateLimiter

from .helpers import DummyProvider, DummyStorage, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return DummyStorage()


@pytest.fixture
def provider():
    return DummyProvider()


@pytest.fixture
def make_core(tmp_path, storage, provider, clock):
    def _make(**kwargs) -> LeadMagnetCore:
        kwargs.setdefault("db_path", str(tmp_path / "leadmagnet.db"))
        kwargs.setdefault("rate_limiter", RateLimiter(clock=clock))
        kwargs.setdefault("metrics", LeadMetrics())
        kwargs.setdefault("provider", EmailProvider(send_callable=provider))
        return LeadMagnetCore(storage=storage, **kwargs)

    return _make


@pytest_asyncio.fixture
async def core(make_core):
    svc = make_core()
    await svc.init()
    return svc
