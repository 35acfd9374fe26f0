import pytest
import httpx
from httpx import AsyncClient, ASGITransport
from datetime import datetime
from zoneinfo import ZoneInfo

from app.main import app
from app.core.config import settings
from app.services.driver_portal import DriverPortalClient, get_driver_portal
from app.services.holidays import load_holiday_calendar
from app.services.platform_resolver import PlatformResolver, get_platform_resolver
from app.services.preferences import InMemoryPreferenceStore
from app.services.pricing import RateEngine, get_rate_engine
from app.services.rate_table import load_rate_table


LOCAL_TZ = ZoneInfo(settings.LOCAL_TIMEZONE)

# Sunday noon; every pickup used in the tests is at least 24h later unless a
# test is about last-minute pricing.
FIXED_NOW = datetime(2026, 2, 1, 12, 0, tzinfo=LOCAL_TZ)

MONDAY = datetime(2026, 3, 2, 10, 0)
TUESDAY = datetime(2026, 3, 3, 10, 0)
FRIDAY = datetime(2026, 3, 6, 10, 0)
SATURDAY = datetime(2026, 3, 7, 10, 0)
INDEPENDENCE_DAY = datetime(2026, 7, 4, 10, 0)
MEMORIAL_DAY = datetime(2026, 5, 25, 10, 0)


@pytest.fixture(scope="session")
def rate_table():
    return load_rate_table()


@pytest.fixture(scope="session")
def holiday_calendar():
    return load_holiday_calendar()


@pytest.fixture
def engine(rate_table, holiday_calendar):
    return RateEngine(rate_table, holiday_calendar, clock=lambda: FIXED_NOW)


@pytest.fixture
def session_store():
    return InMemoryPreferenceStore(settings.SESSION_PREFERENCE_TTL)


@pytest.fixture
def persistent_store():
    return InMemoryPreferenceStore(settings.PERSISTENT_PREFERENCE_TTL)


@pytest.fixture
def resolver(session_store, persistent_store):
    return PlatformResolver(session_store=session_store, persistent_store=persistent_store)


@pytest.fixture
def portal_calls():
    return []


@pytest.fixture
def portal_handler(portal_calls):
    """Default driver portal double; tests may override this fixture"""
    def handler(request: httpx.Request) -> httpx.Response:
        portal_calls.append(request)
        if request.url.path.endswith("/book"):
            return httpx.Response(200, json={"success": True, "tripId": "TRIP-1001"})
        if request.url.path.endswith("/availability"):
            return httpx.Response(200, json={
                "success": True,
                "availability": {
                    "available": True,
                    "vehicleClass": "sedan",
                    "driverAvailable": True,
                    "conflictingTrips": [],
                },
            })
        if request.url.path.endswith("/fleet-status"):
            return httpx.Response(200, json={"success": True, "fleet": [{"id": "V-1", "status": "available"}]})
        return httpx.Response(404, json={"success": False, "error": "not found"})
    return handler


@pytest.fixture
def portal(portal_handler):
    return DriverPortalClient(
        base_url="http://portal.test",
        retries=2,
        backoff=0,
        transport=httpx.MockTransport(portal_handler),
    )


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache and idempotency paths"""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value.encode() if isinstance(value, str) else value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)


@pytest.fixture
def fake_redis(monkeypatch):
    from app.core import redis as redis_module
    client = FakeRedis()
    monkeypatch.setattr(redis_module, "redis", client)
    return client


class UnreachableRedis:
    async def get(self, key):
        raise ConnectionError("Connection reset by peer")

    async def set(self, key, value, ex=None):
        raise ConnectionError("Connection reset by peer")


@pytest.fixture
def unreachable_redis(monkeypatch):
    from app.core import redis as redis_module
    client = UnreachableRedis()
    monkeypatch.setattr(redis_module, "redis", client)
    return client


@pytest.fixture
async def test_client(engine, resolver, portal):
    app.dependency_overrides[get_rate_engine] = lambda: engine
    app.dependency_overrides[get_platform_resolver] = lambda: resolver
    app.dependency_overrides[get_driver_portal] = lambda: portal
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def quote_payload():
    def _payload(vehicle_class="sedan", service_type="hourly", pickup=SATURDAY, **kwargs):
        data = {
            "vehicle_class": vehicle_class,
            "service_type": service_type,
            "pickup_datetime": pickup.isoformat(),
        }
        data.update(kwargs)
        return data
    return _payload


@pytest.fixture
def booking_payload(quote_payload):
    def _payload(**quote_kwargs):
        quote_kwargs.setdefault("duration_hours", 4)
        return {
            "quote": quote_payload(**quote_kwargs),
            "customer": {"name": "John Doe", "email": "john@example.com", "phone": "555-1234"},
            "pickup_location": "901 E Byrd St, Richmond, VA",
            "passenger_count": 3,
        }
    return _payload


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "api: marks tests that go through the HTTP layer"
    )
    config.addinivalue_line(
        "markers", "pricing: marks tests related to pricing"
    )
    config.addinivalue_line(
        "markers", "platform: marks tests related to platform detection"
    )
    config.addinivalue_line(
        "markers", "driver_portal: marks tests related to the driver portal client"
    )
    config.addinivalue_line(
        "markers", "idempotency: marks tests related to idempotency"
    )
