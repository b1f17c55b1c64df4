import time
import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from common.redis_client import RedisClient
from common.settings import Settings
from payment_service.db import build_session_factory
from payment_service.ledger import PaymentLedger
from payment_service.models import Payment, PaymentStatus
from payment_service.main import create_app
from payment_service.merchant_cache import MerchantValidationCache, MerchantValidator
from payment_service.intake import PaymentService


class FakeRedis:
    """In-process stand-in for redis.Redis (decode_responses=True)"""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.down = False
        self.writes = 0

    def _check(self):
        if self.down:
            raise redis.ConnectionError("Error connecting to redis")

    def _expired(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    def get(self, key):
        self._check()
        self._expired(key)
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.writes += 1
        self.data[key] = value
        self.expiry[key] = time.monotonic() + ttl
        return True

    def ttl(self, key):
        self._check()
        self._expired(key)
        if key not in self.data:
            return -2
        return int(self.expiry[key] - time.monotonic())

    def ping(self):
        self._check()
        return True

    def close(self):
        pass


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def ledger(engine):
    ledger = PaymentLedger(engine, build_session_factory(engine))
    ledger.ensure_schema()
    return ledger


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def merchant_cache(fake_redis):
    return MerchantValidationCache(RedisClient(client=fake_redis), ttl_seconds=300)


@pytest.fixture
def service(ledger, merchant_cache):
    return PaymentService(ledger, MerchantValidator(merchant_cache))


@pytest.fixture
def test_settings():
    return Settings(environment="test", log_level="WARNING", recent_payments_limit=20)


@pytest.fixture
def client(engine, fake_redis, test_settings):
    app = create_app(
        app_settings=test_settings,
        engine=engine,
        redis_client=RedisClient(client=fake_redis),
    )
    with TestClient(app) as c:
        yield c


@pytest.fixture
def backdate(ledger):
    """Insert a row with an explicit created_at, bypassing the server default"""
    def insert(created_at, amount, currency="USD", merchant_id="M1"):
        with ledger.SessionLocal() as db:
            payment = Payment(
                amount=amount,
                currency=currency,
                merchant_id=merchant_id,
                status=PaymentStatus.COMPLETED.value,
                created_at=created_at,
            )
            db.add(payment)
            db.commit()
            return payment.id
    return insert
