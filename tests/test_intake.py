"""
Payment intake sequence
"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from payment_service.errors import ValidationError, MerchantRejectedError, PersistenceError
from payment_service.intake import PaymentService, validate_payment_request
from payment_service.merchant_cache import MerchantValidationRecord, MerchantValidator
from payment_service.models import Payment, PaymentStatus


def ledger_rows(ledger):
    with ledger.SessionLocal() as db:
        return db.execute(select(func.count(Payment.id))).scalar()


def test_successful_payment_creates_exactly_one_row(service, ledger):
    result = service.process_payment("10.00", "USD", "M1")

    assert ledger_rows(ledger) == 1
    with ledger.SessionLocal() as db:
        row = db.get(Payment, result.payment_id)
    assert row is not None
    assert result.amount == Decimal("10.00")
    assert result.currency == "USD"
    assert result.merchant_id == "M1"
    assert result.status is PaymentStatus.COMPLETED
    assert result.processing_time_ms >= 0
    assert result.processed_at.tzinfo is not None


@pytest.mark.parametrize("amount,currency,merchant_id", [
    (None, "USD", "M1"),
    ("10.00", None, "M1"),
    ("10.00", "USD", None),
    ("", "USD", "M1"),
    ("10.00", "  ", "M1"),
    ("10.00", "USD", ""),
])
def test_missing_fields_raise_validation_error_without_side_effects(service, ledger, fake_redis, amount, currency, merchant_id):
    with pytest.raises(ValidationError):
        service.process_payment(amount, currency, merchant_id)

    assert ledger_rows(ledger) == 0
    assert fake_redis.writes == 0


@pytest.mark.parametrize("amount", ["abc", "0", "-5", "1.234", "NaN", "100000000.00", True])
def test_malformed_amount_is_rejected(amount):
    with pytest.raises(ValidationError) as exc:
        validate_payment_request(amount, "USD", "M1")
    assert exc.value.field == "amount"


def test_currency_and_merchant_are_normalized():
    request = validate_payment_request(Decimal("7.5"), " usd ", " M1 ")

    assert request.amount == Decimal("7.50")
    assert request.currency == "USD"
    assert request.merchant_id == "M1"


@pytest.mark.parametrize("amount", ["10.000", "10.00", "1E+1", Decimal("12.3400")])
def test_trailing_zeros_do_not_count_as_precision(amount):
    request = validate_payment_request(amount, "USD", "M1")

    assert request.amount == Decimal(str(amount)).quantize(Decimal("0.01"))


@pytest.mark.parametrize("currency", ["U D", "U\tD", "EURO", "EU", 123])
def test_currency_must_be_three_non_blank_characters(currency):
    with pytest.raises(ValidationError) as exc:
        validate_payment_request("1.00", currency, "M1")
    assert exc.value.field == "currency"


def test_bad_currency_and_long_merchant_id_are_rejected():
    with pytest.raises(ValidationError):
        validate_payment_request("1.00", "EURO", "M1")
    with pytest.raises(ValidationError):
        validate_payment_request("1.00", "EUR", "M" * 51)


def test_rejected_merchant_creates_no_row(service, ledger, merchant_cache):
    merchant_cache.store("BAD", MerchantValidationRecord(valid=False, checked_at=datetime.now(timezone.utc)))

    with pytest.raises(MerchantRejectedError) as exc:
        service.process_payment("10.00", "USD", "BAD")

    assert exc.value.merchant_id == "BAD"
    assert ledger_rows(ledger) == 0


def test_unknown_merchant_is_trusted_and_cached(service, merchant_cache):
    service.process_payment("10.00", "USD", "NEW")

    record = merchant_cache.lookup("NEW")
    assert record is not None
    assert record.valid is True


def test_cached_merchant_is_not_rewritten(service, fake_redis):
    service.process_payment("10.00", "USD", "M1")
    service.process_payment("11.00", "USD", "M1")

    assert fake_redis.writes == 1


def test_unreachable_cache_fails_open(service, ledger, fake_redis):
    fake_redis.down = True

    result = service.process_payment("10.00", "USD", "M1")

    assert result.status is PaymentStatus.COMPLETED
    assert ledger_rows(ledger) == 1


def test_payment_without_cache(ledger):
    service = PaymentService(ledger, MerchantValidator(None))

    assert service.process_payment("3.00", "USD", "M1").payment_id is not None


@pytest.mark.parametrize("cache_down", [False, True])
def test_ledger_failure_raises_persistence_error(service, ledger, fake_redis, monkeypatch, cache_down):
    fake_redis.down = cache_down

    class BrokenSession:
        def __enter__(self):
            raise OperationalError("INSERT INTO payments", {}, Exception("server has gone away"))

        def __exit__(self, *exc):
            return False

    monkeypatch.setattr(ledger, "SessionLocal", lambda: BrokenSession())

    with pytest.raises(PersistenceError):
        service.process_payment("10.00", "USD", "M1")


def test_identical_requests_are_not_deduplicated(service, ledger):
    first = service.process_payment("10.00", "USD", "M1")
    second = service.process_payment("10.00", "USD", "M1")

    assert first.payment_id != second.payment_id
    assert ledger_rows(ledger) == 2


def test_list_recent_payments_rejects_non_positive_limit(service):
    with pytest.raises(ValidationError):
        service.list_recent_payments(0)


def test_stats_after_payments(service):
    service.process_payment("10.00", "USD", "M1")
    service.process_payment("25.50", "USD", "M1")

    stats = service.compute_daily_stats()

    assert stats.total_payments == 2
    assert stats.total_amount == Decimal("35.50")
    assert stats.average_amount == Decimal("17.75")
    assert stats.unique_merchants == 1
