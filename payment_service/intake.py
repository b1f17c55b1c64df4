"""
Payment intake: validate input, resolve the merchant, record the payment.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional
from .errors import ValidationError, MerchantRejectedError
from .ledger import PaymentLedger, PaymentRecord, DailyStats
from .merchant_cache import MerchantValidator
from .models import PaymentStatus

logger = logging.getLogger(__name__)

MAX_AMOUNT = Decimal("99999999.99")
MAX_MERCHANT_ID_LENGTH = 50

@dataclass(frozen=True)
class PaymentRequest:
    amount: Decimal
    currency: str
    merchant_id: str

@dataclass(frozen=True)
class PaymentResult:
    payment_id: int
    amount: Decimal
    currency: str
    merchant_id: str
    status: PaymentStatus
    processed_at: datetime
    processing_time_ms: float

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())

def validate_payment_request(amount: Any, currency: Any, merchant_id: Any) -> PaymentRequest:
    """Check the raw input and normalize it; never touches the cache or the ledger"""
    missing = [
        name for name, value in (("amount", amount), ("currency", currency), ("merchantId", merchant_id))
        if _is_blank(value)
    ]
    if missing:
        raise ValidationError(
            "Required parameters: amount, currency, merchantId",
            field=",".join(missing),
        )

    try:
        if isinstance(amount, bool):
            raise InvalidOperation
        parsed = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValidationError("amount must be a decimal number", field="amount")
    if not parsed.is_finite():
        raise ValidationError("amount must be a decimal number", field="amount")
    if parsed <= 0:
        raise ValidationError("amount must be positive", field="amount")
    if parsed.normalize().as_tuple().exponent < -2:
        raise ValidationError("amount supports at most 2 decimal places", field="amount")
    if parsed > MAX_AMOUNT:
        raise ValidationError(f"amount must not exceed {MAX_AMOUNT}", field="amount")

    code = currency.strip() if isinstance(currency, str) else ""
    if len(code) != 3 or any(c.isspace() for c in code):
        raise ValidationError("currency must be a 3-letter code", field="currency")
    if not isinstance(merchant_id, str):
        raise ValidationError("merchantId must be a string", field="merchantId")
    merchant_id = merchant_id.strip()
    if len(merchant_id) > MAX_MERCHANT_ID_LENGTH:
        raise ValidationError(
            f"merchantId must be at most {MAX_MERCHANT_ID_LENGTH} characters", field="merchantId"
        )

    return PaymentRequest(
        amount=parsed.quantize(Decimal("0.01")),
        currency=code.upper(),
        merchant_id=merchant_id,
    )

class PaymentService:
    """Intake sequence plus the read operations exposed to the transport layer.

    At most one cache write and one ledger write per payment. Cache
    trouble never fails a request; ledger trouble always does.
    """

    def __init__(self, ledger: PaymentLedger, validator: MerchantValidator):
        self.ledger = ledger
        self.validator = validator

    def process_payment(self, amount: Any, currency: Any, merchant_id: Any) -> PaymentResult:
        started = time.perf_counter()
        request = validate_payment_request(amount, currency, merchant_id)

        logger.info(f"💳 New payment: {request.amount} {request.currency} for {request.merchant_id}")

        if not self.validator.is_valid(request.merchant_id):
            logger.warning(f"❌ Merchant {request.merchant_id} rejected")
            raise MerchantRejectedError(request.merchant_id)

        record: PaymentRecord = self.ledger.insert_payment(
            request.amount, request.currency, request.merchant_id
        )
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(f"✅ Payment created: id={record.id}, duration={elapsed_ms}ms")

        return PaymentResult(
            payment_id=record.id,
            amount=record.amount,
            currency=record.currency,
            merchant_id=record.merchant_id,
            status=record.status,
            processed_at=datetime.now(timezone.utc),
            processing_time_ms=elapsed_ms,
        )

    def list_recent_payments(self, limit: int = 20) -> List[PaymentRecord]:
        if limit < 1:
            raise ValidationError("limit must be at least 1", field="limit")
        return self.ledger.list_recent_payments(limit)

    def compute_daily_stats(self, now: Optional[datetime] = None) -> DailyStats:
        return self.ledger.compute_daily_stats(now)
