"""
Failure kinds of the payment intake sequence.
"""
from typing import Optional
from common.error_handling import BusinessLogicError, ServiceError, ErrorCodes

class ValidationError(BusinessLogicError):
    """Missing or malformed input; raised before any I/O"""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(ErrorCodes.VALIDATION_ERROR, message, field=field)

class MerchantRejectedError(BusinessLogicError):
    """Merchant resolved as invalid; no ledger write happened"""
    def __init__(self, merchant_id: str):
        self.merchant_id = merchant_id
        super().__init__(
            ErrorCodes.MERCHANT_REJECTED,
            "Merchant is not valid",
            field="merchantId",
            context={"merchant_id": merchant_id},
        )

class CacheUnavailable(ServiceError):
    """Validation cache unreachable or returned garbage; always absorbed by the intake sequence"""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(ErrorCodes.CACHE_UNAVAILABLE, message, original_error)

class PersistenceError(ServiceError):
    """Ledger read or write failed"""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(ErrorCodes.DATABASE_ERROR, message, original_error)
