"""
Merchant validation cache.

Records, for a short TTL, that a merchant has already been checked.
A missing entry means "not checked yet", never "invalid". Every
failure of the underlying cache surfaces as CacheUnavailable so the
caller can tell it apart from a miss.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import redis
from common.redis_client import RedisClient
from .errors import CacheUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300

@dataclass(frozen=True)
class MerchantValidationRecord:
    valid: bool
    checked_at: datetime
    check_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "checkedAt": self.checked_at.isoformat(),
            "checkCount": self.check_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MerchantValidationRecord":
        valid = data["valid"]
        if not isinstance(valid, bool):
            raise ValueError("valid must be a boolean")
        checked_at = data["checkedAt"]
        if checked_at.endswith("Z"):
            checked_at = checked_at[:-1] + "+00:00"
        return cls(
            valid=valid,
            checked_at=datetime.fromisoformat(checked_at),
            check_count=int(data.get("checkCount", 1)),
        )

class MerchantVerifier:
    """Verification authority consulted when the cache has no verdict"""

    def verify(self, merchant_id: str) -> bool:
        raise NotImplementedError

class TrustOnFirstCheckVerifier(MerchantVerifier):
    """Accepts every merchant it has not seen"""

    def verify(self, merchant_id: str) -> bool:
        return True

class MerchantValidationCache:
    key_prefix = "merchant:"

    def __init__(self, redis_client: RedisClient, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    def key(self, merchant_id: str) -> str:
        return f"{self.key_prefix}{merchant_id}"

    def lookup(self, merchant_id: str) -> Optional[MerchantValidationRecord]:
        try:
            data = self.redis.get_json(self.key(merchant_id))
            if data is None:
                return None
            return MerchantValidationRecord.from_dict(data)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Merchant cache lookup failed: {e}", e)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise CacheUnavailable(f"Unreadable merchant cache entry for {merchant_id}: {e}", e)

    def store(self, merchant_id: str, record: MerchantValidationRecord, ttl_seconds: Optional[int] = None):
        try:
            self.redis.set_json(self.key(merchant_id), record.to_dict(), ttl_seconds or self.ttl_seconds)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Merchant cache write failed: {e}", e)

    def ping(self) -> bool:
        return self.redis.ping()

class MerchantValidator:
    """Fail-open merchant resolution over the cache and a verifier.

    hit   -> stored verdict, no write
    miss  -> verifier verdict, cached for the TTL
    error -> treated as valid, no write
    """

    def __init__(self, cache: Optional[MerchantValidationCache], verifier: Optional[MerchantVerifier] = None):
        self.cache = cache
        self.verifier = verifier or TrustOnFirstCheckVerifier()

    def is_valid(self, merchant_id: str) -> bool:
        if self.cache is None:
            logger.warning(f"⚠️ Merchant cache not configured, accepting {merchant_id}")
            return True

        try:
            record = self.cache.lookup(merchant_id)
        except CacheUnavailable as e:
            logger.warning(f"⚠️ Merchant cache unavailable, continuing without it: {e.message}")
            return True

        if record is not None:
            logger.info(f"📱 Cache hit for merchant {merchant_id}")
            return record.valid

        verdict = self.verifier.verify(merchant_id)
        record = MerchantValidationRecord(valid=verdict, checked_at=datetime.now(timezone.utc))
        try:
            self.cache.store(merchant_id, record)
            logger.info(f"📝 Merchant {merchant_id} checked and cached (valid={verdict})")
        except CacheUnavailable as e:
            logger.warning(f"⚠️ Could not cache merchant {merchant_id}: {e.message}")
        return verdict
