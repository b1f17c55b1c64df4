"""
Payment ledger store: one durable row per completed payment.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from sqlalchemy import select, func, text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from .models import Base, Payment, PaymentStatus
from .errors import PersistenceError

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
STATS_WINDOW = timedelta(hours=24)

def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)

@dataclass(frozen=True)
class PaymentRecord:
    id: int
    amount: Decimal
    currency: str
    merchant_id: str
    status: PaymentStatus
    created_at: datetime

    @classmethod
    def from_row(cls, row: Payment) -> "PaymentRecord":
        return cls(
            id=row.id,
            amount=to_money(row.amount),
            currency=row.currency,
            merchant_id=row.merchant_id,
            status=PaymentStatus(row.status),
            created_at=row.created_at,
        )

@dataclass(frozen=True)
class DailyStats:
    total_payments: int
    total_amount: Decimal
    average_amount: Decimal
    unique_merchants: int

class PaymentLedger:
    """Rows are stamped by the database clock; the stats window uses the same clock"""

    def __init__(self, engine: Engine, session_factory: sessionmaker):
        self.engine = engine
        self.SessionLocal = session_factory

    def ensure_schema(self):
        """Create the payments table and its indexes if missing; safe to race with other instances"""
        try:
            Base.metadata.create_all(bind=self.engine, checkfirst=True)
        except SQLAlchemyError as e:
            # Another instance may have created it between our check and our CREATE
            try:
                exists = inspect(self.engine).has_table(Payment.__tablename__)
            except SQLAlchemyError:
                exists = False
            if exists:
                logger.info("✅ Payments table already exists")
                return
            raise PersistenceError("Schema bootstrap failed", e)
        logger.info("✅ Database schema ready")

    def insert_payment(self, amount: Decimal, currency: str, merchant_id: str) -> PaymentRecord:
        payment = Payment(
            amount=amount,
            currency=currency,
            merchant_id=merchant_id,
            status=PaymentStatus.COMPLETED.value,
        )
        try:
            with self.SessionLocal() as db:
                db.add(payment)
                db.commit()
                # created_at comes from the server default
                db.refresh(payment)
                return PaymentRecord.from_row(payment)
        except SQLAlchemyError as e:
            logger.error(f"❌ Payment insert failed for merchant {merchant_id}: {e}")
            raise PersistenceError("Failed to record payment", e)

    def list_recent_payments(self, limit: int = 20) -> List[PaymentRecord]:
        stmt = (
            select(Payment)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(limit)
        )
        try:
            with self.SessionLocal() as db:
                rows = db.execute(stmt).scalars().all()
                return [PaymentRecord.from_row(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"❌ Listing payments failed: {e}")
            raise PersistenceError("Failed to list payments", e)

    def database_now(self) -> datetime:
        try:
            with self.SessionLocal() as db:
                return db.execute(select(func.now())).scalar_one()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read database time", e)

    def compute_daily_stats(self, now: Optional[datetime] = None) -> DailyStats:
        since = (now or self.database_now()) - STATS_WINDOW
        stmt = select(
            func.count(Payment.id),
            func.sum(Payment.amount),
            func.avg(Payment.amount),
            func.count(func.distinct(Payment.merchant_id)),
        ).where(Payment.created_at >= since)
        try:
            with self.SessionLocal() as db:
                count, total, average, merchants = db.execute(stmt).one()
        except SQLAlchemyError as e:
            logger.error(f"❌ Stats query failed: {e}")
            raise PersistenceError("Failed to compute statistics", e)

        return DailyStats(
            total_payments=count or 0,
            total_amount=to_money(total),
            average_amount=to_money(average),
            unique_merchants=merchants or 0,
        )

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Database ping failed: {e}")
            return False
