import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Index, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class PaymentStatus(str, enum.Enum):
    # Intake only ever writes COMPLETED
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    FAILED = "FAILED"

class Payment(Base):
    __tablename__ = "payments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    merchant_id = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.COMPLETED.value)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_payments_merchant_id", "merchant_id"),
        Index("ix_payments_created_at", "created_at"),
    )
