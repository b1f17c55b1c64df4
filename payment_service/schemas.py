from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class CreatePayment(CamelModel):
    # Presence is checked by the intake sequence, not here
    amount: Optional[Union[Decimal, str]] = None
    currency: Optional[str] = None
    merchant_id: Optional[str] = None

class PaymentCreated(CamelModel):
    payment_id: int
    status: str
    amount: Decimal
    currency: str
    merchant_id: str
    processed_at: datetime
    processing_time: str

class PaymentOut(CamelModel):
    payment_id: int
    amount: Decimal
    currency: str
    merchant_id: str
    status: str
    created_at: datetime

class PaymentList(CamelModel):
    payments: List[PaymentOut]
    count: int
    timestamp: datetime

class DailyStatsOut(CamelModel):
    total_payments: int
    total_amount: Decimal
    average_amount: Decimal
    unique_merchants: int

class StatsResponse(CamelModel):
    period: str = "Last 24 hours"
    stats: DailyStatsOut
    timestamp: datetime

class HealthResponse(CamelModel):
    status: str
    timestamp: datetime
    uptime: float
    version: str
    services: Dict[str, str]
