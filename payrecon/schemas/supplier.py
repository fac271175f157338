from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
import uuid


class SupplierPerformance(BaseModel):
    """Raw counts and unrounded rates for one supplier over a trailing window."""
    supplier_name: str
    period_days: int
    total_orders: int = 0
    fulfilled_orders: int = 0
    cancelled_orders: int = 0
    on_time_deliveries: int = 0
    dispute_count: int = 0
    return_count: int = 0
    fulfillment_rate: float = 0.0
    on_time_delivery_rate: float = 0.0
    cancellation_rate: float = 0.0
    return_rate: float = 0.0
    satisfaction_score: float = 0.0


class SupplierMetricResponse(BaseModel):
    """Schema for a stored SLA snapshot."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    supplier_name: str
    period_days: int
    total_orders: int
    fulfilled_orders: int
    cancelled_orders: int
    fulfillment_rate: float
    on_time_delivery_rate: float
    cancellation_rate: float
    return_rate: float
    satisfaction_score: float
    dispute_count: int
    return_count: int
    sla_score: float
    sla_grade: str
    calculated_at: Optional[datetime] = None
