from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal
import uuid

from payrecon.models.dispute import DisputeStatus
from payrecon.models.order import OrderStatus, TransactionStatus
from payrecon.models.refund import RefundStatus
from payrecon.models.supplier import SupplierOrderStatus


# ----------- Requests -----------

class RefundIssueRequest(BaseModel):
    """Schema for an admin-issued refund."""
    order_id: uuid.UUID
    refund_amount: Decimal = Field(gt=0)
    reason: Optional[str] = Field(default=None, max_length=1000)
    is_full_refund: Optional[bool] = None


class DisputeUpdateRequest(BaseModel):
    """Manual status change or note from the disputes console."""
    status: Optional[DisputeStatus] = None
    admin_notes: Optional[str] = None

    @model_validator(mode="after")
    def _require_change(self):
        if self.status is None and self.admin_notes is None:
            raise ValueError("status or admin_notes is required")
        return self


class EvidenceUploadRequest(BaseModel):
    evidence_type: str = Field(default="document", max_length=64)
    description: str = Field(min_length=1)
    file_url: Optional[str] = Field(default=None, max_length=1024)
    admin_id: Optional[str] = Field(default=None, max_length=64)


# ----------- Responses -----------

class _ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class OrderItemResponse(_ORMModel):
    id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class TransactionResponse(_ORMModel):
    id: uuid.UUID
    order_id: uuid.UUID
    provider: str
    provider_reference: Optional[str] = None
    amount: Decimal
    currency: str
    status: TransactionStatus
    created_at: datetime


class OrderResponse(_ORMModel):
    id: uuid.UUID
    order_number: str
    user_id: Optional[str] = None
    customer_email: Optional[str] = None
    subtotal: Decimal
    tax_total: Decimal
    shipping_total: Decimal
    discount_total: Decimal
    grand_total: Decimal
    currency: str
    status: OrderStatus
    created_at: datetime


class RefundResponse(_ORMModel):
    id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    provider: str
    provider_ref: Optional[str] = None
    amount: Decimal
    currency: str
    is_full_refund: bool
    reason: Optional[str] = None
    status: RefundStatus
    attempts: int
    admin_notes: Optional[str] = None
    last_reconciled_at: Optional[datetime] = None
    created_at: datetime


class DisputeResponse(_ORMModel):
    id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    provider: str
    provider_ref: Optional[str] = None
    status: DisputeStatus
    evidence_submitted: bool
    details: Optional[Dict[str, Any]] = None
    admin_notes: Optional[str] = None
    last_reconciled_at: Optional[datetime] = None
    created_at: datetime


class DisputeEvidenceResponse(_ORMModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    evidence_type: str
    description: str
    file_url: Optional[str] = None
    admin_id: Optional[str] = None
    uploaded_at: datetime


class DisputeDetailResponse(BaseModel):
    dispute: DisputeResponse
    evidence: List[DisputeEvidenceResponse]


class DeadLetterResponse(_ORMModel):
    id: uuid.UUID
    provider: str
    event_type: Optional[str] = None
    event_kind: Optional[str] = None
    reference: Optional[str] = None
    error_text: Optional[str] = None
    attempts: int
    last_error_at: Optional[datetime] = None
    replayed_at: Optional[datetime] = None
    created_at: datetime


class SupplierOrderResponse(_ORMModel):
    id: uuid.UUID
    order_id: uuid.UUID
    supplier_name: str
    supplier_order_id: Optional[str] = None
    supplier_cost: Decimal
    quantity: int
    status: SupplierOrderStatus
    last_status_update: Optional[datetime] = None
    created_at: datetime
