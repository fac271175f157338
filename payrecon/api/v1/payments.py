import logging
from fastapi import APIRouter, HTTPException, Query
from typing import Optional

from payrecon.models.order import Order, OrderItem, Transaction
from payrecon.schemas.admin import OrderItemResponse, OrderResponse, TransactionResponse
from payrecon.schemas.response import SuccessResponse
from payrecon.services.refund_service import latest_transaction

router = APIRouter()
log = logging.getLogger("payrecon.api")


@router.get("/confirm", response_model=SuccessResponse)
async def confirm_payment(reference: Optional[str] = Query(None), ref: Optional[str] = Query(None)):
    """
    Post-checkout lookup by provider reference or order number. Returns the
    order, its items and the matching transaction; unknown references yield nulls.
    """
    reference = reference or ref
    if not reference:
        raise HTTPException(status_code=400, detail="missing_reference")

    tx = await Transaction.get_or_none(provider_reference=reference)
    if tx:
        order = await Order.get_or_none(id=tx.order_id)
    else:
        order = await Order.get_or_none(order_number=reference)
        tx = await latest_transaction(order.id) if order else None

    items = await OrderItem.filter(order_id=order.id) if order else []
    data = {
        "order": OrderResponse.model_validate(order).model_dump() if order else None,
        "items": [OrderItemResponse.model_validate(i).model_dump() for i in items],
        "transaction": TransactionResponse.model_validate(tx).model_dump() if tx else None,
    }
    return SuccessResponse(data=data)
