import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from typing import Dict, Optional
from uuid import UUID

from payrecon.core.clock import utcnow
from payrecon.core.rate_limit import rate_limit_admin
from payrecon.core.security import require_admin
from payrecon.models.dead_letter import DeadLetterEntry
from payrecon.models.dispute import Dispute, DisputeEvidence, DisputeStatus
from payrecon.models.order import Order, OrderStatus
from payrecon.models.refund import Refund, RefundStatus
from payrecon.models.supplier import SupplierMetric, SupplierOrder
from payrecon.schemas.admin import (
    DeadLetterResponse,
    DisputeDetailResponse,
    DisputeEvidenceResponse,
    DisputeResponse,
    DisputeUpdateRequest,
    EvidenceUploadRequest,
    OrderResponse,
    RefundIssueRequest,
    RefundResponse,
    SupplierOrderResponse,
)
from payrecon.schemas.response import PageResponse, SuccessResponse
from payrecon.schemas.supplier import SupplierMetricResponse
from payrecon.services.provider import PaystackClient
from payrecon.services.refund_service import issue_refund

# Rate limit runs first so unauthenticated floods are throttled too
router = APIRouter(dependencies=[Depends(rate_limit_admin), Depends(require_admin)])
log = logging.getLogger("payrecon.admin")

MAX_PAGE = 200


def get_provider_client(request: Request) -> PaystackClient:
    return request.app.state.provider_client


def _page(rows, schema, limit: int, offset: int) -> PageResponse:
    data = [schema.model_validate(row).model_dump() for row in rows]
    return PageResponse(data=data, count=len(data), limit=limit, offset=offset)


async def _get_dispute(dispute_id: UUID) -> Dispute:
    dispute = await Dispute.get_or_none(id=dispute_id)
    if not dispute:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
    return dispute


# ----------- Listings -----------

@router.get("/refunds", response_model=PageResponse)
async def list_refunds(
    status_filter: Optional[RefundStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=MAX_PAGE),
    offset: int = Query(0, ge=0),
):
    query = Refund.all()
    if status_filter:
        query = query.filter(status=status_filter)
    rows = await query.order_by("-created_at").offset(offset).limit(limit)
    return _page(rows, RefundResponse, limit, offset)


@router.get("/orders", response_model=PageResponse)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=MAX_PAGE),
    offset: int = Query(0, ge=0),
):
    query = Order.all()
    if status_filter:
        query = query.filter(status=status_filter)
    rows = await query.order_by("-created_at").offset(offset).limit(limit)
    return _page(rows, OrderResponse, limit, offset)


@router.get("/disputes", response_model=PageResponse)
async def list_disputes(
    status_filter: Optional[DisputeStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=MAX_PAGE),
    offset: int = Query(0, ge=0),
):
    query = Dispute.all()
    if status_filter:
        query = query.filter(status=status_filter)
    rows = await query.order_by("-created_at").offset(offset).limit(limit)
    return _page(rows, DisputeResponse, limit, offset)


@router.get("/dead-letters", response_model=PageResponse)
async def list_dead_letters(
    kind: Optional[str] = Query(None),
    include_replayed: bool = Query(False),
    limit: int = Query(50, ge=1, le=MAX_PAGE),
    offset: int = Query(0, ge=0),
):
    """Failed webhook deliveries, newest first; replayed entries are hidden by default."""
    query = DeadLetterEntry.all()
    if kind:
        query = query.filter(event_kind=kind)
    if not include_replayed:
        query = query.filter(replayed_at__isnull=True)
    rows = await query.order_by("-created_at").offset(offset).limit(limit)
    return _page(rows, DeadLetterResponse, limit, offset)


# ----------- Refunds -----------

@router.post("/refunds/issue", response_model=SuccessResponse)
async def issue_refund_endpoint(payload: RefundIssueRequest,
                                client: PaystackClient = Depends(get_provider_client)):
    """
    Records a `requested` refund and tries the provider immediately. A provider
    failure leaves the refund `pending` for the reconciliation worker.
    """
    try:
        refund, provider_response = await issue_refund(
            order_id=payload.order_id,
            amount=payload.refund_amount,
            client=client,
            reason=payload.reason,
            is_full_refund=payload.is_full_refund,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="order_not_found")
    except ValueError as e:
        log.error(f"Value error issuing refund: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    data = {
        "refund": RefundResponse.model_validate(refund).model_dump(),
        "provider": provider_response,
    }
    return SuccessResponse(data=data)


# ----------- Disputes -----------

@router.get("/disputes/{dispute_id}", response_model=SuccessResponse)
async def get_dispute_endpoint(dispute_id: UUID):
    dispute = await _get_dispute(dispute_id)
    evidence = await DisputeEvidence.filter(dispute_id=dispute.id).order_by("uploaded_at")
    data = DisputeDetailResponse(
        dispute=DisputeResponse.model_validate(dispute),
        evidence=[DisputeEvidenceResponse.model_validate(e) for e in evidence],
    ).model_dump()
    return SuccessResponse(data=data)


@router.post("/disputes/{dispute_id}/evidence", status_code=status.HTTP_201_CREATED,
             response_model=SuccessResponse)
async def attach_evidence_endpoint(dispute_id: UUID, payload: EvidenceUploadRequest):
    dispute = await _get_dispute(dispute_id)
    evidence = await DisputeEvidence.create(
        dispute=dispute,
        evidence_type=payload.evidence_type,
        description=payload.description,
        file_url=payload.file_url,
        admin_id=payload.admin_id,
    )
    dispute.evidence_submitted = True
    await dispute.save(update_fields=['evidence_submitted', 'updated_at'])
    log.info(f"Evidence {evidence.id} attached to dispute {dispute.id}.")
    return SuccessResponse(data=DisputeEvidenceResponse.model_validate(evidence).model_dump())


@router.patch("/disputes/{dispute_id}", response_model=SuccessResponse)
async def update_dispute_endpoint(dispute_id: UUID, payload: DisputeUpdateRequest):
    dispute = await _get_dispute(dispute_id)
    update_fields = ['last_reconciled_at', 'updated_at']
    if payload.status is not None:
        dispute.status = payload.status
        update_fields.append('status')
    if payload.admin_notes is not None:
        dispute.admin_notes = payload.admin_notes
        update_fields.append('admin_notes')
    dispute.last_reconciled_at = utcnow()
    await dispute.save(update_fields=update_fields)
    log.info(f"Dispute {dispute.id} updated by admin (status={dispute.status.value}).")
    return SuccessResponse(data=DisputeResponse.model_validate(dispute).model_dump())


# ----------- Suppliers -----------

@router.get("/suppliers", response_model=SuccessResponse)
async def list_suppliers():
    """Latest SLA snapshot per supplier, best score first."""
    metrics = await SupplierMetric.all().order_by("-calculated_at").limit(500)
    latest: Dict[str, SupplierMetric] = {}
    for metric in metrics:
        latest.setdefault(metric.supplier_name, metric)
    ranked = sorted(latest.values(), key=lambda m: m.sla_score, reverse=True)
    return SuccessResponse(data=[SupplierMetricResponse.model_validate(m).model_dump() for m in ranked])


@router.get("/suppliers/{supplier_name}", response_model=SuccessResponse)
async def get_supplier_endpoint(supplier_name: str):
    metric = await SupplierMetric.filter(supplier_name=supplier_name).order_by("-calculated_at").first()
    orders = await SupplierOrder.filter(supplier_name=supplier_name).order_by("-created_at").limit(50)
    if not metric and not orders:
        raise HTTPException(status_code=404, detail="not_found")
    data = {
        "metrics": SupplierMetricResponse.model_validate(metric).model_dump() if metric else None,
        "orders": [SupplierOrderResponse.model_validate(o).model_dump() for o in orders],
    }
    return SuccessResponse(data=data)
