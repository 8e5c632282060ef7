# ruff: noqa: B008

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from quotemaster import models
from quotemaster.api.deps import require_approver, require_manager
from quotemaster.database import get_db
from quotemaster.schemas import (
    ApprovalRead,
    ApproveQuotationRequest,
    BatchApprovalRead,
    BatchNegotiationRead,
    CancellationRead,
    NegotiateAndExportRequest,
    NegotiationRead,
    QuotationIdsRequest,
)
from quotemaster.services import batch_operations, quotation_lifecycle, target_price_export

router = APIRouter(prefix="/quotations", tags=["quotations"])
logger = logging.getLogger("quotemaster.quotations")


@router.post("/batch/negotiate", response_model=BatchNegotiationRead)
def batch_negotiate(
    payload: QuotationIdsRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_manager),
):
    return batch_operations.batch_negotiate(
        db,
        payload.quotation_ids,
        actor_user_id=getattr(current_user, "id", None),
        request_id=request.headers.get("x-request-id"),
    )


@router.post("/batch/approve", response_model=BatchApprovalRead)
def batch_approve(
    payload: QuotationIdsRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approver),
):
    return batch_operations.approve_many(
        db,
        payload.quotation_ids,
        actor_user_id=getattr(current_user, "id", None),
        request_id=request.headers.get("x-request-id"),
    )


@router.post("/batch/negotiate-export")
def negotiate_and_export(
    payload: NegotiateAndExportRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_manager),
):
    export = target_price_export.negotiate_and_export(
        db,
        period=payload.period,
        region=payload.region,
        categories=payload.categories,
        actor_user_id=getattr(current_user, "id", None),
        request_id=request.headers.get("x-request-id"),
    )
    logger.info(
        "negotiation_export_built",
        extra={"files": export.files, "updated": export.negotiation.updated_count},
    )
    return Response(
        content=export.content,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Updated-Quotations": str(export.negotiation.updated_count),
        },
    )


@router.post("/{quotation_id}/negotiate", response_model=NegotiationRead)
def negotiate_quotation(
    quotation_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_manager),
):
    return quotation_lifecycle.negotiate_one(
        db,
        quotation_id,
        actor_user_id=getattr(current_user, "id", None),
        request_id=request.headers.get("x-request-id"),
    )


@router.post("/{quotation_id}/approve", response_model=ApprovalRead)
def approve_quotation(
    quotation_id: int,
    request: Request,
    payload: ApproveQuotationRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approver),
):
    return quotation_lifecycle.approve_one(
        db,
        quotation_id,
        price_overrides=payload.price_overrides if payload else None,
        actor_user_id=getattr(current_user, "id", None),
        request_id=request.headers.get("x-request-id"),
    )


@router.post("/{quotation_id}/cancel", response_model=CancellationRead)
def cancel_quotation(
    quotation_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approver),
):
    return quotation_lifecycle.cancel_one(
        db,
        quotation_id,
        actor_user_id=getattr(current_user, "id", None),
        request_id=request.headers.get("x-request-id"),
    )
