"""Quotation state machine: negotiate, approve and cancel single quotations.

    pending ──negotiate──> negotiation ──negotiate──> negotiation
       │                       │
       ├───────approve─────────┤──> approved   (terminal)
       └───────cancel──────────┘──> cancelled  (terminal)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quotemaster import models
from quotemaster.core.errors import ErrorKind, ProcurementError, not_found, validation_error
from quotemaster.models.domain import PriceHistoryType, QuotationStatus
from quotemaster.services.audit import audit_event
from quotemaster.services.quotation_transitions import (
    atomic_transition_quotation_status,
    record_negotiation_round,
)

logger = logging.getLogger("quotemaster.quotations")

OPEN_STATUSES = frozenset({QuotationStatus.pending, QuotationStatus.negotiation})

ALLOWED_TRANSITIONS: dict[QuotationStatus, frozenset[QuotationStatus]] = {
    QuotationStatus.pending: frozenset(
        {QuotationStatus.negotiation, QuotationStatus.approved, QuotationStatus.cancelled}
    ),
    QuotationStatus.negotiation: frozenset(
        {QuotationStatus.negotiation, QuotationStatus.approved, QuotationStatus.cancelled}
    ),
    QuotationStatus.approved: frozenset(),
    QuotationStatus.cancelled: frozenset(),
}


@dataclass(frozen=True)
class NegotiationResult:
    quotation_id: int
    status: str
    changed: bool


@dataclass(frozen=True)
class ApprovalResult:
    quotation_id: int
    approved_items: int
    total_approved_value: float
    history_rows_written: int


@dataclass(frozen=True)
class CancellationResult:
    quotation_id: int
    status: str


def can_transition(from_status: QuotationStatus, to_status: QuotationStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def _rejected_transition(quotation: models.Quotation, to_status: QuotationStatus) -> ProcurementError:
    if quotation.status == QuotationStatus.approved:
        code = "ALREADY_APPROVED"
        message = "Quotation is already approved"
    elif quotation.status == QuotationStatus.cancelled:
        code = "QUOTATION_CANCELLED"
        message = "Quotation is cancelled"
    else:
        code = "INVALID_STATE_TRANSITION"
        message = f"Quotation cannot move from {quotation.status.value} to {to_status.value}"
    return ProcurementError(
        ErrorKind.invalid_state_transition,
        message,
        code=code,
        context={
            "quotation_id": quotation.id,
            "from_status": quotation.status.value,
            "to_status": to_status.value,
        },
    )


def _status_changed_concurrently(quotation_id: int, to_status: QuotationStatus) -> ProcurementError:
    return ProcurementError(
        ErrorKind.invalid_state_transition,
        "Quotation status changed; transition not allowed",
        code="STATUS_CHANGED",
        context={"quotation_id": quotation_id, "to_status": to_status.value},
    )


def get_quotation(db: Session, quotation_id: int) -> models.Quotation:
    quotation = db.get(models.Quotation, int(quotation_id))
    if quotation is None:
        raise not_found("quotation", quotation_id)
    return quotation


def _guard(quotation: models.Quotation, to_status: QuotationStatus) -> None:
    if not can_transition(quotation.status, to_status):
        raise _rejected_transition(quotation, to_status)


def final_price(
    override: float | None,
    negotiated_price: float | None,
    initial_price: float | None,
) -> float | None:
    """First positive of override, negotiated and initial price."""

    for price in (override, negotiated_price, initial_price):
        if price is not None and price > 0:
            return float(price)
    return None


def normalize_overrides(price_overrides: Mapping[Any, Any] | None) -> dict[int, float]:
    out: dict[int, float] = {}
    for raw_id, raw_price in (price_overrides or {}).items():
        try:
            item_id = int(raw_id)
            price = float(raw_price)
        except (TypeError, ValueError):
            raise validation_error(
                "price overrides must map item ids to numbers",
                field="price_overrides",
                item_id=str(raw_id),
            )
        if price < 0:
            raise validation_error(
                "price overrides must not be negative",
                field="price_overrides",
                item_id=item_id,
            )
        out[item_id] = price
    return out


def negotiate_one(
    db: Session,
    quotation_id: int,
    *,
    actor_user_id: int | None = None,
    request_id: str | None = None,
) -> NegotiationResult:
    quotation = get_quotation(db, quotation_id)
    _guard(quotation, QuotationStatus.negotiation)
    from_status = quotation.status

    now = datetime.now(timezone.utc)
    transition = atomic_transition_quotation_status(
        db=db,
        quotation_id=quotation.id,
        to_status=QuotationStatus.negotiation,
        allowed_from=OPEN_STATUSES,
        now=now,
    )
    if not transition.updated:
        db.rollback()
        raise _status_changed_concurrently(quotation.id, QuotationStatus.negotiation)
    record_negotiation_round(db=db, quotation_ids=[quotation.id], now=now)
    db.commit()

    changed = from_status != QuotationStatus.negotiation
    logger.info(
        "quotation_negotiation_started" if changed else "quotation_negotiation_unchanged",
        extra={"quotation_id": quotation.id, "from_status": from_status.value},
    )
    if changed:
        audit_event(
            "quotation.negotiate",
            actor_user_id,
            {"quotation_id": quotation.id, "from_status": from_status.value},
            db=db,
            quotation_id=quotation.id,
            request_id=request_id,
        )
    return NegotiationResult(
        quotation_id=quotation.id,
        status=QuotationStatus.negotiation.value,
        changed=changed,
    )


def approve_one(
    db: Session,
    quotation_id: int,
    *,
    price_overrides: Mapping[Any, Any] | None = None,
    actor_user_id: int | None = None,
    request_id: str | None = None,
) -> ApprovalResult:
    """Approve a quotation, finalize its item prices and log price history.

    Each item's final price is the override for that item, else the
    negotiated price, else the initial price, whichever is first positive.
    Items without one stay unpriced and get no history row; the quotation is
    approved regardless. Everything commits together or not at all.
    """

    overrides = normalize_overrides(price_overrides)
    quotation = get_quotation(db, quotation_id)
    _guard(quotation, QuotationStatus.approved)

    now = datetime.now(timezone.utc)
    approved_items = 0
    history_rows = 0
    total_value = 0.0

    try:
        transition = atomic_transition_quotation_status(
            db=db,
            quotation_id=quotation.id,
            to_status=QuotationStatus.approved,
            allowed_from=OPEN_STATUSES,
            now=now,
        )
        if not transition.updated:
            raise _status_changed_concurrently(quotation.id, QuotationStatus.approved)

        items = (
            db.query(models.QuoteItem)
            .filter(models.QuoteItem.quotation_id == quotation.id)
            .order_by(models.QuoteItem.id.asc())
            .all()
        )

        unknown = set(overrides) - {item.id for item in items}
        if unknown:
            logger.warning(
                "approval_override_unknown_items",
                extra={"quotation_id": quotation.id, "item_ids": sorted(unknown)},
            )

        for item in items:
            price = final_price(overrides.get(item.id), item.negotiated_price, item.initial_price)
            if price is None:
                continue

            item.approved_price = price
            item.approved_at = now
            item.approved_by = actor_user_id
            approved_items += 1
            total_value += price * float(item.quantity or 1.0)

            db.add(
                models.PriceHistory(
                    product_id=item.product_id,
                    supplier_id=quotation.supplier_id,
                    period=quotation.period,
                    region=quotation.region,
                    price=price,
                    price_type=PriceHistoryType.approved,
                    recorded_at=now,
                )
            )
            history_rows += 1

        db.commit()
    except ProcurementError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "quotation_approval_failed",
            extra={"quotation_id": quotation_id, "error": str(exc)},
        )
        raise ProcurementError(
            ErrorKind.transaction_aborted,
            "Approval failed; no changes were saved",
            code="APPROVAL_ABORTED",
            context={"quotation_id": quotation_id},
        ) from exc

    logger.info(
        "quotation_approved",
        extra={
            "quotation_id": quotation.id,
            "approved_items": approved_items,
            "total_approved_value": total_value,
            "history_rows_written": history_rows,
        },
    )
    audit_event(
        "quotation.approve",
        actor_user_id,
        {
            "quotation_id": quotation.id,
            "approved_items": approved_items,
            "total_approved_value": total_value,
            "overrides": {str(k): v for k, v in overrides.items()},
        },
        db=db,
        quotation_id=quotation.id,
        idempotency_key=f"quotation:{quotation.id}:approved",
        request_id=request_id,
    )
    return ApprovalResult(
        quotation_id=quotation.id,
        approved_items=approved_items,
        total_approved_value=total_value,
        history_rows_written=history_rows,
    )


def cancel_one(
    db: Session,
    quotation_id: int,
    *,
    actor_user_id: int | None = None,
    request_id: str | None = None,
) -> CancellationResult:
    quotation = get_quotation(db, quotation_id)
    _guard(quotation, QuotationStatus.cancelled)
    from_status = quotation.status

    transition = atomic_transition_quotation_status(
        db=db,
        quotation_id=quotation.id,
        to_status=QuotationStatus.cancelled,
        allowed_from=OPEN_STATUSES,
    )
    if not transition.updated:
        db.rollback()
        raise _status_changed_concurrently(quotation.id, QuotationStatus.cancelled)
    db.commit()

    logger.info(
        "quotation_cancelled",
        extra={"quotation_id": quotation.id, "from_status": from_status.value},
    )
    audit_event(
        "quotation.cancel",
        actor_user_id,
        {"quotation_id": quotation.id, "from_status": from_status.value},
        db=db,
        quotation_id=quotation.id,
        idempotency_key=f"quotation:{quotation.id}:cancelled",
        request_id=request_id,
    )
    return CancellationResult(quotation_id=quotation.id, status=QuotationStatus.cancelled.value)
