from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quotemaster import models
from quotemaster.core.errors import ErrorKind, ProcurementError
from quotemaster.models.domain import PriceHistoryType, QuotationStatus
from quotemaster.services.audit import audit_event
from quotemaster.services.quotation_lifecycle import OPEN_STATUSES
from quotemaster.services.quotation_transitions import (
    atomic_transition_quotations,
    record_negotiation_round,
)
from quotemaster.services.selection import validate_ids

logger = logging.getLogger("quotemaster.quotations")


@dataclass(frozen=True)
class BatchNegotiationResult:
    updated_count: int
    affected_suppliers: list[str]
    quotation_ids: list[int]


@dataclass(frozen=True)
class BatchApprovalResult:
    approved_count: int
    affected_suppliers: list[str]
    quotation_ids: list[int]
    finalized_items: int
    history_rows_written: int


@dataclass(frozen=True)
class StepOutcome:
    name: str
    rowcount: int


@dataclass
class _BatchApproval:
    requested_ids: list[int]
    actor_user_id: int | None
    now: datetime
    eligible_ids: list[int] = field(default_factory=list)
    supplier_names: list[str] = field(default_factory=list)
    approved_count: int = 0
    finalized_items: int = 0
    history_rows: int = 0


def no_eligible_error(requested_ids: list[int]) -> ProcurementError:
    return ProcurementError(
        ErrorKind.empty_result_set,
        "No eligible quotations: none of the selected quotations is pending or in negotiation",
        code="NO_ELIGIBLE_QUOTATIONS",
        context={"quotation_ids": requested_ids},
    )


def _eligible_quotations(db: Session, ids: list[int], *, for_update: bool = False):
    query = (
        db.query(models.Quotation.id, models.Supplier.name)
        .join(models.Supplier, models.Supplier.id == models.Quotation.supplier_id)
        .filter(models.Quotation.id.in_(ids))
        .filter(models.Quotation.status.in_(OPEN_STATUSES))
        .order_by(models.Quotation.id.asc())
    )
    if for_update:
        query = query.with_for_update(of=models.Quotation)
    return query.all()


def _distinct(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(n for n in names if n))


def batch_negotiate(
    db: Session,
    quotation_ids: Iterable[int],
    *,
    actor_user_id: int | None = None,
    request_id: str | None = None,
) -> BatchNegotiationResult:
    """Move every pending/negotiating quotation among `quotation_ids` to negotiation.

    Approved and cancelled ids are left out of both the update and the result.
    """

    ids = validate_ids(quotation_ids)
    eligible = _eligible_quotations(db, ids)
    if not eligible:
        raise no_eligible_error(ids)

    eligible_ids = [int(row[0]) for row in eligible]
    now = datetime.now(timezone.utc)
    try:
        transition = atomic_transition_quotations(
            db=db,
            quotation_ids=eligible_ids,
            to_status=QuotationStatus.negotiation,
            allowed_from=OPEN_STATUSES,
            now=now,
        )
        if not transition.updated:
            raise no_eligible_error(ids)
        record_negotiation_round(db=db, quotation_ids=eligible_ids, now=now)
        db.commit()
    except ProcurementError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise ProcurementError(
            ErrorKind.transaction_aborted,
            "Batch negotiation failed; no changes were saved",
            code="BATCH_NEGOTIATION_ABORTED",
            context={"quotation_ids": ids},
        ) from exc

    result = BatchNegotiationResult(
        updated_count=transition.rowcount,
        affected_suppliers=_distinct(row[1] for row in eligible),
        quotation_ids=eligible_ids,
    )
    logger.info(
        "batch_negotiation_started",
        extra={
            "requested": len(ids),
            "updated": result.updated_count,
            "suppliers": result.affected_suppliers,
        },
    )
    audit_event(
        "quotation.batch_negotiate",
        actor_user_id,
        {"quotation_ids": eligible_ids, "affected_suppliers": result.affected_suppliers},
        db=db,
        request_id=request_id,
    )
    return result


def _select_eligible(db: Session, ctx: _BatchApproval) -> int:
    rows = _eligible_quotations(db, ctx.requested_ids, for_update=True)
    if not rows:
        raise no_eligible_error(ctx.requested_ids)
    ctx.eligible_ids = [int(row[0]) for row in rows]
    ctx.supplier_names = _distinct(row[1] for row in rows)
    return len(rows)


def _update_statuses(db: Session, ctx: _BatchApproval) -> int:
    transition = atomic_transition_quotations(
        db=db,
        quotation_ids=ctx.eligible_ids,
        to_status=QuotationStatus.approved,
        allowed_from=OPEN_STATUSES,
        now=ctx.now,
    )
    if not transition.updated:
        raise no_eligible_error(ctx.requested_ids)
    ctx.approved_count = transition.rowcount
    return transition.rowcount


def _finalize_prices(db: Session, ctx: _BatchApproval) -> int:
    rowcount = (
        db.query(models.QuoteItem)
        .filter(models.QuoteItem.quotation_id.in_(ctx.eligible_ids))
        .update(
            {
                # Batch approval has no per-item overrides.
                "approved_price": func.coalesce(
                    models.QuoteItem.negotiated_price,
                    models.QuoteItem.initial_price,
                    models.QuoteItem.approved_price,
                ),
                "approved_at": ctx.now,
                "approved_by": ctx.actor_user_id,
                "updated_at": ctx.now,
            },
            synchronize_session=False,
        )
    )
    ctx.finalized_items = int(rowcount or 0)
    return ctx.finalized_items


def _insert_price_history(db: Session, ctx: _BatchApproval) -> int:
    rows = (
        db.query(
            models.QuoteItem.product_id,
            models.Quotation.supplier_id,
            models.Quotation.period,
            models.Quotation.region,
            models.QuoteItem.approved_price,
        )
        .join(models.Quotation, models.Quotation.id == models.QuoteItem.quotation_id)
        .filter(models.QuoteItem.quotation_id.in_(ctx.eligible_ids))
        .order_by(models.QuoteItem.id.asc())
        .all()
    )
    history = [
        models.PriceHistory(
            product_id=product_id,
            supplier_id=supplier_id,
            period=period,
            region=region,
            price=float(price),
            price_type=PriceHistoryType.approved,
            recorded_at=ctx.now,
        )
        for product_id, supplier_id, period, region, price in rows
        if price is not None and price > 0
    ]
    db.add_all(history)
    db.flush()
    ctx.history_rows = len(history)
    return ctx.history_rows


def run_in_transaction(
    db: Session,
    steps: list[tuple[str, Callable[[Session, _BatchApproval], int]]],
    ctx: _BatchApproval,
) -> list[StepOutcome]:
    """Run `steps` in order inside one transaction.

    The first failing step rolls everything back and is reported as a single
    error; nothing is committed unless every step succeeds.
    """

    outcomes: list[StepOutcome] = []
    try:
        for name, step in steps:
            try:
                outcomes.append(StepOutcome(name=name, rowcount=step(db, ctx)))
            except ProcurementError:
                raise
            except Exception as exc:
                logger.error(
                    "batch_approve_failed",
                    extra={
                        "step": name,
                        "quotation_ids": ctx.requested_ids,
                        "completed_steps": [o.name for o in outcomes],
                        "error": str(exc),
                    },
                )
                raise ProcurementError(
                    ErrorKind.transaction_aborted,
                    "Batch approval failed; no changes were saved",
                    code="BATCH_APPROVAL_ABORTED",
                    context={"step": name, "quotation_ids": ctx.requested_ids},
                ) from exc
        db.commit()
    except ProcurementError:
        db.rollback()
        raise
    return outcomes


def approve_many(
    db: Session,
    quotation_ids: Iterable[int],
    *,
    actor_user_id: int | None = None,
    request_id: str | None = None,
) -> BatchApprovalResult:
    """Approve quotations in bulk, finalizing item prices and logging history.

    Status update, price finalization and history inserts commit together.
    Quotations already approved or cancelled (including by a concurrent call)
    drop out of the affected set.
    """

    ctx = _BatchApproval(
        requested_ids=validate_ids(quotation_ids),
        actor_user_id=actor_user_id,
        now=datetime.now(timezone.utc),
    )
    steps = [
        ("select_eligible", _select_eligible),
        ("update_statuses", _update_statuses),
        ("finalize_prices", _finalize_prices),
        ("insert_price_history", _insert_price_history),
    ]
    outcomes = run_in_transaction(db, steps, ctx)

    result = BatchApprovalResult(
        approved_count=ctx.approved_count,
        affected_suppliers=ctx.supplier_names,
        quotation_ids=ctx.eligible_ids,
        finalized_items=ctx.finalized_items,
        history_rows_written=ctx.history_rows,
    )
    logger.info(
        "batch_approval_completed",
        extra={
            "approved": result.approved_count,
            "history_rows_written": result.history_rows_written,
            "steps": {o.name: o.rowcount for o in outcomes},
        },
    )
    audit_event(
        "quotation.batch_approve",
        actor_user_id,
        {
            "quotation_ids": result.quotation_ids,
            "affected_suppliers": result.affected_suppliers,
            "history_rows_written": result.history_rows_written,
        },
        db=db,
        request_id=request_id,
    )
    return result
