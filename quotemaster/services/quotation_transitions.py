from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy.orm import Session

from quotemaster import models
from quotemaster.models.domain import QuotationStatus


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


def _update_values(
    to_status: QuotationStatus, updates: dict[str, Any] | None, now: datetime | None
) -> dict[str, Any]:
    values: dict[str, Any] = {
        "status": to_status,
        "updated_at": now or datetime.now(timezone.utc),
    }
    if updates:
        values.update(updates)
    return values


def atomic_transition_quotation_status(
    *,
    db: Session,
    quotation_id: int,
    to_status: QuotationStatus,
    allowed_from: Iterable[QuotationStatus],
    updates: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Apply a quotation status transition with an atomic DB guard.

    A single conditional UPDATE keeps out-of-order transitions from being
    persisted under concurrency:

        UPDATE quotations
        SET status = :to_status, ...
        WHERE id = :quotation_id AND status IN (:allowed_from)

    Callers control commit/rollback. Include `to_status` in `allowed_from`
    to let an idempotent no-op succeed.
    """

    rowcount = (
        db.query(models.Quotation)
        .filter(models.Quotation.id == int(quotation_id))
        .filter(models.Quotation.status.in_(set(allowed_from)))
        .update(_update_values(to_status, updates, now), synchronize_session=False)
    )

    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))


def atomic_transition_quotations(
    *,
    db: Session,
    quotation_ids: Iterable[int],
    to_status: QuotationStatus,
    allowed_from: Iterable[QuotationStatus],
    updates: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Bulk variant; rows whose status moved on since they were read drop out."""

    ids = [int(i) for i in quotation_ids]
    if not ids:
        return TransitionResult(updated=False, rowcount=0)

    rowcount = (
        db.query(models.Quotation)
        .filter(models.Quotation.id.in_(ids))
        .filter(models.Quotation.status.in_(set(allowed_from)))
        .update(_update_values(to_status, updates, now), synchronize_session=False)
    )

    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))


def record_negotiation_round(
    *,
    db: Session,
    quotation_ids: Iterable[int],
    now: datetime | None = None,
) -> int:
    """Bump the negotiation round on every item of the given quotations.

    Prices are not touched. Callers control commit/rollback.
    """

    ids = [int(i) for i in quotation_ids]
    if not ids:
        return 0

    stamp = now or datetime.now(timezone.utc)
    rowcount = (
        db.query(models.QuoteItem)
        .filter(models.QuoteItem.quotation_id.in_(ids))
        .update(
            {
                "negotiation_rounds": models.QuoteItem.negotiation_rounds + 1,
                "last_negotiated_at": stamp,
                "updated_at": stamp,
            },
            synchronize_session=False,
        )
    )
    return int(rowcount or 0)
