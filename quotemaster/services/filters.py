from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotemaster import models
from quotemaster.models.domain import QuotationStatus
from quotemaster.services.selection import validate_period, validate_region


@dataclass(frozen=True)
class QuotationSummary:
    period: str
    region: str
    total: int
    pending: int
    negotiation: int
    approved: int
    cancelled: int
    suppliers: int


def list_categories(db: Session) -> list[str]:
    rows = (
        db.query(models.Product.category)
        .filter(models.Product.active.is_(True))
        .distinct()
        .order_by(models.Product.category.asc())
        .all()
    )
    return [r[0] for r in rows if r[0]]


def list_regions(db: Session, period: str) -> list[str]:
    period = validate_period(period)
    rows = (
        db.query(models.Quotation.region)
        .filter(models.Quotation.period == period)
        .filter(models.Quotation.status != QuotationStatus.cancelled)
        .distinct()
        .order_by(models.Quotation.region.asc())
        .all()
    )
    return [r[0] for r in rows if r[0]]


def list_categories_for(db: Session, period: str, region: str) -> list[str]:
    """Categories that have at least one live quote item in (period, region)."""

    period = validate_period(period)
    region = validate_region(region)
    rows = (
        db.query(models.Product.category)
        .join(models.QuoteItem, models.QuoteItem.product_id == models.Product.id)
        .join(models.Quotation, models.Quotation.id == models.QuoteItem.quotation_id)
        .filter(models.Quotation.period == period)
        .filter(models.Quotation.region == region)
        .filter(models.Quotation.status != QuotationStatus.cancelled)
        .filter(models.Product.active.is_(True))
        .distinct()
        .order_by(models.Product.category.asc())
        .all()
    )
    return [r[0] for r in rows if r[0]]


def quotation_summary(db: Session, period: str, region: str) -> QuotationSummary:
    period = validate_period(period)
    region = validate_region(region)

    counts = {
        status: int(n or 0)
        for status, n in db.query(models.Quotation.status, func.count(models.Quotation.id))
        .filter(models.Quotation.period == period)
        .filter(models.Quotation.region == region)
        .group_by(models.Quotation.status)
        .all()
    }
    suppliers = (
        db.query(func.count(func.distinct(models.Quotation.supplier_id)))
        .filter(models.Quotation.period == period)
        .filter(models.Quotation.region == region)
        .scalar()
    )
    return QuotationSummary(
        period=period,
        region=region,
        total=sum(counts.values()),
        pending=counts.get(QuotationStatus.pending, 0),
        negotiation=counts.get(QuotationStatus.negotiation, 0),
        approved=counts.get(QuotationStatus.approved, 0),
        cancelled=counts.get(QuotationStatus.cancelled, 0),
        suppliers=int(suppliers or 0),
    )
