from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotemaster import models

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"

# Moves within +/- this many percent are reported as stable.
TREND_THRESHOLD_PCT = 0.5


@dataclass(frozen=True)
class PreviousPrice:
    price: float
    period: str


@dataclass(frozen=True)
class PreviousPrices:
    """Approved prices from the most recent earlier approved period."""

    period: str | None = None
    best_by_product: dict[int, PreviousPrice] = field(default_factory=dict)
    by_product_supplier: dict[tuple[int, int], float] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.period is None or not (self.best_by_product or self.by_product_supplier)

    def best_for(self, product_id: int) -> PreviousPrice | None:
        return self.best_by_product.get(int(product_id))

    def for_supplier(self, product_id: int, supplier_id: int) -> float | None:
        return self.by_product_supplier.get((int(product_id), int(supplier_id)))


def variance_percentage(current: float | None, previous: float | None) -> float | None:
    if current is None or previous is None or previous <= 0:
        return None
    return (float(current) - float(previous)) * 100.0 / float(previous)


def variance_trend(percentage: float) -> str:
    if percentage > TREND_THRESHOLD_PCT:
        return TREND_UP
    if percentage < -TREND_THRESHOLD_PCT:
        return TREND_DOWN
    return TREND_STABLE


def build_previous_prices(
    period: str | None,
    rows: Iterable[tuple[int, int, float | None]],
) -> PreviousPrices:
    """Fold (product_id, supplier_id, approved_price) rows into lookup maps.

    Rows are expected newest first, so the first price seen for a
    (product, supplier) pair is the one kept.
    """

    if period is None:
        return PreviousPrices()

    best: dict[int, PreviousPrice] = {}
    per_supplier: dict[tuple[int, int], float] = {}
    for product_id, supplier_id, price in rows:
        if price is None:
            continue
        key = (int(product_id), int(supplier_id))
        if key not in per_supplier:
            per_supplier[key] = float(price)

        current_best = best.get(int(product_id))
        if current_best is None or float(price) < current_best.price:
            best[int(product_id)] = PreviousPrice(price=float(price), period=period)

    return PreviousPrices(period=period, best_by_product=best, by_product_supplier=per_supplier)


def find_previous_period(db: Session, *, period: str, region: str) -> str | None:
    return (
        db.query(func.max(models.Quotation.period))
        .filter(models.Quotation.period < period)
        .filter(models.Quotation.region == region)
        .filter(models.Quotation.status == models.QuotationStatus.approved)
        .scalar()
    )


def load_previous_prices(
    db: Session,
    *,
    period: str,
    region: str,
    categories: Sequence[str],
) -> PreviousPrices:
    previous_period = find_previous_period(db, period=period, region=region)
    if previous_period is None:
        return PreviousPrices()

    rows = (
        db.query(
            models.QuoteItem.product_id,
            models.Quotation.supplier_id,
            models.QuoteItem.approved_price,
        )
        .join(models.Quotation, models.Quotation.id == models.QuoteItem.quotation_id)
        .join(models.Product, models.Product.id == models.QuoteItem.product_id)
        .filter(models.Quotation.period == previous_period)
        .filter(models.Quotation.region == region)
        .filter(models.Quotation.status == models.QuotationStatus.approved)
        .filter(models.Product.category.in_(list(categories)))
        .filter(models.QuoteItem.approved_price.is_not(None))
        .order_by(models.QuoteItem.updated_at.desc(), models.QuoteItem.id.desc())
        .all()
    )
    return build_previous_prices(previous_period, rows)
