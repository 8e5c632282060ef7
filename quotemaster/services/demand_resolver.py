from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotemaster import models

SOURCE_KITCHEN_DEMAND = "kitchen_demand"
SOURCE_BASE_QUANTITY = "base_quantity"


@dataclass(frozen=True)
class ResolvedQuantity:
    quantity: float
    source: str


def _positive_or_one(value: float | None) -> float:
    try:
        v = float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 1.0
    return v if v > 0 else 1.0


def resolve_quantity(base_quantity: float | None, demand_quantity: float | None) -> ResolvedQuantity:
    """Quantity used for per-product totals; never zero."""

    if demand_quantity is not None:
        return ResolvedQuantity(quantity=_positive_or_one(demand_quantity), source=SOURCE_KITCHEN_DEMAND)
    return ResolvedQuantity(quantity=_positive_or_one(base_quantity), source=SOURCE_BASE_QUANTITY)


def resolve_quantities(
    base_quantities: Mapping[int, float | None],
    demands: Mapping[int, float],
) -> dict[int, ResolvedQuantity]:
    return {
        product_id: resolve_quantity(base_quantity, demands.get(product_id))
        for product_id, base_quantity in base_quantities.items()
    }


def load_active_demands(db: Session, *, period: str, product_ids: Iterable[int]) -> dict[int, float]:
    """Total active kitchen demand per product for a period.

    Several kitchens may order the same product; their quantities add up.
    """

    ids = [int(i) for i in product_ids]
    if not ids:
        return {}

    rows = (
        db.query(
            models.KitchenPeriodDemand.product_id,
            func.sum(models.KitchenPeriodDemand.quantity),
        )
        .filter(models.KitchenPeriodDemand.period == period)
        .filter(models.KitchenPeriodDemand.status == models.DemandStatus.active)
        .filter(models.KitchenPeriodDemand.product_id.in_(ids))
        .group_by(models.KitchenPeriodDemand.product_id)
        .all()
    )

    out: dict[int, float] = defaultdict(float)
    for product_id, total in rows:
        out[int(product_id)] += float(total or 0.0)
    return dict(out)
