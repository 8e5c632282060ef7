from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotemaster import models
from quotemaster.services.comparison_matrix import (
    AvailableSupplier,
    ComparisonMatrix,
    MatrixBuilder,
    ProductInput,
    QuoteRow,
    SupplierInput,
    empty_matrix,
)
from quotemaster.services.demand_resolver import load_active_demands, resolve_quantities
from quotemaster.services.price_variance import load_previous_prices
from quotemaster.services.selection import build_selection

logger = logging.getLogger("quotemaster.comparison")


def fetch_products(db: Session, categories: Sequence[str]) -> list[ProductInput]:
    products = (
        db.query(models.Product)
        .filter(models.Product.active.is_(True))
        .filter(models.Product.category.in_(list(categories)))
        .order_by(models.Product.code.asc())
        .all()
    )
    return [ProductInput.from_model(p) for p in products]


def fetch_quoting_suppliers(db: Session, *, period: str, region: str) -> list[SupplierInput]:
    suppliers = (
        db.query(models.Supplier)
        .join(models.Quotation, models.Quotation.supplier_id == models.Supplier.id)
        .filter(models.Quotation.period == period)
        .filter(models.Quotation.region == region)
        .filter(models.Supplier.active.is_(True))
        .distinct()
        .order_by(models.Supplier.code.asc())
        .all()
    )
    return [SupplierInput.from_model(s) for s in suppliers]


def fetch_quote_rows(
    db: Session, *, period: str, region: str, categories: Sequence[str]
) -> list[QuoteRow]:
    rows = (
        db.query(
            models.QuoteItem.id,
            models.QuoteItem.quotation_id,
            models.Quotation.supplier_id,
            models.QuoteItem.product_id,
            models.QuoteItem.initial_price,
            models.QuoteItem.negotiated_price,
            models.QuoteItem.approved_price,
            models.QuoteItem.vat_percentage,
            models.QuoteItem.currency,
            models.QuoteItem.quantity,
        )
        .join(models.Quotation, models.Quotation.id == models.QuoteItem.quotation_id)
        .join(models.Supplier, models.Supplier.id == models.Quotation.supplier_id)
        .join(models.Product, models.Product.id == models.QuoteItem.product_id)
        .filter(models.Quotation.period == period)
        .filter(models.Quotation.region == region)
        .filter(models.Product.category.in_(list(categories)))
        .filter(models.Supplier.active.is_(True))
        .order_by(models.Supplier.code.asc(), models.Product.code.asc())
        .all()
    )
    return [
        QuoteRow(
            item_id=r[0],
            quotation_id=r[1],
            supplier_id=r[2],
            product_id=r[3],
            initial_price=r[4],
            negotiated_price=r[5],
            approved_price=r[6],
            vat_percentage=r[7],
            currency=r[8],
            quantity=r[9],
        )
        for r in rows
    ]


def fetch_available_suppliers(db: Session, *, period: str, region: str) -> list[AvailableSupplier]:
    """Every active supplier, with its quotation for (period, region) if any.

    Status counts cover all of the supplier's quotations in the region,
    whatever the period.
    """

    suppliers = (
        db.query(models.Supplier)
        .filter(models.Supplier.active.is_(True))
        .order_by(models.Supplier.code.asc())
        .all()
    )

    current = {
        q.supplier_id: q
        for q in db.query(models.Quotation)
        .filter(models.Quotation.period == period)
        .filter(models.Quotation.region == region)
        .all()
    }

    counts: dict[int, dict[models.QuotationStatus, int]] = defaultdict(dict)
    for supplier_id, status, n in (
        db.query(models.Quotation.supplier_id, models.Quotation.status, func.count(models.Quotation.id))
        .filter(models.Quotation.region == region)
        .group_by(models.Quotation.supplier_id, models.Quotation.status)
        .all()
    ):
        counts[int(supplier_id)][status] = int(n or 0)

    out: list[AvailableSupplier] = []
    for s in suppliers:
        quotation = current.get(s.id)
        by_status = counts.get(s.id, {})
        out.append(
            AvailableSupplier(
                supplier_id=s.id,
                supplier_code=s.code,
                supplier_name=s.name,
                quotation_id=quotation.id if quotation else None,
                quotation_status=quotation.status.value if quotation else None,
                quotation_last_updated=quotation.updated_at if quotation else None,
                total_quotations=sum(by_status.values()),
                pending_quotations=by_status.get(models.QuotationStatus.pending, 0),
                negotiation_quotations=by_status.get(models.QuotationStatus.negotiation, 0),
                approved_quotations=by_status.get(models.QuotationStatus.approved, 0),
            )
        )
    return out


def build_comparison_matrix(
    db: Session,
    *,
    period: str,
    region: str,
    categories: Iterable[str],
) -> ComparisonMatrix:
    """Build the product x supplier grid for a period/region/category selection.

    All reads run before the merge; the merge itself is single-threaded over
    the builder.
    """

    selection = build_selection(period, region, categories)

    products = fetch_products(db, selection.categories)
    if not products:
        logger.info(
            "comparison_matrix_empty",
            extra={"period": selection.period, "region": selection.region},
        )
        return empty_matrix(selection.period, selection.region, selection.categories)

    suppliers = fetch_quoting_suppliers(db, period=selection.period, region=selection.region)
    demands = load_active_demands(db, period=selection.period, product_ids=[p.id for p in products])
    rows = fetch_quote_rows(
        db, period=selection.period, region=selection.region, categories=selection.categories
    )
    available = fetch_available_suppliers(db, period=selection.period, region=selection.region)
    previous = load_previous_prices(
        db, period=selection.period, region=selection.region, categories=selection.categories
    )

    resolved = resolve_quantities({p.id: p.base_quantity for p in products}, demands)

    builder = MatrixBuilder(
        period=selection.period, region=selection.region, categories=selection.categories
    )
    builder.add_products(products, resolved)
    builder.add_suppliers(suppliers)
    applied = builder.populate(rows)
    builder.select_best_prices()
    builder.apply_previous_prices(previous)
    matrix = builder.build(available_suppliers=available)

    logger.info(
        "comparison_matrix_built",
        extra={
            "period": selection.period,
            "region": selection.region,
            "products": len(matrix.products),
            "suppliers": len(matrix.suppliers),
            "rows_applied": applied,
            "rows_skipped": builder.skipped_rows,
            "previous_period": matrix.previous_period,
        },
    )
    return matrix
