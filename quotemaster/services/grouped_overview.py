from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Sequence

if TYPE_CHECKING:
    from quotemaster.services.comparison_matrix import MatrixProduct


@dataclass(frozen=True)
class ValueVariance:
    difference: float
    percentage: float


@dataclass(frozen=True)
class SupplierPerformance:
    supplier_id: int
    supplier_code: str
    supplier_name: str
    product_count: int
    total_base_value: float
    total_previous_value: float | None
    total_initial_value: float
    total_current_value: float
    has_any_previous_data: bool
    variance_vs_base: ValueVariance
    variance_vs_previous: ValueVariance | None
    variance_vs_initial: ValueVariance
    quotation_status: str | None = None


@dataclass(frozen=True)
class CategoryOverview:
    category: str
    supplier_performances: tuple[SupplierPerformance, ...] = ()


@dataclass(frozen=True)
class RegionOverview:
    region: str
    categories: tuple[CategoryOverview, ...] = ()


@dataclass(frozen=True)
class GroupedOverview:
    regions: tuple[RegionOverview, ...] = ()


@dataclass
class _SupplierTotals:
    supplier_id: int
    supplier_code: str
    supplier_name: str
    quotation_status: str | None
    product_count: int = 0
    total_base_value: float = 0.0
    total_previous_value: float = 0.0
    total_initial_value: float = 0.0
    total_current_value: float = 0.0
    has_any_previous_data: bool = False


def value_variance(current: float, reference: float) -> ValueVariance:
    difference = current - reference
    percentage = difference * 100.0 / reference if reference > 0 else 0.0
    return ValueVariance(difference=difference, percentage=percentage)


def _performance(totals: _SupplierTotals) -> SupplierPerformance:
    return SupplierPerformance(
        supplier_id=totals.supplier_id,
        supplier_code=totals.supplier_code,
        supplier_name=totals.supplier_name,
        product_count=totals.product_count,
        total_base_value=totals.total_base_value,
        total_previous_value=totals.total_previous_value if totals.has_any_previous_data else None,
        total_initial_value=totals.total_initial_value,
        total_current_value=totals.total_current_value,
        has_any_previous_data=totals.has_any_previous_data,
        variance_vs_base=value_variance(totals.total_current_value, totals.total_base_value),
        variance_vs_previous=(
            value_variance(totals.total_current_value, totals.total_previous_value)
            if totals.has_any_previous_data
            else None
        ),
        variance_vs_initial=value_variance(totals.total_current_value, totals.total_initial_value),
        quotation_status=totals.quotation_status,
    )


def build_grouped_overview(
    region: str,
    products: Sequence["MatrixProduct"],
    quotation_status_by_supplier: Mapping[int, str | None] | None = None,
) -> GroupedOverview:
    """Roll priced quotes up into Region -> Category -> Supplier totals.

    Monetary totals are weighted by each product's base quantity, not by the
    demand-resolved quantity. ``total_previous_value`` only accumulates items
    whose supplier had its own previous approved price, so it can be partial;
    ``has_any_previous_data`` tells whether any such item exists.
    """

    statuses = quotation_status_by_supplier or {}
    by_category: dict[str, dict[int, _SupplierTotals]] = OrderedDict()

    for product in products:
        base_quantity = float(product.base_quantity or 1.0)
        base_price = float(product.base_price or 0.0)
        for quote in product.suppliers.values():
            if not quote.has_price:
                continue

            suppliers = by_category.setdefault(product.category, OrderedDict())
            totals = suppliers.get(quote.supplier_id)
            if totals is None:
                totals = _SupplierTotals(
                    supplier_id=quote.supplier_id,
                    supplier_code=quote.supplier_code,
                    supplier_name=quote.supplier_name,
                    quotation_status=statuses.get(quote.supplier_id),
                )
                suppliers[quote.supplier_id] = totals

            totals.product_count += 1
            totals.total_base_value += base_price * base_quantity
            totals.total_initial_value += float(quote.initial_price or 0.0) * base_quantity
            totals.total_current_value += quote.price_per_unit * base_quantity

            previous = quote.previous_price_from_this_supplier
            if previous is not None and previous > 0:
                totals.total_previous_value += previous * base_quantity
                totals.has_any_previous_data = True

    if not by_category:
        return GroupedOverview()

    categories = tuple(
        CategoryOverview(
            category=category,
            supplier_performances=tuple(
                _performance(t) for t in sorted(suppliers.values(), key=lambda t: t.supplier_code)
            ),
        )
        for category, suppliers in sorted(by_category.items(), key=lambda kv: kv[0])
    )
    return GroupedOverview(regions=(RegionOverview(region=region, categories=categories),))
