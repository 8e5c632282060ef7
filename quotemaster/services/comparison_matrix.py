"""In-memory product x supplier comparison grid.

Construction is two-phase. A :class:`MatrixBuilder` owns every mutation: it is
first given the product and supplier skeleton, then populated with quote rows,
then enriched with best prices and previous-period variance. ``build()`` hands
back an immutable :class:`ComparisonMatrix`; readers of that result only ever
see a quote that is present and complete, or no quote at all.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from quotemaster.config import settings
from quotemaster.services.demand_resolver import ResolvedQuantity
from quotemaster.services.grouped_overview import GroupedOverview, build_grouped_overview
from quotemaster.services.price_variance import (
    PreviousPrices,
    variance_percentage,
    variance_trend,
)

logger = logging.getLogger("quotemaster.comparison")


def effective_price(
    approved_price: float | None,
    negotiated_price: float | None,
    initial_price: float | None,
) -> float | None:
    """Approved price if set, else negotiated, else initial."""

    for price in (approved_price, negotiated_price, initial_price):
        if price is not None:
            return float(price)
    return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ProductInput:
    id: int
    code: str
    name: str
    unit: str
    category: str
    specification: str | None = None
    base_price: float | None = None
    base_quantity: float | None = None

    @classmethod
    def from_model(cls, product: Any) -> "ProductInput":
        return cls(
            id=int(product.id),
            code=product.code,
            name=product.name,
            unit=product.unit,
            category=product.category,
            specification=product.specification,
            base_price=product.base_price,
            base_quantity=product.base_quantity,
        )


@dataclass(frozen=True)
class SupplierInput:
    id: int
    code: str
    name: str

    @classmethod
    def from_model(cls, supplier: Any) -> "SupplierInput":
        return cls(id=int(supplier.id), code=supplier.code, name=supplier.name)


@dataclass(frozen=True)
class QuoteRow:
    item_id: int
    quotation_id: int
    supplier_id: int
    product_id: int
    initial_price: float | None = None
    negotiated_price: float | None = None
    approved_price: float | None = None
    vat_percentage: float | None = 0.0
    currency: str | None = None
    quantity: float | None = None


@dataclass(frozen=True)
class SupplierQuote:
    item_id: int
    quotation_id: int
    product_id: int
    product_code: str
    product_name: str
    supplier_id: int
    supplier_code: str
    supplier_name: str
    initial_price: float | None
    negotiated_price: float | None
    approved_price: float | None
    vat_rate: float
    currency: str
    quantity: float
    unit: str
    price_per_unit: float
    total_price: float
    vat_amount: float
    total_price_with_vat: float
    has_price: bool
    has_best_price: bool = False
    previous_price_from_this_supplier: float | None = None
    variance_percentage: float | None = None
    variance_trend: str | None = None


@dataclass(frozen=True)
class MatrixProduct:
    product_id: int
    product_code: str
    product_name: str
    specification: str | None
    unit: str
    category: str
    quantity: float
    quantity_source: str
    base_quantity: float
    base_price: float | None
    suppliers: Mapping[int, SupplierQuote]
    best_supplier_id: int | None = None
    best_price: float | None = None
    previous_approved_price: float | None = None
    previous_period: str | None = None
    best_price_variance_percentage: float | None = None
    best_price_trend: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "suppliers", MappingProxyType(dict(self.suppliers)))

    def quote_for(self, supplier_id: int) -> SupplierQuote | None:
        return self.suppliers.get(int(supplier_id))


@dataclass(frozen=True)
class MatrixSupplier:
    supplier_id: int
    supplier_code: str
    supplier_name: str
    total_products: int
    quoted_products: int
    coverage_percentage: int


@dataclass(frozen=True)
class AvailableSupplier:
    supplier_id: int
    supplier_code: str
    supplier_name: str
    quotation_id: int | None = None
    quotation_status: str | None = None
    quotation_last_updated: datetime | None = None
    total_quotations: int = 0
    pending_quotations: int = 0
    negotiation_quotations: int = 0
    approved_quotations: int = 0


@dataclass(frozen=True)
class ComparisonMatrix:
    period: str
    region: str
    categories: tuple[str, ...]
    products: tuple[MatrixProduct, ...] = ()
    suppliers: tuple[MatrixSupplier, ...] = ()
    grouped_overview: GroupedOverview = field(default_factory=GroupedOverview)
    available_suppliers: tuple[AvailableSupplier, ...] = ()
    previous_period: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_product_index", {p.product_id: i for i, p in enumerate(self.products)}
        )

    @property
    def is_empty(self) -> bool:
        return not self.products

    def product(self, product_id: int) -> MatrixProduct | None:
        idx = self._product_index.get(int(product_id))
        return self.products[idx] if idx is not None else None

    def quote(self, product_id: int, supplier_id: int) -> SupplierQuote | None:
        p = self.product(product_id)
        return p.quote_for(supplier_id) if p is not None else None


@dataclass
class _ProductSlot:
    source: ProductInput
    resolved: ResolvedQuantity
    quotes: dict[int, SupplierQuote] = field(default_factory=dict)
    best_supplier_id: int | None = None
    best_price: float | None = None
    previous_approved_price: float | None = None
    previous_period: str | None = None
    best_price_variance_percentage: float | None = None
    best_price_trend: str | None = None


@dataclass
class _SupplierSlot:
    source: SupplierInput
    quoted_products: int = 0


class MatrixBuilder:
    """Arena of product/supplier slots addressed through id -> index maps."""

    def __init__(self, *, period: str, region: str, categories: Sequence[str]):
        self.period = period
        self.region = region
        self.categories = tuple(categories)
        self._products: list[_ProductSlot] = []
        self._product_index: dict[int, int] = {}
        self._suppliers: list[_SupplierSlot] = []
        self._supplier_index: dict[int, int] = {}
        self._populated = False
        self._built = False
        self._previous_period: str | None = None
        self.skipped_rows = 0

    def _require_open(self) -> None:
        if self._built:
            raise RuntimeError("matrix already built")

    def _require_skeleton_phase(self) -> None:
        self._require_open()
        if self._populated:
            raise RuntimeError("skeleton is sealed once population starts")

    def add_product(self, product: ProductInput, resolved: ResolvedQuantity) -> None:
        self._require_skeleton_phase()
        if product.id in self._product_index:
            return
        self._product_index[product.id] = len(self._products)
        self._products.append(_ProductSlot(source=product, resolved=resolved))

    def add_products(
        self,
        products: Iterable[ProductInput],
        resolved: Mapping[int, ResolvedQuantity],
    ) -> None:
        for product in products:
            self.add_product(product, resolved[product.id])

    def add_supplier(self, supplier: SupplierInput) -> None:
        self._require_skeleton_phase()
        if supplier.id in self._supplier_index:
            return
        self._supplier_index[supplier.id] = len(self._suppliers)
        self._suppliers.append(_SupplierSlot(source=supplier))

    def add_suppliers(self, suppliers: Iterable[SupplierInput]) -> None:
        for supplier in suppliers:
            self.add_supplier(supplier)

    @property
    def product_count(self) -> int:
        return len(self._products)

    def populate(self, rows: Iterable[QuoteRow]) -> int:
        """Merge quote rows into the skeleton; returns how many were applied."""

        self._require_open()
        self._populated = True

        applied = 0
        for row in rows:
            p_idx = self._product_index.get(int(row.product_id))
            s_idx = self._supplier_index.get(int(row.supplier_id))
            if p_idx is None or s_idx is None:
                self.skipped_rows += 1
                logger.warning(
                    "comparison_row_skipped",
                    extra={
                        "item_id": row.item_id,
                        "product_id": row.product_id,
                        "supplier_id": row.supplier_id,
                        "missing": "product" if p_idx is None else "supplier",
                    },
                )
                continue

            product_slot = self._products[p_idx]
            supplier_slot = self._suppliers[s_idx]
            quote = self._price_row(row, product_slot, supplier_slot.source)

            if supplier_slot.source.id not in product_slot.quotes:
                supplier_slot.quoted_products += 1
            product_slot.quotes[supplier_slot.source.id] = quote
            applied += 1
        return applied

    @staticmethod
    def _price_row(row: QuoteRow, product_slot: _ProductSlot, supplier: SupplierInput) -> SupplierQuote:
        product = product_slot.source
        quantity = product_slot.resolved.quantity
        vat_rate = float(row.vat_percentage or 0.0)
        price = effective_price(row.approved_price, row.negotiated_price, row.initial_price)

        price_per_unit = total_price = vat_amount = total_with_vat = 0.0
        has_price = False
        if price is not None and price > 0:
            price_per_unit = price
            total_price = price_per_unit * quantity
            vat_amount = total_price * vat_rate / 100.0
            total_with_vat = total_price + vat_amount
            has_price = True

        return SupplierQuote(
            item_id=int(row.item_id),
            quotation_id=int(row.quotation_id),
            product_id=product.id,
            product_code=product.code,
            product_name=product.name,
            supplier_id=supplier.id,
            supplier_code=supplier.code,
            supplier_name=supplier.name,
            initial_price=row.initial_price,
            negotiated_price=row.negotiated_price,
            approved_price=row.approved_price,
            vat_rate=vat_rate,
            currency=row.currency or settings.default_currency,
            quantity=quantity,
            unit=product.unit,
            price_per_unit=price_per_unit,
            total_price=total_price,
            vat_amount=vat_amount,
            total_price_with_vat=total_with_vat,
            has_price=has_price,
        )

    def _quotes_in_supplier_order(self, slot: _ProductSlot) -> list[SupplierQuote]:
        return [
            slot.quotes[s.source.id] for s in self._suppliers if s.source.id in slot.quotes
        ]

    def select_best_prices(self) -> None:
        """Flag the cheapest priced quote per product.

        Suppliers are scanned in skeleton order; an equal price found later
        does not displace the first one.
        """

        self._require_open()
        for slot in self._products:
            best: SupplierQuote | None = None
            for quote in self._quotes_in_supplier_order(slot):
                if not quote.has_price:
                    continue
                if best is None or quote.price_per_unit < best.price_per_unit:
                    best = quote

            for supplier_id, quote in list(slot.quotes.items()):
                if quote.has_best_price:
                    slot.quotes[supplier_id] = replace(quote, has_best_price=False)

            if best is None:
                slot.best_supplier_id = None
                slot.best_price = None
                continue

            slot.quotes[best.supplier_id] = replace(best, has_best_price=True)
            slot.best_supplier_id = best.supplier_id
            slot.best_price = best.price_per_unit

    def apply_previous_prices(self, previous: PreviousPrices) -> None:
        self._require_open()
        self._previous_period = previous.period
        if previous.period is None:
            return

        for slot in self._products:
            product_id = slot.source.id
            prev_best = previous.best_for(product_id)
            if prev_best is not None:
                slot.previous_approved_price = prev_best.price
                slot.previous_period = prev_best.period
                if slot.best_price is not None:
                    pct = variance_percentage(slot.best_price, prev_best.price)
                    if pct is not None:
                        slot.best_price_variance_percentage = pct
                        slot.best_price_trend = variance_trend(pct)

            for supplier_id, quote in list(slot.quotes.items()):
                if not quote.has_price:
                    continue
                prev_price = previous.for_supplier(product_id, supplier_id)
                pct = variance_percentage(quote.price_per_unit, prev_price)
                if pct is None:
                    continue
                slot.quotes[supplier_id] = replace(
                    quote,
                    previous_price_from_this_supplier=prev_price,
                    variance_percentage=pct,
                    variance_trend=variance_trend(pct),
                )

    def _freeze_products(self) -> tuple[MatrixProduct, ...]:
        frozen = []
        for slot in self._products:
            product = slot.source
            frozen.append(
                MatrixProduct(
                    product_id=product.id,
                    product_code=product.code,
                    product_name=product.name,
                    specification=product.specification,
                    unit=product.unit,
                    category=product.category,
                    quantity=slot.resolved.quantity,
                    quantity_source=slot.resolved.source,
                    base_quantity=float(product.base_quantity or 1.0),
                    base_price=product.base_price,
                    suppliers={q.supplier_id: q for q in self._quotes_in_supplier_order(slot)},
                    best_supplier_id=slot.best_supplier_id,
                    best_price=slot.best_price,
                    previous_approved_price=slot.previous_approved_price,
                    previous_period=slot.previous_period,
                    best_price_variance_percentage=slot.best_price_variance_percentage,
                    best_price_trend=slot.best_price_trend,
                )
            )
        return tuple(frozen)

    def _freeze_suppliers(self) -> tuple[MatrixSupplier, ...]:
        total = len(self._products)
        return tuple(
            MatrixSupplier(
                supplier_id=s.source.id,
                supplier_code=s.source.code,
                supplier_name=s.source.name,
                total_products=total,
                quoted_products=s.quoted_products,
                coverage_percentage=_round_half_up(s.quoted_products * 100.0 / total) if total else 0,
            )
            for s in self._suppliers
        )

    def build(self, *, available_suppliers: Sequence[AvailableSupplier] = ()) -> ComparisonMatrix:
        self._require_open()
        self._built = True

        if not self._products:
            return ComparisonMatrix(
                period=self.period,
                region=self.region,
                categories=self.categories,
                available_suppliers=tuple(available_suppliers),
                previous_period=self._previous_period,
            )

        products = self._freeze_products()
        status_by_supplier = {a.supplier_id: a.quotation_status for a in available_suppliers}
        return ComparisonMatrix(
            period=self.period,
            region=self.region,
            categories=self.categories,
            products=products,
            suppliers=self._freeze_suppliers(),
            grouped_overview=build_grouped_overview(self.region, products, status_by_supplier),
            available_suppliers=tuple(available_suppliers),
            previous_period=self._previous_period,
        )


def empty_matrix(period: str, region: str, categories: Sequence[str]) -> ComparisonMatrix:
    return ComparisonMatrix(period=period, region=region, categories=tuple(categories))
