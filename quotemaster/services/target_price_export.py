from __future__ import annotations

import csv
import io
import re
import zipfile
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from quotemaster.models.domain import QuotationStatus
from quotemaster.services.batch_operations import (
    BatchNegotiationResult,
    batch_negotiate,
    no_eligible_error,
)
from quotemaster.services.comparison_matrix import ComparisonMatrix, MatrixProduct
from quotemaster.services.comparison_service import build_comparison_matrix

TARGET_PRICE_HEADERS = [
    "code",
    "name",
    "unit",
    "quantity",
    "current_best_price",
    "best_supplier",
    "target_price",
    "previous_approved_price",
    "notes",
]

SUPPLIER_SHEET_HEADERS = ["code", "name", "specification", "unit", "target_price"]


@dataclass(frozen=True)
class NegotiationExport:
    negotiation: BatchNegotiationResult
    filename: str
    content: bytes
    files: list[str]


def _fmt(value: float | None) -> str:
    if value is None:
        return ""
    return f"{float(value):.2f}".rstrip("0").rstrip(".")


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", value).strip("-") or "x"


def _best_supplier_name(product: MatrixProduct) -> str:
    if product.best_supplier_id is None:
        return ""
    quote = product.quote_for(product.best_supplier_id)
    return quote.supplier_name if quote else ""


def build_target_price_csv_bytes(matrix: ComparisonMatrix) -> bytes:
    """One row per product with the current best price as the negotiation target."""

    buf = io.StringIO(newline="")
    writer = csv.DictWriter(buf, fieldnames=TARGET_PRICE_HEADERS, lineterminator="\n")
    writer.writeheader()
    for product in matrix.products:
        notes = ""
        if product.best_price is None:
            notes = "no valid quote"
        elif product.best_price_trend:
            notes = f"{product.best_price_trend} vs {product.previous_period}"
        writer.writerow(
            {
                "code": product.product_code,
                "name": product.product_name,
                "unit": product.unit,
                "quantity": _fmt(product.quantity),
                "current_best_price": _fmt(product.best_price),
                "best_supplier": _best_supplier_name(product),
                "target_price": _fmt(product.best_price),
                "previous_approved_price": _fmt(product.previous_approved_price),
                "notes": notes,
            }
        )
    return buf.getvalue().encode("utf-8")


def supplier_sheet_products(matrix: ComparisonMatrix, supplier_id: int) -> list[MatrixProduct]:
    """Products the supplier has a quote row for, in matrix order."""

    return [p for p in matrix.products if p.quote_for(supplier_id) is not None]


def build_supplier_sheet_csv_bytes(matrix: ComparisonMatrix, supplier_id: int) -> bytes:
    """Products quoted by one supplier; target is its own price, else the best price."""

    buf = io.StringIO(newline="")
    writer = csv.DictWriter(buf, fieldnames=SUPPLIER_SHEET_HEADERS, lineterminator="\n")
    writer.writeheader()
    for product in supplier_sheet_products(matrix, supplier_id):
        quote = product.quote_for(supplier_id)
        own_price = quote.price_per_unit if quote.has_price else None
        writer.writerow(
            {
                "code": product.product_code,
                "name": product.product_name,
                "specification": product.specification or "",
                "unit": product.unit,
                "target_price": _fmt(own_price or product.best_price or 0.0),
            }
        )
    return buf.getvalue().encode("utf-8")


def _deterministic_zip_bytes(files: Iterable[tuple[str, bytes]]) -> bytes:
    buf = io.BytesIO()
    # ZipInfo.date_time minimum is 1980-01-01.
    fixed_dt = (1980, 1, 1, 0, 0, 0)
    with zipfile.ZipFile(buf, mode="w") as zf:
        for name, content in files:
            zi = zipfile.ZipInfo(filename=name, date_time=fixed_dt)
            zi.compress_type = zipfile.ZIP_DEFLATED
            zi.create_system = 3
            zi.external_attr = 0o644 << 16
            zf.writestr(zi, content, compress_type=zipfile.ZIP_DEFLATED)
    return buf.getvalue()


def negotiate_and_export(
    db: Session,
    *,
    period: str,
    region: str,
    categories: Iterable[str],
    actor_user_id: int | None = None,
    request_id: str | None = None,
) -> NegotiationExport:
    """Open negotiation with every pending supplier and bundle their target sheets.

    Fails with an empty-result error when no supplier in the selection is pending.
    """

    matrix = build_comparison_matrix(db, period=period, region=region, categories=categories)
    pending = [
        a
        for a in matrix.available_suppliers
        if a.quotation_id is not None and a.quotation_status == QuotationStatus.pending.value
    ]
    if not pending:
        raise no_eligible_error([])
    negotiation = batch_negotiate(
        db,
        [a.quotation_id for a in pending],
        actor_user_id=actor_user_id,
        request_id=request_id,
    )

    moved = set(negotiation.quotation_ids)
    files = [
        (
            f"{_safe_name(matrix.period)}_{_safe_name(matrix.region)}_{_safe_name(a.supplier_code)}.csv",
            build_supplier_sheet_csv_bytes(matrix, a.supplier_id),
        )
        for a in pending
        if a.quotation_id in moved and supplier_sheet_products(matrix, a.supplier_id)
    ]
    filename = f"negotiation_{_safe_name(matrix.period)}_{_safe_name(matrix.region)}.zip"
    return NegotiationExport(
        negotiation=negotiation,
        filename=filename,
        content=_deterministic_zip_bytes(files),
        files=[name for name, _ in files],
    )
