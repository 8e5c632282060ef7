import csv
import io
import zipfile

import pytest

from quotemaster import models
from quotemaster.core.errors import ErrorKind, ProcurementError
from quotemaster.models.domain import QuotationStatus
from quotemaster.services.comparison_service import build_comparison_matrix
from quotemaster.services.target_price_export import (
    SUPPLIER_SHEET_HEADERS,
    TARGET_PRICE_HEADERS,
    build_supplier_sheet_csv_bytes,
    build_target_price_csv_bytes,
    negotiate_and_export,
)


def _rows(content: bytes):
    return list(csv.DictReader(io.StringIO(content.decode("utf-8"))))


@pytest.fixture
def market(catalog):
    tomato = catalog.product("T1", name="Tomato")
    onion = catalog.product("O1", name="Onion")
    a = catalog.supplier("A", name="Alpha Farms")
    b = catalog.supplier("B", name="Beta Foods")
    qa = catalog.quotation(a)
    qb = catalog.quotation(b, status=QuotationStatus.negotiation)
    catalog.item(qa, tomato, initial=12.5)
    catalog.item(qb, tomato, initial=14.0)
    catalog.item(qb, onion, initial=7.0)
    return {"tomato": tomato, "onion": onion, "a": a, "b": b, "qa": qa, "qb": qb}


def test_target_price_csv_lists_best_price_per_product(market, db_session):
    matrix = build_comparison_matrix(
        db_session, period="2024-02", region="North", categories=["Vegetables"]
    )

    content = build_target_price_csv_bytes(matrix)
    rows = _rows(content)

    assert content.decode("utf-8").splitlines()[0] == ",".join(TARGET_PRICE_HEADERS)
    by_code = {r["code"]: r for r in rows}
    assert [r["code"] for r in rows] == ["O1", "T1"]
    assert by_code["T1"]["current_best_price"] == "12.5"
    assert by_code["T1"]["target_price"] == "12.5"
    assert by_code["T1"]["best_supplier"] == "Alpha Farms"
    assert by_code["O1"]["best_supplier"] == "Beta Foods"


def test_negotiate_and_export_moves_pending_and_zips_sheets(market, db_session):
    export = negotiate_and_export(
        db_session, period="2024-02", region="North", categories=["Vegetables"], actor_user_id=1
    )

    assert export.negotiation.updated_count == 1
    assert export.negotiation.affected_suppliers == ["Alpha Farms"]
    assert export.filename == "negotiation_2024-02_North.zip"
    assert export.files == ["2024-02_North_A.csv"]

    db_session.expire_all()
    assert db_session.get(models.Quotation, market["qa"].id).status == QuotationStatus.negotiation

    with zipfile.ZipFile(io.BytesIO(export.content)) as zf:
        assert zf.namelist() == ["2024-02_North_A.csv"]
        sheet = zf.read("2024-02_North_A.csv")

    assert sheet.decode("utf-8").splitlines()[0] == ",".join(SUPPLIER_SHEET_HEADERS)
    targets = {r["code"]: r["target_price"] for r in _rows(sheet)}
    # Onion was only quoted by Beta, so it stays out of Alpha's sheet.
    assert targets == {"T1": "12.5"}


def test_supplier_sheet_lists_only_quoted_products(market, db_session):
    matrix = build_comparison_matrix(
        db_session, period="2024-02", region="North", categories=["Vegetables"]
    )

    alpha = {r["code"] for r in _rows(build_supplier_sheet_csv_bytes(matrix, market["a"].id))}
    beta = {r["code"] for r in _rows(build_supplier_sheet_csv_bytes(matrix, market["b"].id))}

    assert alpha == {"T1"}
    assert beta == {"O1", "T1"}


def test_unpriced_quote_targets_best_price(market, catalog, db_session):
    c = catalog.supplier("C", name="Gamma Greens")
    catalog.item(catalog.quotation(c), market["onion"])

    matrix = build_comparison_matrix(
        db_session, period="2024-02", region="North", categories=["Vegetables"]
    )
    rows = _rows(build_supplier_sheet_csv_bytes(matrix, c.id))

    assert [(r["code"], r["target_price"]) for r in rows] == [("O1", "7")]


def test_pending_supplier_without_quoted_products_gets_no_sheet(market, catalog, db_session):
    empty = catalog.quotation(catalog.supplier("D", name="Delta Produce"))

    export = negotiate_and_export(
        db_session, period="2024-02", region="North", categories=["Vegetables"]
    )

    assert export.negotiation.updated_count == 2
    assert empty.id in export.negotiation.quotation_ids
    assert export.files == ["2024-02_North_A.csv"]
    with zipfile.ZipFile(io.BytesIO(export.content)) as zf:
        assert zf.namelist() == ["2024-02_North_A.csv"]


def test_negotiate_and_export_without_pending_supplier_fails(market, db_session):
    db_session.query(models.Quotation).filter(
        models.Quotation.id == market["qa"].id
    ).update({"status": QuotationStatus.approved})
    db_session.commit()

    with pytest.raises(ProcurementError) as exc:
        negotiate_and_export(
            db_session, period="2024-02", region="North", categories=["Vegetables"]
        )

    assert exc.value.kind == ErrorKind.empty_result_set
