import json

import pytest

from quotemaster import models
from quotemaster.core.errors import ErrorKind, ProcurementError
from quotemaster.models.domain import PriceHistoryType, QuotationStatus
from quotemaster.services.comparison_service import build_comparison_matrix
from quotemaster.services.quotation_lifecycle import (
    approve_one,
    can_transition,
    cancel_one,
    final_price,
    negotiate_one,
)
from quotemaster.services.quotation_transitions import atomic_transition_quotation_status


def _status(db, quotation_id) -> QuotationStatus:
    db.expire_all()
    return db.get(models.Quotation, quotation_id).status


def test_transition_table():
    assert can_transition(QuotationStatus.pending, QuotationStatus.negotiation)
    assert can_transition(QuotationStatus.negotiation, QuotationStatus.negotiation)
    assert can_transition(QuotationStatus.negotiation, QuotationStatus.approved)
    assert can_transition(QuotationStatus.pending, QuotationStatus.cancelled)
    assert not can_transition(QuotationStatus.approved, QuotationStatus.negotiation)
    assert not can_transition(QuotationStatus.cancelled, QuotationStatus.approved)
    assert not can_transition(QuotationStatus.negotiation, QuotationStatus.pending)


def test_final_price_takes_first_positive():
    assert final_price(80.0, 85.0, 90.0) == 80.0
    assert final_price(None, 85.0, 90.0) == 85.0
    assert final_price(0.0, None, 90.0) == 90.0
    assert final_price(None, None, 0.0) is None


def test_price_walk_from_quote_to_approval(catalog, db_session):
    product = catalog.product("X1", base_price=100.0, base_quantity=10.0)
    supplier_a = catalog.supplier("A")
    supplier_b = catalog.supplier("B")
    quotation_a = catalog.quotation(supplier_a)
    quotation_b = catalog.quotation(supplier_b)
    item_a = catalog.item(quotation_a, product, initial=90.0)
    catalog.item(quotation_b, product, initial=95.0)

    matrix = build_comparison_matrix(
        db_session, period="2024-02", region="North", categories=["Vegetables"]
    )
    assert matrix.product(product.id).best_price == 90.0
    assert matrix.product(product.id).best_supplier_id == supplier_a.id

    result = negotiate_one(db_session, quotation_a.id, actor_user_id=1)
    assert result.changed is True
    assert _status(db_session, quotation_a.id) == QuotationStatus.negotiation

    item = db_session.get(models.QuoteItem, item_a.id)
    assert item.negotiation_rounds == 1
    assert item.last_negotiated_at is not None
    assert item.initial_price == 90.0
    item.negotiated_price = 85.0
    db_session.commit()

    matrix = build_comparison_matrix(
        db_session, period="2024-02", region="North", categories=["Vegetables"]
    )
    assert matrix.product(product.id).best_price == 85.0

    approval = approve_one(
        db_session, quotation_a.id, price_overrides={item_a.id: 80.0}, actor_user_id=1
    )
    assert approval.approved_items == 1
    assert approval.history_rows_written == 1
    assert approval.total_approved_value == pytest.approx(80.0)

    db_session.expire_all()
    item = db_session.get(models.QuoteItem, item_a.id)
    assert item.approved_price == 80.0
    assert item.approved_by == 1
    assert item.approved_at is not None

    history = db_session.query(models.PriceHistory).all()
    assert len(history) == 1
    assert history[0].price == 80.0
    assert history[0].price_type == PriceHistoryType.approved
    assert history[0].supplier_id == supplier_a.id
    assert history[0].period == "2024-02"
    assert _status(db_session, quotation_a.id) == QuotationStatus.approved


def test_negotiate_is_idempotent_while_negotiating(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"), status=QuotationStatus.negotiation)

    result = negotiate_one(db_session, quotation.id)

    assert result.changed is False
    assert result.status == "negotiation"
    assert db_session.query(models.AuditLog).count() == 0


def test_approve_without_price_leaves_item_unpriced(catalog, db_session):
    priced = catalog.product("X1")
    unpriced = catalog.product("X2")
    quotation = catalog.quotation(catalog.supplier("A"))
    catalog.item(quotation, priced, initial=40.0, negotiated=35.0, quantity=3.0)
    blank = catalog.item(quotation, unpriced)

    approval = approve_one(db_session, quotation.id)

    assert approval.approved_items == 1
    assert approval.history_rows_written == 1
    assert approval.total_approved_value == pytest.approx(105.0)
    assert _status(db_session, quotation.id) == QuotationStatus.approved
    assert db_session.get(models.QuoteItem, blank.id).approved_price is None


def test_approve_writes_single_audit_row(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"))
    catalog.item(quotation, catalog.product("X1"), initial=10.0)

    approve_one(db_session, quotation.id, actor_user_id=1)

    (log,) = db_session.query(models.AuditLog).all()
    assert log.action == "quotation.approve"
    assert log.quotation_id == quotation.id
    assert log.idempotency_key == f"quotation:{quotation.id}:approved"
    assert json.loads(log.payload_json)["approved_items"] == 1


def test_approving_twice_fails_with_already_approved(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"), status=QuotationStatus.approved)

    with pytest.raises(ProcurementError) as exc:
        approve_one(db_session, quotation.id)

    assert exc.value.kind == ErrorKind.invalid_state_transition
    assert exc.value.code == "ALREADY_APPROVED"
    assert exc.value.http_status == 409


def test_approving_cancelled_fails(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"), status=QuotationStatus.cancelled)

    with pytest.raises(ProcurementError) as exc:
        approve_one(db_session, quotation.id)

    assert exc.value.code == "QUOTATION_CANCELLED"
    assert db_session.query(models.PriceHistory).count() == 0


def test_negotiating_terminal_quotation_fails(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"), status=QuotationStatus.approved)

    with pytest.raises(ProcurementError) as exc:
        negotiate_one(db_session, quotation.id)

    assert exc.value.kind == ErrorKind.invalid_state_transition


def test_unknown_quotation_is_not_found(db_session):
    with pytest.raises(ProcurementError) as exc:
        approve_one(db_session, 4242)

    assert exc.value.kind == ErrorKind.not_found
    assert exc.value.code == "QUOTATION_NOT_FOUND"
    assert exc.value.http_status == 404


def test_negative_override_is_rejected_before_any_change(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"))
    item = catalog.item(quotation, catalog.product("X1"), initial=10.0)

    with pytest.raises(ProcurementError) as exc:
        approve_one(db_session, quotation.id, price_overrides={item.id: -1})

    assert exc.value.kind == ErrorKind.validation
    assert _status(db_session, quotation.id) == QuotationStatus.pending


def test_cancel_is_status_only(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"))
    item = catalog.item(quotation, catalog.product("X1"), initial=10.0)

    result = cancel_one(db_session, quotation.id)

    assert result.status == "cancelled"
    assert _status(db_session, quotation.id) == QuotationStatus.cancelled
    assert db_session.get(models.QuoteItem, item.id).approved_price is None

    with pytest.raises(ProcurementError) as exc:
        cancel_one(db_session, quotation.id)
    assert exc.value.code == "QUOTATION_CANCELLED"


def test_atomic_transition_blocks_out_of_order_update(catalog, db_session):
    quotation = catalog.quotation(catalog.supplier("A"), status=QuotationStatus.approved)

    result = atomic_transition_quotation_status(
        db=db_session,
        quotation_id=quotation.id,
        to_status=QuotationStatus.negotiation,
        allowed_from={QuotationStatus.pending, QuotationStatus.negotiation},
    )
    db_session.commit()

    assert result.updated is False
    assert result.rowcount == 0
    assert _status(db_session, quotation.id) == QuotationStatus.approved
