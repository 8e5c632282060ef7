import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from quotemaster import models
from quotemaster.api import deps
from quotemaster.main import app
from quotemaster.models.domain import QuotationStatus, RoleName


def _stub_user(role_name: RoleName):
    class StubUser:
        def __init__(self):
            self.id = 1
            self.email = f"{role_name.value}@test.com"
            self.active = True
            self.role = type("Role", (), {"name": role_name})()

    return StubUser()


def _login_as(role_name: RoleName):
    app.dependency_overrides[deps.get_current_user] = lambda: _stub_user(role_name)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def seeded(catalog):
    product = catalog.product("X1")
    a = catalog.quotation(catalog.supplier("A", name="Alpha"))
    b = catalog.quotation(catalog.supplier("B", name="Beta"), status=QuotationStatus.negotiation)
    done = catalog.quotation(catalog.supplier("C", name="Gamma"), status=QuotationStatus.approved)
    item_a = catalog.item(a, product, initial=90.0)
    catalog.item(b, product, initial=95.0, negotiated=92.0)
    return {"a": a.id, "b": b.id, "done": done.id, "item_a": item_a.id}


def _status(db, quotation_id):
    db.expire_all()
    return db.get(models.Quotation, quotation_id).status


@pytest.mark.parametrize(
    "role_name, expected",
    [
        (RoleName.viewer, 403),
        (RoleName.procurement_staff, 200),
        (RoleName.procurement_manager, 200),
        (RoleName.admin, 200),
    ],
)
def test_negotiate_role_matrix(client, seeded, role_name, expected):
    _login_as(role_name)
    r = client.post(f"/api/quotations/{seeded['a']}/negotiate")
    assert r.status_code == expected


@pytest.mark.parametrize(
    "role_name, expected",
    [
        (RoleName.viewer, 403),
        (RoleName.procurement_staff, 403),
        (RoleName.procurement_manager, 200),
        (RoleName.admin, 200),
    ],
)
def test_approve_requires_approver(client, seeded, role_name, expected):
    _login_as(role_name)
    r = client.post(f"/api/quotations/{seeded['a']}/approve")
    assert r.status_code == expected


def test_staff_cannot_approve_and_nothing_changes(client, seeded, db_session):
    _login_as(RoleName.procurement_staff)
    r = client.post(f"/api/quotations/{seeded['a']}/approve")
    assert r.status_code == 403
    assert r.json()["code"] == "UNAUTHORIZED"
    assert _status(db_session, seeded["a"]) == QuotationStatus.pending


def test_approve_with_override(client, seeded, db_session):
    _login_as(RoleName.procurement_manager)
    r = client.post(
        f"/api/quotations/{seeded['a']}/approve",
        json={"price_overrides": {str(seeded["item_a"]): 80.0}},
    )
    assert r.status_code == 200
    body = r.json()
    assert body == {
        "quotation_id": seeded["a"],
        "approved_items": 1,
        "total_approved_value": 80.0,
        "history_rows_written": 1,
    }
    db_session.expire_all()
    assert db_session.get(models.QuoteItem, seeded["item_a"]).approved_price == 80.0


def test_approve_negative_override_is_422(client, seeded):
    _login_as(RoleName.procurement_manager)
    r = client.post(
        f"/api/quotations/{seeded['a']}/approve",
        json={"price_overrides": {str(seeded["item_a"]): -5}},
    )
    assert r.status_code == 422


def test_approve_already_approved_is_conflict(client, seeded):
    _login_as(RoleName.procurement_manager)
    r = client.post(f"/api/quotations/{seeded['done']}/approve")
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "ALREADY_APPROVED"
    assert body["kind"] == "invalid_state_transition"
    assert body["context"]["quotation_id"] == seeded["done"]


def test_unknown_quotation_is_404(client, seeded):
    _login_as(RoleName.procurement_manager)
    r = client.post("/api/quotations/99999/negotiate")
    assert r.status_code == 404
    assert r.json()["code"] == "QUOTATION_NOT_FOUND"


def test_cancel(client, seeded, db_session):
    _login_as(RoleName.procurement_manager)
    r = client.post(f"/api/quotations/{seeded['b']}/cancel")
    assert r.status_code == 200
    assert r.json() == {"quotation_id": seeded["b"], "status": "cancelled"}
    assert _status(db_session, seeded["b"]) == QuotationStatus.cancelled

    r = client.post(f"/api/quotations/{seeded['b']}/cancel")
    assert r.status_code == 409


def test_batch_negotiate_endpoint(client, seeded):
    _login_as(RoleName.procurement_staff)
    r = client.post(
        "/api/quotations/batch/negotiate",
        json={"quotation_ids": [seeded["a"], seeded["b"], seeded["done"]]},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["updated_count"] == 2
    assert body["affected_suppliers"] == ["Alpha", "Beta"]


def test_batch_negotiate_no_eligible_is_conflict(client, seeded):
    _login_as(RoleName.procurement_staff)
    r = client.post("/api/quotations/batch/negotiate", json={"quotation_ids": [seeded["done"]]})
    assert r.status_code == 409
    assert r.json()["code"] == "NO_ELIGIBLE_QUOTATIONS"


def test_batch_request_requires_ids(client, seeded):
    _login_as(RoleName.procurement_manager)
    assert client.post("/api/quotations/batch/approve", json={"quotation_ids": []}).status_code == 422
    assert client.post("/api/quotations/batch/approve", json={"quotation_ids": [0]}).status_code == 422


def test_batch_approve_endpoint(client, seeded, db_session):
    _login_as(RoleName.procurement_manager)
    r = client.post(
        "/api/quotations/batch/approve",
        json={"quotation_ids": [seeded["a"], seeded["b"], seeded["done"]]},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["approved_count"] == 2
    assert body["history_rows_written"] == 2
    assert _status(db_session, seeded["b"]) == QuotationStatus.approved

    prices = sorted(h.price for h in db_session.query(models.PriceHistory).all())
    assert prices == [90.0, 92.0]


def test_negotiate_export_returns_zip(client, seeded, db_session):
    _login_as(RoleName.procurement_staff)
    r = client.post(
        "/api/quotations/batch/negotiate-export",
        json={"period": "2024-02", "region": "North", "categories": ["Vegetables"]},
    )
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/zip"
    assert r.headers["X-Updated-Quotations"] == "1"
    assert "negotiation_2024-02_North.zip" in r.headers["content-disposition"]

    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        assert zf.namelist() == ["2024-02_North_A.csv"]
    assert _status(db_session, seeded["a"]) == QuotationStatus.negotiation


def test_request_id_is_recorded_on_audit_rows(client, seeded, db_session):
    _login_as(RoleName.procurement_manager)
    r = client.post(f"/api/quotations/{seeded['b']}/cancel", headers={"X-Request-ID": "req-cancel-1"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "req-cancel-1"

    r = client.post(
        "/api/quotations/batch/approve",
        json={"quotation_ids": [seeded["a"]]},
        headers={"X-Request-ID": "req-batch-2"},
    )
    assert r.status_code == 200

    db_session.expire_all()
    rows = {a.action: a.request_id for a in db_session.query(models.AuditLog).all()}
    assert rows == {"quotation.cancel": "req-cancel-1", "quotation.batch_approve": "req-batch-2"}
