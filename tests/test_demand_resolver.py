from quotemaster.models.domain import DemandStatus
from quotemaster.services.comparison_service import build_comparison_matrix
from quotemaster.services.demand_resolver import (
    SOURCE_BASE_QUANTITY,
    SOURCE_KITCHEN_DEMAND,
    load_active_demands,
    resolve_quantities,
    resolve_quantity,
)


def test_kitchen_demand_wins_over_base_quantity():
    resolved = resolve_quantity(10.0, 25.0)
    assert resolved.quantity == 25.0
    assert resolved.source == SOURCE_KITCHEN_DEMAND


def test_base_quantity_used_without_demand():
    resolved = resolve_quantity(10.0, None)
    assert resolved.quantity == 10.0
    assert resolved.source == SOURCE_BASE_QUANTITY


def test_quantity_never_zero():
    assert resolve_quantity(None, None).quantity == 1.0
    assert resolve_quantity(0.0, None).quantity == 1.0
    assert resolve_quantity(-3.0, None).quantity == 1.0
    zero_demand = resolve_quantity(10.0, 0.0)
    assert zero_demand.quantity == 1.0
    assert zero_demand.source == SOURCE_KITCHEN_DEMAND


def test_resolve_quantities_covers_every_product():
    resolved = resolve_quantities({1: 5.0, 2: None}, {2: 7.0, 3: 9.0})
    assert set(resolved) == {1, 2}
    assert resolved[1].quantity == 5.0
    assert resolved[2].quantity == 7.0


def test_load_active_demands_sums_kitchens_and_skips_inactive(catalog, db_session):
    rice = catalog.product("R1")
    milk = catalog.product("M1")
    catalog.demand(rice, 12.0, kitchen_id=1)
    catalog.demand(rice, 8.0, kitchen_id=2)
    catalog.demand(rice, 50.0, kitchen_id=3, status=DemandStatus.inactive)
    catalog.demand(rice, 40.0, kitchen_id=1, period="2024-03")
    catalog.demand(milk, 3.0, kitchen_id=1)

    demands = load_active_demands(db_session, period="2024-02", product_ids=[rice.id])

    assert demands == {rice.id: 20.0}
    assert load_active_demands(db_session, period="2024-02", product_ids=[]) == {}


def test_matrix_quantities_come_from_demand(catalog, db_session):
    rice = catalog.product("R1", base_quantity=10.0)
    beans = catalog.product("B1", base_quantity=0.0)
    supplier = catalog.supplier("A")
    quotation = catalog.quotation(supplier)
    catalog.item(quotation, rice, initial=5.0)
    catalog.demand(rice, 30.0)

    matrix = build_comparison_matrix(
        db_session, period="2024-02", region="North", categories=["Vegetables"]
    )

    assert matrix.product(rice.id).quantity == 30.0
    assert matrix.product(rice.id).quantity_source == SOURCE_KITCHEN_DEMAND
    assert matrix.quote(rice.id, supplier.id).total_price == 150.0
    assert matrix.product(beans.id).quantity == 1.0
    assert matrix.product(beans.id).quantity_source == SOURCE_BASE_QUANTITY
