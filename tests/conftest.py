import os
import tempfile
import uuid

# CRITICAL: Set environment variables BEFORE any quotemaster imports
# These must be set before quotemaster.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_quotemaster.db")
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"

import pytest
from sqlalchemy.orm import sessionmaker

from quotemaster import models
from quotemaster.database import Base, get_db, engine as app_engine
from quotemaster.main import app

TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True
)


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """
    Create all tables before each test and drop them afterwards.
    Also restores dependency overrides so role stubs don't leak between tests.
    """
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class Catalog:
    """Small helpers to seed products, suppliers and quotations."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def product(
        self,
        code: str,
        *,
        category: str = "Vegetables",
        base_price: float | None = 100.0,
        base_quantity: float | None = 10.0,
        unit: str = "kg",
        active: bool = True,
        name: str | None = None,
    ) -> models.Product:
        return self._save(
            models.Product(
                code=code,
                name=name or f"Product {code}",
                specification=f"Spec {code}",
                unit=unit,
                category=category,
                base_price=base_price,
                base_quantity=base_quantity,
                active=active,
            )
        )

    def supplier(self, code: str, *, name: str | None = None, active: bool = True) -> models.Supplier:
        return self._save(models.Supplier(code=code, name=name or f"Supplier {code}", active=active))

    def quotation(
        self,
        supplier: models.Supplier,
        *,
        period: str = "2024-02",
        region: str = "North",
        status: models.QuotationStatus = models.QuotationStatus.pending,
    ) -> models.Quotation:
        return self._save(
            models.Quotation(
                quotation_code=f"Q-{uuid.uuid4().hex[:10]}",
                period=period,
                region=region,
                supplier_id=supplier.id,
                status=status,
            )
        )

    def item(
        self,
        quotation: models.Quotation,
        product: models.Product,
        *,
        initial: float | None = None,
        negotiated: float | None = None,
        approved: float | None = None,
        vat: float = 0.0,
        quantity: float | None = None,
    ) -> models.QuoteItem:
        return self._save(
            models.QuoteItem(
                quotation_id=quotation.id,
                product_id=product.id,
                initial_price=initial,
                negotiated_price=negotiated,
                approved_price=approved,
                vat_percentage=vat,
                quantity=quantity,
            )
        )

    def demand(
        self,
        product: models.Product,
        quantity: float,
        *,
        period: str = "2024-02",
        kitchen_id: int = 1,
        status: models.DemandStatus = models.DemandStatus.active,
    ) -> models.KitchenPeriodDemand:
        return self._save(
            models.KitchenPeriodDemand(
                kitchen_id=kitchen_id,
                product_id=product.id,
                period=period,
                quantity=quantity,
                status=status,
            )
        )


@pytest.fixture
def catalog(db_session):
    return Catalog(db_session)
