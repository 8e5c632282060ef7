from quotemaster.models.domain import (
    AuditLog,
    DemandStatus,
    KitchenPeriodDemand,
    PriceHistory,
    PriceHistoryType,
    Product,
    Quotation,
    QuotationStatus,
    QuoteItem,
    Role,
    RoleName,
    Supplier,
    User,
)

__all__ = [
    "AuditLog",
    "DemandStatus",
    "KitchenPeriodDemand",
    "PriceHistory",
    "PriceHistoryType",
    "Product",
    "Quotation",
    "QuotationStatus",
    "QuoteItem",
    "Role",
    "RoleName",
    "Supplier",
    "User",
]
