from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class SupplierQuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: int
    quotation_id: int
    product_id: int
    product_code: str
    product_name: str
    supplier_id: int
    supplier_code: str
    supplier_name: str
    initial_price: Optional[float] = None
    negotiated_price: Optional[float] = None
    approved_price: Optional[float] = None
    vat_rate: float
    currency: str
    quantity: float
    unit: str
    price_per_unit: float
    total_price: float
    vat_amount: float
    total_price_with_vat: float
    has_price: bool
    has_best_price: bool
    previous_price_from_this_supplier: Optional[float] = None
    variance_percentage: Optional[float] = None
    variance_trend: Optional[str] = None


class MatrixProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    product_code: str
    product_name: str
    specification: Optional[str] = None
    unit: str
    category: str
    quantity: float
    quantity_source: str
    base_quantity: float
    base_price: Optional[float] = None
    suppliers: Dict[int, SupplierQuoteRead]
    best_supplier_id: Optional[int] = None
    best_price: Optional[float] = None
    previous_approved_price: Optional[float] = None
    previous_period: Optional[str] = None
    best_price_variance_percentage: Optional[float] = None
    best_price_trend: Optional[str] = None


class MatrixSupplierRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    supplier_id: int
    supplier_code: str
    supplier_name: str
    total_products: int
    quoted_products: int
    coverage_percentage: int


class AvailableSupplierRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    supplier_id: int
    supplier_code: str
    supplier_name: str
    quotation_id: Optional[int] = None
    quotation_status: Optional[str] = None
    quotation_last_updated: Optional[datetime] = None
    total_quotations: int
    pending_quotations: int
    negotiation_quotations: int
    approved_quotations: int


class ValueVarianceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    difference: float
    percentage: float


class SupplierPerformanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    supplier_id: int
    supplier_code: str
    supplier_name: str
    product_count: int
    total_base_value: float
    total_previous_value: Optional[float] = None
    total_initial_value: float
    total_current_value: float
    has_any_previous_data: bool
    variance_vs_base: ValueVarianceRead
    variance_vs_previous: Optional[ValueVarianceRead] = None
    variance_vs_initial: ValueVarianceRead
    quotation_status: Optional[str] = None


class CategoryOverviewRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    supplier_performances: List[SupplierPerformanceRead]


class RegionOverviewRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    region: str
    categories: List[CategoryOverviewRead]


class GroupedOverviewRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    regions: List[RegionOverviewRead]


class ComparisonMatrixRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: str
    region: str
    categories: List[str]
    products: List[MatrixProductRead]
    suppliers: List[MatrixSupplierRead]
    grouped_overview: GroupedOverviewRead
    available_suppliers: List[AvailableSupplierRead]
    previous_period: Optional[str] = None


class QuotationSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: str
    region: str
    total: int
    pending: int
    negotiation: int
    approved: int
    cancelled: int
    suppliers: int
