from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QuotationIdsRequest(BaseModel):
    quotation_ids: List[int] = Field(..., min_length=1)

    @field_validator("quotation_ids")
    @classmethod
    def unique_positive_ids(cls, v: List[int]) -> List[int]:
        if any(i <= 0 for i in v):
            raise ValueError("quotation ids must be positive")
        return list(dict.fromkeys(v))


class ApproveQuotationRequest(BaseModel):
    # Quote item id -> final price for that item.
    price_overrides: Optional[Dict[int, float]] = None

    @field_validator("price_overrides")
    @classmethod
    def non_negative_prices(cls, v: Optional[Dict[int, float]]) -> Optional[Dict[int, float]]:
        if v and any(price < 0 for price in v.values()):
            raise ValueError("override prices must not be negative")
        return v


class NegotiateAndExportRequest(BaseModel):
    period: str = Field(..., min_length=1, max_length=10)
    region: str = Field(..., min_length=1, max_length=128)
    categories: List[str] = Field(..., min_length=1)


class NegotiationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quotation_id: int
    status: str
    changed: bool


class ApprovalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quotation_id: int
    approved_items: int
    total_approved_value: float
    history_rows_written: int


class CancellationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quotation_id: int
    status: str


class BatchNegotiationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    updated_count: int
    affected_suppliers: List[str]
    quotation_ids: List[int]


class BatchApprovalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    approved_count: int
    affected_suppliers: List[str]
    quotation_ids: List[int]
    finalized_items: int
    history_rows_written: int
