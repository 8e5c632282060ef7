# ruff: noqa: B008

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from quotemaster import models
from quotemaster.api.deps import require_viewer
from quotemaster.database import get_db
from quotemaster.schemas import ComparisonMatrixRead, QuotationSummaryRead
from quotemaster.services import filters, target_price_export
from quotemaster.services.comparison_service import build_comparison_matrix

router = APIRouter(prefix="/comparison", tags=["comparison"])
logger = logging.getLogger("quotemaster.comparison")


@router.get("/matrix", response_model=ComparisonMatrixRead)
def get_comparison_matrix(
    period: str = Query(..., description="Pricing period, YYYY-MM or YYYY-MM-DD"),
    region: str = Query(...),
    categories: List[str] = Query(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_viewer),
):
    matrix = build_comparison_matrix(db, period=period, region=region, categories=categories)
    return ComparisonMatrixRead.model_validate(matrix)


@router.get("/categories", response_model=List[str])
def list_categories(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_viewer),
):
    return filters.list_categories(db)


@router.get("/regions", response_model=List[str])
def list_regions(
    period: str = Query(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_viewer),
):
    return filters.list_regions(db, period)


@router.get("/categories/available", response_model=List[str])
def list_categories_for_period_and_region(
    period: str = Query(...),
    region: str = Query(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_viewer),
):
    return filters.list_categories_for(db, period, region)


@router.get("/summary", response_model=QuotationSummaryRead)
def get_quotation_summary(
    period: str = Query(...),
    region: str = Query(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_viewer),
):
    return filters.quotation_summary(db, period, region)


@router.get("/target-prices.csv")
def export_target_prices_csv(
    period: str = Query(...),
    region: str = Query(...),
    categories: List[str] = Query(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_viewer),
):
    matrix = build_comparison_matrix(db, period=period, region=region, categories=categories)
    content = target_price_export.build_target_price_csv_bytes(matrix)
    logger.info(
        "target_price_export",
        extra={"period": matrix.period, "region": matrix.region, "products": len(matrix.products)},
    )
    filename = f"target_prices_{matrix.period}_{matrix.region}.csv".replace(" ", "_")
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
