from quotemaster.schemas.comparison import (
    AvailableSupplierRead,
    ComparisonMatrixRead,
    GroupedOverviewRead,
    MatrixProductRead,
    MatrixSupplierRead,
    QuotationSummaryRead,
    SupplierPerformanceRead,
    SupplierQuoteRead,
)
from quotemaster.schemas.quotations import (
    ApprovalRead,
    ApproveQuotationRequest,
    BatchApprovalRead,
    BatchNegotiationRead,
    CancellationRead,
    NegotiateAndExportRequest,
    NegotiationRead,
    QuotationIdsRequest,
)

__all__ = [
    "ApprovalRead",
    "ApproveQuotationRequest",
    "AvailableSupplierRead",
    "BatchApprovalRead",
    "BatchNegotiationRead",
    "CancellationRead",
    "ComparisonMatrixRead",
    "GroupedOverviewRead",
    "MatrixProductRead",
    "MatrixSupplierRead",
    "NegotiateAndExportRequest",
    "NegotiationRead",
    "QuotationIdsRequest",
    "QuotationSummaryRead",
    "SupplierPerformanceRead",
    "SupplierQuoteRead",
]
