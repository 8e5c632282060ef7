from quotemaster.services.audit import audit_event
from quotemaster.services.batch_operations import approve_many, batch_negotiate
from quotemaster.services.comparison_service import build_comparison_matrix
from quotemaster.services.quotation_lifecycle import approve_one, cancel_one, negotiate_one

__all__ = [
    "approve_many",
    "approve_one",
    "audit_event",
    "batch_negotiate",
    "build_comparison_matrix",
    "cancel_one",
    "negotiate_one",
]
