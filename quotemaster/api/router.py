from fastapi import APIRouter

from quotemaster.api.routes import comparison, quotations

api_router = APIRouter()
api_router.include_router(comparison.router)
api_router.include_router(quotations.router)
