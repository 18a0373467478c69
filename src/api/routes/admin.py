"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health        -- simple health check
POST /api/v1/admin/cleanup       -- run one expired-order sweep now
"""

from fastapi import APIRouter, Request

from src.api.middleware import limiter
from src.api.schemas import CleanupReportResponse, HealthResponse
from src.workers.cleanup import run_cleanup_cycle

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/cleanup",
    response_model=CleanupReportResponse,
    summary="Trigger the unpaid-order cleanup immediately",
)
@limiter.limit("10/minute")
async def trigger_cleanup(request: Request):
    report = await run_cleanup_cycle()
    return CleanupReportResponse.model_validate(report)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
