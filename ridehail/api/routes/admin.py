"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health -- simple health check
GET /api/v1/admin/stats  -- order counts per status and today's revenue
"""

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_lifecycle
from ridehail.api.middleware import limiter
from ridehail.api.schemas import HealthResponse, OrderStatsResponse
from ridehail.services.lifecycle import OrderLifecycle

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/stats",
    response_model=OrderStatsResponse,
    summary="Order statistics",
)
@limiter.limit("100/minute")
async def order_stats(
    request: Request,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    stats = await lifecycle.order_stats()
    return OrderStatsResponse(
        by_status=stats.by_status,
        total_orders=stats.total_orders,
        today_orders=stats.today_orders,
        today_revenue=stats.today_revenue,
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
