"""
Order endpoints
===============

POST /api/v1/orders                      -- create an order
GET  /api/v1/orders/pending              -- oldest pending orders first
GET  /api/v1/orders/by-no/{order_no}     -- look up by business number
GET  /api/v1/orders/{order_id}           -- order detail
POST /api/v1/orders/{order_id}/accept    -- driver claims the order
POST /api/v1/orders/{order_id}/arrive    -- driver at pickup
POST /api/v1/orders/{order_id}/start     -- passenger on board
POST /api/v1/orders/{order_id}/complete  -- trip finished, final price
POST /api/v1/orders/{order_id}/cancel    -- cancel before the trip starts
POST /api/v1/orders/{order_id}/timeout   -- nobody accepted in time
POST /api/v1/orders/{order_id}/pay       -- record payment
POST /api/v1/orders/{order_id}/rate      -- passenger or driver rating
POST /api/v1/orders/{order_id}/route     -- append a GPS sample

Caller identity (``driver_id``, ``cancelled_by``) is taken as already
authorized by the gateway.
"""

from fastapi import APIRouter, Depends, Query, Request

from ridehail.api.dependencies import get_lifecycle
from ridehail.api.middleware import limiter
from ridehail.api.schemas import (
    AcceptRequest,
    CancelRequest,
    CompleteRequest,
    ErrorResponse,
    OrderCreateRequest,
    OrderResponse,
    PayRequest,
    RateRequest,
    RoutePointRequest,
)
from ridehail.domain.entities import Location, PaymentInfo
from ridehail.services.lifecycle import OrderLifecycle

router = APIRouter(
    prefix="/orders",
    tags=["orders"],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


@router.post(
    "",
    status_code=201,
    response_model=OrderResponse,
    summary="Create a ride order",
)
@limiter.limit("100/minute")
async def create_order(
    request: Request,
    body: OrderCreateRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await lifecycle.create_order(
        body.passenger_id,
        Location(body.start.latitude, body.start.longitude),
        Location(body.end.latitude, body.end.longitude),
        body.start_address,
        body.end_address,
        order_type=body.order_type,
        reserved_at=body.reserved_at,
        estimated_price=body.estimated_price,
        remark=body.remark,
    )
    return OrderResponse.model_validate(order)


@router.get(
    "/pending",
    response_model=list[OrderResponse],
    summary="List pending orders, oldest first",
)
@limiter.limit("100/minute")
async def list_pending(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    orders = await lifecycle.list_pending(limit)
    return [OrderResponse.model_validate(o) for o in orders]


@router.get(
    "/by-no/{order_no}",
    response_model=OrderResponse,
    summary="Get an order by its order number",
)
@limiter.limit("100/minute")
async def get_order_by_no(
    request: Request,
    order_no: str,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.model_validate(await lifecycle.get_order_by_no(order_no))


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
@limiter.limit("100/minute")
async def get_order(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.model_validate(await lifecycle.get_order(order_id))


# ── Transitions ───────────────────────────────────────────────────────


@router.post(
    "/{order_id}/accept",
    response_model=OrderResponse,
    summary="Accept a pending order (first driver wins)",
)
@limiter.limit("100/minute")
async def accept_order(
    request: Request,
    order_id: int,
    body: AcceptRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await lifecycle.accept_order(order_id, body.driver_id)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/arrive",
    response_model=OrderResponse,
    summary="Driver arrived at the pickup point",
)
@limiter.limit("100/minute")
async def driver_arrived(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.model_validate(await lifecycle.driver_arrived(order_id))


@router.post(
    "/{order_id}/start",
    response_model=OrderResponse,
    summary="Start the trip",
)
@limiter.limit("100/minute")
async def start_trip(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.model_validate(await lifecycle.start_trip(order_id))


@router.post(
    "/{order_id}/complete",
    response_model=OrderResponse,
    summary="Complete the trip with its final price",
)
@limiter.limit("100/minute")
async def complete_trip(
    request: Request,
    order_id: int,
    body: CompleteRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await lifecycle.complete_trip(
        order_id,
        body.actual_price,
        fare=body.fare.to_fare() if body.fare else None,
        actual_distance=body.actual_distance,
        actual_duration=body.actual_duration,
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order that has not started",
)
@limiter.limit("100/minute")
async def cancel_order(
    request: Request,
    order_id: int,
    body: CancelRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await lifecycle.cancel_order(order_id, body.reason, body.cancelled_by)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/timeout",
    response_model=OrderResponse,
    summary="Expire a pending order",
)
@limiter.limit("100/minute")
async def timeout_order(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.model_validate(await lifecycle.timeout_order(order_id))


# ── Post-trip ─────────────────────────────────────────────────────────


@router.post(
    "/{order_id}/pay",
    response_model=OrderResponse,
    summary="Record payment for an order",
)
@limiter.limit("100/minute")
async def pay_order(
    request: Request,
    order_id: int,
    body: PayRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    payment = PaymentInfo(body.method, body.transaction_id, body.paid_at)
    return OrderResponse.model_validate(await lifecycle.pay_order(order_id, payment))


@router.post(
    "/{order_id}/rate",
    response_model=OrderResponse,
    summary="Rate a completed order",
)
@limiter.limit("100/minute")
async def rate_order(
    request: Request,
    order_id: int,
    body: RateRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await lifecycle.rate_order(
        order_id, body.is_passenger_rating, body.rating, body.comment
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/route",
    response_model=OrderResponse,
    summary="Append a GPS sample to the trip route",
)
@limiter.limit("600/minute")
async def record_route_point(
    request: Request,
    order_id: int,
    body: RoutePointRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await lifecycle.record_route_point(
        order_id, body.latitude, body.longitude, body.timestamp
    )
    return OrderResponse.model_validate(order)
