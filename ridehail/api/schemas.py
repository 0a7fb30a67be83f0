"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ridehail.domain.entities import Driver, FareBreakdown, completion_rate
from ridehail.domain.enums import (
    DriverStatus,
    DriverVerifyStatus,
    OrderStatus,
    OrderType,
    PayStatus,
)


# ── Shared ────────────────────────────────────────────────────────────


class LocationSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    model_config = {"from_attributes": True}


class FareSchema(BaseModel):
    base: Decimal = Field(Decimal("0"), ge=0)
    distance: Decimal = Field(Decimal("0"), ge=0)
    duration: Decimal = Field(Decimal("0"), ge=0)
    night: Decimal = Field(Decimal("0"), ge=0)
    other: Decimal = Field(Decimal("0"), ge=0)
    coupon_discount: Decimal = Field(Decimal("0"), ge=0)

    model_config = {"from_attributes": True}

    def to_fare(self) -> FareBreakdown:
        return FareBreakdown(
            base=self.base,
            distance=self.distance,
            duration=self.duration,
            night=self.night,
            other=self.other,
            coupon_discount=self.coupon_discount,
        )


# ── Requests ──────────────────────────────────────────────────────────


class OrderCreateRequest(BaseModel):
    passenger_id: int
    start: LocationSchema
    end: LocationSchema
    start_address: str = Field(..., max_length=200)
    end_address: str = Field(..., max_length=200)
    order_type: OrderType = OrderType.IMMEDIATE
    reserved_at: Optional[datetime] = None
    estimated_price: Optional[Decimal] = Field(
        None,
        ge=0,
        description="Caller-quoted price; omitted means the fare policy quotes it.",
    )
    remark: Optional[str] = None


class AcceptRequest(BaseModel):
    driver_id: int


class CompleteRequest(BaseModel):
    actual_price: Decimal = Field(..., ge=0)
    fare: Optional[FareSchema] = Field(
        None, description="Itemized fare; its total must equal actual_price."
    )
    actual_distance: Optional[Decimal] = Field(None, ge=0)
    actual_duration: Optional[int] = Field(None, ge=0)


class CancelRequest(BaseModel):
    reason: str = Field(..., max_length=50)
    cancelled_by: int


class PayRequest(BaseModel):
    method: str = Field(..., max_length=32)
    transaction_id: str = Field(..., max_length=64)
    paid_at: Optional[datetime] = None


class RateRequest(BaseModel):
    is_passenger_rating: bool
    rating: float = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class RoutePointRequest(LocationSchema):
    timestamp: Optional[datetime] = None


class AvailabilityRequest(BaseModel):
    online: bool


# ── Responses ─────────────────────────────────────────────────────────


class FareResponse(FareSchema):
    total: Decimal


class RoutePointResponse(BaseModel):
    latitude: float
    longitude: float
    timestamp: datetime

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    method: str
    transaction_id: str
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    order_no: str
    passenger_id: int
    driver_id: Optional[int] = None
    order_type: OrderType
    status: OrderStatus
    pay_status: PayStatus
    start: LocationSchema
    end: LocationSchema
    start_address: str
    end_address: str
    estimated_distance: Optional[Decimal] = None
    estimated_duration: Optional[int] = None
    estimated_price: Optional[Decimal] = None
    actual_distance: Optional[Decimal] = None
    actual_duration: Optional[int] = None
    actual_price: Optional[Decimal] = None
    fare: FareResponse
    reserved_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    remark: Optional[str] = None
    route: list[RoutePointResponse] = []
    passenger_rating: Optional[float] = None
    passenger_comment: Optional[str] = None
    driver_rating: Optional[float] = None
    driver_comment: Optional[str] = None
    payment_info: Optional[PaymentResponse] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DriverResponse(BaseModel):
    id: int
    name: str
    car_plate: str
    status: DriverStatus
    verify_status: DriverVerifyStatus
    location: Optional[LocationSchema] = None
    last_location_update: Optional[datetime] = None
    rating: float
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    completion_rate: int
    total_income: Decimal
    today_income: Decimal

    @classmethod
    def from_entity(cls, driver: Driver) -> "DriverResponse":
        return cls(
            id=driver.id,
            name=driver.name,
            car_plate=driver.car_plate,
            status=driver.status,
            verify_status=driver.verify_status,
            location=(
                LocationSchema.model_validate(driver.location)
                if driver.location
                else None
            ),
            last_location_update=driver.last_location_update,
            rating=driver.rating,
            total_orders=driver.total_orders,
            completed_orders=driver.completed_orders,
            cancelled_orders=driver.cancelled_orders,
            completion_rate=completion_rate(driver),
            total_income=driver.total_income,
            today_income=driver.today_income,
        )


class NearbyDriverResponse(DriverResponse):
    distance_km: float


class OrderStatsResponse(BaseModel):
    by_status: dict[OrderStatus, int]
    total_orders: int
    today_orders: int
    today_revenue: Decimal


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: str
