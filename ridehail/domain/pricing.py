"""
Fare Quoting  (Strategy Pattern)
================================

Formula
-------
Price = Base + Distance x Rate_Per_KM + Duration x Rate_Per_Minute
        + Night_Surcharge + Other - Coupon_Discount

* **Night_Surcharge** = (Base + Distance + Duration) x rate, only for trips
  starting inside the night window (default 23:00-05:00).  The window is read
  on the local clock of the pricing timezone, so one instant quotes the same
  whatever offset it carries; naive datetimes are taken as already local.

The lifecycle engine does not own the pricing policy: it asks a
``PricingEngine`` for an itemized estimate at order creation and records
whatever itemized fare the caller reports at completion.

Complexity: O(1) per quote.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from .distance import haversine_km
from .entities import FareBreakdown, Location, to_money


@dataclass(frozen=True)
class TripEstimate:
    distance_km: Decimal
    duration_minutes: int
    fare: FareBreakdown

    @property
    def price(self) -> Decimal:
        return self.fare.total


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def quote(
        self, distance_km: float, duration_minutes: int, departure: datetime
    ) -> FareBreakdown: ...


class StandardPricing(PricingStrategy):
    def __init__(
        self,
        base_fare: Decimal,
        rate_per_km: Decimal,
        rate_per_minute: Decimal,
    ):
        self.base_fare = to_money(base_fare)
        self.rate_per_km = Decimal(rate_per_km)
        self.rate_per_minute = Decimal(rate_per_minute)

    def quote(
        self, distance_km: float, duration_minutes: int, departure: datetime
    ) -> FareBreakdown:
        return FareBreakdown(
            base=self.base_fare,
            distance=to_money(Decimal(str(distance_km)) * self.rate_per_km),
            duration=to_money(duration_minutes * self.rate_per_minute),
        )


class NightSurchargePricing(PricingStrategy):
    """Wraps another strategy and adds a surcharge inside the night window."""

    def __init__(
        self,
        inner: PricingStrategy,
        surcharge_rate: Decimal,
        start_hour: int = 23,
        end_hour: int = 5,
        tz: Optional[tzinfo] = None,
    ):
        self.inner = inner
        self.surcharge_rate = Decimal(surcharge_rate)
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.tz = tz

    def local_hour(self, moment: datetime) -> int:
        if self.tz is None or moment.tzinfo is None:
            return moment.hour
        return moment.astimezone(self.tz).hour

    def is_night(self, moment: datetime) -> bool:
        hour = self.local_hour(moment)
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        # window wraps midnight
        return hour >= self.start_hour or hour < self.end_hour

    def quote(
        self, distance_km: float, duration_minutes: int, departure: datetime
    ) -> FareBreakdown:
        fare = self.inner.quote(distance_km, duration_minutes, departure)
        if not self.is_night(departure):
            return fare
        subtotal = fare.base + fare.distance + fare.duration
        return FareBreakdown(
            base=fare.base,
            distance=fare.distance,
            duration=fare.duration,
            night=to_money(subtotal * self.surcharge_rate),
            other=fare.other,
            coupon_discount=fare.coupon_discount,
        )


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the lifecycle engine at order creation."""

    def __init__(self, strategy: PricingStrategy, average_speed_kmh: float = 30.0):
        self.strategy = strategy
        self.average_speed_kmh = average_speed_kmh

    @classmethod
    def from_settings(cls, settings) -> "PricingEngine":
        standard = StandardPricing(
            settings.base_fare, settings.rate_per_km, settings.rate_per_minute
        )
        strategy = NightSurchargePricing(
            standard,
            settings.night_surcharge_rate,
            settings.night_start_hour,
            settings.night_end_hour,
            ZoneInfo(settings.pricing_timezone),
        )
        return cls(strategy, settings.average_speed_kmh)

    def estimate_duration(self, distance_km: float) -> int:
        if self.average_speed_kmh <= 0:
            return 0
        return max(1, round(distance_km / self.average_speed_kmh * 60))

    def estimate(
        self, start: Location, end: Location, departure: datetime
    ) -> TripEstimate:
        distance = haversine_km(start, end)
        duration = self.estimate_duration(distance)
        fare = self.strategy.quote(distance, duration, departure)
        return TripEstimate(
            distance_km=to_money(distance),
            duration_minutes=duration,
            fare=fare,
        )
