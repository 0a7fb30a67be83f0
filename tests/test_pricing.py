"""Unit tests for fare quoting."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ridehail.config import Settings
from ridehail.domain.entities import Location
from ridehail.domain.pricing import (
    NightSurchargePricing,
    PricingEngine,
    StandardPricing,
)

NOON = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
SHANGHAI = timezone(timedelta(hours=8))
LATE = datetime(2026, 3, 14, 23, 30, tzinfo=timezone.utc)
EARLY = datetime(2026, 3, 15, 4, 59, tzinfo=timezone.utc)
DAWN = datetime(2026, 3, 15, 5, 0, tzinfo=timezone.utc)


class TestPricingStrategies:
    def setup_method(self):
        self.standard = StandardPricing(Decimal("10.00"), Decimal("2.50"), Decimal("0.50"))
        self.night = NightSurchargePricing(self.standard, Decimal("0.20"), 23, 5)

    def test_standard_pricing(self):
        fare = self.standard.quote(10.0, 20, NOON)
        assert fare.base == Decimal("10.00")
        assert fare.distance == Decimal("25.00")
        assert fare.duration == Decimal("10.00")
        assert fare.total == Decimal("45.00")  # 10 + 10*2.5 + 20*0.5

    def test_distance_component_rounds_to_cents(self):
        fare = self.standard.quote(3.333, 0, NOON)
        assert fare.distance == Decimal("8.33")

    def test_no_surcharge_by_day(self):
        assert self.night.quote(10.0, 20, NOON).night == Decimal("0.00")

    def test_surcharge_at_night(self):
        fare = self.night.quote(10.0, 20, LATE)
        assert fare.night == Decimal("9.00")  # 45 * 0.2
        assert fare.total == Decimal("54.00")

    @pytest.mark.parametrize("moment, expected", [(LATE, True), (EARLY, True), (DAWN, False), (NOON, False)])
    def test_window_wraps_midnight(self, moment, expected):
        assert self.night.is_night(moment) is expected

    def test_non_wrapping_window(self):
        evening = NightSurchargePricing(self.standard, Decimal("0.1"), 18, 22)
        assert evening.is_night(datetime(2026, 3, 14, 19, 0))
        assert not evening.is_night(datetime(2026, 3, 14, 22, 0))


class TestPricingEngine:
    def setup_method(self):
        self.engine = PricingEngine.from_settings(Settings())

    def test_duration_from_average_speed(self):
        assert self.engine.estimate_duration(15.0) == 30  # 15 km at 30 km/h

    def test_duration_at_least_one_minute(self):
        assert self.engine.estimate_duration(0.0) == 1

    def test_estimate_is_itemized(self):
        # People's Square -> Wujiaochang, roughly 8.3 km
        estimate = self.engine.estimate(
            Location(31.23, 121.47), Location(31.30, 121.50), NOON
        )
        assert Decimal("8.0") < estimate.distance_km < Decimal("8.6")
        assert estimate.duration_minutes == 17
        assert estimate.price == estimate.fare.total
        assert estimate.price > Decimal("10.00")
        assert estimate.fare.night == Decimal("0.00")

    def test_night_window_is_local_to_pricing_timezone(self):
        # 15:30 UTC is 23:30 in Shanghai
        a, b = Location(31.23, 121.47), Location(31.30, 121.50)
        as_utc = datetime(2026, 3, 14, 15, 30, tzinfo=timezone.utc)
        as_local = as_utc.astimezone(SHANGHAI)

        utc_quote = self.engine.estimate(a, b, as_utc)
        local_quote = self.engine.estimate(a, b, as_local)
        assert utc_quote.fare.night > Decimal("0")
        assert utc_quote.fare == local_quote.fare

    def test_morning_utc_is_daytime_locally(self):
        # 23:30 UTC is 07:30 in Shanghai
        late_utc = datetime(2026, 3, 14, 23, 30, tzinfo=timezone.utc)
        estimate = self.engine.estimate(
            Location(31.23, 121.47), Location(31.30, 121.50), late_utc
        )
        assert estimate.fare.night == Decimal("0.00")
