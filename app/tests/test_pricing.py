import pytest
from datetime import date, datetime, timedelta
from pydantic import ValidationError

from app.core.enums import LineItemKind, Platform, ServiceType, VehicleClass
from app.core.errors import MalformedRequestError
from app.schemas.quote import (
    BookingRequest,
    InvalidInput,
    InvalidVehicleForService,
    PriceBreakdown,
    QuoteRequest,
    RouteUnavailable,
    ZoneRoute,
)
from app.services.holidays import StaticHolidayCalendar
from app.services.pricing import RateEngine, build_booking_request, to_money


MONDAY = datetime(2026, 3, 2, 10, 0)
TUESDAY = datetime(2026, 3, 3, 10, 0)
SATURDAY = datetime(2026, 3, 7, 10, 0)


def hourly(vehicle_class=VehicleClass.SEDAN, hours=4, pickup=SATURDAY, platform=Platform.RETAIL, codes=()):
    return BookingRequest(
        vehicle_class=vehicle_class,
        service_type=ServiceType.HOURLY,
        pickup_datetime=pickup,
        platform=platform,
        duration_hours=hours,
        discount_codes=codes,
    )


def airport(vehicle_class=VehicleClass.SEDAN, zone="central-virginia", dest="dca",
            pickup=SATURDAY, platform=Platform.RETAIL):
    return BookingRequest(
        vehicle_class=vehicle_class,
        service_type=ServiceType.AIRPORT,
        pickup_datetime=pickup,
        platform=platform,
        zone_route=ZoneRoute(pickup_zone=zone, destination=dest),
    )


def transfer(vehicle_class=VehicleClass.SEDAN, pickup=SATURDAY, platform=Platform.RETAIL):
    return BookingRequest(
        vehicle_class=vehicle_class,
        service_type=ServiceType.POINT_TO_POINT,
        pickup_datetime=pickup,
        platform=platform,
    )


class TestHourlyPricing:

    @pytest.mark.pricing
    def test_weekend_hourly_is_rate_times_hours(self, engine):
        res = engine.quote(hourly(hours=4))

        assert isinstance(res, PriceBreakdown)
        assert res.total == 400.0
        assert [item.kind for item in res.line_items] == [LineItemKind.BASE]

    @pytest.mark.pricing
    def test_monday_hourly_gets_weekday_discount(self, engine):
        res = engine.quote(hourly(hours=4, pickup=MONDAY))

        assert res.total == 360.0
        discount = res.items_of(LineItemKind.TIME_DISCOUNT)
        assert len(discount) == 1
        assert discount[0].amount == -40.0

    @pytest.mark.pricing
    @pytest.mark.parametrize("hours", [0.5, 1, 2, 2.99])
    def test_duration_below_minimum_is_billed_at_minimum(self, engine, hours):
        assert engine.quote(hourly(hours=hours)).total == engine.quote(hourly(hours=3)).total == 300.0

    @pytest.mark.pricing
    def test_negative_duration_is_clamped_to_minimum(self, engine):
        assert engine.quote(hourly(hours=-2)).total == 300.0

    @pytest.mark.pricing
    def test_fractional_hours(self, engine):
        assert engine.quote(hourly(hours=3.5)).total == 350.0

    @pytest.mark.pricing
    def test_long_duration_discount_compounds_with_weekday(self, engine):
        # 600 -> -60 weekday -> -54 long duration
        res = engine.quote(hourly(hours=6, pickup=TUESDAY))

        assert res.total == 486.0
        assert res.items_of(LineItemKind.DURATION_DISCOUNT)[0].amount == -54.0

    @pytest.mark.pricing
    def test_long_duration_discount_not_applied_below_threshold(self, engine):
        res = engine.quote(hourly(hours=5.5))

        assert res.items_of(LineItemKind.DURATION_DISCOUNT) == []
        assert res.total == 550.0

    @pytest.mark.pricing
    def test_rounding_to_cents(self, engine):
        # 411.00 - 41.10
        res = engine.quote(hourly(VehicleClass.TRANSIT, hours=3, pickup=MONDAY))
        assert res.total == 369.9

    @pytest.mark.pricing
    @pytest.mark.parametrize("vehicle_class,rate", [
        (VehicleClass.SEDAN, 100),
        (VehicleClass.TRANSIT, 137),
        (VehicleClass.EXECUTIVE_MINI_BUS, 142),
        (VehicleClass.MINI_BUS_SOFA, 142),
        (VehicleClass.STRETCH_LIMO, 160),
        (VehicleClass.SPRINTER_LIMO, 160),
        (VehicleClass.LIMO_BUS, 208),
    ])
    def test_retail_hourly_rates(self, engine, vehicle_class, rate):
        assert engine.quote(hourly(vehicle_class, hours=3)).total == rate * 3


class TestPointToPointPricing:

    @pytest.mark.pricing
    def test_retail_transfer_is_itemized(self, engine):
        res = engine.quote(transfer())

        assert [(item.kind, item.amount) for item in res.line_items] == [
            (LineItemKind.BASE, 95.0),
            (LineItemKind.GRATUITY, 20.0),
            (LineItemKind.FUEL_SURCHARGE, 10.0),
            (LineItemKind.MILEAGE_CHARGE, 25.0),
        ]
        assert res.total == 150.0

    @pytest.mark.pricing
    def test_corporate_transfer_adds_premium_line(self, engine):
        res = engine.quote(transfer(platform=Platform.CORPORATE))

        assert res.total == 165.0
        assert res.items_of(LineItemKind.PLATFORM_PREMIUM)[0].amount == 15.0

    @pytest.mark.pricing
    def test_weekday_transfer_discount(self, engine):
        assert engine.quote(transfer(pickup=MONDAY)).total == 135.0

    @pytest.mark.pricing
    def test_partner_transfer_commission(self, engine):
        res = engine.quote(transfer(platform=Platform.PARTNER))

        assert res.total == 150.0
        assert res.commission == 18.0


class TestAirportPricing:

    @pytest.mark.pricing
    def test_retail_flat_rate(self, engine):
        res = engine.quote(airport())

        assert isinstance(res, PriceBreakdown)
        assert res.total == 450.0
        assert "Ronald Reagan National Airport" in res.line_items[0].label

    @pytest.mark.pricing
    def test_airport_flat_rate_ignores_weekday_discount(self, engine):
        assert engine.quote(airport(pickup=MONDAY)).total == 450.0

    @pytest.mark.pricing
    def test_airport_flat_rate_ignores_last_minute_discount(self, engine):
        soon = engine.clock() + timedelta(hours=10)
        assert engine.quote(airport(pickup=soon)).total == 450.0

    @pytest.mark.pricing
    def test_corporate_airport_rate(self, engine):
        res = engine.quote(airport(platform=Platform.CORPORATE))

        assert res.total == 485.0
        assert res.items_of(LineItemKind.PLATFORM_PREMIUM)[0].amount == 35.0

    @pytest.mark.pricing
    def test_corporate_transit_rate(self, engine):
        assert engine.quote(airport(VehicleClass.TRANSIT, dest="iad", platform=Platform.CORPORATE)).total == 745.0

    @pytest.mark.pricing
    def test_partner_airport_commission_is_fifteen_percent(self, engine):
        res = engine.quote(airport(platform=Platform.PARTNER))

        assert res.total == 450.0
        assert res.commission == 67.5

    @pytest.mark.pricing
    def test_route_not_offered_is_unavailable(self, engine):
        res = engine.quote(airport(zone="norfolk", dest="dca"))

        assert isinstance(res, RouteUnavailable)
        assert res.zone_route == ZoneRoute(pickup_zone="norfolk", destination="dca")
        assert "not offered" in res.message

    @pytest.mark.pricing
    def test_unknown_zone_is_unavailable(self, engine):
        assert isinstance(engine.quote(airport(zone="atlantis")), RouteUnavailable)

    @pytest.mark.pricing
    @pytest.mark.parametrize("vehicle_class", [
        VehicleClass.STRETCH_LIMO,
        VehicleClass.EXECUTIVE_MINI_BUS,
        VehicleClass.MINI_BUS_SOFA,
    ])
    def test_vehicle_without_airport_service(self, engine, vehicle_class):
        res = engine.quote(airport(vehicle_class))

        assert isinstance(res, RouteUnavailable)
        assert "not available for airport service" in res.reason

    @pytest.mark.pricing
    def test_zone_keys_are_case_insensitive(self, engine):
        assert engine.quote(airport(zone="Central-Virginia", dest="DCA")).total == 450.0

    @pytest.mark.pricing
    @pytest.mark.parametrize("platform", list(Platform))
    def test_farther_airports_cost_more(self, engine, platform):
        totals = [
            engine.quote(airport(dest=dest, platform=platform)).total
            for dest in ("ric", "dca", "iad", "bwi")
        ]
        assert totals == sorted(totals)
        assert len(set(totals)) == len(totals)


class TestDiscountsAndSurcharges:

    @pytest.mark.pricing
    def test_last_minute_discount(self, engine):
        # 22:00 the same day: inside the window, before the after-hours band
        soon = engine.clock().replace(hour=22)
        res = engine.quote(hourly(pickup=soon))

        assert res.items_of(LineItemKind.LAST_MINUTE_DISCOUNT)[0].amount == -60.0
        assert res.total == 340.0

    @pytest.mark.pricing
    def test_explicit_now_overrides_clock(self, engine):
        res = engine.quote(hourly(), now=datetime(2026, 3, 7, 8, 0))
        assert res.items_of(LineItemKind.LAST_MINUTE_DISCOUNT)

    @pytest.mark.pricing
    def test_promo_code(self, engine):
        res = engine.quote(hourly(codes=("welcome10",)))

        assert res.total == 360.0
        assert res.items_of(LineItemKind.PROMO_DISCOUNT)[0].label.startswith("Promo code WELCOME10")

    @pytest.mark.pricing
    def test_promo_codes_compound(self, engine):
        # 400 -> -40 -> -18
        assert engine.quote(hourly(codes=("WELCOME10", "LOYAL5"))).total == 342.0

    @pytest.mark.pricing
    def test_duplicate_and_unknown_codes_ignored(self, engine):
        res = engine.quote(hourly(codes=("WELCOME10", "welcome10", "BOGUS", "")))

        assert len(res.items_of(LineItemKind.PROMO_DISCOUNT)) == 1
        assert res.total == 360.0

    @pytest.mark.pricing
    @pytest.mark.parametrize("pickup,expected", [
        (datetime(2026, 3, 7, 23, 30), 450.0),
        (datetime(2026, 3, 8, 5, 0), 450.0),
        (datetime(2026, 3, 8, 6, 0), 400.0),
        (datetime(2026, 3, 7, 22, 59), 400.0),
    ])
    def test_after_hours_surcharge(self, engine, pickup, expected):
        assert engine.quote(hourly(pickup=pickup)).total == expected

    @pytest.mark.pricing
    def test_holiday_surcharge(self, engine):
        res = engine.quote(hourly(pickup=datetime(2026, 7, 4, 10, 0)))

        assert res.items_of(LineItemKind.HOLIDAY_SURCHARGE)[0].amount == 100.0
        assert res.total == 500.0

    @pytest.mark.pricing
    def test_holiday_surcharge_uses_pre_surcharge_subtotal(self, engine):
        # 400 + 50 after-hours + 25% of 400
        res = engine.quote(hourly(pickup=datetime(2026, 7, 4, 23, 30)))
        assert res.total == 550.0

    @pytest.mark.pricing
    def test_holiday_on_a_weekday(self, engine):
        # Memorial Day: 400 -> -40 weekday -> +90 holiday
        assert engine.quote(hourly(pickup=datetime(2026, 5, 25, 10, 0))).total == 450.0

    @pytest.mark.pricing
    def test_holiday_applies_to_airport(self, engine):
        assert engine.quote(airport(pickup=datetime(2026, 7, 4, 10, 0))).total == 562.5

    @pytest.mark.pricing
    def test_custom_holiday_calendar(self, rate_table):
        calendar = StaticHolidayCalendar.from_dates([date(2026, 3, 7)])
        engine = RateEngine(rate_table, calendar, clock=lambda: datetime(2026, 2, 1, 12, 0))

        assert engine.quote(hourly()).total == 500.0

    @pytest.mark.pricing
    def test_timezone_aware_pickup_is_converted_to_local_time(self, engine):
        from zoneinfo import ZoneInfo
        # 03:30 UTC is 22:30 the previous evening in New York
        pickup = datetime(2026, 3, 8, 3, 30, tzinfo=ZoneInfo("UTC"))
        assert engine.quote(hourly(pickup=pickup)).total == 400.0


class TestPlatformPricing:

    @pytest.mark.pricing
    def test_corporate_hourly_premium(self, engine):
        res = engine.quote(hourly(platform=Platform.CORPORATE))

        assert res.items_of(LineItemKind.PLATFORM_PREMIUM)[0].amount == 40.0
        assert res.total == 440.0

    @pytest.mark.pricing
    def test_partner_limo_bus_commission(self, engine):
        res = engine.quote(hourly(VehicleClass.LIMO_BUS, hours=3, platform=Platform.PARTNER))

        assert res.total == 624.0
        assert res.commission == 74.88
        assert res.line_items[-1].kind == LineItemKind.COMMISSION

    @pytest.mark.pricing
    def test_commission_taken_after_discounts(self, engine):
        # 1456 -> -145.60 -> -131.04 = 1179.36; 12% commission
        res = engine.quote(hourly(VehicleClass.LIMO_BUS, hours=7, pickup=TUESDAY, platform=Platform.PARTNER))

        assert res.total == 1179.36
        assert res.commission == 141.52

    @pytest.mark.pricing
    def test_retail_has_no_commission_or_premium(self, engine):
        res = engine.quote(hourly())

        assert res.commission is None
        assert res.items_of(LineItemKind.PLATFORM_PREMIUM) == []

    @pytest.mark.pricing
    def test_corporate_never_cheaper_than_retail(self, engine, rate_table):
        for vehicle_class in VehicleClass:
            for pickup in (MONDAY, SATURDAY):
                retail = engine.quote(hourly(vehicle_class, pickup=pickup)).total
                corporate = engine.quote(hourly(vehicle_class, pickup=pickup, platform=Platform.CORPORATE)).total
                assert corporate >= retail

            for zone in rate_table.zones_for(vehicle_class):
                for dest in rate_table.destinations_for(vehicle_class, zone):
                    retail = engine.quote(airport(vehicle_class, zone, dest)).total
                    corporate = engine.quote(airport(vehicle_class, zone, dest, platform=Platform.CORPORATE)).total
                    assert corporate >= retail


class TestQuoteContract:

    @pytest.mark.pricing
    def test_total_is_sum_of_line_items_without_commission(self, engine):
        res = engine.quote(hourly(VehicleClass.LIMO_BUS, hours=7, pickup=TUESDAY, platform=Platform.PARTNER))

        expected = sum(item.amount for item in res.line_items if item.kind != LineItemKind.COMMISSION)
        assert res.total == round(expected, 2)
        assert res.model_dump()["total"] == res.total

    @pytest.mark.pricing
    def test_quote_is_deterministic(self, engine):
        request = hourly(hours=6, pickup=TUESDAY, codes=("LOYAL5",))
        assert engine.quote(request) == engine.quote(request)

    @pytest.mark.pricing
    @pytest.mark.parametrize("service_type", list(ServiceType))
    @pytest.mark.parametrize("vehicle_class", list(VehicleClass))
    def test_every_combination_prices_or_is_unavailable(self, engine, vehicle_class, service_type):
        if service_type == ServiceType.AIRPORT:
            request = airport(vehicle_class)
        elif service_type == ServiceType.HOURLY:
            request = hourly(vehicle_class)
        else:
            request = transfer(vehicle_class)

        res = engine.quote(request)
        assert isinstance(res, (PriceBreakdown, RouteUnavailable))
        if isinstance(res, PriceBreakdown):
            assert res.total > 0

    @pytest.mark.pricing
    def test_unknown_vehicle_class(self, engine):
        request = BookingRequest.model_construct(
            vehicle_class="hovercraft",
            service_type=ServiceType.HOURLY,
            pickup_datetime=SATURDAY,
            platform=Platform.RETAIL,
            duration_hours=4,
            zone_route=None,
            discount_codes=(),
        )
        res = engine.quote(request)

        assert isinstance(res, InvalidVehicleForService)
        assert res.field == "vehicle_class"
        assert res.value == "hovercraft"

    @pytest.mark.pricing
    @pytest.mark.parametrize("bad", [None, {"vehicle_class": "sedan"}, "sedan"])
    def test_non_request_raises(self, engine, bad):
        with pytest.raises(MalformedRequestError):
            engine.quote(bad)

    @pytest.mark.pricing
    def test_to_money_rounds_half_up(self):
        assert to_money(0.125) == 0.13
        assert to_money(74.875) == 74.88
        assert to_money(-2.5) == -2.5


class TestBuildBookingRequest:

    def _req(self, **kwargs):
        data = {"vehicle_class": "sedan", "service_type": "hourly", "pickup_datetime": SATURDAY, "duration_hours": 4}
        data.update(kwargs)
        return QuoteRequest(**data)

    @pytest.mark.pricing
    def test_normalizes_enums(self):
        res = build_booking_request(self._req(vehicle_class=" Limo-Bus ", service_type="HOURLY"), Platform.PARTNER)

        assert isinstance(res, BookingRequest)
        assert res.vehicle_class == VehicleClass.LIMO_BUS
        assert res.platform == Platform.PARTNER

    @pytest.mark.pricing
    def test_unknown_vehicle(self):
        res = build_booking_request(self._req(vehicle_class="hovercraft"), Platform.RETAIL)

        assert isinstance(res, InvalidVehicleForService)
        assert res.field == "vehicle_class"

    @pytest.mark.pricing
    def test_unknown_service_type(self):
        res = build_booking_request(self._req(service_type="helicopter"), Platform.RETAIL)

        assert isinstance(res, InvalidVehicleForService)
        assert res.field == "service_type"

    @pytest.mark.pricing
    def test_hourly_requires_duration(self):
        res = build_booking_request(self._req(duration_hours=None), Platform.RETAIL)

        assert isinstance(res, InvalidInput)
        assert [e.field for e in res.errors] == ["duration_hours"]

    @pytest.mark.pricing
    def test_airport_requires_zone_and_destination(self):
        res = build_booking_request(self._req(service_type="airport"), Platform.RETAIL)

        assert isinstance(res, InvalidInput)
        assert {e.field for e in res.errors} == {"pickup_zone", "destination"}

    @pytest.mark.pricing
    def test_airport_route_is_built(self):
        res = build_booking_request(
            self._req(service_type="airport", pickup_zone="Norfolk", destination="RIC"), Platform.RETAIL
        )

        assert res.zone_route == ZoneRoute(pickup_zone="norfolk", destination="ric")
        assert res.duration_hours is None

    @pytest.mark.pricing
    @pytest.mark.parametrize("hours", [1e300, 25])
    def test_duration_above_charter_limit(self, hours):
        req = QuoteRequest.model_construct(
            vehicle_class="sedan",
            service_type="hourly",
            pickup_datetime=SATURDAY,
            duration_hours=hours,
            pickup_zone=None,
            destination=None,
            passenger_count=None,
            discount_codes=[],
        )
        res = build_booking_request(req, Platform.RETAIL)

        assert isinstance(res, InvalidInput)
        assert [e.field for e in res.errors] == ["duration_hours"]


class TestDurationLimits:

    @pytest.mark.pricing
    @pytest.mark.parametrize("hours", [1e300, float("inf"), float("nan"), 24.5])
    def test_booking_request_rejects_unbounded_duration(self, hours):
        with pytest.raises(ValidationError):
            hourly(hours=hours)

    @pytest.mark.pricing
    @pytest.mark.parametrize("hours", [1e300, float("inf"), float("nan")])
    def test_engine_returns_invalid_input_instead_of_raising(self, engine, hours):
        request = BookingRequest.model_construct(
            vehicle_class=VehicleClass.SEDAN,
            service_type=ServiceType.HOURLY,
            pickup_datetime=SATURDAY,
            platform=Platform.RETAIL,
            duration_hours=hours,
            zone_route=None,
            discount_codes=(),
        )
        res = engine.quote(request)

        assert isinstance(res, InvalidInput)
        assert res.errors[0].field == "duration_hours"

    @pytest.mark.pricing
    def test_full_day_charter_is_priced(self, engine):
        # 2400 -> -240 long duration
        assert engine.quote(hourly(hours=24)).total == 2160.0


class TestLastMinuteWindow:

    @pytest.mark.pricing
    def test_window_boundary(self, engine):
        now = engine.clock()

        assert engine.in_last_minute_window(now + timedelta(hours=23, minutes=59))
        assert not engine.in_last_minute_window(now + timedelta(hours=24))
        assert engine.in_last_minute_window(now + timedelta(hours=24, minutes=1), now=now + timedelta(minutes=2))

    @pytest.mark.pricing
    def test_same_request_reprices_as_clock_moves(self, engine):
        pickup = engine.clock() + timedelta(hours=24, minutes=1)
        request = hourly(pickup=pickup)

        before = engine.quote(request)
        after = engine.quote(request, now=engine.clock() + timedelta(minutes=2))

        assert before.items_of(LineItemKind.LAST_MINUTE_DISCOUNT) == []
        assert after.items_of(LineItemKind.LAST_MINUTE_DISCOUNT)
        assert after.total < before.total
