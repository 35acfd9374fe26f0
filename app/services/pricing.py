"""Rate engine: turns a booking request into an itemized price breakdown.

Lines are appended in a fixed pipeline order and every percentage is taken
from the running subtotal at the moment it is applied, so discounts compound:

    base -> platform premium -> weekday / long-duration / last-minute / promo
    discounts -> after-hours / holiday surcharges -> partner commission

Expected business outcomes (route not offered, unknown vehicle) come back as
typed results. Only a call with something other than a ``BookingRequest``
raises.
"""
import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import Callable, List, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from app.core.config import settings
from app.core.enums import LineItemKind, Platform, ServiceType, VehicleClass
from app.core.errors import MalformedRequestError
from app.schemas.quote import (
    BookingRequest,
    FieldError,
    InvalidInput,
    InvalidVehicleForService,
    LineItem,
    PriceBreakdown,
    QuoteRequest,
    RouteUnavailable,
    ZoneRoute,
    money_sum,
)
from app.services.holidays import HolidayCalendar, StaticHolidayCalendar, load_holiday_calendar
from app.services.rate_table import RateTable, get_rate_table

logger = logging.getLogger(__name__)

QuoteResult = Union[PriceBreakdown, RouteUnavailable, InvalidVehicleForService, InvalidInput]

CENT = Decimal("0.01")

PLATFORM_LABELS = {
    Platform.RETAIL: "Retail",
    Platform.PARTNER: "Partner",
    Platform.CORPORATE: "Corporate",
}


def to_money(value: float) -> float:
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def _pct(rate: float) -> str:
    return f"{rate * 100:g}%"


class RateEngine:

    def __init__(
        self,
        table: RateTable,
        holidays: Optional[HolidayCalendar] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timezone: Optional[str] = None,
    ):
        self.table = table
        self.rules = table.rules
        self.holidays = holidays if holidays is not None else StaticHolidayCalendar()
        self.tz = ZoneInfo(timezone or settings.LOCAL_TIMEZONE)
        self.clock = clock or (lambda: datetime.now(self.tz))

    def _localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def _validate_enums(self, request: BookingRequest):
        try:
            vehicle_class = VehicleClass(request.vehicle_class)
        except ValueError:
            return InvalidVehicleForService(
                field="vehicle_class",
                value=str(request.vehicle_class),
                message=f"Unknown vehicle class '{request.vehicle_class}'",
            )
        try:
            ServiceType(request.service_type)
        except ValueError:
            return InvalidVehicleForService(
                field="service_type",
                value=str(request.service_type),
                message=f"Unknown service type '{request.service_type}'",
            )
        if self.table.vehicle(vehicle_class) is None:
            return InvalidVehicleForService(
                field="vehicle_class",
                value=str(vehicle_class),
                message=f"Vehicle class '{vehicle_class}' is not in rate table {self.table.version}",
            )
        return None

    def _validate_duration(self, request: BookingRequest) -> Optional[InvalidInput]:
        if request.service_type != ServiceType.HOURLY:
            return None
        hours = request.duration_hours
        if hours is None or not math.isfinite(hours) or hours > settings.MAX_CHARTER_HOURS:
            return InvalidInput(errors=[FieldError(
                field="duration_hours",
                message=f"Hourly charters are limited to {settings.MAX_CHARTER_HOURS:g} hours",
            )])
        return None

    def in_last_minute_window(self, pickup: datetime, now: Optional[datetime] = None) -> bool:
        window = timedelta(hours=self.rules.last_minute_discount.window_hours)
        return self._localize(pickup) - self._localize(now or self.clock()) < window

    def quote(self, request: BookingRequest, now: Optional[datetime] = None) -> QuoteResult:
        if not isinstance(request, BookingRequest):
            raise MalformedRequestError(
                f"quote() expects a BookingRequest, got {type(request).__name__}"
            )

        invalid = self._validate_enums(request)
        if invalid is not None:
            return invalid

        invalid = self._validate_duration(request)
        if invalid is not None:
            return invalid

        vehicle_class = VehicleClass(request.vehicle_class)
        service_type = ServiceType(request.service_type)
        platform = Platform(request.platform)
        pickup = self._localize(request.pickup_datetime)
        now = self._localize(now or self.clock())

        lines: List[LineItem] = []

        if service_type == ServiceType.HOURLY:
            self._hourly_base(lines, vehicle_class, platform, request.duration_hours)
        elif service_type == ServiceType.POINT_TO_POINT:
            self._point_to_point_base(lines, vehicle_class, platform)
        else:
            unavailable = self._airport_base(lines, vehicle_class, platform, request.zone_route)
            if unavailable is not None:
                logger.info(f"Route unavailable for {vehicle_class}: {unavailable.reason}")
                return unavailable

        if service_type in self.rules.discounted_services:
            self._apply_discounts(lines, service_type, request, pickup, now)

        self._apply_surcharges(lines, pickup)

        if platform == Platform.PARTNER:
            rate = self.rules.commission.rate_for(service_type)
            total = money_sum(item.amount for item in lines)
            lines.append(LineItem(
                label=f"Partner commission ({_pct(rate)})",
                amount=to_money(total * rate),
                kind=LineItemKind.COMMISSION,
            ))

        return PriceBreakdown(
            platform=platform,
            vehicle_class=vehicle_class,
            service_type=service_type,
            line_items=tuple(lines),
        )

    def _premium(self, lines: List[LineItem], platform: Platform, retail_amount: float, platform_amount: float):
        premium = to_money(platform_amount - retail_amount)
        if premium != 0:
            lines.append(LineItem(
                label=f"{PLATFORM_LABELS[platform]} rate premium",
                amount=premium,
                kind=LineItemKind.PLATFORM_PREMIUM,
            ))

    def _hourly_base(self, lines, vehicle_class, platform, duration_hours):
        hours = max(duration_hours, self.rules.minimum_hours)
        retail_rate = self.table.hourly_rate(vehicle_class, Platform.RETAIL)
        base = to_money(retail_rate * hours)
        lines.append(LineItem(
            label=f"Hourly rate: {hours:g} hrs @ ${retail_rate:,.2f}/hr",
            amount=base,
            kind=LineItemKind.BASE,
        ))
        platform_rate = self.table.hourly_rate(vehicle_class, platform)
        self._premium(lines, platform, base, to_money(platform_rate * hours))

    def _point_to_point_base(self, lines, vehicle_class, platform):
        split = self.table.point_to_point_split(vehicle_class)
        for label, amount, kind in (
            ("Transfer base fare", split.base, LineItemKind.BASE),
            ("Gratuity", split.gratuity, LineItemKind.GRATUITY),
            ("Fuel surcharge", split.fuel_surcharge, LineItemKind.FUEL_SURCHARGE),
            ("Mileage charge", split.mileage_charge, LineItemKind.MILEAGE_CHARGE),
        ):
            lines.append(LineItem(label=label, amount=to_money(amount), kind=kind))
        self._premium(
            lines, platform, to_money(split.total),
            to_money(self.table.point_to_point_total(vehicle_class, platform)),
        )

    def _airport_base(self, lines, vehicle_class, platform, zone_route: ZoneRoute) -> Optional[RouteUnavailable]:
        spec = self.table.vehicle(vehicle_class)
        if not spec.airport_eligible:
            return RouteUnavailable(
                vehicle_class=vehicle_class,
                service_type=ServiceType.AIRPORT,
                zone_route=zone_route,
                reason=f"{spec.name} is not available for airport service",
            )

        retail = self.table.route_rate(vehicle_class, zone_route.pickup_zone, zone_route.destination)
        if retail is None:
            return RouteUnavailable(
                vehicle_class=vehicle_class,
                service_type=ServiceType.AIRPORT,
                zone_route=zone_route,
                reason=f"no {spec.name} rate for {zone_route}",
            )

        lines.append(LineItem(
            label=(
                f"Flat rate: {self.table.place_name(zone_route.pickup_zone)} -> "
                f"{self.table.place_name(zone_route.destination)}"
            ),
            amount=to_money(retail),
            kind=LineItemKind.BASE,
        ))
        platform_rate = self.table.route_rate(
            vehicle_class, zone_route.pickup_zone, zone_route.destination, platform
        )
        self._premium(lines, platform, to_money(retail), to_money(platform_rate))
        return None

    def _discount(self, lines: List[LineItem], label: str, rate: float, kind: LineItemKind):
        subtotal = money_sum(item.amount for item in lines)
        lines.append(LineItem(
            label=f"{label} (-{_pct(rate)})",
            amount=-to_money(subtotal * rate),
            kind=kind,
        ))

    def _apply_discounts(self, lines, service_type, request, pickup, now):
        rules = self.rules

        if pickup.weekday() in rules.weekday_discount.weekdays:
            self._discount(lines, "Monday-Thursday discount",
                           rules.weekday_discount.rate, LineItemKind.TIME_DISCOUNT)

        if (service_type == ServiceType.HOURLY
                and request.duration_hours >= rules.long_duration_discount.min_hours):
            self._discount(lines, "Long duration discount",
                           rules.long_duration_discount.rate, LineItemKind.DURATION_DISCOUNT)

        if self.in_last_minute_window(pickup, now):
            self._discount(lines, "Last-minute discount",
                           rules.last_minute_discount.rate, LineItemKind.LAST_MINUTE_DISCOUNT)

        seen = set()
        for code in request.discount_codes:
            code = code.strip().upper()
            if not code or code in seen:
                continue
            seen.add(code)
            rate = rules.promo_codes.get(code)
            if rate is None:
                logger.warning(f"Ignoring unknown discount code {code!r}")
                continue
            self._discount(lines, f"Promo code {code}", rate, LineItemKind.PROMO_DISCOUNT)

    def _apply_surcharges(self, lines, pickup):
        pre_surcharge = money_sum(item.amount for item in lines)

        after_hours = self.rules.after_hours_surcharge
        if after_hours.applies_at(pickup.hour):
            lines.append(LineItem(
                label="After-hours service",
                amount=to_money(after_hours.amount),
                kind=LineItemKind.AFTER_HOURS_SURCHARGE,
            ))

        if self.holidays.is_holiday(pickup.date()):
            rate = self.rules.holiday_surcharge.rate
            lines.append(LineItem(
                label=f"Holiday surcharge (+{_pct(rate)})",
                amount=to_money(pre_surcharge * rate),
                kind=LineItemKind.HOLIDAY_SURCHARGE,
            ))


def build_booking_request(
    req: QuoteRequest, platform: Platform
) -> Union[BookingRequest, InvalidVehicleForService, InvalidInput]:
    """Validate an API quote payload into a booking request for ``platform``"""
    try:
        vehicle_class = VehicleClass(req.vehicle_class.strip().lower())
    except ValueError:
        return InvalidVehicleForService(
            field="vehicle_class",
            value=req.vehicle_class,
            message=f"Unknown vehicle class '{req.vehicle_class}'",
        )
    try:
        service_type = ServiceType(req.service_type.strip().lower())
    except ValueError:
        return InvalidVehicleForService(
            field="service_type",
            value=req.service_type,
            message=f"Unknown service type '{req.service_type}'",
        )

    errors = []
    if service_type == ServiceType.HOURLY and req.duration_hours is None:
        errors.append(FieldError(field="duration_hours", message="Duration is required for hourly service"))
    if service_type == ServiceType.AIRPORT:
        if not req.pickup_zone:
            errors.append(FieldError(field="pickup_zone", message="Pickup zone is required for airport service"))
        if not req.destination:
            errors.append(FieldError(field="destination", message="Destination is required for airport service"))
    if errors:
        return InvalidInput(errors=errors)

    zone_route = None
    if service_type == ServiceType.AIRPORT:
        zone_route = ZoneRoute(pickup_zone=req.pickup_zone, destination=req.destination)

    try:
        return BookingRequest(
            vehicle_class=vehicle_class,
            service_type=service_type,
            pickup_datetime=req.pickup_datetime,
            platform=platform,
            duration_hours=req.duration_hours if service_type == ServiceType.HOURLY else None,
            zone_route=zone_route,
            discount_codes=tuple(req.discount_codes),
        )
    except ValidationError as e:
        return InvalidInput(errors=[
            FieldError(field=".".join(str(p) for p in err["loc"]) or "request", message=err["msg"])
            for err in e.errors()
        ])


@lru_cache(maxsize=1)
def get_rate_engine() -> RateEngine:
    return RateEngine(get_rate_table(), load_holiday_calendar())
