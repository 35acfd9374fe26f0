"""Static rate/rule tables loaded from the versioned data file.

The file is read once at startup, validated for completeness and then only
looked up. Missing entries are reported as ``None`` so callers can tell a
route that is not offered apart from a zero price.
"""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.config import settings
from app.core.enums import Platform, ServiceType, VehicleClass
from app.core.errors import RateConfigError

logger = logging.getLogger(__name__)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class VehicleSpec(_Frozen):
    name: str
    capacity: int = Field(..., ge=1)
    airport_eligible: bool


class PointToPointSplit(_Frozen):
    base: float = Field(..., ge=0)
    gratuity: float = Field(..., ge=0)
    fuel_surcharge: float = Field(..., ge=0)
    mileage_charge: float = Field(..., ge=0)

    @property
    def total(self) -> float:
        return self.base + self.gratuity + self.fuel_surcharge + self.mileage_charge


class PointToPointRates(_Frozen):
    retail: Dict[VehicleClass, PointToPointSplit]
    corporate: Dict[VehicleClass, float] = Field(default_factory=dict)
    partner: Dict[VehicleClass, float] = Field(default_factory=dict)


class HourlyRates(_Frozen):
    retail: Dict[VehicleClass, float]
    corporate: Dict[VehicleClass, float] = Field(default_factory=dict)
    partner: Dict[VehicleClass, float] = Field(default_factory=dict)


RouteMap = Dict[VehicleClass, Dict[str, Dict[str, float]]]


class AirportRates(_Frozen):
    retail: RouteMap
    corporate: RouteMap = Field(default_factory=dict)
    partner: RouteMap = Field(default_factory=dict)


class WeekdayDiscount(_Frozen):
    rate: float
    weekdays: FrozenSet[int]


class LongDurationDiscount(_Frozen):
    rate: float
    min_hours: float


class LastMinuteDiscount(_Frozen):
    rate: float
    window_hours: float


class AfterHoursSurcharge(_Frozen):
    amount: float
    start_hour: int = Field(..., ge=0, le=23)
    end_hour: int = Field(..., ge=0, le=23)

    def applies_at(self, hour: int) -> bool:
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour


class HolidaySurcharge(_Frozen):
    rate: float


class CommissionRates(_Frozen):
    airport: float
    default: float

    def rate_for(self, service_type: ServiceType) -> float:
        return self.airport if service_type == ServiceType.AIRPORT else self.default


class RuleSet(_Frozen):
    minimum_hours: float = Field(..., gt=0)
    default_estimated_hours: float = 4
    discounted_services: FrozenSet[ServiceType]
    weekday_discount: WeekdayDiscount
    long_duration_discount: LongDurationDiscount
    last_minute_discount: LastMinuteDiscount
    promo_codes: Dict[str, float] = Field(default_factory=dict)
    after_hours_surcharge: AfterHoursSurcharge
    holiday_surcharge: HolidaySurcharge
    commission: CommissionRates


class RateTable(_Frozen):
    version: str
    vehicles: Dict[VehicleClass, VehicleSpec]
    zones: Dict[str, str]
    airports: Dict[str, str]
    hourly: HourlyRates
    point_to_point: PointToPointRates
    airport: AirportRates
    estimated_hours: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    rules: RuleSet

    def vehicle(self, vehicle_class: VehicleClass) -> Optional[VehicleSpec]:
        return self.vehicles.get(vehicle_class)

    def hourly_rate(self, vehicle_class: VehicleClass, platform: Platform) -> Optional[float]:
        rates = getattr(self.hourly, platform.value)
        rate = rates.get(vehicle_class)
        if rate is None:
            rate = self.hourly.retail.get(vehicle_class)
        return rate

    def point_to_point_split(self, vehicle_class: VehicleClass) -> Optional[PointToPointSplit]:
        return self.point_to_point.retail.get(vehicle_class)

    def point_to_point_total(self, vehicle_class: VehicleClass, platform: Platform) -> Optional[float]:
        override = getattr(self.point_to_point, platform.value).get(vehicle_class)
        if override is not None:
            return override
        split = self.point_to_point_split(vehicle_class)
        return split.total if split else None

    def route_rate(self, vehicle_class: VehicleClass, pickup_zone: str, destination: str,
                   platform: Platform = Platform.RETAIL) -> Optional[float]:
        retail = self.airport.retail.get(vehicle_class, {}).get(pickup_zone, {}).get(destination)
        if retail is None:
            return None
        routes = getattr(self.airport, platform.value)
        override = routes.get(vehicle_class, {}).get(pickup_zone, {}).get(destination)
        return retail if override is None else override

    def zones_for(self, vehicle_class: VehicleClass) -> List[str]:
        return list(self.airport.retail.get(vehicle_class, {}).keys())

    def destinations_for(self, vehicle_class: VehicleClass, pickup_zone: str) -> List[str]:
        return list(self.airport.retail.get(vehicle_class, {}).get(pickup_zone, {}).keys())

    def place_name(self, key: str) -> str:
        return self.airports.get(key) or self.zones.get(key) or key

    def estimated_route_hours(self, pickup_zone: str, destination: str) -> float:
        hours = self.estimated_hours.get(pickup_zone, {}).get(destination)
        return self.rules.default_estimated_hours if hours is None else hours


def validate_rate_table(table: RateTable) -> None:
    problems = []

    for vehicle_class in VehicleClass:
        spec = table.vehicles.get(vehicle_class)
        if spec is None:
            problems.append(f"vehicle {vehicle_class} has no spec")
            continue
        if vehicle_class not in table.hourly.retail:
            problems.append(f"vehicle {vehicle_class} has no retail hourly rate")
        if vehicle_class not in table.point_to_point.retail:
            problems.append(f"vehicle {vehicle_class} has no point-to-point split")
        routes = table.airport.retail.get(vehicle_class)
        if spec.airport_eligible and not routes:
            problems.append(f"airport-eligible vehicle {vehicle_class} has no routes")
        if not spec.airport_eligible and routes:
            problems.append(f"vehicle {vehicle_class} is not airport-eligible but has routes")

    for platform in (Platform.PARTNER, Platform.CORPORATE):
        for vehicle_class, rate in getattr(table.hourly, platform.value).items():
            retail = table.hourly.retail.get(vehicle_class)
            if retail is None or rate < retail:
                problems.append(f"{platform} hourly rate for {vehicle_class} has no retail base or undercuts it")
        for vehicle_class, total in getattr(table.point_to_point, platform.value).items():
            split = table.point_to_point.retail.get(vehicle_class)
            if split is None or total < split.total:
                problems.append(f"{platform} point-to-point rate for {vehicle_class} has no retail base or undercuts it")
        for vehicle_class, zones in getattr(table.airport, platform.value).items():
            for zone, destinations in zones.items():
                for destination, amount in destinations.items():
                    retail = table.route_rate(vehicle_class, zone, destination)
                    if retail is None or amount < retail:
                        problems.append(
                            f"{platform} route {vehicle_class} {zone}->{destination} has no retail base or undercuts it"
                        )

    places = set(table.zones) | set(table.airports)
    for vehicle_class, zones in table.airport.retail.items():
        for zone, destinations in zones.items():
            if zone not in table.zones:
                problems.append(f"route origin {zone} for {vehicle_class} is not a known zone")
            for destination, amount in destinations.items():
                if destination not in places:
                    problems.append(f"route destination {destination} for {vehicle_class} is unknown")
                if amount <= 0:
                    problems.append(f"route {vehicle_class} {zone}->{destination} must have a positive rate")

    if problems:
        raise RateConfigError("; ".join(problems))


def load_rate_table(path: Optional[str] = None) -> RateTable:
    path = Path(path or settings.RATE_TABLE_FILE)
    try:
        table = RateTable.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise RateConfigError(f"Cannot read rate table {path}: {e}") from e
    except ValidationError as e:
        raise RateConfigError(f"Rate table {path} is malformed: {e}") from e

    validate_rate_table(table)
    logger.info(f"Loaded rate table version {table.version} from {path}")
    return table


@lru_cache(maxsize=1)
def get_rate_table() -> RateTable:
    return load_rate_table()
