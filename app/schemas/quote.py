from datetime import datetime
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from app.core.config import settings
from app.core.enums import LineItemKind, Platform, ServiceType, VehicleClass
from app.schemas.platform import DisplayFlags


def money_sum(amounts) -> float:
    return round(sum(amounts), 2)


class ZoneRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    pickup_zone: str
    destination: str

    @field_validator("pickup_zone", "destination")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return value.strip().lower()

    def __str__(self):
        return f"{self.pickup_zone} -> {self.destination}"


class BookingRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    vehicle_class: VehicleClass
    service_type: ServiceType
    pickup_datetime: datetime
    platform: Platform = Platform.RETAIL
    duration_hours: Optional[float] = Field(None, allow_inf_nan=False, le=settings.MAX_CHARTER_HOURS)
    zone_route: Optional[ZoneRoute] = None
    discount_codes: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_service_fields(self):
        if self.service_type == ServiceType.HOURLY and self.duration_hours is None:
            raise ValueError("duration_hours is required for hourly service")
        if self.service_type == ServiceType.AIRPORT and self.zone_route is None:
            raise ValueError("zone_route is required for airport service")
        return self


class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    amount: float
    kind: LineItemKind


class PriceBreakdown(BaseModel):
    """Ordered line items for one quote.

    The total is always folded from the items, never stored, and excludes
    the partner commission line.
    """
    model_config = ConfigDict(frozen=True)

    status: Literal["quoted"] = "quoted"
    platform: Platform
    vehicle_class: VehicleClass
    service_type: ServiceType
    line_items: Tuple[LineItem, ...] = ()

    @computed_field
    @property
    def total(self) -> float:
        return money_sum(
            item.amount for item in self.line_items if item.kind != LineItemKind.COMMISSION
        )

    @property
    def commission(self) -> Optional[float]:
        for item in self.line_items:
            if item.kind == LineItemKind.COMMISSION:
                return item.amount
        return None

    def items_of(self, kind: LineItemKind) -> List[LineItem]:
        return [item for item in self.line_items if item.kind == kind]


class RouteUnavailable(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["unavailable"] = "unavailable"
    vehicle_class: VehicleClass
    service_type: ServiceType
    zone_route: Optional[ZoneRoute] = None
    reason: str

    @property
    def message(self) -> str:
        return f"{self.service_type} service is not offered for this vehicle/route: {self.reason}"


class FieldError(BaseModel):
    field: str
    message: str


class InvalidVehicleForService(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["invalid"] = "invalid"
    field: str
    value: str
    message: str


class InvalidInput(BaseModel):
    status: Literal["invalid"] = "invalid"
    errors: List[FieldError]


class QuoteRequest(BaseModel):
    vehicle_class: str
    service_type: str
    pickup_datetime: datetime
    duration_hours: Optional[float] = Field(None, allow_inf_nan=False, le=settings.MAX_CHARTER_HOURS)
    pickup_zone: Optional[str] = None
    destination: Optional[str] = None
    passenger_count: Optional[int] = Field(None, ge=1)
    discount_codes: List[str] = Field(default_factory=list)


class AvailabilityOut(BaseModel):
    available: bool
    recommended_vehicle_class: str
    driver_available: bool = True
    conflicting_trip_count: int = 0
    assigned_vehicle_id: Optional[str] = None
    fallback: bool = False


class QuoteResponse(BaseModel):
    status: Literal["quoted"] = "quoted"
    platform: Platform
    total: float
    label: str
    display: DisplayFlags
    breakdown: Optional[List[LineItem]] = None
    commission: Optional[float] = None
    notes: List[str] = Field(default_factory=list)
    availability: Optional[AvailabilityOut] = None


class UnavailableResponse(BaseModel):
    status: Literal["unavailable"] = "unavailable"
    platform: Platform
    message: str
