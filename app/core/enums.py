from enum import Enum


class Platform(str, Enum):
    RETAIL = "retail"
    PARTNER = "partner"
    CORPORATE = "corporate"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value) -> "Platform | None":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class DetectionSignal(str, Enum):
    QUERY_PARAM = "query_param"
    SUBDOMAIN = "subdomain"
    PATH = "path"
    REFERRER = "referrer"
    STORED_PREFERENCE = "stored_preference"
    DEFAULT = "default"

    def __str__(self):
        return self.value

    @property
    def rank(self) -> int:
        return _SIGNAL_RANKS[self]


_SIGNAL_RANKS = {
    DetectionSignal.QUERY_PARAM: 1,
    DetectionSignal.SUBDOMAIN: 2,
    DetectionSignal.PATH: 3,
    DetectionSignal.REFERRER: 4,
    DetectionSignal.STORED_PREFERENCE: 5,
    DetectionSignal.DEFAULT: 6,
}


class VehicleClass(str, Enum):
    SEDAN = "sedan"
    TRANSIT = "transit"
    EXECUTIVE_MINI_BUS = "executive-mini-bus"
    MINI_BUS_SOFA = "mini-bus-sofa"
    STRETCH_LIMO = "stretch-limo"
    SPRINTER_LIMO = "sprinter-limo"
    LIMO_BUS = "limo-bus"

    def __str__(self):
        return self.value


class ServiceType(str, Enum):
    HOURLY = "hourly"
    POINT_TO_POINT = "point-to-point"
    AIRPORT = "airport"

    def __str__(self):
        return self.value


class LineItemKind(str, Enum):
    BASE = "base"
    GRATUITY = "gratuity"
    FUEL_SURCHARGE = "fuel_surcharge"
    MILEAGE_CHARGE = "mileage_charge"
    PLATFORM_PREMIUM = "platform_premium"
    TIME_DISCOUNT = "time_discount"
    DURATION_DISCOUNT = "duration_discount"
    LAST_MINUTE_DISCOUNT = "last_minute_discount"
    PROMO_DISCOUNT = "promo_discount"
    AFTER_HOURS_SURCHARGE = "after_hours_surcharge"
    HOLIDAY_SURCHARGE = "holiday_surcharge"
    COMMISSION = "commission"

    def __str__(self):
        return self.value


class QuoteOutcome(str, Enum):
    QUOTED = "quoted"
    UNAVAILABLE = "unavailable"
    INVALID = "invalid"

    def __str__(self):
        return self.value
