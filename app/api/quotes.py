"""Pricing quote endpoint with Redis caching"""
import logging
from typing import Optional, Union
from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import resolved_platform
from app.schemas.platform import PlatformResolution
from app.schemas.quote import (
    BookingRequest,
    PriceBreakdown,
    QuoteRequest,
    QuoteResponse,
    RouteUnavailable,
    UnavailableResponse,
)
from app.services.driver_portal import DriverPortalClient, get_driver_portal
from app.services.pricing import RateEngine, build_booking_request, get_rate_engine
from app.services.platform_resolver import display_flags
from app.core.enums import LineItemKind, Platform, QuoteOutcome, ServiceType
from app.core.metrics import cache_hits, cache_misses, quotes_total
from app.core.redis import get_json, set_json
from app.core.config import settings
from app.utils.hashing import cache_key

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/quotes", tags=["quotes"])


def quote_label(engine: RateEngine, request: BookingRequest) -> str:
    name = engine.table.vehicle(request.vehicle_class).name
    if request.service_type == ServiceType.HOURLY:
        hours = max(request.duration_hours, engine.rules.minimum_hours)
        return f"{name} - Hourly charter ({hours:g} hrs)"
    if request.service_type == ServiceType.AIRPORT:
        route = request.zone_route
        return (
            f"{name} - Airport transfer: {engine.table.place_name(route.pickup_zone)} -> "
            f"{engine.table.place_name(route.destination)}"
        )
    return f"{name} - Point-to-point transfer"


def run_quote(req: QuoteRequest, platform: Platform, engine: RateEngine):
    """Validate and price ``req``.

    Returns ``(booking_request, result)``; invalid input raises a 422 with
    field-level details.
    """
    booking_request = build_booking_request(req, platform)
    if not isinstance(booking_request, BookingRequest):
        quotes_total.labels(platform=platform.value, service_type="unknown", outcome=QuoteOutcome.INVALID.value).inc()
        raise HTTPException(status_code=422, detail=booking_request.model_dump())

    result = engine.quote(booking_request)
    if isinstance(result, PriceBreakdown):
        outcome = QuoteOutcome.QUOTED
    elif isinstance(result, RouteUnavailable):
        outcome = QuoteOutcome.UNAVAILABLE
    else:
        outcome = QuoteOutcome.INVALID
    quotes_total.labels(
        platform=platform.value,
        service_type=booking_request.service_type.value,
        outcome=outcome.value,
    ).inc()

    if outcome == QuoteOutcome.INVALID:
        raise HTTPException(status_code=422, detail=result.model_dump())
    return booking_request, result


def build_quote_response(
    engine: RateEngine,
    booking_request: BookingRequest,
    breakdown: PriceBreakdown,
    passenger_count: Optional[int] = None,
) -> QuoteResponse:
    flags = display_flags(breakdown.platform)
    notes = []
    vehicle = engine.table.vehicle(booking_request.vehicle_class)
    if passenger_count and passenger_count > vehicle.capacity:
        notes.append(
            f"{passenger_count} passengers exceeds the {vehicle.name} capacity of {vehicle.capacity}"
        )
    return QuoteResponse(
        platform=breakdown.platform,
        total=breakdown.total,
        label=quote_label(engine, booking_request),
        display=flags,
        breakdown=[
            item for item in breakdown.line_items if item.kind != LineItemKind.COMMISSION
        ] if flags.show_full_breakdown else None,
        commission=breakdown.commission if flags.show_commission else None,
        notes=notes,
    )


async def with_availability(response: QuoteResponse, req: QuoteRequest, portal: DriverPortalClient) -> QuoteResponse:
    """Attach live availability for the party size; never cached"""
    availability = await portal.check_availability(req.pickup_datetime, req.passenger_count, req.service_type)
    notes = list(response.notes)
    if not availability.available and not availability.driver_available:
        notes.append("Priority driver assignment fee may apply.")
    return response.model_copy(update={"availability": availability, "notes": notes})


async def cached_quote(req: QuoteRequest, platform: Platform, engine: RateEngine):
    # The last-minute discount depends on the clock, so it is part of the key.
    key = cache_key("price", platform.value, {
        "request": req.model_dump(mode="json"),
        "last_minute": engine.in_last_minute_window(req.pickup_datetime),
    })

    try:
        cached = await get_json(key)
        if cached:
            cache_hits.labels(cache="price").inc()
            if cached.get("status") == "unavailable":
                return UnavailableResponse(**cached)
            return QuoteResponse(**cached)
        cache_misses.labels(cache="price").inc()
    except Exception as e:
        logger.warning(f"Cache retrieval failed: {e}")

    booking_request, result = run_quote(req, platform, engine)
    if isinstance(result, RouteUnavailable):
        response = UnavailableResponse(platform=platform, message=result.message)
    else:
        response = build_quote_response(engine, booking_request, result, req.passenger_count)

    try:
        await set_json(key, response.model_dump(mode="json"), settings.PRICE_CACHE_TTL)
    except Exception as e:
        logger.warning(f"Cache write failed: {e}")

    return response


@router.post("/calc", response_model=Union[QuoteResponse, UnavailableResponse])
async def calc_quote(
    req: QuoteRequest,
    resolution: PlatformResolution = Depends(resolved_platform),
    engine: RateEngine = Depends(get_rate_engine),
    portal: DriverPortalClient = Depends(get_driver_portal),
):
    response = await cached_quote(req, resolution.platform, engine)
    if isinstance(response, QuoteResponse) and req.passenger_count:
        response = await with_availability(response, req, portal)
    return response
