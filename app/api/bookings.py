import logging
import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException

from app.api.deps import resolved_platform
from app.api.quotes import run_quote
from app.schemas.booking import AvailabilityRequest, BookingCreate, BookingOut, FleetStatusOut
from app.schemas.quote import AvailabilityOut, RouteUnavailable
from app.schemas.platform import PlatformResolution
from app.services.driver_portal import DriverPortalClient, get_driver_portal
from app.services.pricing import RateEngine, get_rate_engine
from app.utils.hashing import fingerprint
from app.utils.idempotency import get_booking_record, save_booking_record

logger = logging.getLogger(__name__)
router = APIRouter(tags=["bookings"])


@router.post("/availability", response_model=AvailabilityOut)
async def check_availability(
    payload: AvailabilityRequest,
    portal: DriverPortalClient = Depends(get_driver_portal),
):
    return await portal.check_availability(
        payload.pickup_datetime, payload.passenger_count, payload.service_type
    )


@router.get("/fleet/status", response_model=FleetStatusOut)
async def fleet_status(portal: DriverPortalClient = Depends(get_driver_portal)):
    return FleetStatusOut(vehicles=await portal.fleet_status())


@router.post("/bookings", response_model=BookingOut)
async def create_booking(
    payload: BookingCreate,
    idempotency_key: Optional[str] = Header(None),
    resolution: PlatformResolution = Depends(resolved_platform),
    engine: RateEngine = Depends(get_rate_engine),
    portal: DriverPortalClient = Depends(get_driver_portal),
):
    platform = resolution.platform
    digest = fingerprint({"platform": platform.value, "booking": payload.model_dump(mode="json")})

    prev = None
    if idempotency_key:
        try:
            prev = await get_booking_record(idempotency_key)
        except Exception as e:
            logger.warning(f"Idempotency lookup failed, processing booking: {e}")
        if prev:
            if prev.get("fingerprint") != digest:
                raise HTTPException(status_code=409, detail="Idempotency-Key was already used for a different booking")
            return prev["response"]

    booking_request, result = run_quote(payload.quote, platform, engine)
    if isinstance(result, RouteUnavailable):
        raise HTTPException(status_code=409, detail=result.message)

    sync = await portal.sync_booking(payload, booking_request, result.total, idempotency_key)
    if sync.success:
        out = BookingOut(
            success=True,
            platform=platform,
            total=result.total,
            trip_id=sync.trip_id,
            confirmation_code=f"TNT-{secrets.token_hex(3).upper()}",
            message="Booking confirmed and dispatched to drivers",
        )
    else:
        logger.error(f"Failed to sync booking: {sync.error}")
        out = BookingOut(
            success=False,
            platform=platform,
            total=result.total,
            error=sync.error,
            fallback=True,
            message="Booking created but requires manual dispatcher assignment",
        )

    if idempotency_key:
        try:
            await save_booking_record(idempotency_key, digest, out.model_dump(mode="json"))
        except Exception as e:
            logger.warning(f"Idempotency record for {idempotency_key} not stored: {e}")
    return out
