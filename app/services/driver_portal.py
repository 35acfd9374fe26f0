import httpx
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.core.config import settings
from app.core.enums import Platform
from app.core.errors import DriverPortalError
from app.core.metrics import track_driver_portal_call
from app.schemas.booking import BookingCreate, BookingSyncResult
from app.schemas.quote import AvailabilityOut, BookingRequest

logger = logging.getLogger(__name__)

ACCOUNT_IDS = {
    Platform.CORPORATE: "CAPITAL_ONE",
    Platform.PARTNER: "GNET_PARTNER",
}


def fallback_availability() -> AvailabilityOut:
    return AvailabilityOut(
        available=True,
        recommended_vehicle_class=settings.DEFAULT_VEHICLE_CLASS,
        driver_available=True,
        conflicting_trip_count=0,
        fallback=True,
    )


def _conflict_count(value) -> int:
    """The portal sends conflicting trips as a list, a count, or nothing"""
    if value is None:
        return 0
    if isinstance(value, (list, tuple)):
        return len(value)
    if isinstance(value, bool):
        return int(value)
    try:
        return max(int(value), 0)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Ignoring unexpected conflictingTrips value {value!r}")
        return 0


class DriverPortalClient:
    """Client for the dispatch (driver portal) pricing-sync API.

    Availability and fleet lookups never raise: on any failure they return a
    conservative fallback so quoting is not blocked. Booking sync retries
    transport errors and 5xx responses with exponential backoff and reports
    the final outcome as a ``BookingSyncResult``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.DRIVER_PORTAL_URL).rstrip("/")
        self.api_base = f"{self.base_url}/api/pricing-sync"
        self.timeout = timeout if timeout is not None else settings.DRIVER_PORTAL_TIMEOUT
        self.retries = retries if retries is not None else settings.DRIVER_PORTAL_RETRIES
        self.backoff = backoff
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout, transport=self.transport)

    async def _request(self, method: str, path: str, retries: Optional[int] = None, **kwargs) -> Dict[str, Any]:
        if retries is None:
            retries = self.retries

        backoff = self.backoff
        last_error = "no attempt made"

        for attempt in range(1, retries + 1):
            try:
                async with self._client() as client:
                    response = await client.request(method, path, **kwargs)

                if response.status_code < 500:
                    data = response.json()
                    if not isinstance(data, dict):
                        raise DriverPortalError(f"Driver portal returned {type(data).__name__} for {path}")
                    return data

                last_error = f"status {response.status_code}"
                logger.warning(
                    f"Driver portal {method} {path} failed (attempt {attempt}/{retries}): {last_error}"
                )
            except httpx.TimeoutException:
                last_error = "timeout"
                logger.warning(f"Driver portal timeout (attempt {attempt}/{retries}) for {method} {path}")
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.warning(f"Driver portal error (attempt {attempt}/{retries}): {last_error} for {method} {path}")
            except ValueError as e:
                raise DriverPortalError(f"Driver portal returned invalid JSON for {path}: {e}") from e

            if attempt < retries:
                await asyncio.sleep(backoff)
                backoff *= 2.0

        logger.error(f"Driver portal {method} {path} failed after {retries} attempts: {last_error}")
        raise DriverPortalError(f"{method} {path} failed after {retries} attempts: {last_error}")

    @track_driver_portal_call("availability")
    async def _fetch_availability(self, params: Dict[str, str]) -> Dict[str, Any]:
        return await self._request("GET", "/availability", retries=1, params=params)

    @track_driver_portal_call("fleet_status")
    async def _fetch_fleet_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/fleet-status", retries=1)

    @track_driver_portal_call("book")
    async def _post_booking(self, payload: Dict[str, Any], idempotency_key: Optional[str]) -> Dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        return await self._request("POST", "/book", json=payload, headers=headers)

    async def check_availability(self, pickup_datetime: datetime, passenger_count: int, service_type: str) -> AvailabilityOut:
        params = {
            "datetime": pickup_datetime.isoformat(),
            "passengers": str(passenger_count),
            "service_type": str(service_type),
        }
        try:
            result = await self._fetch_availability(params)
        except DriverPortalError as e:
            logger.error(f"Error checking availability, using fallback: {e}")
            return fallback_availability()

        if not result.get("success"):
            logger.warning(f"Availability check failed: {result.get('error')}")
            return fallback_availability()

        availability = result.get("availability")
        if not isinstance(availability, dict):
            logger.warning(f"Availability response has no availability object: {availability!r}")
            return fallback_availability()
        try:
            return AvailabilityOut(
                available=bool(availability.get("available", True)),
                recommended_vehicle_class=availability.get("vehicleClass") or settings.DEFAULT_VEHICLE_CLASS,
                driver_available=bool(availability.get("driverAvailable", True)),
                conflicting_trip_count=_conflict_count(availability.get("conflictingTrips")),
                assigned_vehicle_id=availability.get("assignedVehicleId"),
            )
        except ValidationError as e:
            logger.warning(f"Unexpected availability payload, using fallback: {e}")
            return fallback_availability()

    async def fleet_status(self) -> List[Dict[str, Any]]:
        try:
            result = await self._fetch_fleet_status()
        except DriverPortalError as e:
            logger.error(f"Error getting fleet status: {e}")
            return []

        if not result.get("success"):
            logger.warning(f"Fleet status failed: {result.get('error')}")
            return []
        return list(result.get("fleet") or [])

    async def sync_booking(
        self,
        booking: BookingCreate,
        request: BookingRequest,
        total: float,
        idempotency_key: Optional[str] = None,
    ) -> BookingSyncResult:
        payload = build_sync_payload(booking, request, total)
        try:
            result = await self._post_booking(payload, idempotency_key)
        except DriverPortalError as e:
            logger.error(f"Error syncing booking: {e}")
            return BookingSyncResult(success=False, error="Failed to sync booking to driver portal")

        if result.get("success"):
            logger.info(f"Booking {result.get('tripId')} synced to driver portal for {request.platform} platform")
            return BookingSyncResult(success=True, trip_id=str(result.get("tripId")))
        return BookingSyncResult(success=False, error=str(result.get("error") or "Booking rejected by driver portal"))


def build_sync_payload(booking: BookingCreate, request: BookingRequest, total: float) -> Dict[str, Any]:
    zone_route = request.zone_route
    return {
        "serviceType": str(request.service_type),
        "vehicleClass": str(request.vehicle_class),
        "pickupDateTime": request.pickup_datetime.isoformat(),
        "durationHours": request.duration_hours,
        "zoneRoute": {"pickupZone": zone_route.pickup_zone, "destination": zone_route.destination} if zone_route else None,
        "pickupLocation": booking.pickup_location,
        "dropoffLocation": booking.dropoff_location,
        "passengerCount": booking.passenger_count,
        "totalAmount": total,
        "platform": str(request.platform),
        "specialInstructions": booking.special_instructions,
        "corporateAccountId": ACCOUNT_IDS.get(request.platform),
        "bookingSource": "pricing_tool",
        "bookingTimestamp": datetime.now(timezone.utc).isoformat(),
        "customerInfo": {
            "name": booking.customer.name,
            "email": booking.customer.email,
            "phone": booking.customer.phone,
        },
    }


def get_driver_portal() -> DriverPortalClient:
    return DriverPortalClient()
