"""Read-only views over the loaded rate table"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.api.deps import resolved_platform
from app.core.enums import Platform, VehicleClass
from app.schemas.platform import PlatformResolution
from app.services.pricing import RateEngine, get_rate_engine

router = APIRouter(prefix="/rates", tags=["rates"])


class VehicleOut(BaseModel):
    vehicle_class: VehicleClass
    name: str
    capacity: int
    airport_eligible: bool
    hourly_rate: float


class PlaceOut(BaseModel):
    key: str
    name: str


class RouteOut(BaseModel):
    vehicle_class: VehicleClass
    vehicle_name: str
    pickup_zone: PlaceOut
    destination: PlaceOut
    platform: Platform
    rate: float
    rate_type: str = "Flat"
    estimated_hours: float


def _vehicle_or_404(value: str) -> VehicleClass:
    try:
        return VehicleClass(value.lower())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Vehicle class '{value}' not found")


@router.get("/vehicles", response_model=List[VehicleOut])
async def list_vehicles(
    resolution: PlatformResolution = Depends(resolved_platform),
    engine: RateEngine = Depends(get_rate_engine),
):
    table = engine.table
    return [
        VehicleOut(
            vehicle_class=vehicle_class,
            name=spec.name,
            capacity=spec.capacity,
            airport_eligible=spec.airport_eligible,
            hourly_rate=table.hourly_rate(vehicle_class, resolution.platform),
        )
        for vehicle_class, spec in table.vehicles.items()
    ]


@router.get("/zones/{vehicle_class}", response_model=List[PlaceOut])
async def list_zones(vehicle_class: str, engine: RateEngine = Depends(get_rate_engine)):
    vc = _vehicle_or_404(vehicle_class)
    table = engine.table
    return [PlaceOut(key=zone, name=table.place_name(zone)) for zone in table.zones_for(vc)]


@router.get("/routes/{vehicle_class}/{zone}", response_model=List[PlaceOut])
async def list_destinations(vehicle_class: str, zone: str, engine: RateEngine = Depends(get_rate_engine)):
    vc = _vehicle_or_404(vehicle_class)
    table = engine.table
    return [
        PlaceOut(key=dest, name=table.place_name(dest))
        for dest in table.destinations_for(vc, zone.lower())
    ]


@router.get("/routes/{vehicle_class}/{zone}/{destination}", response_model=RouteOut)
async def route_details(
    vehicle_class: str,
    zone: str,
    destination: str,
    resolution: PlatformResolution = Depends(resolved_platform),
    engine: RateEngine = Depends(get_rate_engine),
):
    vc = _vehicle_or_404(vehicle_class)
    table = engine.table
    zone, destination = zone.lower(), destination.lower()

    rate = table.route_rate(vc, zone, destination, resolution.platform)
    if rate is None:
        raise HTTPException(
            status_code=404,
            detail=f"Route {zone} -> {destination} is not offered for {table.vehicle(vc).name}"
        )

    return RouteOut(
        vehicle_class=vc,
        vehicle_name=table.vehicle(vc).name,
        pickup_zone=PlaceOut(key=zone, name=table.place_name(zone)),
        destination=PlaceOut(key=destination, name=table.place_name(destination)),
        platform=resolution.platform,
        rate=rate,
        estimated_hours=table.estimated_route_hours(zone, destination),
    )
