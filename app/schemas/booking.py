from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from app.core.enums import Platform
from app.schemas.quote import QuoteRequest


class AvailabilityRequest(BaseModel):
    pickup_datetime: datetime
    passenger_count: int = Field(1, ge=1)
    service_type: str


class CustomerContact(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None


class BookingCreate(BaseModel):
    quote: QuoteRequest
    customer: CustomerContact
    pickup_location: str
    dropoff_location: Optional[str] = None
    passenger_count: int = Field(1, ge=1)
    special_instructions: Optional[str] = None


class BookingSyncResult(BaseModel):
    success: bool
    trip_id: Optional[str] = None
    error: Optional[str] = None


class BookingOut(BaseModel):
    success: bool
    platform: Platform
    total: float
    trip_id: Optional[str] = None
    confirmation_code: Optional[str] = None
    message: str
    error: Optional[str] = None
    fallback: bool = False


class FleetStatusOut(BaseModel):
    vehicles: List[Dict[str, Any]]
