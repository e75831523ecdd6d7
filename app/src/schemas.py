from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: str


class RouteSchema(BaseModel):
    id: int
    start: str
    end: str
    fare: float
    stops: list[str]
    updated_on: Optional[datetime]
    created_on: datetime


class BusSchema(BaseModel):
    id: int
    route_id: Optional[int]
    driver_id: int
    owner_id: int
    seats: int
    license_info: Optional[str]
    image_url: Optional[str]
    updated_on: Optional[datetime]
    created_on: datetime


class AccountSchema(BaseModel):
    id: int
    role: str
    display_name: Optional[str]
    email_id: Optional[str]
    phone_number: Optional[str]
    photo_url: Optional[str]
    updated_on: Optional[datetime]
    created_on: datetime


class TourSchema(BaseModel):
    id: int
    route_id: int
    bus_id: int
    driver_id: int
    start_date_time: datetime
    end_date_time: datetime
    is_weekly: bool
    status: str
    current_stop_index: Optional[int]
    updated_on: Optional[datetime]
    created_on: datetime


class TourProgressSchema(BaseModel):
    id: int
    tour_id: int
    stop_index: int
    stop_name: str
    arrived_at: datetime
    latitude: Optional[float]
    longitude: Optional[float]
