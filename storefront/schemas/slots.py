from datetime import date as date_type
from typing import Dict, List

from pydantic import BaseModel, Field


class SlotConfig(BaseModel):
    slot_label: str
    capacity: int = Field(..., ge=0)
    revision: int = 1


class CapacityUpdateRequest(BaseModel):
    slot_label: str
    capacity: int = Field(..., ge=0)


class CapacityListResponse(BaseModel):
    default_capacity: int
    capacities: Dict[str, int]
    configs: List[SlotConfig] = Field(default_factory=list)


class SlotAvailability(BaseModel):
    slot_label: str
    window: str  # morning | afternoon
    capacity: int
    booked: int
    remaining: int
    closed: bool
    full: bool


class AvailabilityRequest(BaseModel):
    date: date_type


class AvailabilityResponse(BaseModel):
    date: date_type
    timezone: str
    slots: List[SlotAvailability]
