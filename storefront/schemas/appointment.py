from datetime import date as date_type
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from storefront.schemas.common import FailureCode, OperationResult


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED)


class Appointment(BaseModel):
    id: str
    customer_id: str
    service_name: str
    appointment_instant: datetime  # timezone-aware, UTC
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: Optional[str] = None
    created_at: datetime
    revision: int = 1


class BookingRequest(BaseModel):
    service_name: str = Field(..., min_length=1)
    customer_id: Optional[str] = None  # admins may book on behalf of a customer
    appointment_instant: Optional[datetime] = None
    date: Optional[date_type] = None
    slot_label: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _require_instant_or_slot(self) -> "BookingRequest":
        if self.appointment_instant is None and (self.date is None or not self.slot_label):
            raise ValueError("Provide appointment_instant or both date and slot_label")
        return self


class BookingResult(OperationResult):
    appointment: Optional[Appointment] = None
    slot_label: Optional[str] = None
    booked_count: Optional[int] = None
    capacity: Optional[int] = None


class TransitionRequest(BaseModel):
    appointment_id: str
    target: AppointmentStatus


class TransitionResult(OperationResult):
    appointment_id: Optional[str] = None
    current_status: Optional[AppointmentStatus] = None
    appointment: Optional[Appointment] = None


class BulkRequest(BaseModel):
    appointment_ids: List[str] = Field(..., min_length=1)


class BulkFailure(BaseModel):
    appointment_id: str
    failure: FailureCode
    message: Optional[str] = None


class BulkResult(BaseModel):
    requested: int
    succeeded: int
    failed: int
    failures: List[BulkFailure] = Field(default_factory=list)


class AppointmentRef(BaseModel):
    appointment_id: str


class AppointmentListRequest(BaseModel):
    customer_id: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    date: Optional[date_type] = None
    slot_label: Optional[str] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=500)


class AppointmentListResponse(BaseModel):
    total: int
    page: int
    page_size: int
    items: List[Appointment]
