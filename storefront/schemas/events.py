from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from storefront.schemas.appointment import Appointment, AppointmentStatus


class AppointmentCreated(BaseModel):
    kind: Literal["appointment_created"] = "appointment_created"
    appointment: Appointment

    @property
    def entity_id(self) -> str:
        return self.appointment.id

    @property
    def revision(self) -> int:
        return self.appointment.revision


class AppointmentStatusChanged(BaseModel):
    kind: Literal["appointment_status_changed"] = "appointment_status_changed"
    appointment_id: str
    previous: AppointmentStatus
    status: AppointmentStatus
    revision: int
    appointment_instant: datetime
    customer_id: str

    @property
    def entity_id(self) -> str:
        return self.appointment_id


class AppointmentDeleted(BaseModel):
    kind: Literal["appointment_deleted"] = "appointment_deleted"
    appointment_id: str
    revision: int

    @property
    def entity_id(self) -> str:
        return self.appointment_id


class CapacityChanged(BaseModel):
    kind: Literal["capacity_changed"] = "capacity_changed"
    slot_label: str
    capacity: int
    previous: Optional[int] = None
    revision: int

    @property
    def entity_id(self) -> str:
        return self.slot_label


ChangeEvent = Annotated[
    Union[AppointmentCreated, AppointmentStatusChanged, AppointmentDeleted, CapacityChanged],
    Field(discriminator="kind"),
]

change_event_adapter: TypeAdapter[ChangeEvent] = TypeAdapter(ChangeEvent)
