from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class OccupiedSlot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_date: date = Field(alias="date")
    slot: str


class IntegrationStatus(BaseModel):
    calendar: bool
    sms: bool


class BookAppointmentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = "Appointment booked"
    id: str
    name: str
    email: str
    appointment_date: date = Field(alias="date")
    slot: str
    service_type: str = Field(alias="serviceType")
    status: str
    integrations: IntegrationStatus


class CancelAppointmentResponse(BaseModel):
    message: str
    id: str
    status: str
