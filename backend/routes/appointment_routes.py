from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_role
from backend.core import config
from backend.core.clock import Clock, get_clock, to_utc_naive
from backend.core.errors import BookingError
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.models.user import PATIENT_ROLE, User
from backend.routes.common import as_utc, booking_http_error, database_unavailable, ensure_database_ready
from backend.services import booking, notifications

router = APIRouter(tags=['appointments'])


class TimeRangeRequest(BaseModel):
    start_time: datetime
    end_time: datetime

    @model_validator(mode='after')
    def validate_time_order(self):
        if to_utc_naive(self.start_time) >= to_utc_naive(self.end_time):
            raise ValueError('Start time must be before end time.')
        return self


class CreateAppointmentRequest(TimeRangeRequest):
    doctor_id: int
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class RescheduleAppointmentRequest(TimeRangeRequest):
    pass


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    patient_name: str
    doctor_name: str
    start_time: datetime
    end_time: datetime
    status: str
    notes: str | None = None


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        patient_name=appointment.patient.name if appointment.patient else '',
        doctor_name=appointment.doctor.name if appointment.doctor else '',
        start_time=as_utc(appointment.start_time),
        end_time=as_utc(appointment.end_time),
        status=appointment.status,
        notes=appointment.notes,
    )


@router.get('', response_model=list[AppointmentResponse])
def list_my_appointments(
    include_cancelled: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = booking.list_appointments_for(db, current_user, include_cancelled=include_cancelled)
        return [to_appointment_response(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_role(current_user, PATIENT_ROLE, 'Only patients can book appointments.')
    ensure_database_ready()

    try:
        appointment = booking.create_appointment(
            db,
            doctor_id=data.doctor_id,
            patient=current_user,
            start_time=data.start_time,
            end_time=data.end_time,
            notes=data.notes,
            clock=clock,
        )
        response = to_appointment_response(appointment)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    background_tasks.add_task(
        notifications.send_notification,
        notifications.appointment_confirmed(
            current_user.name,
            current_user.email,
            response.doctor_name,
            appointment.start_time,
        ),
    )
    return response


@router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.cancel_appointment(db, appointment_id=appointment_id, actor=current_user)
        return to_appointment_response(appointment)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_role(current_user, PATIENT_ROLE, 'Only patients can reschedule appointments.')
    ensure_database_ready()

    try:
        appointment = booking.reschedule_appointment(
            db,
            appointment_id=appointment_id,
            actor=current_user,
            start_time=data.start_time,
            end_time=data.end_time,
            clock=clock,
        )
        response = to_appointment_response(appointment)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    background_tasks.add_task(
        notifications.send_notification,
        notifications.appointment_rescheduled(
            current_user.name,
            current_user.email,
            response.doctor_name,
            appointment.start_time,
        ),
    )
    return response


@router.patch('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.complete_appointment(db, appointment_id=appointment_id, actor=current_user)
        return to_appointment_response(appointment)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
