"""Appointment booking and conflict resolution.

Each mutation below is one transaction on the given session: the checks and
the write happen before a single ``commit``. Two requests can still pass
their checks at the same time; the partial unique index on
``(doctor_id, start_time)`` for confirmed rows decides which one wins, and
the loser's ``IntegrityError`` comes back as ``SlotConflict``.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from backend.core.clock import Clock
from backend.core.errors import Forbidden, InvalidTransition, NotAvailable, NotFound, SlotConflict
from backend.models.appointment import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    Appointment,
)
from backend.models.user import User
from backend.services.availability import find_covering_block, validate_time_range
from backend.services.directory import get_doctor

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = 'This slot is already booked.'


def find_conflicting_appointment(
    db: Session,
    doctor_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status == STATUS_CONFIRMED,
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.first()


def _check_bookable(
    db: Session,
    *,
    doctor_id: int,
    start_time: datetime,
    end_time: datetime,
    clock: Clock,
    exclude_id: int | None = None,
) -> None:
    if start_time <= clock.now():
        raise NotAvailable('Appointments must be scheduled in the future.')

    if find_covering_block(db, doctor_id, start_time, end_time) is None:
        raise NotAvailable('Doctor is not available at this time.')

    if find_conflicting_appointment(db, doctor_id, start_time, end_time, exclude_id=exclude_id):
        raise SlotConflict(SLOT_TAKEN_MESSAGE)


def _commit_booking(db: Session, appointment: Appointment) -> Appointment:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            'Lost booking race for doctor %s at %s',
            appointment.doctor_id,
            appointment.start_time,
        )
        raise SlotConflict(SLOT_TAKEN_MESSAGE) from exc
    db.refresh(appointment)
    return appointment


def _load_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def create_appointment(
    db: Session,
    *,
    doctor_id: int,
    patient: User,
    start_time: datetime,
    end_time: datetime,
    notes: str | None = None,
    clock: Clock,
) -> Appointment:
    if not patient.is_patient:
        raise Forbidden('Only patients can book appointments.')

    start_time, end_time = validate_time_range(start_time, end_time)
    get_doctor(db, doctor_id)
    _check_bookable(db, doctor_id=doctor_id, start_time=start_time, end_time=end_time, clock=clock)

    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor_id,
        start_time=start_time,
        end_time=end_time,
        status=STATUS_CONFIRMED,
        notes=notes,
    )
    db.add(appointment)
    _commit_booking(db, appointment)

    logger.info(
        'Appointment %s booked: patient %s with doctor %s at %s',
        appointment.id,
        patient.id,
        doctor_id,
        start_time,
    )
    return appointment


def reschedule_appointment(
    db: Session,
    *,
    appointment_id: int,
    actor: User,
    start_time: datetime,
    end_time: datetime,
    clock: Clock,
) -> Appointment:
    """Move an appointment to a new range in place.

    The update is a single mutation, never a cancel followed by a create, so
    the old slot is not observably free while the new one is being checked.
    """
    appointment = _load_appointment(db, appointment_id)
    if appointment.patient_id != actor.id:
        raise Forbidden('Only the patient who booked this appointment can reschedule it.')
    if appointment.status != STATUS_CONFIRMED:
        raise InvalidTransition(f'A {appointment.status} appointment cannot be rescheduled.')

    start_time, end_time = validate_time_range(start_time, end_time)
    _check_bookable(
        db,
        doctor_id=appointment.doctor_id,
        start_time=start_time,
        end_time=end_time,
        clock=clock,
        exclude_id=appointment.id,
    )

    previous_start = appointment.start_time
    appointment.start_time = start_time
    appointment.end_time = end_time
    appointment.status = STATUS_CONFIRMED
    _commit_booking(db, appointment)

    logger.info('Appointment %s rescheduled from %s to %s', appointment.id, previous_start, start_time)
    return appointment


def cancel_appointment(db: Session, *, appointment_id: int, actor: User) -> Appointment:
    appointment = _load_appointment(db, appointment_id)
    if actor.id not in (appointment.patient_id, appointment.doctor_id):
        raise Forbidden('Only the patient or doctor on this appointment can cancel it.')

    if appointment.status == STATUS_CANCELLED:
        return appointment
    if appointment.status == STATUS_COMPLETED:
        raise InvalidTransition('A completed appointment cannot be cancelled.')

    appointment.status = STATUS_CANCELLED
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s cancelled by user %s', appointment.id, actor.id)
    return appointment


def complete_appointment(db: Session, *, appointment_id: int, actor: User) -> Appointment:
    appointment = _load_appointment(db, appointment_id)
    if actor.id != appointment.doctor_id:
        raise Forbidden('Only the doctor on this appointment can mark it completed.')

    if appointment.status == STATUS_COMPLETED:
        return appointment
    if appointment.status == STATUS_CANCELLED:
        raise InvalidTransition('A cancelled appointment cannot be completed.')

    appointment.status = STATUS_COMPLETED
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s completed', appointment.id)
    return appointment


def list_appointments_for(db: Session, user: User, include_cancelled: bool = False) -> list[Appointment]:
    query = db.query(Appointment).options(joinedload(Appointment.patient), joinedload(Appointment.doctor))
    if user.is_doctor:
        query = query.filter(Appointment.doctor_id == user.id)
    else:
        query = query.filter(Appointment.patient_id == user.id)

    if not include_cancelled:
        query = query.filter(Appointment.status != STATUS_CANCELLED)

    return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()
