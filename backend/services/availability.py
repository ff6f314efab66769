"""Availability blocks and the open-slot views derived from them.

Nothing here stores "booked" state. Whether a block or a slot is still open
is always computed from the confirmed appointments at read time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from backend.core.clock import Clock, to_utc_naive
from backend.core.errors import Forbidden, InvalidTimeRange, NotAvailable, NotFound, SlotConflict
from backend.models.appointment import STATUS_CONFIRMED, Appointment
from backend.models.availability import Availability
from backend.models.user import User
from backend.services.directory import get_doctor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenSlot:
    availability_id: int
    start_time: datetime
    end_time: datetime


def validate_time_range(start_time: datetime, end_time: datetime) -> tuple[datetime, datetime]:
    start_time = to_utc_naive(start_time)
    end_time = to_utc_naive(end_time)
    if start_time >= end_time:
        raise InvalidTimeRange('Start time must be before end time.')
    return start_time, end_time


def find_covering_block(db: Session, doctor_id: int, start_time: datetime, end_time: datetime) -> Availability | None:
    return db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.start_time <= start_time,
        Availability.end_time >= end_time,
    ).order_by(Availability.start_time.asc()).first()


def declare_availability(
    db: Session,
    *,
    doctor: User,
    start_time: datetime,
    end_time: datetime,
    clock: Clock,
) -> Availability:
    if not doctor.is_doctor:
        raise Forbidden('Only doctors can declare availability.')

    start_time, end_time = validate_time_range(start_time, end_time)
    if end_time <= clock.now():
        raise NotAvailable('Availability must end in the future.')

    overlapping_block = db.query(Availability).filter(
        Availability.doctor_id == doctor.id,
        Availability.start_time < end_time,
        Availability.end_time > start_time,
    ).first()
    if overlapping_block:
        raise SlotConflict('Availability overlaps an existing block.')

    block = Availability(doctor_id=doctor.id, start_time=start_time, end_time=end_time)
    db.add(block)
    db.commit()
    db.refresh(block)

    logger.info('Doctor %s declared availability %s: %s - %s', doctor.id, block.id, start_time, end_time)
    return block


def list_doctor_blocks(db: Session, doctor_id: int, as_of: datetime | None = None) -> list[Availability]:
    query = db.query(Availability).filter(Availability.doctor_id == doctor_id)
    if as_of is not None:
        query = query.filter(Availability.end_time >= to_utc_naive(as_of))
    return query.order_by(Availability.start_time.asc()).all()


def remove_availability(db: Session, *, block_id: int, actor: User) -> None:
    block = db.query(Availability).filter(Availability.id == block_id).first()
    if block is None:
        raise NotFound('Availability block not found.')
    if block.doctor_id != actor.id:
        raise Forbidden('Only the doctor who declared this availability can remove it.')

    booked = db.query(Appointment.id).filter(
        Appointment.doctor_id == block.doctor_id,
        Appointment.status == STATUS_CONFIRMED,
        Appointment.start_time < block.end_time,
        Appointment.end_time > block.start_time,
    ).first()
    if booked:
        raise SlotConflict('This availability has confirmed appointments. Cancel them first.')

    db.delete(block)
    db.commit()
    logger.info('Doctor %s removed availability %s', actor.id, block_id)


def list_open_slots(db: Session, *, doctor_id: int, as_of: datetime) -> list[Availability]:
    """Blocks still ending at or after ``as_of`` whose start is not taken.

    A block counts as taken only when a confirmed appointment starts exactly
    at the block's start time, so partially booked blocks stay listed. Use
    ``list_slot_grid`` for a per-slot view of remaining capacity.
    """
    get_doctor(db, doctor_id)
    as_of = to_utc_naive(as_of)

    booked_at_block_start = exists().where(
        and_(
            Appointment.doctor_id == Availability.doctor_id,
            Appointment.start_time == Availability.start_time,
            Appointment.status == STATUS_CONFIRMED,
        )
    )

    return db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.end_time >= as_of,
        ~booked_at_block_start,
    ).order_by(Availability.start_time.asc()).all()


def iterate_slot_ranges(start_time: datetime, end_time: datetime, slot_minutes: int) -> Iterator[tuple[datetime, datetime]]:
    """Yield consecutive ``slot_minutes`` ranges that fit in ``[start_time, end_time)``.

    Slots are counted from ``start_time`` itself, so a block opening at 09:10
    with 30-minute slots yields 09:10-09:40 first. A partial tail is dropped.
    """
    step = timedelta(minutes=slot_minutes)
    current = start_time

    while current + step <= end_time:
        yield current, current + step
        current += step


def list_slot_grid(db: Session, *, doctor_id: int, as_of: datetime, slot_minutes: int) -> list[OpenSlot]:
    if slot_minutes <= 0:
        raise InvalidTimeRange('Slot length must be a positive number of minutes.')

    get_doctor(db, doctor_id)
    as_of = to_utc_naive(as_of)

    blocks = db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.end_time > as_of,
    ).order_by(Availability.start_time.asc()).all()
    if not blocks:
        return []

    booked_ranges = db.query(Appointment.start_time, Appointment.end_time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status == STATUS_CONFIRMED,
        Appointment.end_time > as_of,
    ).all()

    slots: list[OpenSlot] = []
    for block in blocks:
        for slot_start, slot_end in iterate_slot_ranges(block.start_time, block.end_time, slot_minutes):
            if slot_start < as_of:
                continue
            if any(booked_start < slot_end and booked_end > slot_start for booked_start, booked_end in booked_ranges):
                continue
            slots.append(OpenSlot(availability_id=block.id, start_time=slot_start, end_time=slot_end))

    return slots
