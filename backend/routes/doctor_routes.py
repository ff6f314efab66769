from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.core import config
from backend.core.clock import Clock, get_clock
from backend.core.errors import BookingError
from backend.database import get_db
from backend.routes.availability_routes import AvailabilityBlockResponse, to_block_response
from backend.routes.common import as_utc, booking_http_error, database_unavailable, ensure_database_ready
from backend.services import availability, directory

router = APIRouter(tags=['doctors'], dependencies=[Depends(get_current_user)])


class DoctorResponse(BaseModel):
    id: int
    name: str
    email: str
    specialization: str | None = None

    class Config:
        from_attributes = True


class OpenSlotResponse(BaseModel):
    availability_id: int
    start_time: datetime
    end_time: datetime


@router.get('', response_model=list[DoctorResponse])
def list_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return directory.list_doctors(db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return directory.get_doctor(db, doctor_id)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}/availability', response_model=list[AvailabilityBlockResponse])
def list_open_availability(
    doctor_id: int,
    as_of: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        blocks = availability.list_open_slots(db, doctor_id=doctor_id, as_of=as_of or clock.now())
        return [to_block_response(block) for block in blocks]
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}/slots', response_model=list[OpenSlotResponse])
def list_open_slot_grid(
    doctor_id: int,
    slot_minutes: int = Query(default=config.DEFAULT_SLOT_MINUTES, ge=5, le=480),
    as_of: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        slots = availability.list_slot_grid(
            db,
            doctor_id=doctor_id,
            as_of=as_of or clock.now(),
            slot_minutes=slot_minutes,
        )
        return [
            OpenSlotResponse(
                availability_id=slot.availability_id,
                start_time=as_utc(slot.start_time),
                end_time=as_utc(slot.end_time),
            )
            for slot in slots
        ]
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
