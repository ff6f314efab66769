from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_role
from backend.core.clock import Clock, get_clock, to_utc_naive
from backend.core.errors import BookingError
from backend.database import get_db
from backend.models.availability import Availability
from backend.models.user import DOCTOR_ROLE, User
from backend.routes.common import as_utc, booking_http_error, database_unavailable, ensure_database_ready
from backend.services import availability

router = APIRouter(tags=['availability'])


class CreateAvailabilityRequest(BaseModel):
    start_time: datetime
    end_time: datetime

    @model_validator(mode='after')
    def validate_time_order(self):
        if to_utc_naive(self.start_time) >= to_utc_naive(self.end_time):
            raise ValueError('Start time must be before end time.')
        return self


class AvailabilityBlockResponse(BaseModel):
    id: int
    doctor_id: int
    start_time: datetime
    end_time: datetime


def to_block_response(block: Availability) -> AvailabilityBlockResponse:
    return AvailabilityBlockResponse(
        id=block.id,
        doctor_id=block.doctor_id,
        start_time=as_utc(block.start_time),
        end_time=as_utc(block.end_time),
    )


@router.post('', response_model=AvailabilityBlockResponse, status_code=status.HTTP_201_CREATED)
def declare_availability(
    data: CreateAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_role(current_user, DOCTOR_ROLE, 'Only doctors can declare availability.')
    ensure_database_ready()

    try:
        block = availability.declare_availability(
            db,
            doctor=current_user,
            start_time=data.start_time,
            end_time=data.end_time,
            clock=clock,
        )
        return to_block_response(block)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[AvailabilityBlockResponse])
def list_my_availability(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_role(current_user, DOCTOR_ROLE, 'Only doctors have availability.')
    ensure_database_ready()

    try:
        blocks = availability.list_doctor_blocks(db, current_user.id, as_of=clock.now())
        return [to_block_response(block) for block in blocks]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_availability(
    block_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, DOCTOR_ROLE, 'Only doctors can remove availability.')
    ensure_database_ready()

    try:
        availability.remove_availability(db, block_id=block_id, actor=current_user)
    except BookingError as exc:
        raise booking_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
