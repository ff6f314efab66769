"""Availability model definitions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import relationship

from backend.core.clock import utcnow
from backend.database import Base


class Availability(Base):
    """A doctor-declared window open for bookings.

    Blocks are never shrunk when part of them is booked; remaining capacity
    is always computed from the appointments table.
    """
    __tablename__ = "availability"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_availability_time_order"),
        Index("idx_availability_doctor_range", "doctor_id", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    doctor = relationship("User")
