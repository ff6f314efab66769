"""Appointment model definitions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from backend.core.clock import utcnow
from backend.database import CONFIRMED_SLOT_INDEX_NAME, Base

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
APPOINTMENT_STATUSES = (STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED)

_CONFIRMED_ONLY = text("status = 'confirmed'")


class Appointment(Base):
    """Represents a scheduled appointment between a patient and a doctor."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appointments_time_order"),
        Index(
            CONFIRMED_SLOT_INDEX_NAME,
            "doctor_id",
            "start_time",
            unique=True,
            postgresql_where=_CONFIRMED_ONLY,
            sqlite_where=_CONFIRMED_ONLY,
        ),
        Index("idx_appointments_doctor_range", "doctor_id", "start_time", "end_time"),
        Index("idx_appointments_patient_start", "patient_id", "start_time"),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=STATUS_CONFIRMED)
    notes = Column(String)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    patient = relationship("User", foreign_keys=[patient_id])
    doctor = relationship("User", foreign_keys=[doctor_id])
