"""User model definitions."""

from sqlalchemy import Column, Integer, String
from backend.database import Base

PATIENT_ROLE = "patient"
DOCTOR_ROLE = "doctor"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False)  # patient/doctor
    specialization = Column(String)  # doctors only

    @property
    def is_patient(self) -> bool:
        return self.role == PATIENT_ROLE

    @property
    def is_doctor(self) -> bool:
        return self.role == DOCTOR_ROLE
