"""Create demo doctors, patients and a week of availability.

Prints a bearer token for every demo user.

Usage:
    python -m backend.seed
"""
import sys
from datetime import datetime, time, timedelta

from backend.auth.jwt_handler import create_access_token
from backend.core.clock import SystemClock
from backend.core.errors import SlotConflict
from backend.database import Base, SessionLocal, engine
from backend.models import appointment  # noqa: F401
from backend.models.user import DOCTOR_ROLE, PATIENT_ROLE, User
from backend.services.availability import declare_availability

DEMO_USERS = [
    {'email': 'sarah.johnson@healthmate.com', 'name': 'Dr. Sarah Johnson', 'role': DOCTOR_ROLE, 'specialization': 'Cardiology'},
    {'email': 'michael.chen@healthmate.com', 'name': 'Dr. Michael Chen', 'role': DOCTOR_ROLE, 'specialization': 'General Medicine'},
    {'email': 'john.doe@example.com', 'name': 'John Doe', 'role': PATIENT_ROLE, 'specialization': None},
    {'email': 'jane.smith@example.com', 'name': 'Jane Smith', 'role': PATIENT_ROLE, 'specialization': None},
]

CLINIC_OPEN = time(9, 0)
CLINIC_CLOSE = time(17, 0)
SEED_DAYS = 7


def seed() -> list[tuple[str, str]]:
    Base.metadata.create_all(bind=engine)
    clock = SystemClock()
    db = SessionLocal()
    try:
        users = []
        for attributes in DEMO_USERS:
            existing = db.query(User).filter(User.email == attributes['email']).first()
            if existing is None:
                existing = User(**attributes)
                db.add(existing)
                db.commit()
                db.refresh(existing)
            users.append(existing)

        first_day = clock.now().date() + timedelta(days=1)
        for doctor in (user for user in users if user.is_doctor):
            for offset in range(SEED_DAYS):
                day = first_day + timedelta(days=offset)
                if day.weekday() >= 5:
                    continue
                try:
                    declare_availability(
                        db,
                        doctor=doctor,
                        start_time=datetime.combine(day, CLINIC_OPEN),
                        end_time=datetime.combine(day, CLINIC_CLOSE),
                        clock=clock,
                    )
                except SlotConflict:
                    continue
        return [(user.role, user.email) for user in users]
    finally:
        db.close()


if __name__ == '__main__':
    for role, email in seed():
        sys.stdout.write(f"{role:<8} {email:<32} {create_access_token(subject=email, role=role)}\n")
