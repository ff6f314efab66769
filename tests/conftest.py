import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from backend.core.clock import FixedClock  # noqa: E402
from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.availability import Availability  # noqa: E402
from backend.models.user import DOCTOR_ROLE, PATIENT_ROLE, User  # noqa: E402

# Monday 2026-01-05, before clinic hours.
NOW = datetime(2026, 1, 5, 8, 0)


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=[User.__table__, Availability.__table__, Appointment.__table__])
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine, tables=[Appointment.__table__, Availability.__table__, User.__table__])
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def make_user(db):
    def _make_user(email: str, role: str, name: str | None = None, specialization: str | None = None) -> User:
        user = User(email=email, name=name or email.split('@')[0], role=role, specialization=specialization)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def doctor(make_user) -> User:
    return make_user('sarah.johnson@healthmate.com', DOCTOR_ROLE, 'Dr. Sarah Johnson', 'Cardiology')


@pytest.fixture
def other_doctor(make_user) -> User:
    return make_user('michael.chen@healthmate.com', DOCTOR_ROLE, 'Dr. Michael Chen', 'General Medicine')


@pytest.fixture
def patient(make_user) -> User:
    return make_user('john.doe@example.com', PATIENT_ROLE, 'John Doe')


@pytest.fixture
def other_patient(make_user) -> User:
    return make_user('jane.smith@example.com', PATIENT_ROLE, 'Jane Smith')


@pytest.fixture
def workday_block(db, doctor) -> Availability:
    block = Availability(
        doctor_id=doctor.id,
        start_time=datetime(2026, 1, 6, 9, 0),
        end_time=datetime(2026, 1, 6, 17, 0),
    )
    db.add(block)
    db.commit()
    db.refresh(block)
    return block
