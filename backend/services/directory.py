from sqlalchemy.orm import Session

from backend.core.errors import NotFound
from backend.models.user import DOCTOR_ROLE, User


def list_doctors(db: Session) -> list[User]:
    return db.query(User).filter(User.role == DOCTOR_ROLE).order_by(User.name.asc()).all()


def get_doctor(db: Session, doctor_id: int) -> User:
    doctor = db.query(User).filter(User.id == doctor_id, User.role == DOCTOR_ROLE).first()
    if doctor is None:
        raise NotFound('Doctor not found.')
    return doctor
