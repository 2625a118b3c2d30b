from sqlalchemy.orm import Session

from calendar_api.core.errors import PersonNotFound
from calendar_api.models.user import User


def normalize_email(value: str) -> str:
    return value.strip().lower()


def get_person(db: Session, person_id: int) -> User:
    person = db.get(User, person_id)
    if person is None:
        raise PersonNotFound(person_id)
    return person


def get_person_by_email(db: Session, email: str) -> User:
    normalized = normalize_email(email)
    person = db.query(User).filter(User.email == normalized).first()
    if person is None:
        raise PersonNotFound(normalized)
    return person
