"""User model definitions."""

from sqlalchemy import Column, Integer, String
from calendar_api.database import Base


class User(Base):
    """A person who can hold availability and take part in appointments."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
