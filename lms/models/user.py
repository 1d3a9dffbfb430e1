"""User model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from werkzeug.security import check_password_hash, generate_password_hash

from lms.database import Base


class Role(str, enum.Enum):
    STUDENT = "student"
    PROFESSOR = "professor"
    TA = "ta"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    role = Column(
        Enum(Role, name="user_role", native_enum=False, values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
        default=Role.STUDENT,
    )
    verification_code = Column(String, nullable=True)
    verification_code_created = Column(Integer, nullable=True)  # unix seconds
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)

    def set_password(self, password: str) -> None:
        self.hashed_password = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.hashed_password:
            return False
        return check_password_hash(self.hashed_password, password)

    def is_professor(self) -> bool:
        return self.role == Role.PROFESSOR

    def is_ta(self) -> bool:
        return self.role == Role.TA

    def is_student(self) -> bool:
        return self.role == Role.STUDENT
