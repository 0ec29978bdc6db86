"""
User account as seen by the booking service.

Credentials live with the identity provider; we keep the role and the links
that decide whose bookings and tickets an account can see.
"""

import enum

from sqlalchemy import Column, Integer, String, CheckConstraint

from tutorbook.db.base import Base, TimestampMixin


class Role(str, enum.Enum):
    STUDENT = "student"
    PARENT = "parent"
    TUTOR = "tutor"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default=Role.PARENT.value)
    # Student-role accounts point at their own students row
    student_id = Column(Integer, nullable=True, index=True)
    display_name = Column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('student', 'parent', 'tutor', 'admin')", name="check_user_role"
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
