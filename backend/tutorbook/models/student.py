"""
Student profile. Owned by a parent account (or by the student's own account).
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey

from tutorbook.db.base import Base, TimestampMixin


class Student(Base, TimestampMixin):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name}"

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, user={self.user_id})>"
