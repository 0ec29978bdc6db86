from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Text

from tutorbook.db.base import Base, TimestampMixin


class Tutor(Base, TimestampMixin):
    __tablename__ = "tutors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    specialization = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name}"

    def __repr__(self) -> str:
        return f"<Tutor(id={self.id}, user={self.user_id})>"
