"""
Caller resolution: turns an authenticated user id into an explicit role plus
the ids that role acts through (own student record, owned students, tutor).
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.exceptions import NotFound, PermissionDenied
from tutorbook.core.logging import bind_caller
from tutorbook.models.student import Student
from tutorbook.models.tutor import Tutor
from tutorbook.models.user import Role, User


@dataclass(frozen=True)
class CallerIdentity:
    role: Role
    user_id: int
    student_id: Optional[int] = None
    tutor_id: Optional[int] = None
    # Students this caller may book and buy tickets for
    student_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can_act_for_student(self, student_id: int) -> bool:
        return self.is_admin or student_id in self.student_ids

    def require_tutor(self) -> int:
        if self.role is not Role.TUTOR or self.tutor_id is None:
            raise PermissionDenied("Only tutors can do this")
        return self.tutor_id


async def resolve_caller(db: AsyncSession, user_id: int) -> CallerIdentity:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    role = Role(user.role)
    bind_caller(user.id, role.value)

    if role is Role.TUTOR:
        tutor = (
            await db.execute(select(Tutor).where(Tutor.user_id == user.id))
        ).scalar_one_or_none()
        if tutor is None:
            raise NotFound("Tutor profile not found")
        return CallerIdentity(role=role, user_id=user.id, tutor_id=tutor.id)

    if role is Role.STUDENT:
        if user.student_id is None:
            raise NotFound("Student profile not found")
        return CallerIdentity(
            role=role,
            user_id=user.id,
            student_id=user.student_id,
            student_ids=frozenset({user.student_id}),
        )

    owned = (
        await db.execute(
            select(Student.id).where(Student.user_id == user.id, Student.is_active.is_(True))
        )
    ).scalars().all()
    return CallerIdentity(role=role, user_id=user.id, student_ids=frozenset(owned))
