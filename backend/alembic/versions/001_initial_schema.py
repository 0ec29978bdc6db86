"""Initial schema: users, students, tutors, shifts, bookings, ticket ledger, reports.

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'parent'")),
        sa.Column("student_id", sa.Integer(), nullable=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("role IN ('student', 'parent', 'tutor', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_student_id", "users", ["student_id"])

    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_students_id", "students", ["id"])
    op.create_index("ix_students_user_id", "students", ["user_id"])

    op.create_table(
        "tutors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("specialization", sa.String(255), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_tutors_id", "tutors", ["id"])
    op.create_index("ix_tutors_user_id", "tutors", ["user_id"], unique=True)

    op.create_table(
        "tutor_shifts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tutor_id", sa.Integer(), sa.ForeignKey("tutors.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(20), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("tutor_id", "date", "time_slot", name="uq_tutor_shift_slot"),
    )
    op.create_index("ix_tutor_shifts_id", "tutor_shifts", ["id"])
    op.create_index("ix_tutor_shifts_tutor_id", "tutor_shifts", ["tutor_id"])
    # "Who is free on this date / band" scans by date first
    op.create_index("ix_tutor_shifts_date_slot", "tutor_shifts", ["date", "time_slot"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=True),
        sa.Column("tutor_id", sa.Integer(), sa.ForeignKey("tutors.id"), nullable=False),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("tutor_shifts.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(20), nullable=False),
        sa.Column("subject", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("report_status", sa.String(40), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("report_content", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('confirmed', 'cancelled', 'completed')", name="check_booking_status"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"])
    op.create_index("ix_bookings_tutor_id", "bookings", ["tutor_id"])
    op.create_index("ix_bookings_shift_id", "bookings", ["shift_id"])
    op.create_index("ix_bookings_tutor_date", "bookings", ["tutor_id", "date"])
    # At most one confirmed booking per shift, whatever the application does
    op.create_index(
        "uq_bookings_active_shift",
        "bookings",
        ["shift_id"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
    )

    op.create_table(
        "student_tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity <> 0", name="check_ticket_quantity_nonzero"),
        sa.CheckConstraint("(student_id IS NULL) <> (user_id IS NULL)", name="check_ticket_single_holder"),
    )
    op.create_index("ix_student_tickets_id", "student_tickets", ["id"])
    op.create_index("ix_student_tickets_student", "student_tickets", ["student_id"])
    op.create_index("ix_student_tickets_user", "student_tickets", ["user_id"])

    op.create_table(
        "lesson_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("tutor_id", sa.Integer(), sa.ForeignKey("tutors.id"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=True),
        sa.Column("unit_content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("message_content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("goal_content", sa.Text(), nullable=False, server_default=sa.text("''")),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", name="uq_lesson_reports_booking"),
    )
    op.create_index("ix_lesson_reports_id", "lesson_reports", ["id"])
    op.create_index("ix_lesson_reports_tutor_id", "lesson_reports", ["tutor_id"])
    op.create_index("ix_lesson_reports_student_id", "lesson_reports", ["student_id"])


def downgrade() -> None:
    op.drop_table("lesson_reports")
    op.drop_table("student_tickets")
    op.drop_index("uq_bookings_active_shift", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("tutor_shifts")
    op.drop_table("tutors")
    op.drop_table("students")
    op.drop_table("users")
