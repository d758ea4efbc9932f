"""create scheduling schema

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


room_type_enum = sa.Enum("lecture", "laboratory", name="room_type")
course_room_type_enum = sa.Enum("lecture", "laboratory", name="course_room_type")
course_type_enum = sa.Enum("core", "professional", name="course_type")
unschedulable_policy_enum = sa.Enum("skip", "abort", name="unschedulable_policy")


def upgrade() -> None:
    op.create_table(
        "departments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_departments_code", "departments", ["code"], unique=True)

    op.create_table(
        "department_settings",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "department_id",
            sa.String(length=36),
            sa.ForeignKey("departments.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("start_hour", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("end_hour", sa.Integer(), nullable=False, server_default="19"),
        sa.Column("professor_max_hours", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("professor_max_weekly_hours", sa.Integer(), nullable=True),
        sa.Column("student_max_hours", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("professor_break", sa.Float(), nullable=False, server_default="1"),
        sa.Column("max_allowed_gap", sa.Float(), nullable=False, server_default="5"),
        sa.Column("next_schedule_break", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("enforce_spacing_rules", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("unschedulable_policy", unschedulable_policy_enum, nullable=False, server_default="skip"),
        sa.Column("room_type_matching", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("floor", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("type", room_type_enum, nullable=False, server_default="lecture"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_rooms_code", "rooms", ["code"], unique=True)

    op.create_table(
        "programs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "department_id",
            sa.String(length=36),
            sa.ForeignKey("departments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_programs_code", "programs", ["code"], unique=True)
    op.create_index("ix_programs_department_id", "programs", ["department_id"])

    op.create_table(
        "sections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("programs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("letter", sa.String(length=10), nullable=False),
        sa.Column("enrolled_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("program_id", "year", "letter", name="uq_sections_program_year_letter"),
    )
    op.create_index("ix_sections_program_id", "sections", ["program_id"])

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("units", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("type", course_type_enum, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("room_type", course_room_type_enum, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)

    op.create_table(
        "course_programs",
        sa.Column("course_id", sa.String(length=36), sa.ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("program_id", sa.String(length=36), sa.ForeignKey("programs.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "professors",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column(
            "department_id",
            sa.String(length=36),
            sa.ForeignKey("departments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "assignations",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("course_id", sa.String(length=36), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "professor_id",
            sa.String(length=36),
            sa.ForeignKey("professors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "department_id",
            sa.String(length=36),
            sa.ForeignKey("departments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("school_year", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("semester", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_assignations_department_id", "assignations", ["department_id"])

    op.create_table(
        "assignation_sections",
        sa.Column(
            "assignation_id",
            sa.String(length=36),
            sa.ForeignKey("assignations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("section_id", sa.String(length=36), sa.ForeignKey("sections.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "schedule_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("room_id", sa.String(length=36), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "assignation_id",
            sa.String(length=36),
            sa.ForeignKey("assignations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedule_entries_day", "schedule_entries", ["day"])
    op.create_index("ix_schedule_entries_room_id", "schedule_entries", ["room_id"])
    op.create_index("ix_schedule_entries_assignation_id", "schedule_entries", ["assignation_id"])

    op.create_table(
        "schedule_sections",
        sa.Column(
            "schedule_entry_id",
            sa.String(length=36),
            sa.ForeignKey("schedule_entries.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("section_id", sa.String(length=36), sa.ForeignKey("sections.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("actor", sa.String(length=200), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_table("schedule_sections")
    op.drop_index("ix_schedule_entries_assignation_id", table_name="schedule_entries")
    op.drop_index("ix_schedule_entries_room_id", table_name="schedule_entries")
    op.drop_index("ix_schedule_entries_day", table_name="schedule_entries")
    op.drop_table("schedule_entries")
    op.drop_table("assignation_sections")
    op.drop_index("ix_assignations_department_id", table_name="assignations")
    op.drop_table("assignations")
    op.drop_table("professors")
    op.drop_table("course_programs")
    op.drop_index("ix_courses_code", table_name="courses")
    op.drop_table("courses")
    op.drop_index("ix_sections_program_id", table_name="sections")
    op.drop_table("sections")
    op.drop_index("ix_programs_department_id", table_name="programs")
    op.drop_index("ix_programs_code", table_name="programs")
    op.drop_table("programs")
    op.drop_index("ix_rooms_code", table_name="rooms")
    op.drop_table("rooms")
    op.drop_table("department_settings")
    op.drop_index("ix_departments_code", table_name="departments")
    op.drop_table("departments")

    bind = op.get_bind()
    unschedulable_policy_enum.drop(bind, checkfirst=True)
    course_type_enum.drop(bind, checkfirst=True)
    course_room_type_enum.drop(bind, checkfirst=True)
    room_type_enum.drop(bind, checkfirst=True)
