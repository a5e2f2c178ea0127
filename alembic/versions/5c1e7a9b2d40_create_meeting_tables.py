"""create meeting tables

Revision ID: 5c1e7a9b2d40
Revises:
Create Date: 2025-11-03 14:22:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e7a9b2d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

role_enum = sa.Enum("customer", "doctor", "staff", "admin", name="roleenum")
consultation_status = sa.Enum(
    "pending", "scheduled", "consulting", "completed", "cancelled", name="consultationstatus"
)
meeting_provider = sa.Enum("google", "jitsi", name="meetingprovider")
meeting_status = sa.Enum(
    "scheduled", "waiting_customer", "invite_sent", "in_progress", "completed", "cancelled",
    name="meetingstatus",
)
participant_type = sa.Enum("doctor", "customer", name="participanttype")
service_type = sa.Enum("consultation", "test", "other", name="servicetype")
location_type = sa.Enum("clinic", "home", "online", name="locationtype")
appt_status = sa.Enum("pending", "confirmed", "consulting", "completed", "cancelled", name="apptstatus")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "doctors",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("specialty", sa.String(100), nullable=False),
    )

    op.create_table(
        "consultations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("doctor_id", sa.String(36), sa.ForeignKey("doctors.id"), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("status", consultation_status, nullable=False),
        sa.Column("doctor_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_consultations_user_id", "consultations", ["user_id"])
    op.create_index("ix_consultations_doctor_id", "consultations", ["doctor_id"])
    op.create_index("ix_consultations_status", "consultations", ["status"])

    # una sola reunión por consulta: el find-or-create depende de este UNIQUE
    op.create_table(
        "meetings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("consultation_id", sa.String(36), sa.ForeignKey("consultations.id"), nullable=False),
        sa.Column("doctor_id", sa.String(36), sa.ForeignKey("doctors.id"), nullable=False),
        sa.Column("provider", meeting_provider, nullable=False),
        sa.Column("meeting_link", sa.Text(), nullable=False),
        sa.Column("provider_ref", sa.String(255), nullable=True),
        sa.Column("password", sa.String(32), nullable=False),
        sa.Column("scheduled_time", sa.DateTime(), nullable=False),
        sa.Column("actual_start_time", sa.DateTime(), nullable=True),
        sa.Column("actual_end_time", sa.DateTime(), nullable=True),
        sa.Column("invite_sent_at", sa.DateTime(), nullable=True),
        sa.Column("status", meeting_status, nullable=False),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("consultation_id", name="uq_meeting_consultation"),
    )
    op.create_index("ix_meetings_doctor_id", "meetings", ["doctor_id"])
    op.create_index("ix_meeting_status", "meetings", ["status"])
    op.create_index("ix_meeting_scheduled_time", "meetings", ["scheduled_time"])

    op.create_table(
        "meeting_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "meeting_id", sa.String(36), sa.ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("participant_type", participant_type, nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_meeting_participants_meeting_id", "meeting_participants", ["meeting_id"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("doctor_id", sa.String(36), sa.ForeignKey("doctors.id"), nullable=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.String(5), nullable=False),
        sa.Column("service_type", service_type, nullable=False),
        sa.Column("location_type", location_type, nullable=False),
        sa.Column("status", appt_status, nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_appointments_doctor_id", "appointments", ["doctor_id"])
    op.create_index("ix_appointments_user_id", "appointments", ["user_id"])
    # el sweeper filtra por (status, fecha)
    op.create_index("ix_appointments_appointment_date", "appointments", ["appointment_date"])
    op.create_index("ix_appointments_status", "appointments", ["status"])

    op.create_table(
        "google_tokens",
        sa.Column(
            "user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    # Borrar en orden inverso
    op.drop_table("google_tokens")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_appointment_date", table_name="appointments")
    op.drop_index("ix_appointments_user_id", table_name="appointments")
    op.drop_index("ix_appointments_doctor_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_meeting_participants_meeting_id", table_name="meeting_participants")
    op.drop_table("meeting_participants")
    op.drop_index("ix_meeting_scheduled_time", table_name="meetings")
    op.drop_index("ix_meeting_status", table_name="meetings")
    op.drop_index("ix_meetings_doctor_id", table_name="meetings")
    op.drop_table("meetings")
    op.drop_index("ix_consultations_status", table_name="consultations")
    op.drop_index("ix_consultations_doctor_id", table_name="consultations")
    op.drop_index("ix_consultations_user_id", table_name="consultations")
    op.drop_table("consultations")
    op.drop_table("doctors")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
