"""certificate core tables

Revision ID: 0001
Revises:
Create Date: 2025-03-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "course_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("certificate_validity_months", sa.Integer(), nullable=True),
        sa.Column("required_fields", sa.JSON(), nullable=False),
        sa.Column("duration_days", sa.Numeric(6, 2), nullable=True),
        sa.Column(
            "duration_unit", sa.String(8), nullable=False, server_default="days"
        ),
        sa.Column("default_course_data", sa.JSON(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "uix_course_types_code_upper",
        "course_types",
        [sa.text("upper(code)")],
        unique=True,
    )

    op.create_table(
        "certificate_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "course_type_id",
            sa.Integer(),
            sa.ForeignKey("course_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "background_image_ref", sa.String(512), nullable=False, server_default=""
        ),
        sa.Column("page_width", sa.Integer(), nullable=False, server_default="2480"),
        sa.Column("page_height", sa.Integer(), nullable=False, server_default="3508"),
        sa.Column("fields_config", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_certificate_templates_course_type",
        "certificate_templates",
        ["course_type_id"],
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("client_name", sa.String(255), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("num_days", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "course_type_id",
            sa.Integer(),
            sa.ForeignKey("course_types.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("trainer_name", sa.String(255), nullable=True),
        sa.Column("course_level_data", sa.JSON(), nullable=False),
        sa.Column(
            "certificate_template_id",
            sa.Integer(),
            sa.ForeignKey("certificate_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("duration_value", sa.Numeric(6, 2), nullable=True),
        sa.Column("duration_unit", sa.String(8), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "booking_candidates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("candidate_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("candidate_course_data", sa.JSON(), nullable=False),
        sa.Column(
            "certificate_issued",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("certificate_number", sa.String(64), nullable=True),
    )

    op.create_table(
        "open_course_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_title", sa.String(255), nullable=True),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column(
            "course_type_id",
            sa.Integer(),
            sa.ForeignKey("course_types.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("trainer_name", sa.String(255), nullable=True),
        sa.Column("venue_name", sa.String(255), nullable=True),
        sa.Column("course_level_data", sa.JSON(), nullable=False),
        sa.Column(
            "certificate_template_id",
            sa.Integer(),
            sa.ForeignKey("certificate_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("duration_value", sa.Numeric(6, 2), nullable=True),
        sa.Column("duration_unit", sa.String(8), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "open_course_delegates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("open_course_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("delegate_name", sa.String(255), nullable=False),
        sa.Column("delegate_email", sa.String(255), nullable=True),
        sa.Column("attendance_status", sa.String(32), nullable=True),
        sa.Column("attendance_detail", sa.String(32), nullable=True),
        sa.Column("candidate_course_data", sa.JSON(), nullable=False),
        sa.Column(
            "certificate_issued",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("certificate_number", sa.String(64), nullable=True),
    )

    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("certificate_number", sa.String(64), nullable=False),
        sa.Column(
            "course_type_id",
            sa.Integer(),
            sa.ForeignKey("course_types.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey("bookings.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "candidate_id",
            sa.Integer(),
            sa.ForeignKey("booking_candidates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "open_course_session_id",
            sa.Integer(),
            sa.ForeignKey("open_course_sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "open_course_delegate_id",
            sa.Integer(),
            sa.ForeignKey("open_course_delegates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("candidate_name", sa.String(255), nullable=False),
        sa.Column("candidate_email", sa.String(255), nullable=True),
        sa.Column("trainer_name", sa.String(255), nullable=True),
        sa.Column("course_date_start", sa.Date(), nullable=True),
        sa.Column("course_date_end", sa.Date(), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column(
            "status", sa.String(16), nullable=False, server_default="issued"
        ),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.Text(), nullable=True),
        sa.Column("pdf_path", sa.String(255), nullable=False, server_default=""),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("course_specific_data", sa.JSON(), nullable=False),
        sa.Column(
            "certificate_template_id",
            sa.Integer(),
            sa.ForeignKey("certificate_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("certificate_number", name="uix_certificates_number"),
        sa.CheckConstraint(
            "(candidate_id IS NULL) <> (open_course_delegate_id IS NULL)",
            name="ck_certificates_single_subject",
        ),
    )
    op.create_index(
        "ix_certificates_course_type", "certificates", ["course_type_id"]
    )

    op.create_table(
        "certificate_verification_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("certificate_number", sa.String(64), nullable=False),
        sa.Column(
            "certificate_id",
            sa.Integer(),
            sa.ForeignKey("certificates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("result", sa.String(16), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("certificate_verification_log")
    op.drop_index("ix_certificates_course_type", table_name="certificates")
    op.drop_table("certificates")
    op.drop_table("open_course_delegates")
    op.drop_table("open_course_sessions")
    op.drop_table("booking_candidates")
    op.drop_table("bookings")
    op.drop_index(
        "ix_certificate_templates_course_type", table_name="certificate_templates"
    )
    op.drop_table("certificate_templates")
    op.drop_index("uix_course_types_code_upper", table_name="course_types")
    op.drop_table("course_types")
