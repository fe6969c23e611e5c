from __future__ import annotations

from datetime import timedelta

from sqlalchemy.orm import validates

from ..app import db


class CourseType(db.Model):
    __tablename__ = "course_types"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    certificate_validity_months = db.Column(db.Integer)
    required_fields = db.Column(db.JSON, nullable=False, default=list)
    duration_days = db.Column(db.Numeric(6, 2))
    duration_unit = db.Column(
        db.String(8), nullable=False, default="days", server_default="days"
    )
    default_course_data = db.Column(db.JSON, nullable=False, default=dict)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.Index("uix_course_types_code_upper", db.func.upper(code), unique=True),
    )

    @validates("code")
    def upper_code(self, key, value):  # pragma: no cover - simple normalizer
        return (value or "").strip().upper()

    def field_definitions(self, scope: str | None = None) -> list[dict]:
        fields = [f for f in (self.required_fields or []) if isinstance(f, dict)]
        if scope:
            fields = [f for f in fields if f.get("scope", "course") == scope]
        return fields


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255))
    client_name = db.Column(db.String(255))
    booking_date = db.Column(db.Date, nullable=False)
    num_days = db.Column(db.Integer, nullable=False, default=1)
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="SET NULL")
    )
    course_type = db.relationship("CourseType")
    trainer_name = db.Column(db.String(255))
    course_level_data = db.Column(db.JSON, nullable=False, default=dict)
    certificate_template_id = db.Column(
        db.Integer, db.ForeignKey("certificate_templates.id", ondelete="SET NULL")
    )
    duration_value = db.Column(db.Numeric(6, 2))
    duration_unit = db.Column(db.String(8))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    candidates = db.relationship(
        "BookingCandidate", backref="booking", cascade="all, delete-orphan"
    )

    @property
    def course_date_end(self):
        days = max(self.num_days or 1, 1)
        return self.booking_date + timedelta(days=days - 1)


class BookingCandidate(db.Model):
    __tablename__ = "booking_candidates"

    subject_kind = "candidate"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(
        db.Integer, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    candidate_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))
    passed = db.Column(db.Boolean, nullable=False, default=False)
    candidate_course_data = db.Column(db.JSON, nullable=False, default=dict)
    certificate_issued = db.Column(db.Boolean, nullable=False, default=False)
    certificate_number = db.Column(db.String(64))

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return (value or "").strip().lower() or None

    @property
    def display_name(self) -> str:
        return self.candidate_name or ""

    @property
    def field_data(self) -> dict:
        return dict(self.candidate_course_data or {})

    def set_certificate_issued(self, issued: bool) -> None:
        self.certificate_issued = bool(issued)

    def set_certificate_number(self, number: str | None) -> None:
        self.certificate_number = number


class OpenCourseSession(db.Model):
    __tablename__ = "open_course_sessions"

    id = db.Column(db.Integer, primary_key=True)
    event_title = db.Column(db.String(255))
    session_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date)
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="SET NULL")
    )
    course_type = db.relationship("CourseType")
    trainer_name = db.Column(db.String(255))
    venue_name = db.Column(db.String(255))
    course_level_data = db.Column(db.JSON, nullable=False, default=dict)
    certificate_template_id = db.Column(
        db.Integer, db.ForeignKey("certificate_templates.id", ondelete="SET NULL")
    )
    duration_value = db.Column(db.Numeric(6, 2))
    duration_unit = db.Column(db.String(8))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    delegates = db.relationship(
        "OpenCourseDelegate", backref="session", cascade="all, delete-orphan"
    )

    @property
    def course_date_end(self):
        return self.end_date or self.session_date


class OpenCourseDelegate(db.Model):
    __tablename__ = "open_course_delegates"

    subject_kind = "delegate"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer,
        db.ForeignKey("open_course_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    delegate_name = db.Column(db.String(255), nullable=False)
    delegate_email = db.Column(db.String(255))
    attendance_status = db.Column(db.String(32))
    attendance_detail = db.Column(db.String(32))
    candidate_course_data = db.Column(db.JSON, nullable=False, default=dict)
    certificate_issued = db.Column(db.Boolean, nullable=False, default=False)
    certificate_number = db.Column(db.String(64))

    @validates("delegate_email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return (value or "").strip().lower() or None

    @property
    def display_name(self) -> str:
        return self.delegate_name or ""

    @property
    def email(self) -> str | None:
        return self.delegate_email

    @property
    def attended(self) -> bool:
        return "attended" in (self.attendance_status, self.attendance_detail)

    @property
    def field_data(self) -> dict:
        return dict(self.candidate_course_data or {})

    def set_certificate_issued(self, issued: bool) -> None:
        self.certificate_issued = bool(issued)

    def set_certificate_number(self, number: str | None) -> None:
        self.certificate_number = number


from .certificate import (  # noqa: E402,F401
    Certificate,
    CertificateTemplate,
    CertificateVerificationLog,
)
