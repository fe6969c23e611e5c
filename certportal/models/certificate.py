from __future__ import annotations

from ..app import db
from ..constants import CERT_STATUS_ISSUED, PAGE_HEIGHT, PAGE_WIDTH


class CertificateTemplate(db.Model):
    __tablename__ = "certificate_templates"

    id = db.Column(db.Integer, primary_key=True)
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(255), nullable=False)
    background_image_ref = db.Column(db.String(512), nullable=False, default="")
    page_width = db.Column(db.Integer, nullable=False, default=PAGE_WIDTH)
    page_height = db.Column(db.Integer, nullable=False, default=PAGE_HEIGHT)
    fields_config = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )
    __table_args__ = (
        db.Index("ix_certificate_templates_course_type", "course_type_id"),
    )
    course_type = db.relationship("CourseType", backref="certificate_templates")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "course_type_id": self.course_type_id,
            "name": self.name,
            "background_image_ref": self.background_image_ref or "",
            "page_width": self.page_width,
            "page_height": self.page_height,
            "fields_config": list(self.fields_config or []),
            "is_active": bool(self.is_active),
        }


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    certificate_number = db.Column(db.String(64), nullable=False)
    course_type_id = db.Column(
        db.Integer, db.ForeignKey("course_types.id", ondelete="RESTRICT"), nullable=False
    )
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id", ondelete="SET NULL"))
    candidate_id = db.Column(
        db.Integer, db.ForeignKey("booking_candidates.id", ondelete="SET NULL")
    )
    open_course_session_id = db.Column(
        db.Integer, db.ForeignKey("open_course_sessions.id", ondelete="SET NULL")
    )
    open_course_delegate_id = db.Column(
        db.Integer, db.ForeignKey("open_course_delegates.id", ondelete="SET NULL")
    )
    candidate_name = db.Column(db.String(255), nullable=False)
    candidate_email = db.Column(db.String(255))
    trainer_name = db.Column(db.String(255))
    course_date_start = db.Column(db.Date)
    course_date_end = db.Column(db.Date)
    issue_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date)
    status = db.Column(
        db.String(16),
        nullable=False,
        default=CERT_STATUS_ISSUED,
        server_default=CERT_STATUS_ISSUED,
    )
    revoked_at = db.Column(db.DateTime(timezone=True))
    revoked_reason = db.Column(db.Text)
    pdf_path = db.Column(db.String(255), nullable=False, default="", server_default="")
    sent_at = db.Column(db.DateTime(timezone=True))
    course_specific_data = db.Column(db.JSON, nullable=False, default=dict)
    certificate_template_id = db.Column(
        db.Integer, db.ForeignKey("certificate_templates.id", ondelete="SET NULL")
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("certificate_number", name="uix_certificates_number"),
        db.CheckConstraint(
            "(candidate_id IS NULL) <> (open_course_delegate_id IS NULL)",
            name="ck_certificates_single_subject",
        ),
        db.Index("ix_certificates_course_type", "course_type_id"),
    )
    course_type = db.relationship("CourseType")
    template = db.relationship("CertificateTemplate")

    @property
    def is_delegate_certificate(self) -> bool:
        return self.open_course_delegate_id is not None


class CertificateVerificationLog(db.Model):
    __tablename__ = "certificate_verification_log"

    id = db.Column(db.Integer, primary_key=True)
    certificate_number = db.Column(db.String(64), nullable=False)
    certificate_id = db.Column(
        db.Integer, db.ForeignKey("certificates.id", ondelete="SET NULL")
    )
    result = db.Column(db.String(16), nullable=False)
    ip_address = db.Column(db.String(64), nullable=False, default="")
    created_at = db.Column(db.DateTime, server_default=db.func.now())
