from __future__ import annotations

import calendar
import os
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, NamedTuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from .. import emailer
from ..app import db
from ..constants import CERT_STATUS_ISSUED, CERT_STATUS_REVOKED, EXPIRING_SOON_MONTHS
from ..models import (
    Booking,
    BookingCandidate,
    Certificate,
    CertificateTemplate,
    CertificateVerificationLog,
    CourseType,
    OpenCourseDelegate,
    OpenCourseSession,
)
from ..services import pdf_renderer
from ..services.pdf_renderer import PdfGenerationError
from .numbering import NumberingCollisionError, is_number_conflict, next_certificate_number
from .storage import resolve_site_path
from .time import fmt_date, now_utc, today_utc

EXPIRY_VALID = "valid"
EXPIRY_SOON = "expiring_soon"
EXPIRY_EXPIRED = "expired"

VERIFY_VALID = "valid"
VERIFY_INVALID = "invalid"
VERIFY_REVOKED = "revoked"
VERIFY_EXPIRED = "expired"


class MissingTemplateError(LookupError):
    """Raised when no usable certificate template can be resolved."""


class RevokeReasonRequired(ValueError):
    """Raised when a certificate is revoked without a reason."""


class MissingFieldDataError(ValueError):
    """Raised when required course or candidate fields are blank."""

    def __init__(self, labels: list[str]):
        self.labels = list(labels)
        super().__init__("Missing required fields: " + ", ".join(self.labels))


class CertificateEmailError(RuntimeError):
    """Raised when a certificate cannot be emailed."""


class BulkResult(NamedTuple):
    succeeded: int
    failed: int


# expiry


def add_months(value: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of the month."""
    month_index = value.month - 1 + int(months)
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_expiry_date(issue_date: date, validity_months: int | None) -> date | None:
    if not validity_months:
        return None
    return add_months(issue_date, validity_months)


def get_expiry_status(expiry_date: date | None, today: date | None = None) -> str:
    if not expiry_date:
        return EXPIRY_VALID
    today = today or today_utc()
    if expiry_date < today:
        return EXPIRY_EXPIRED
    if expiry_date <= add_months(today, EXPIRING_SOON_MONTHS):
        return EXPIRY_SOON
    return EXPIRY_VALID


def days_until_expiry(expiry_date: date | None, today: date | None = None) -> int | None:
    if not expiry_date:
        return None
    today = today or today_utc()
    return max((expiry_date - today).days, 0)


def display_status(cert: Certificate, today: date | None = None) -> str:
    if cert.status == CERT_STATUS_REVOKED:
        return CERT_STATUS_REVOKED
    return get_expiry_status(cert.expiry_date, today)


# field values


def _format_number(value: Any) -> str:
    if isinstance(value, (Decimal, float)):
        return format(Decimal(str(value)).normalize(), "f")
    return str(value)


def _is_blank(value: Any) -> bool:
    if isinstance(value, str):
        return not value.strip()
    return not value


def effective_course_data(course_type: CourseType | None, course_data: Mapping | None) -> dict:
    """Course-level values, falling back to the course type defaults when empty."""
    data = dict(course_data or {})
    if not data and course_type is not None and course_type.default_course_data:
        data = dict(course_type.default_course_data)
    return data


def format_duration(value: Any, unit: str | None) -> str | None:
    if value is None or value == "":
        return None
    try:
        if Decimal(str(value)) <= 0:
            return None
    except ArithmeticError:
        return None
    return f"{_format_number(value)} {unit or 'days'}"


def build_field_values(
    course_type: CourseType | None,
    course_data: Mapping | None,
    candidate_data: Mapping | None,
    duration_value: Any = None,
    duration_unit: str | None = None,
) -> dict:
    """Merge course-level and candidate-level data into certificate field values.

    Candidate values win on name collision. ``course_duration`` is composed
    from the duration value and unit, and ``{name}_unit`` companions are
    folded into fields that declare a unit.
    """
    merged = effective_course_data(course_type, course_data)
    merged.update(candidate_data or {})

    if duration_value is None and course_type is not None:
        duration_value = course_type.duration_days
    unit = duration_unit or (course_type.duration_unit if course_type else None) or "days"
    duration = format_duration(duration_value, unit)
    if duration:
        merged["course_duration"] = duration

    definitions = course_type.field_definitions() if course_type is not None else []
    for field in definitions:
        name = field.get("name")
        unit_key = f"{name}_unit"
        if field.get("unit") and merged.get(name) and merged.get(unit_key):
            merged[name] = f"{_format_number(merged[name])} {merged.pop(unit_key)}"
    return merged


def missing_required_fields(
    course_type: CourseType | None, course_data: Mapping | None, candidate_data: Mapping | None
) -> list[str]:
    if course_type is None:
        return []
    course_data = course_data or {}
    candidate_data = candidate_data or {}
    missing: list[str] = []
    for scope, data in (("course", course_data), ("candidate", candidate_data)):
        for field in course_type.field_definitions(scope):
            if field.get("required") and _is_blank(data.get(field.get("name"))):
                missing.append(field.get("label") or field.get("name"))
    return missing


def render_values(cert: Certificate) -> dict:
    """System field values for ``cert`` overlaid by its stored field values."""
    course_type = cert.course_type or db.session.get(CourseType, cert.course_type_id)
    start = fmt_date(cert.course_date_start)
    end = fmt_date(cert.course_date_end)
    if start and end and start != end:
        course_date = f"{start} - {end}"
    else:
        course_date = start or end
    values: dict[str, Any] = {
        "certificate_number": cert.certificate_number,
        "candidate_name": cert.candidate_name or "",
        "trainer_name": cert.trainer_name or "",
        "course_name": course_type.name if course_type else "",
        "course_date_start": start,
        "course_date_end": end,
        "course_date": course_date,
        "issue_date": fmt_date(cert.issue_date),
        "expiry_date": fmt_date(cert.expiry_date) if cert.expiry_date else "N/A",
    }
    values.update(cert.course_specific_data or {})
    return values


# issuance


def resolve_template(course_type: CourseType, preferred_id: int | None = None) -> CertificateTemplate:
    """The preferred template if it still exists, else the newest active one."""
    if preferred_id:
        template = db.session.get(CertificateTemplate, preferred_id)
        if template is not None:
            return template
    template = (
        db.session.query(CertificateTemplate)
        .filter(
            CertificateTemplate.course_type_id == course_type.id,
            CertificateTemplate.is_active.is_(True),
        )
        .order_by(CertificateTemplate.created_at.desc(), CertificateTemplate.id.desc())
        .first()
    )
    if template is None:
        raise MissingTemplateError(f"No certificate template for course type {course_type.code}")
    return template


def _link_subject(cert: Certificate, subject: Any) -> None:
    if subject.subject_kind == "delegate":
        cert.open_course_delegate_id = subject.id
        cert.open_course_session_id = subject.session_id
    else:
        cert.candidate_id = subject.id
        cert.booking_id = subject.booking_id


def _store_pdf(cert: Certificate, template: CertificateTemplate) -> str:
    rel_path = pdf_renderer.render(
        template, render_values(cert), f"{cert.certificate_number}.pdf"
    )
    cert.pdf_path = rel_path
    db.session.commit()
    return rel_path


def issue_certificate(
    subject: BookingCandidate | OpenCourseDelegate,
    course_type: CourseType,
    template_id: int,
    field_values: Mapping | None,
    *,
    trainer_name: str | None = None,
    course_start: date | None = None,
    course_end: date | None = None,
    issue_date: date | None = None,
) -> Certificate:
    """Issue a certificate to ``subject`` and try to render its PDF.

    The certificate row and the subject back-reference are committed before
    rendering; a rendering failure is logged and leaves ``pdf_path`` empty.
    """
    template = db.session.get(CertificateTemplate, template_id) if template_id else None
    if template is None:
        raise MissingTemplateError(f"Certificate template {template_id} not found")

    issue_date = issue_date or today_utc()
    cert = Certificate(
        course_type_id=course_type.id,
        candidate_name=subject.display_name,
        candidate_email=subject.email,
        trainer_name=trainer_name or "",
        course_date_start=course_start,
        course_date_end=course_end,
        issue_date=issue_date,
        expiry_date=calculate_expiry_date(issue_date, course_type.certificate_validity_months),
        status=CERT_STATUS_ISSUED,
        pdf_path="",
        course_specific_data=dict(field_values or {}),
        certificate_template_id=template.id,
    )
    _link_subject(cert, subject)

    def _assign_number() -> None:
        number = next_certificate_number(course_type.code, issue_date.year)
        cert.certificate_number = number
        subject.set_certificate_issued(True)
        subject.set_certificate_number(number)

    _assign_number()
    db.session.add(cert)
    attempts = 0
    while True:
        try:
            db.session.commit()
            break
        except IntegrityError as exc:
            db.session.rollback()
            if not is_number_conflict(exc):
                raise
            if attempts >= 1:
                raise NumberingCollisionError(
                    f"Certificate number {cert.certificate_number} already taken"
                ) from exc
            attempts += 1
            current_app.logger.warning(
                "[CERT-NUMBER] collision number=%s; retrying", cert.certificate_number
            )
            _assign_number()
            db.session.add(cert)

    current_app.logger.info(
        "[CERT] issued number=%s %s=%s template=%s",
        cert.certificate_number,
        subject.subject_kind,
        subject.id,
        template.id,
    )
    try:
        _store_pdf(cert, template)
    except PdfGenerationError:
        current_app.logger.exception(
            "[CERT-PDF] generation failed number=%s; pdf left empty",
            cert.certificate_number,
        )
    return cert


def _issue_from_parent(
    subject: BookingCandidate | OpenCourseDelegate,
    parent: Booking | OpenCourseSession,
    course_start: date,
    *,
    template_id: int | None,
    course_data: Mapping | None,
    candidate_data: Mapping | None,
    issue_date: date | None,
) -> Certificate:
    course_type = parent.course_type
    if course_type is None:
        raise ValueError(f"{subject.subject_kind} {subject.id} has no course type")
    course_values = effective_course_data(
        course_type, parent.course_level_data if course_data is None else course_data
    )
    candidate_values = subject.field_data if candidate_data is None else dict(candidate_data)
    missing = missing_required_fields(course_type, course_values, candidate_values)
    if missing:
        raise MissingFieldDataError(missing)
    template = resolve_template(course_type, template_id or parent.certificate_template_id)
    values = build_field_values(
        course_type,
        course_values,
        candidate_values,
        parent.duration_value,
        parent.duration_unit,
    )
    return issue_certificate(
        subject,
        course_type,
        template.id,
        values,
        trainer_name=parent.trainer_name,
        course_start=course_start,
        course_end=parent.course_date_end,
        issue_date=issue_date,
    )


def issue_for_candidate(
    candidate_id: int,
    *,
    template_id: int | None = None,
    course_data: Mapping | None = None,
    candidate_data: Mapping | None = None,
    issue_date: date | None = None,
) -> Certificate:
    candidate = db.session.get(BookingCandidate, candidate_id)
    if candidate is None:
        raise ValueError(f"Candidate {candidate_id} not found")
    booking = candidate.booking
    return _issue_from_parent(
        candidate,
        booking,
        booking.booking_date,
        template_id=template_id,
        course_data=course_data,
        candidate_data=candidate_data,
        issue_date=issue_date,
    )


def issue_for_delegate(
    delegate_id: int,
    *,
    template_id: int | None = None,
    course_data: Mapping | None = None,
    candidate_data: Mapping | None = None,
    issue_date: date | None = None,
) -> Certificate:
    delegate = db.session.get(OpenCourseDelegate, delegate_id)
    if delegate is None:
        raise ValueError(f"Delegate {delegate_id} not found")
    session = delegate.session
    return _issue_from_parent(
        delegate,
        session,
        session.session_date,
        template_id=template_id,
        course_data=course_data,
        candidate_data=candidate_data,
        issue_date=issue_date,
    )


def has_active_certificate(candidate: BookingCandidate) -> bool:
    return (
        db.session.query(Certificate.id)
        .filter(
            Certificate.candidate_id == candidate.id,
            Certificate.status == CERT_STATUS_ISSUED,
        )
        .first()
        is not None
    )


def eligible_candidates(booking: Booking) -> list[BookingCandidate]:
    return [c for c in booking.candidates if c.passed and not has_active_certificate(c)]


def eligible_delegates(session: OpenCourseSession) -> list[OpenCourseDelegate]:
    return [d for d in session.delegates if d.attended and not d.certificate_issued]


def _run_bulk(label: str, items: Iterable[Any], action) -> BulkResult:
    succeeded = failed = 0
    for item in items:
        item_id = getattr(item, "id", item)
        try:
            action(item)
            succeeded += 1
        except Exception:
            db.session.rollback()
            failed += 1
            current_app.logger.exception("[CERT-FAIL] %s id=%s", label, item_id)
    current_app.logger.info(
        "[CERT] %s succeeded=%s failed=%s", label, succeeded, failed
    )
    return BulkResult(succeeded, failed)


def issue_for_booking(
    booking_id: int, *, template_id: int | None = None, issue_date: date | None = None
) -> BulkResult:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise ValueError(f"Booking {booking_id} not found")
    candidate_ids = [c.id for c in eligible_candidates(booking)]
    return _run_bulk(
        "issue_booking",
        candidate_ids,
        lambda cid: issue_for_candidate(cid, template_id=template_id, issue_date=issue_date),
    )


def issue_for_open_session(
    session_id: int, *, template_id: int | None = None, issue_date: date | None = None
) -> BulkResult:
    session = db.session.get(OpenCourseSession, session_id)
    if session is None:
        raise ValueError(f"Open course session {session_id} not found")
    delegate_ids = [d.id for d in eligible_delegates(session)]
    return _run_bulk(
        "issue_open_session",
        delegate_ids,
        lambda did: issue_for_delegate(did, template_id=template_id, issue_date=issue_date),
    )


# revocation and regeneration


def _get_certificate(certificate_id: int) -> Certificate:
    cert = db.session.get(Certificate, certificate_id)
    if cert is None:
        raise ValueError(f"Certificate {certificate_id} not found")
    return cert


def revoke_certificate(certificate_id: int, reason: str | None) -> Certificate:
    """Revoke a certificate.

    Only open-course delegates get their issued flag and number cleared;
    booking candidates are left untouched.
    """
    cleaned = (reason or "").strip()
    if not cleaned:
        raise RevokeReasonRequired("A reason is required to revoke a certificate")
    cert = _get_certificate(certificate_id)
    if cert.status == CERT_STATUS_REVOKED:
        return cert
    cert.status = CERT_STATUS_REVOKED
    cert.revoked_at = now_utc()
    cert.revoked_reason = cleaned
    if cert.is_delegate_certificate:
        delegate = db.session.get(OpenCourseDelegate, cert.open_course_delegate_id)
        if delegate is not None:
            delegate.set_certificate_issued(False)
            delegate.set_certificate_number(None)
    db.session.commit()
    current_app.logger.info(
        "[CERT-REVOKE] number=%s reason=%s", cert.certificate_number, cleaned
    )
    return cert


def regenerate_pdf(certificate_id: int) -> str:
    cert = _get_certificate(certificate_id)
    template = cert.template
    if template is None:
        raise MissingTemplateError(
            f"Template for certificate {cert.certificate_number} no longer exists"
        )
    return _store_pdf(cert, template)


def regenerate_all(certificate_ids: Iterable[int]) -> BulkResult:
    return _run_bulk("regenerate", list(certificate_ids), regenerate_pdf)


def email_certificate(certificate_id: int) -> Certificate:
    cert = _get_certificate(certificate_id)
    if cert.status == CERT_STATUS_REVOKED:
        raise CertificateEmailError(f"{cert.certificate_number} is revoked")
    if not cert.candidate_email:
        raise CertificateEmailError(f"{cert.certificate_number} has no email address")
    if not cert.pdf_path:
        regenerate_pdf(cert.id)
    path = resolve_site_path(cert.pdf_path)
    if not path or not os.path.isfile(path):
        raise CertificateEmailError(f"PDF missing for {cert.certificate_number}")
    with open(path, "rb") as fh:
        data = fh.read()

    course_type = cert.course_type or db.session.get(CourseType, cert.course_type_id)
    course_name = course_type.name if course_type else "your course"
    body = (
        f"Dear {cert.candidate_name},\n\n"
        f"Please find attached your certificate for {course_name}.\n"
        f"Certificate number: {cert.certificate_number}\n"
    )
    result = emailer.send(
        cert.candidate_email,
        f"Your certificate: {course_name}",
        body,
        attachments=[(f"{cert.certificate_number}.pdf", data, "application/pdf")],
    )
    if not result.get("ok"):
        raise CertificateEmailError(result.get("detail") or "send failed")
    cert.sent_at = now_utc()
    db.session.commit()
    current_app.logger.info(
        "[CERT] emailed number=%s to=%s", cert.certificate_number, cert.candidate_email
    )
    return cert


def email_all(certificate_ids: Iterable[int]) -> BulkResult:
    return _run_bulk("email", list(certificate_ids), email_certificate)


# verification


def verify_certificate(
    certificate_number: str, ip_address: str = "", today: date | None = None
) -> tuple[Certificate | None, str]:
    number = (certificate_number or "").strip().upper()
    cert = None
    if number:
        cert = (
            db.session.query(Certificate)
            .filter(Certificate.certificate_number == number)
            .one_or_none()
        )
    if cert is None:
        result = VERIFY_INVALID
    elif cert.status == CERT_STATUS_REVOKED:
        result = VERIFY_REVOKED
    elif get_expiry_status(cert.expiry_date, today) == EXPIRY_EXPIRED:
        result = VERIFY_EXPIRED
    else:
        result = VERIFY_VALID
    db.session.add(
        CertificateVerificationLog(
            certificate_number=number[:64],
            certificate_id=cert.id if cert else None,
            result=result,
            ip_address=(ip_address or "")[:64],
        )
    )
    db.session.commit()
    current_app.logger.info("[CERT-VERIFY] number=%s result=%s", number, result)
    return cert, result
