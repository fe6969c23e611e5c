from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..constants import CERTIFICATE_NUMBER_DIGITS
from ..models import Certificate


class NumberingCollisionError(RuntimeError):
    """Raised when a certificate number is still taken after a retry."""


def certificate_prefix(course_type_code: str, year: int) -> str:
    cleaned = (course_type_code or "").strip().upper()
    if not cleaned:
        raise ValueError("Course type code required for certificate number")
    return f"{cleaned}-{int(year)}-"


def _extract_counter(value: str | None, prefix: str) -> int | None:
    if not value:
        return None
    if not value.startswith(prefix):
        return None
    suffix = value[len(prefix) :]
    if not suffix.isdigit():
        return None
    return int(suffix)


def next_certificate_number(course_type_code: str, year: int) -> str:
    """Next free number in the ``{code}-{year}-`` sequence.

    Suffixes are zero-padded to a fixed width so the lexicographic maximum
    is also the numeric one.
    """
    prefix = certificate_prefix(course_type_code, year)
    existing = (
        db.session.query(Certificate.certificate_number)
        .filter(Certificate.certificate_number.startswith(prefix, autoescape=True))
        .order_by(Certificate.certificate_number.desc())
        .with_for_update()
        .first()
    )
    next_counter = 1
    if existing:
        latest = _extract_counter(existing[0], prefix)
        if latest is not None and latest >= next_counter:
            next_counter = latest + 1
    number = f"{prefix}{next_counter:0{CERTIFICATE_NUMBER_DIGITS}d}"
    current_app.logger.info("[CERT-NUMBER] prefix=%s next=%s", prefix, number)
    return number


def is_number_conflict(error: Exception) -> bool:
    if not isinstance(error, IntegrityError):
        return False
    details: str = ""
    if getattr(error, "orig", None) is not None:
        details = str(error.orig)
    if not details:
        details = str(error)
    lowered = details.lower()
    return "certificate_number" in lowered or "uix_certificates_number" in lowered
