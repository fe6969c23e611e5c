import os
from datetime import date

import pytest

from certportal import emailer
from certportal.app import db
from certportal.constants import CERT_STATUS_ISSUED, CERT_STATUS_REVOKED
from certportal.models import Certificate, CertificateTemplate, CertificateVerificationLog
from certportal.services import pdf_renderer
from certportal.services.pdf_renderer import PdfGenerationError
from certportal.shared import certificates as lifecycle
from certportal.shared.certificates import (
    MissingFieldDataError,
    MissingTemplateError,
    RevokeReasonRequired,
)

ISSUED_ON = date(2025, 3, 6)


def test_issue_for_candidate(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)

    assert cert.certificate_number == "CPC-2025-00001"
    assert cert.candidate_name == "Ann Archer"
    assert cert.candidate_email == "ann@example.com"
    assert cert.trainer_name == "Sam Trainer"
    assert cert.course_date_start == date(2025, 3, 5)
    assert cert.course_date_end == date(2025, 3, 6)
    assert cert.expiry_date == date(2026, 3, 6)
    assert cert.status == CERT_STATUS_ISSUED
    assert cert.certificate_template_id == seed.template.id
    assert cert.pdf_path == "certificates/CPC-2025-00001.pdf"

    assert seed.ann.certificate_issued is True
    assert seed.ann.certificate_number == "CPC-2025-00001"

    values = rendered[0].values
    assert values["course_duration"] == "2 days"
    assert values["hours"] == "7 hours"
    assert "hours_unit" not in values
    assert values["licence_number"] == "L-1"
    assert values["venue"] == "Leeds"
    assert values["course_date"] == "05 Mar 2025 - 06 Mar 2025"
    assert values["course_name"] == "Driver CPC"
    assert values["expiry_date"] == "06 Mar 2026"


def test_numbers_increase_across_subjects(seed, rendered):
    first = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    second = lifecycle.issue_for_delegate(seed.dee.id, issue_date=ISSUED_ON)
    assert first.certificate_number == "CPC-2025-00001"
    assert second.certificate_number == "CPC-2025-00002"
    assert second.open_course_delegate_id == seed.dee.id
    assert second.open_course_session_id == seed.session.id
    assert rendered[1].values["course_date"] == "01 Apr 2025"
    assert rendered[1].values["venue"] == "York"


def test_pdf_failure_keeps_certificate(seed, monkeypatch, caplog):
    def broken(template, values, filename):
        raise PdfGenerationError("disk full")

    monkeypatch.setattr(pdf_renderer, "render", broken)
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    db.session.expire_all()
    stored = db.session.get(Certificate, cert.id)
    assert stored.certificate_number == "CPC-2025-00001"
    assert stored.pdf_path == ""
    assert seed.ann.certificate_issued is True
    assert "[CERT-PDF]" in caplog.text


def test_missing_required_fields_rejected(seed, rendered):
    with pytest.raises(MissingFieldDataError) as excinfo:
        lifecycle.issue_for_candidate(seed.bob.id, issue_date=ISSUED_ON)
    assert excinfo.value.labels == ["Licence Number"]
    assert db.session.query(Certificate).count() == 0
    assert seed.bob.certificate_issued is False


def test_caller_supplied_data_overrides_stored(seed, rendered):
    cert = lifecycle.issue_for_candidate(
        seed.bob.id,
        candidate_data={"licence_number": "L-2"},
        course_data={"venue": "Hull"},
        issue_date=ISSUED_ON,
    )
    assert cert.course_specific_data["licence_number"] == "L-2"
    assert cert.course_specific_data["venue"] == "Hull"


def test_missing_template(seed, rendered):
    seed.template.is_active = False
    db.session.commit()
    with pytest.raises(MissingTemplateError):
        lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    with pytest.raises(MissingTemplateError):
        lifecycle.issue_certificate(seed.ann, seed.course_type, 9999, {})


def test_unknown_subject(seed):
    with pytest.raises(ValueError):
        lifecycle.issue_for_candidate(9999)
    with pytest.raises(ValueError):
        lifecycle.issue_for_delegate(9999)


def test_revoke_delegate_clears_issued_flag(seed, rendered):
    cert = lifecycle.issue_for_delegate(seed.dee.id, issue_date=ISSUED_ON)
    assert cert.is_delegate_certificate
    revoked = lifecycle.revoke_certificate(cert.id, "  wrong course  ")
    assert revoked.status == CERT_STATUS_REVOKED
    assert revoked.revoked_reason == "wrong course"
    assert revoked.revoked_at is not None
    assert seed.dee.certificate_issued is False
    assert seed.dee.certificate_number is None


def test_revoke_candidate_keeps_issued_flag(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    assert not cert.is_delegate_certificate
    lifecycle.revoke_certificate(cert.id, "typo in name")
    assert cert.status == CERT_STATUS_REVOKED
    assert seed.ann.certificate_issued is True
    assert seed.ann.certificate_number == "CPC-2025-00001"


def test_revoke_requires_reason(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    with pytest.raises(RevokeReasonRequired):
        lifecycle.revoke_certificate(cert.id, "   ")
    assert cert.status == CERT_STATUS_ISSUED


def test_revoke_twice_keeps_first_reason(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    lifecycle.revoke_certificate(cert.id, "first")
    lifecycle.revoke_certificate(cert.id, "second")
    assert cert.revoked_reason == "first"


def test_regenerate_after_template_deleted(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    db.session.delete(seed.template)
    db.session.commit()
    with pytest.raises(MissingTemplateError):
        lifecycle.regenerate_pdf(cert.id)


def test_regenerate_rewrites_pdf(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    assert lifecycle.regenerate_pdf(cert.id) == cert.pdf_path
    assert len(rendered) == 2


def test_regenerate_uses_certificate_template(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    newer = CertificateTemplate(
        course_type_id=seed.course_type.id,
        name="CPC refreshed",
        fields_config=seed.template.fields_config,
    )
    db.session.add(newer)
    db.session.commit()
    lifecycle.regenerate_pdf(cert.id)
    assert cert.template is seed.template
    assert rendered[-1].template_id == seed.template.id


def test_issue_for_booking_counts_failures(seed, rendered, caplog):
    result = lifecycle.issue_for_booking(seed.booking.id, issue_date=ISSUED_ON)
    assert result == (1, 1)
    assert "[CERT-FAIL] issue_booking" in caplog.text
    numbers = [c.certificate_number for c in db.session.query(Certificate)]
    assert numbers == ["CPC-2025-00001"]
    # nothing left to issue for the passed candidate who already has one
    again = lifecycle.issue_for_booking(seed.booking.id, issue_date=ISSUED_ON)
    assert again == (0, 1)


def test_issue_for_open_session(seed, rendered):
    result = lifecycle.issue_for_open_session(seed.session.id, issue_date=ISSUED_ON)
    assert result == (2, 0)
    assert seed.dee.certificate_issued and seed.eve.certificate_issued
    assert not seed.fay.certificate_issued
    assert lifecycle.issue_for_open_session(seed.session.id) == (0, 0)


def test_revoked_subjects_become_eligible_again(seed, rendered):
    ann_cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    dee_cert = lifecycle.issue_for_delegate(seed.dee.id, issue_date=ISSUED_ON)
    assert seed.ann not in lifecycle.eligible_candidates(seed.booking)
    assert seed.dee not in lifecycle.eligible_delegates(seed.session)

    lifecycle.revoke_certificate(ann_cert.id, "reissue")
    lifecycle.revoke_certificate(dee_cert.id, "reissue")
    assert seed.ann in lifecycle.eligible_candidates(seed.booking)
    assert seed.dee in lifecycle.eligible_delegates(seed.session)


def test_regenerate_all(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    result = lifecycle.regenerate_all([cert.id, 9999])
    assert result == (1, 1)


def test_email_certificate(seed, rendered, monkeypatch):
    sent = []

    def fake_send(recipients, subject, body, html=None, attachments=()):
        sent.append((recipients, subject, attachments))
        return {"ok": True, "detail": "sent"}

    monkeypatch.setattr(emailer, "send", fake_send)
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    lifecycle.email_certificate(cert.id)
    assert cert.sent_at is not None
    recipients, subject, attachments = sent[0]
    assert recipients == "ann@example.com"
    assert subject == "Your certificate: Driver CPC"
    filename, data, mime = attachments[0]
    assert filename == "CPC-2025-00001.pdf"
    assert data.startswith(b"%PDF")
    assert mime == "application/pdf"


def test_email_all_skips_revoked_and_addressless(seed, rendered, monkeypatch):
    monkeypatch.setattr(emailer, "send", lambda *a, **kw: {"ok": True, "detail": "sent"})
    ann = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    eve = lifecycle.issue_for_delegate(seed.eve.id, issue_date=ISSUED_ON)
    dee = lifecycle.issue_for_delegate(seed.dee.id, issue_date=ISSUED_ON)
    lifecycle.revoke_certificate(dee.id, "duplicate")
    assert lifecycle.email_all([ann.id, eve.id, dee.id]) == (1, 2)


def test_email_stub_mode_counts_as_failure(seed, rendered, monkeypatch):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    with pytest.raises(lifecycle.CertificateEmailError):
        lifecycle.email_certificate(cert.id)
    assert cert.sent_at is None


def test_verify_certificate(seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)

    found, result = lifecycle.verify_certificate(" cpc-2025-00001 ", "10.0.0.1", today=date(2025, 5, 1))
    assert found.id == cert.id
    assert result == "valid"
    assert lifecycle.verify_certificate(cert.certificate_number, today=date(2026, 3, 7))[1] == "expired"
    assert lifecycle.verify_certificate("NOPE-1")[1] == "invalid"

    lifecycle.revoke_certificate(cert.id, "fraud")
    assert lifecycle.verify_certificate(cert.certificate_number, today=date(2025, 5, 1))[1] == "revoked"

    logs = db.session.query(CertificateVerificationLog).order_by(CertificateVerificationLog.id).all()
    assert [log.result for log in logs] == ["valid", "expired", "invalid", "revoked"]
    assert logs[0].certificate_number == "CPC-2025-00001"
    assert logs[0].ip_address == "10.0.0.1"
    assert logs[2].certificate_id is None


def test_stored_pdf_lands_under_site_root(app, seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=ISSUED_ON)
    assert os.path.isfile(os.path.join(app.config["SITE_ROOT"], cert.pdf_path))
