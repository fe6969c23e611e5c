from __future__ import annotations

import csv
import io

from flask import Blueprint, Response, abort, jsonify, request
from sqlalchemy import or_

from ..app import db
from ..models import Certificate, CourseType
from ..services.pdf_renderer import PdfGenerationError
from ..shared.certificates import (
    MissingFieldDataError,
    MissingTemplateError,
    RevokeReasonRequired,
    days_until_expiry,
    display_status,
    email_all,
    get_expiry_status,
    issue_for_booking,
    issue_for_candidate,
    issue_for_delegate,
    issue_for_open_session,
    regenerate_all,
    regenerate_pdf,
    revoke_certificate,
)
from ..shared.numbering import NumberingCollisionError
from ..shared.time import parse_date

bp = Blueprint("certificates", __name__, url_prefix="/certificates")


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _certificate_json(cert: Certificate) -> dict:
    return {
        "id": cert.id,
        "certificate_number": cert.certificate_number,
        "course_type_id": cert.course_type_id,
        "course_name": cert.course_type.name if cert.course_type else "",
        "candidate_name": cert.candidate_name,
        "candidate_email": cert.candidate_email or "",
        "trainer_name": cert.trainer_name or "",
        "booking_id": cert.booking_id,
        "candidate_id": cert.candidate_id,
        "open_course_session_id": cert.open_course_session_id,
        "open_course_delegate_id": cert.open_course_delegate_id,
        "issue_date": cert.issue_date.isoformat() if cert.issue_date else None,
        "expiry_date": cert.expiry_date.isoformat() if cert.expiry_date else None,
        "status": cert.status,
        "display_status": display_status(cert),
        "days_until_expiry": days_until_expiry(cert.expiry_date),
        "revoked_reason": cert.revoked_reason or "",
        "pdf_path": cert.pdf_path or "",
        "sent_at": cert.sent_at.isoformat() if cert.sent_at else None,
        "course_specific_data": dict(cert.course_specific_data or {}),
        "certificate_template_id": cert.certificate_template_id,
    }


def _filtered_certificates() -> list[Certificate]:
    query = db.session.query(Certificate)
    course_type_id = request.args.get("course_type_id", type=int)
    if course_type_id:
        query = query.filter(Certificate.course_type_id == course_type_id)
    start = parse_date(request.args.get("start_date"))
    if start:
        query = query.filter(Certificate.issue_date >= start)
    end = parse_date(request.args.get("end_date"))
    if end:
        query = query.filter(Certificate.issue_date <= end)
    status = (request.args.get("status") or "").strip().lower()
    if status:
        query = query.filter(Certificate.status == status)
    term = (request.args.get("q") or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(
            or_(
                Certificate.candidate_name.ilike(like),
                Certificate.certificate_number.ilike(like),
            )
        )
    certs = query.order_by(Certificate.issue_date.desc(), Certificate.id.desc()).all()
    expiry_status = (request.args.get("expiry_status") or "").strip().lower()
    if expiry_status:
        certs = [c for c in certs if get_expiry_status(c.expiry_date) == expiry_status]
    return certs


def _ids_from_payload(payload: dict) -> list[int]:
    raw = payload.get("ids")
    if not isinstance(raw, list):
        abort(400)
    ids: list[int] = []
    for value in raw:
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            abort(400)
    return ids


@bp.get("")
def index():
    return jsonify([_certificate_json(c) for c in _filtered_certificates()])


@bp.get("/export.csv")
def export_csv():
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "CertificateNumber",
            "CandidateName",
            "CandidateEmail",
            "CourseTypeCode",
            "CourseName",
            "TrainerName",
            "IssueDate",
            "ExpiryDate",
            "Status",
            "PdfUrl",
        ]
    )
    type_cache: dict[int, CourseType | None] = {}
    for cert in _filtered_certificates():
        if cert.course_type_id not in type_cache:
            type_cache[cert.course_type_id] = db.session.get(CourseType, cert.course_type_id)
        course_type = type_cache[cert.course_type_id]
        pdf_path = (cert.pdf_path or "").strip()
        writer.writerow(
            [
                cert.certificate_number,
                cert.candidate_name,
                cert.candidate_email or "",
                course_type.code if course_type else "",
                course_type.name if course_type else "",
                cert.trainer_name or "",
                cert.issue_date.isoformat() if cert.issue_date else "",
                cert.expiry_date.isoformat() if cert.expiry_date else "",
                display_status(cert),
                f"/{pdf_path.lstrip('/')}" if pdf_path else "",
            ]
        )
    resp = Response(output.getvalue(), mimetype="text/csv")
    resp.headers["Content-Disposition"] = "attachment; filename=certificates.csv"
    return resp


@bp.get("/<int:cert_id>")
def detail(cert_id: int):
    cert = db.session.get(Certificate, cert_id)
    if not cert:
        abort(404)
    return jsonify(_certificate_json(cert))


@bp.post("/<int:cert_id>/revoke")
def revoke(cert_id: int):
    if not db.session.get(Certificate, cert_id):
        abort(404)
    try:
        cert = revoke_certificate(cert_id, _payload().get("reason"))
    except RevokeReasonRequired as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(_certificate_json(cert))


@bp.post("/<int:cert_id>/regenerate")
def regenerate(cert_id: int):
    if not db.session.get(Certificate, cert_id):
        abort(404)
    try:
        pdf_path = regenerate_pdf(cert_id)
    except MissingTemplateError as exc:
        return jsonify({"error": str(exc)}), 404
    except PdfGenerationError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify({"ok": True, "pdf_path": pdf_path})


def _issue_single(issue, subject_id: int):
    payload = _payload()
    try:
        cert = issue(
            subject_id,
            template_id=payload.get("template_id"),
            course_data=payload.get("course_data"),
            candidate_data=payload.get("candidate_data"),
        )
    except MissingFieldDataError as exc:
        return jsonify({"error": str(exc), "missing": exc.labels}), 400
    except MissingTemplateError as exc:
        return jsonify({"error": str(exc)}), 404
    except NumberingCollisionError as exc:
        return jsonify({"error": str(exc)}), 409
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(_certificate_json(cert)), 201


@bp.post("/issue/candidate/<int:candidate_id>")
def issue_candidate(candidate_id: int):
    return _issue_single(issue_for_candidate, candidate_id)


@bp.post("/issue/delegate/<int:delegate_id>")
def issue_delegate(delegate_id: int):
    return _issue_single(issue_for_delegate, delegate_id)


def _bulk_json(result) -> dict:
    return {"succeeded": result.succeeded, "failed": result.failed}


@bp.post("/issue/booking/<int:booking_id>")
def issue_booking(booking_id: int):
    try:
        result = issue_for_booking(booking_id, template_id=_payload().get("template_id"))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(_bulk_json(result))


@bp.post("/issue/open-session/<int:session_id>")
def issue_open_session(session_id: int):
    try:
        result = issue_for_open_session(
            session_id, template_id=_payload().get("template_id")
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(_bulk_json(result))


@bp.post("/regenerate-all")
def regenerate_all_view():
    return jsonify(_bulk_json(regenerate_all(_ids_from_payload(_payload()))))


@bp.post("/email-all")
def email_all_view():
    return jsonify(_bulk_json(email_all(_ids_from_payload(_payload()))))
