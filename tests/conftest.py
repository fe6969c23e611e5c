import os
import pathlib
import sys
from datetime import date
from types import SimpleNamespace

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from certportal.app import create_app, db
from certportal.models import (
    Booking,
    BookingCandidate,
    CertificateTemplate,
    CourseType,
    OpenCourseDelegate,
    OpenCourseSession,
)
from certportal.services import pdf_renderer
from certportal.shared.template_fields import default_template_fields


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["SITE_ROOT"] = str(tmp_path)
    application = create_app()
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def rendered(app, monkeypatch):
    """Replace the PDF renderer with one that writes a stub file."""
    calls = []

    def fake_render(template, values, filename):
        calls.append(SimpleNamespace(template_id=template.id, values=dict(values), filename=filename))
        rel_path = f"certificates/{filename}"
        full_path = os.path.join(app.config["SITE_ROOT"], rel_path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as fh:
            fh.write(b"%PDF-1.4 stub")
        return rel_path

    monkeypatch.setattr(pdf_renderer, "render", fake_render)
    return calls


@pytest.fixture
def seed(app):
    course_type = CourseType(
        code="cpc",
        name="Driver CPC",
        certificate_validity_months=12,
        required_fields=[
            {"name": "venue", "label": "Venue", "type": "text", "required": True, "scope": "course"},
            {"name": "hours", "label": "Hours", "type": "number", "required": False, "scope": "course", "unit": "hours"},
            {"name": "licence_number", "label": "Licence Number", "type": "text", "required": True, "scope": "candidate"},
        ],
        duration_days=1,
        duration_unit="days",
        default_course_data={},
    )
    db.session.add(course_type)
    db.session.flush()
    template = CertificateTemplate(
        course_type_id=course_type.id,
        name="CPC standard",
        fields_config=default_template_fields(course_type).to_config(),
    )
    db.session.add(template)
    db.session.flush()

    booking = Booking(
        title="March CPC",
        booking_date=date(2025, 3, 5),
        num_days=2,
        course_type_id=course_type.id,
        trainer_name="Sam Trainer",
        course_level_data={"venue": "Leeds", "hours": 7, "hours_unit": "hours"},
        duration_value=2,
        duration_unit="days",
    )
    booking.candidates = [
        BookingCandidate(
            candidate_name="Ann Archer",
            email="Ann@Example.com",
            passed=True,
            candidate_course_data={"licence_number": "L-1"},
        ),
        BookingCandidate(candidate_name="Bob Baker", passed=True, candidate_course_data={}),
        BookingCandidate(
            candidate_name="Cat Cole",
            passed=False,
            candidate_course_data={"licence_number": "L-3"},
        ),
    ]
    session = OpenCourseSession(
        event_title="Open CPC",
        session_date=date(2025, 4, 1),
        course_type_id=course_type.id,
        trainer_name="Pat Trainer",
        course_level_data={"venue": "York"},
    )
    session.delegates = [
        OpenCourseDelegate(
            delegate_name="Dee Dunn",
            delegate_email="dee@example.com",
            attendance_status="attended",
            candidate_course_data={"licence_number": "D-1"},
        ),
        OpenCourseDelegate(
            delegate_name="Eve East",
            attendance_detail="attended",
            candidate_course_data={"licence_number": "D-2"},
        ),
        OpenCourseDelegate(
            delegate_name="Fay Ford",
            attendance_status="no_show",
            candidate_course_data={"licence_number": "D-3"},
        ),
    ]
    db.session.add_all([booking, session])
    db.session.commit()
    ann, bob, cat = booking.candidates
    dee, eve, fay = session.delegates
    return SimpleNamespace(
        course_type=course_type,
        template=template,
        booking=booking,
        ann=ann,
        bob=bob,
        cat=cat,
        session=session,
        dee=dee,
        eve=eve,
        fay=fay,
    )
