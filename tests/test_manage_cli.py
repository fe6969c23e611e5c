from datetime import date

import pytest

import manage
from certportal.app import db
from certportal.shared import certificates as lifecycle

COMMANDS = [
    manage.next_number,
    manage.issue_booking,
    manage.regenerate_all_cmd,
    manage.revoke,
]


@pytest.fixture
def runner(app):
    for command in COMMANDS:
        app.cli.add_command(command)
    return app.test_cli_runner()


def test_next_number(runner, seed):
    result = runner.invoke(args=["next_number", "--code", "cpc", "--year", "2025"])
    assert result.exit_code == 0
    assert result.output.strip() == "CPC-2025-00001"


def test_issue_booking_command(runner, seed, rendered):
    result = runner.invoke(args=["issue_booking", "--booking", str(seed.booking.id)])
    assert "succeeded=1 failed=1" in result.output
    result = runner.invoke(args=["issue_booking", "--open-session", str(seed.session.id)])
    assert "succeeded=2 failed=0" in result.output


def test_issue_booking_requires_one_target(runner, seed):
    result = runner.invoke(args=["issue_booking"])
    assert "exactly one" in result.output
    result = runner.invoke(args=["issue_booking", "--booking", "999"])
    assert "not found" in result.output


def test_regenerate_all_missing_only(runner, seed, rendered):
    with_pdf = lifecycle.issue_for_candidate(seed.ann.id, issue_date=date(2025, 3, 6))
    without_pdf = lifecycle.issue_for_delegate(seed.dee.id, issue_date=date(2025, 4, 2))
    without_pdf.pdf_path = ""
    db.session.commit()
    rendered.clear()

    result = runner.invoke(args=["regenerate_all", "--course-type", "cpc", "--missing-only"])
    assert "succeeded=1 failed=0" in result.output
    assert [call.filename for call in rendered] == [f"{without_pdf.certificate_number}.pdf"]
    assert with_pdf.pdf_path

    result = runner.invoke(args=["regenerate_all", "--course-type", "zzz"])
    assert "Course type not found" in result.output


def test_revoke_command(runner, seed, rendered):
    cert = lifecycle.issue_for_candidate(seed.ann.id, issue_date=date(2025, 3, 6))
    result = runner.invoke(args=["revoke", "--number", cert.certificate_number.lower(), "--reason", " "])
    assert "reason is required" in result.output
    assert cert.status == "issued"

    result = runner.invoke(args=["revoke", "--number", cert.certificate_number, "--reason", "typo"])
    assert f"revoked {cert.certificate_number}" in result.output
    assert cert.status == "revoked"

    result = runner.invoke(args=["revoke", "--number", "CPC-1999-00001", "--reason", "x"])
    assert "Not found" in result.output
