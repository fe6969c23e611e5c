from certportal.app import create_app, db
from datetime import date

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from certportal.models import Certificate, CourseType
from certportal.shared.certificates import (
    RevokeReasonRequired,
    issue_for_booking,
    issue_for_open_session,
    regenerate_all,
    revoke_certificate,
)
from certportal.shared.numbering import next_certificate_number


migrate = Migrate()


def create_certportal_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_certportal_app)


@cli.command("next_number")
@click.option("--code", "code", required=True)
@click.option("--year", "year", type=int, default=None)
def next_number(code: str, year: int | None):
    """Show the next certificate number for a course type code."""
    click.echo(next_certificate_number(code, year or date.today().year))
    db.session.rollback()


@cli.command("issue_booking")
@click.option("--booking", "booking_id", type=int)
@click.option("--open-session", "session_id", type=int)
@click.option("--template", "template_id", type=int, default=None)
def issue_booking(booking_id: int | None, session_id: int | None, template_id: int | None):
    """Issue certificates to every eligible subject of a booking or open session."""
    if bool(booking_id) == bool(session_id):
        click.echo("Pass exactly one of --booking or --open-session", err=True)
        return
    try:
        if booking_id:
            result = issue_for_booking(booking_id, template_id=template_id)
        else:
            result = issue_for_open_session(session_id, template_id=template_id)
    except ValueError as exc:
        click.echo(str(exc), err=True)
        return
    click.echo(f"succeeded={result.succeeded} failed={result.failed}")


@cli.command("regenerate_all")
@click.option("--course-type", "code", default=None, help="Limit to a course type code")
@click.option("--missing-only", is_flag=True, help="Only certificates without a PDF")
def regenerate_all_cmd(code: str | None, missing_only: bool):
    """Re-render certificate PDFs from their stored field values."""
    query = db.session.query(Certificate.id)
    if code:
        course_type = (
            db.session.query(CourseType)
            .filter(db.func.upper(CourseType.code) == code.strip().upper())
            .one_or_none()
        )
        if not course_type:
            click.echo("Course type not found", err=True)
            return
        query = query.filter(Certificate.course_type_id == course_type.id)
    if missing_only:
        query = query.filter(Certificate.pdf_path == "")
    ids = [row[0] for row in query.order_by(Certificate.id).all()]
    result = regenerate_all(ids)
    click.echo(f"succeeded={result.succeeded} failed={result.failed}")


@cli.command("revoke")
@click.option("--number", "number", required=True)
@click.option("--reason", "reason", required=True)
def revoke(number: str, reason: str):
    """Revoke a certificate by number."""
    cert = (
        db.session.query(Certificate)
        .filter(Certificate.certificate_number == number.strip().upper())
        .one_or_none()
    )
    if not cert:
        click.echo("Not found", err=True)
        return
    try:
        revoke_certificate(cert.id, reason)
    except RevokeReasonRequired as exc:
        click.echo(str(exc), err=True)
        return
    click.echo(f"revoked {cert.certificate_number}")


if __name__ == "__main__":
    cli()
