import logging
import os

from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .models import Certificate, CertificateTemplate, CourseType  # noqa: E402,F401
from .shared.time import fmt_date  # noqa: E402


def create_app():
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")
    app.jinja_env.filters["fmt_date"] = fmt_date

    DB_USER = os.getenv("DB_USER", "certportal")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "certportal")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    site_root = os.getenv("SITE_ROOT", "/srv")
    app.config["SITE_ROOT"] = site_root

    if not app.debug:
        app.logger.setLevel(logging.INFO)

    db.init_app(app)

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.cert_templates import bp as cert_templates_bp
    from .routes.certificates import bp as certificates_bp

    app.register_blueprint(cert_templates_bp)
    app.register_blueprint(certificates_bp)

    @app.get("/verify/<string:number>")
    def verify(number: str):
        from .shared.certificates import verify_certificate

        cert, result = verify_certificate(number, ip_address=request.remote_addr or "")
        if not cert:
            return jsonify({"ok": False, "result": result}), 404
        masked = (cert.candidate_name[0] + "***") if cert.candidate_name else "***"
        course_type = db.session.get(CourseType, cert.course_type_id)
        return jsonify(
            {
                "ok": result == "valid",
                "result": result,
                "certificate_number": cert.certificate_number,
                "course_name": course_type.name if course_type else "",
                "issue_date": cert.issue_date.isoformat() if cert.issue_date else None,
                "expiry_date": (
                    cert.expiry_date.isoformat() if cert.expiry_date else None
                ),
                "candidate": masked,
            }
        )

    return app
