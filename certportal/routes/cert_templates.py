from __future__ import annotations

import math

from flask import Blueprint, abort, current_app, jsonify, request

from ..app import db
from ..constants import SYSTEM_FIELD_NAMES
from ..models import CertificateTemplate, CourseType
from ..shared.geometry import Page
from ..shared.layout_session import LayoutSession
from ..shared.template_fields import (
    DuplicateFieldError,
    TemplateFieldSet,
    available_course_fields,
    available_system_fields,
    classify,
    default_template_fields,
    sanitize_fields_config,
    stale_course_fields,
)

bp = Blueprint("cert_templates", __name__, url_prefix="/settings/cert-templates")


def _get_template(template_id: int) -> CertificateTemplate:
    template = db.session.get(CertificateTemplate, template_id)
    if not template:
        abort(404)
    return template


def _page(template: CertificateTemplate) -> Page:
    return Page(template.page_width, template.page_height)


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _template_json(template: CertificateTemplate, **extra) -> dict:
    data = template.to_dict()
    data["classification"] = {
        field.get("name"): classify(field.get("name"), template.course_type)
        for field in data["fields_config"]
        if isinstance(field, dict) and field.get("name")
    }
    data.update(extra)
    return data


def _layout_session(template: CertificateTemplate, preview_scale=None) -> LayoutSession:
    kwargs = {}
    if preview_scale is not None:
        kwargs["preview_scale"] = preview_scale
    return LayoutSession(
        template.fields_config or [],
        _page(template),
        course_type=template.course_type,
        template_id=template.id,
        name=template.name,
        background_image_ref=template.background_image_ref or "",
        **kwargs,
    )


@bp.get("/")
def list_templates():
    query = CertificateTemplate.query
    course_type_id = request.args.get("course_type_id", type=int)
    if course_type_id:
        query = query.filter(CertificateTemplate.course_type_id == course_type_id)
    templates = query.order_by(
        CertificateTemplate.created_at.desc(), CertificateTemplate.id.desc()
    ).all()
    return jsonify([t.to_dict() for t in templates])


@bp.post("/")
def create_template():
    payload = _payload()
    name = (payload.get("name") or "").strip()
    course_type_id = payload.get("course_type_id")
    if not name or not course_type_id:
        return jsonify({"error": "Name and course type required."}), 400
    course_type = db.session.get(CourseType, course_type_id)
    if not course_type:
        return jsonify({"error": "Course type not found."}), 404
    page = Page()
    if "fields_config" in payload:
        fields = sanitize_fields_config(payload.get("fields_config"), page)
    else:
        fields = default_template_fields(course_type, page).to_config()
    template = CertificateTemplate(
        course_type_id=course_type.id,
        name=name,
        background_image_ref=(payload.get("background_image_ref") or "").strip(),
        page_width=page.width,
        page_height=page.height,
        fields_config=fields,
        is_active=bool(payload.get("is_active", True)),
    )
    db.session.add(template)
    db.session.commit()
    current_app.logger.info(
        "[CERT-TEMPLATE] created id=%s course_type=%s fields=%s",
        template.id,
        course_type.code,
        len(fields),
    )
    return jsonify(_template_json(template)), 201


@bp.get("/<int:template_id>")
def get_template(template_id: int):
    return jsonify(_template_json(_get_template(template_id)))


@bp.put("/<int:template_id>")
def update_template(template_id: int):
    template = _get_template(template_id)
    payload = _payload()
    stale: list[str] = []
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            return jsonify({"error": "Name required."}), 400
        template.name = name
    if "background_image_ref" in payload:
        template.background_image_ref = (payload.get("background_image_ref") or "").strip()
    if "is_active" in payload:
        template.is_active = bool(payload.get("is_active"))
    if "fields_config" in payload:
        template.fields_config = sanitize_fields_config(
            payload.get("fields_config"), _page(template)
        )
    new_type_id = payload.get("course_type_id")
    if new_type_id and new_type_id != template.course_type_id:
        new_type = db.session.get(CourseType, new_type_id)
        if not new_type:
            return jsonify({"error": "Course type not found."}), 404
        stale = stale_course_fields(
            template.fields_config or [], template.course_type, new_type
        )
        template.course_type_id = new_type.id
        template.course_type = new_type
        if stale:
            current_app.logger.info(
                "[CERT-TEMPLATE] id=%s course type changed; stale fields=%s",
                template.id,
                ",".join(stale),
            )
    db.session.commit()
    return jsonify(_template_json(template, stale_fields=stale))


@bp.post("/<int:template_id>/duplicate")
def duplicate_template(template_id: int):
    source = _get_template(template_id)
    copy = CertificateTemplate(
        course_type_id=source.course_type_id,
        name=f"{source.name} (Copy)",
        background_image_ref=source.background_image_ref,
        page_width=source.page_width,
        page_height=source.page_height,
        fields_config=list(source.fields_config or []),
        is_active=True,
    )
    db.session.add(copy)
    db.session.commit()
    return jsonify(_template_json(copy)), 201


@bp.delete("/<int:template_id>")
def delete_template(template_id: int):
    template = _get_template(template_id)
    db.session.delete(template)
    db.session.commit()
    current_app.logger.info("[CERT-TEMPLATE] deleted id=%s", template_id)
    return jsonify({"ok": True})


@bp.get("/<int:template_id>/available-fields")
def available_fields(template_id: int):
    template = _get_template(template_id)
    fields = template.fields_config or []
    return jsonify(
        {
            "system": available_system_fields(fields),
            "course": available_course_fields(template.course_type, fields),
        }
    )


@bp.post("/<int:template_id>/fields")
def add_fields(template_id: int):
    """Add a system, course or custom field, or every missing course field."""
    template = _get_template(template_id)
    payload = _payload()
    kind = (payload.get("kind") or "").strip().lower()
    session = _layout_session(template)
    try:
        if kind == "system":
            name = payload.get("name")
            if name not in SYSTEM_FIELD_NAMES:
                return jsonify({"error": "Unknown system field."}), 400
            added = [session.add_system_field(name)]
        elif kind == "course":
            name = payload.get("name")
            definition = next(
                (
                    f
                    for f in (template.course_type.field_definitions() if template.course_type else [])
                    if f.get("name") == name
                ),
                None,
            )
            if definition is None:
                return jsonify({"error": "Unknown course field."}), 400
            added = [session.add_course_field(definition)]
        elif kind == "custom":
            added = [session.add_custom_field(payload.get("label") or "Custom Field")]
        elif kind == "all_course":
            added = session.add_all_course_fields()
        else:
            return jsonify({"error": "Unknown field kind."}), 400
    except DuplicateFieldError as exc:
        return jsonify({"error": str(exc)}), 409
    template.fields_config = session.commit()["fields_config"]
    db.session.commit()
    return jsonify(
        _template_json(template, added=[field.id for field in added])
    ), 201


@bp.delete("/<int:template_id>/fields/<field_id>")
def remove_field(template_id: int, field_id: str):
    template = _get_template(template_id)
    fields = TemplateFieldSet.from_config(template.fields_config or [], _page(template))
    fields.remove_field(field_id)
    template.fields_config = fields.to_config()
    db.session.commit()
    return jsonify(_template_json(template))


_GESTURES = {
    "field_down",
    "handle_down",
    "move",
    "up",
    "canvas_down",
}


@bp.post("/<int:template_id>/layout")
def apply_layout(template_id: int):
    """Replay editor pointer events against the stored layout and save it.

    Unknown or out-of-order events are skipped the same way the editor
    skips them.
    """
    template = _get_template(template_id)
    payload = _payload()
    scale = payload.get("preview_scale")
    if scale is not None:
        try:
            scale = float(scale)
        except (TypeError, ValueError):
            return jsonify({"error": "Invalid preview scale."}), 400
        if not math.isfinite(scale) or scale <= 0:
            return jsonify({"error": "Invalid preview scale."}), 400
    session = _layout_session(template, scale)
    events = payload.get("events")
    if not isinstance(events, list):
        return jsonify({"error": "Events list required."}), 400
    for event in events:
        if not isinstance(event, dict) or event.get("type") not in _GESTURES:
            continue
        kind = event["type"]
        try:
            x = float(event.get("x") or 0)
            y = float(event.get("y") or 0)
        except (TypeError, ValueError):
            continue
        if kind == "field_down":
            session.pointer_down_on_field(str(event.get("field") or ""), x, y)
        elif kind == "handle_down":
            session.pointer_down_on_handle(
                str(event.get("field") or ""), str(event.get("handle") or ""), x, y
            )
        elif kind == "move":
            session.pointer_move(x, y)
        elif kind == "up":
            session.pointer_up()
        else:
            session.pointer_down_on_canvas()
    template.fields_config = session.commit()["fields_config"]
    db.session.commit()
    return jsonify(_template_json(template, selected=session.selected_id))
