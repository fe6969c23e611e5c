from types import SimpleNamespace

import pytest

from certportal.constants import NEW_TEMPLATE_SYSTEM_FIELDS
from certportal.shared.geometry import Box, Page
from certportal.shared.template_fields import (
    DuplicateFieldError,
    TemplateField,
    TemplateFieldSet,
    available_course_fields,
    available_system_fields,
    classify,
    default_template_fields,
    sanitize_fields_config,
    stale_course_fields,
)

FORKLIFT = SimpleNamespace(
    id=1,
    required_fields=[
        {"name": "truck_type", "label": "Truck Type", "scope": "course"},
        {"name": "hours", "label": "Hours", "scope": "course", "unit": "hours"},
        {"name": "operator_id", "label": "Operator ID", "scope": "candidate"},
    ],
)
FIRST_AID = SimpleNamespace(
    id=2,
    required_fields=[
        {"name": "hours", "label": "Hours", "scope": "course"},
        {"name": "assessor", "label": "Assessor", "scope": "course"},
    ],
)


def test_add_field_rejects_duplicate_id():
    fields = TemplateFieldSet()
    fields.add_system_field("candidate_name")
    with pytest.raises(DuplicateFieldError):
        fields.add_system_field("candidate_name")
    assert len(fields) == 1


def test_remove_field_absent_is_noop():
    fields = TemplateFieldSet()
    fields.add_system_field("trainer_name")
    assert fields.remove_field("nope") is None
    assert fields.ids == ["trainer_name"]
    assert fields.remove_field("trainer_name").id == "trainer_name"
    assert len(fields) == 0


def test_system_field_uses_default_table():
    field = TemplateFieldSet().add_system_field("candidate_name")
    assert (field.x, field.y, field.width, field.height) == (840, 1400, 800, 80)
    assert field.font_size == 64
    assert field.bold is True
    assert field.label == "Candidate Name"


def test_course_fields_stack_vertically():
    fields = TemplateFieldSet()
    added = fields.add_all_course_fields(FORKLIFT)
    assert [f.id for f in added] == ["truck_type", "hours", "operator_id"]
    assert [f.y for f in added] == [2200, 2320, 2440]
    assert all(f.x == 840 and f.width == 800 and f.height == 60 for f in added)


def test_add_all_course_fields_skips_present():
    fields = TemplateFieldSet()
    fields.add_course_field(FORKLIFT.required_fields[1])
    added = fields.add_all_course_fields(FORKLIFT)
    assert [f.id for f in added] == ["truck_type", "operator_id"]
    assert available_course_fields(FORKLIFT, fields) == []


def test_default_placement_clamped_into_small_page():
    fields = TemplateFieldSet(page=Page(1000, 1500))
    field = fields.add_system_field("trainer_name")
    assert field.box.fits(fields.page)
    course = fields.add_course_field({"name": "truck_type", "label": "Truck Type"})
    assert course.box.fits(fields.page)


def test_custom_fields_get_unique_ids():
    fields = TemplateFieldSet()
    first = fields.add_custom_field()
    second = fields.add_custom_field("Signature")
    assert first.id != second.id
    assert (second.x, second.y, second.width, second.height) == (400, 400, 600, 60)
    assert second.label == "Signature"


def test_available_system_fields():
    fields = TemplateFieldSet()
    fields.add_system_field("candidate_name")
    names = [f["name"] for f in available_system_fields(fields)]
    assert "candidate_name" not in names
    assert "course_name" in names
    assert len(names) == 5


def test_classify_is_recomputed_per_course_type():
    assert classify("candidate_name", FORKLIFT) == "system"
    assert classify("truck_type", FORKLIFT) == "course"
    assert classify("truck_type", FIRST_AID) == "custom"
    assert classify("hours", FIRST_AID) == "course"
    assert classify("custom_field_1", None) == "custom"


def test_stale_course_fields_after_course_type_change():
    fields = TemplateFieldSet()
    fields.add_all_course_fields(FORKLIFT)
    fields.add_system_field("candidate_name")
    assert stale_course_fields(fields, FORKLIFT, FIRST_AID) == ["operator_id", "truck_type"]
    # nothing is removed
    assert "truck_type" in fields


def test_default_template_fields():
    fields = default_template_fields(FORKLIFT)
    assert fields.ids[: len(NEW_TEMPLATE_SYSTEM_FIELDS)] == list(NEW_TEMPLATE_SYSTEM_FIELDS)
    assert fields.ids[len(NEW_TEMPLATE_SYSTEM_FIELDS):] == ["truck_type", "hours", "operator_id"]
    assert fields.get("hours").y == 2320


def test_update_field_refits_box():
    fields = TemplateFieldSet()
    fields.add_system_field("course_name")
    updated = fields.update_field("course_name", x=5000, width=10, color="#ff0000")
    assert updated.width == 50
    assert updated.x == 2480 - 50
    assert updated.color == "#ff0000"
    with pytest.raises(KeyError):
        fields.update_field("missing", x=1)


def test_update_field_clamps_style_and_rejects_unknown_keys():
    fields = TemplateFieldSet()
    fields.add_system_field("course_name")
    updated = fields.update_field("course_name", font_size=500, align="justify", height=1)
    assert updated.font_size == 200
    assert updated.align == "center"
    assert updated.height == 20
    assert fields.update_field("course_name", font_size=2).font_size == 8
    with pytest.raises(ValueError):
        fields.update_field("course_name", colour="#ff0000")
    with pytest.raises(ValueError):
        fields.update_field("course_name", id="other")
    assert fields.ids == ["course_name"]


def test_add_field_normalises_out_of_range_field():
    fields = TemplateFieldSet(page=Page(1000, 800))
    raw = TemplateField(
        id="notes",
        name="notes",
        label="Notes",
        x=-40,
        y=900,
        width=5,
        height=5000,
        font_size=999,
        align="middle",
    )
    stored = fields.add_field(raw)
    assert stored.box == Box(0, 0, 50, 800)
    assert stored.font_size == 200
    assert stored.align == "center"
    assert fields.get("notes") == stored


def test_config_round_trip_uses_editor_keys():
    fields = TemplateFieldSet()
    fields.add_system_field("certificate_number")
    config = fields.to_config()
    assert config[0]["fontSize"] == 24
    assert config[0]["fontFamily"] == "Arial"
    again = TemplateFieldSet.from_config(config)
    assert again.get("certificate_number") == fields.get("certificate_number")


def test_sanitize_fields_config_normalises_untrusted_input():
    raw = [
        {"id": "candidate_name", "name": "candidate_name", "x": "-40", "y": 10,
         "width": 5, "height": 5, "fontSize": 999, "color": "red", "align": "justify",
         "fontFamily": "Comic Sans"},
        {"id": "candidate_name", "name": "candidate_name"},
        "garbage",
        {"label": "no id"},
        {"id": "venue", "x": 3000, "y": 4000, "width": 100, "height": 50, "bold": 1},
    ]
    cleaned = sanitize_fields_config(raw)
    assert [f["id"] for f in cleaned] == ["candidate_name", "venue"]
    first = cleaned[0]
    assert (first["x"], first["width"], first["height"]) == (0, 50, 20)
    assert first["fontSize"] == 200
    assert first["color"] == "#333333"
    assert first["align"] == "center"
    assert first["fontFamily"] == "Arial"
    venue = cleaned[1]
    assert (venue["x"], venue["y"]) == (2380, 3458)
    assert venue["bold"] is True
    assert venue["name"] == "venue"


def test_template_field_from_config_rejects_non_dict():
    assert TemplateField.from_config(None) is None
    assert sanitize_fields_config("nope") == []
