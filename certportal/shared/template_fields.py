from __future__ import annotations

import re
from dataclasses import dataclass, fields as dataclass_fields, replace
from typing import Any, Iterable, Iterator

from ..constants import (
    COURSE_FIELD_BASE_Y,
    COURSE_FIELD_SPACING,
    FIELD_ALIGNMENTS,
    FIELD_TYPES,
    FONT_FAMILY_CHOICES,
    MAX_FONT_SIZE,
    MIN_FIELD_HEIGHT,
    MIN_FIELD_WIDTH,
    MIN_FONT_SIZE,
    NEW_TEMPLATE_SYSTEM_FIELDS,
    SYSTEM_FIELD_DEFAULTS,
    SYSTEM_FIELD_NAMES,
    SYSTEM_FIELDS,
)
from .geometry import Box, Page, translate

SOURCE_SYSTEM = "system"
SOURCE_COURSE = "course"
SOURCE_CUSTOM = "custom"

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
_FONT_FAMILIES = {code for code, _ in FONT_FAMILY_CHOICES}
_SYSTEM_LABELS = dict(SYSTEM_FIELDS)


class DuplicateFieldError(ValueError):
    """Raised when a field id is already present on the template."""


@dataclass(frozen=True)
class TemplateField:
    id: str
    name: str
    label: str
    x: float
    y: float
    width: float
    height: float
    font_size: int = 32
    font_family: str = "Arial"
    color: str = "#333333"
    align: str = "center"
    bold: bool = False
    italic: bool = False
    type: str = "text"

    @property
    def box(self) -> Box:
        return Box(self.x, self.y, self.width, self.height)

    def with_box(self, box: Box, font_size: int | None = None) -> "TemplateField":
        changes: dict[str, Any] = {
            "x": box.x,
            "y": box.y,
            "width": box.width,
            "height": box.height,
        }
        if font_size is not None:
            changes["font_size"] = font_size
        return replace(self, **changes)

    def to_config(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "x": _num(self.x),
            "y": _num(self.y),
            "width": _num(self.width),
            "height": _num(self.height),
            "fontSize": self.font_size,
            "fontFamily": self.font_family,
            "color": self.color,
            "align": self.align,
            "bold": self.bold,
            "italic": self.italic,
        }

    @classmethod
    def from_config(cls, raw: Any, page: Page | None = None) -> "TemplateField | None":
        """Build a field from editor JSON, or ``None`` when it has no usable id."""
        if not isinstance(raw, dict):
            return None
        field_id = str(raw.get("id") or raw.get("name") or "").strip()
        if not field_id:
            return None
        name = str(raw.get("name") or field_id).strip()
        field = cls(
            id=field_id,
            name=name,
            label=str(raw.get("label") or _SYSTEM_LABELS.get(name) or name),
            x=_float(raw.get("x"), 0.0),
            y=_float(raw.get("y"), 0.0),
            width=_float(raw.get("width"), 800.0),
            height=_float(raw.get("height"), 60.0),
            font_size=raw.get("fontSize"),
            font_family=raw.get("fontFamily"),
            color=raw.get("color"),
            align=raw.get("align"),
            bold=raw.get("bold"),
            italic=raw.get("italic"),
            type=raw.get("type"),
        )
        return normalize_field(field, page)


_EDITABLE_ATTRS = frozenset(f.name for f in dataclass_fields(TemplateField)) - {"id"}


def _float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result != result:  # NaN
        return default
    return result


def _num(value: float) -> float | int:
    if float(value).is_integer():
        return int(value)
    return round(value, 2)


def fit_box(box: Box, page: Page) -> Box:
    """Enforce minimum size and page containment on an arbitrary box."""
    width = min(max(MIN_FIELD_WIDTH, box.width), page.width)
    height = min(max(MIN_FIELD_HEIGHT, box.height), page.height)
    return translate(Box(box.x, box.y, width, height), 0, 0, page)


def normalize_field(field: TemplateField, page: Page | None = None) -> TemplateField:
    """Clamp box, font size and style values of ``field`` into their valid ranges.

    Unknown font families, colours, alignments and types fall back to the
    editor defaults.
    """
    box = fit_box(
        Box(
            _float(field.x, 0.0),
            _float(field.y, 0.0),
            _float(field.width, 800.0),
            _float(field.height, 60.0),
        ),
        page or Page(),
    )
    font_size = int(round(_float(field.font_size, 32.0)))
    font_size = max(MIN_FONT_SIZE, min(font_size, MAX_FONT_SIZE))
    font_family = field.font_family
    if font_family not in _FONT_FAMILIES:
        font_family = "Arial"
    color = field.color
    if not isinstance(color, str) or not _COLOR_RE.match(color):
        color = "#333333"
    align = str(field.align or "").lower()
    if align not in FIELD_ALIGNMENTS:
        align = "center"
    field_type = str(field.type or "").lower()
    if field_type not in FIELD_TYPES:
        field_type = "text"
    return replace(
        field,
        x=box.x,
        y=box.y,
        width=box.width,
        height=box.height,
        font_size=font_size,
        font_family=font_family,
        color=color.lower(),
        align=align,
        bold=bool(field.bold),
        italic=bool(field.italic),
        type=field_type,
    )


def course_field_definitions(course_type: Any) -> list[dict]:
    if course_type is None:
        return []
    fields = getattr(course_type, "required_fields", None)
    if fields is None and isinstance(course_type, dict):
        fields = course_type.get("required_fields")
    return [f for f in (fields or []) if isinstance(f, dict) and f.get("name")]


def _field_names(fields: Iterable[Any]) -> set[str]:
    names: set[str] = set()
    for field in fields:
        if isinstance(field, dict):
            name = field.get("name") or field.get("id")
        else:
            name = getattr(field, "name", None)
        if name:
            names.add(str(name))
    return names


def classify(field_name: str, course_type: Any) -> str:
    """Classify a field against the system catalogue and a course type.

    Never stored: switching a template to another course type reclassifies
    its existing fields without touching them.
    """
    if field_name in SYSTEM_FIELD_NAMES:
        return SOURCE_SYSTEM
    course_names = {f["name"] for f in course_field_definitions(course_type)}
    if field_name in course_names:
        return SOURCE_COURSE
    return SOURCE_CUSTOM


def available_course_fields(course_type: Any, current_fields: Iterable[Any]) -> list[dict]:
    present = _field_names(current_fields)
    return [
        f for f in course_field_definitions(course_type) if f["name"] not in present
    ]


def available_system_fields(current_fields: Iterable[Any]) -> list[dict]:
    present = _field_names(current_fields)
    return [
        {"name": name, "label": label}
        for name, label in SYSTEM_FIELDS
        if name not in present
    ]


def stale_course_fields(
    current_fields: Iterable[Any], old_course_type: Any, new_course_type: Any
) -> list[str]:
    """Names of fields that belonged to the old course type but not the new one."""
    stale = []
    for name in sorted(_field_names(current_fields)):
        if (
            classify(name, old_course_type) == SOURCE_COURSE
            and classify(name, new_course_type) != SOURCE_COURSE
        ):
            stale.append(name)
    return stale


def system_field(name: str, page: Page | None = None, label: str | None = None) -> TemplateField:
    config = SYSTEM_FIELD_DEFAULTS.get(name, {})
    box = fit_box(
        Box(
            config.get("x", 100),
            config.get("y", 100),
            config.get("width", 800),
            config.get("height", 60),
        ),
        page or Page(),
    )
    return TemplateField(
        id=name,
        name=name,
        label=label or _SYSTEM_LABELS.get(name, name),
        x=box.x,
        y=box.y,
        width=box.width,
        height=box.height,
        font_size=config.get("fontSize", 32),
        color="#333333",
        align="center",
        bold=config.get("bold", False),
    )


def course_field(definition: dict, index: int, page: Page | None = None) -> TemplateField:
    box = fit_box(
        Box(840, COURSE_FIELD_BASE_Y + index * COURSE_FIELD_SPACING, 800, 60),
        page or Page(),
    )
    return TemplateField(
        id=definition["name"],
        name=definition["name"],
        label=definition.get("label") or definition["name"],
        x=box.x,
        y=box.y,
        width=box.width,
        height=box.height,
        font_size=32,
        color="#333333",
        align="center",
    )


class TemplateFieldSet:
    """Ordered, id-unique collection of the fields placed on one template."""

    def __init__(self, fields: Iterable[TemplateField] = (), page: Page | None = None):
        self.page = page or Page()
        self._fields: dict[str, TemplateField] = {}
        for field in fields:
            self.add_field(field)

    @classmethod
    def from_config(cls, config: Any, page: Page | None = None) -> "TemplateFieldSet":
        page = page or Page()
        return cls(sanitize_fields(config, page), page)

    def __iter__(self) -> Iterator[TemplateField]:
        return iter(list(self._fields.values()))

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._fields

    def get(self, field_id: str) -> TemplateField | None:
        return self._fields.get(field_id)

    @property
    def ids(self) -> list[str]:
        return list(self._fields)

    def add_field(self, field: TemplateField) -> TemplateField:
        if field.id in self._fields:
            raise DuplicateFieldError(f"Field {field.id!r} already on template")
        field = normalize_field(field, self.page)
        self._fields[field.id] = field
        return field

    def remove_field(self, field_id: str) -> TemplateField | None:
        return self._fields.pop(field_id, None)

    def replace_field(self, field: TemplateField) -> TemplateField:
        if field.id not in self._fields:
            raise KeyError(field.id)
        self._fields[field.id] = field
        return field

    def update_field(self, field_id: str, **changes: Any) -> TemplateField:
        current = self._fields.get(field_id)
        if current is None:
            raise KeyError(field_id)
        unknown = sorted(set(changes) - _EDITABLE_ATTRS)
        if unknown:
            raise ValueError(f"Cannot update field attribute(s): {', '.join(unknown)}")
        updated = normalize_field(replace(current, **changes), self.page)
        self._fields[field_id] = updated
        return updated

    def add_system_field(self, name: str, label: str | None = None) -> TemplateField:
        return self.add_field(system_field(name, self.page, label=label))

    def add_course_field(self, definition: dict) -> TemplateField:
        return self.add_field(course_field(definition, len(self), self.page))

    def add_all_course_fields(self, course_type: Any) -> list[TemplateField]:
        return [
            self.add_course_field(definition)
            for definition in available_course_fields(course_type, self)
        ]

    def add_custom_field(self, label: str = "Custom Field") -> TemplateField:
        counter = len(self) + 1
        while f"custom_{counter}" in self._fields:
            counter += 1
        box = fit_box(Box(400, 400, 600, 60), self.page)
        field = TemplateField(
            id=f"custom_{counter}",
            name=f"custom_field_{counter}",
            label=label,
            x=box.x,
            y=box.y,
            width=box.width,
            height=box.height,
            font_size=32,
            color="#000000",
            align="left",
        )
        return self.add_field(field)

    def to_config(self) -> list[dict]:
        return [field.to_config() for field in self._fields.values()]


def sanitize_fields(raw: Any, page: Page | None = None) -> list[TemplateField]:
    page = page or Page()
    if not isinstance(raw, list):
        return []
    seen: set[str] = set()
    fields: list[TemplateField] = []
    for item in raw:
        field = TemplateField.from_config(item, page)
        if field is None or field.id in seen:
            continue
        seen.add(field.id)
        fields.append(field)
    return fields


def sanitize_fields_config(raw: Any, page: Page | None = None) -> list[dict]:
    return [field.to_config() for field in sanitize_fields(raw, page)]


def default_template_fields(course_type: Any, page: Page | None = None) -> TemplateFieldSet:
    """Field set for a brand new template of ``course_type``."""
    field_set = TemplateFieldSet(page=page)
    for name in NEW_TEMPLATE_SYSTEM_FIELDS:
        field_set.add_system_field(name)
    for index, definition in enumerate(course_field_definitions(course_type)):
        if definition["name"] in field_set:
            continue
        field_set.add_field(course_field(definition, index, field_set.page))
    return field_set
