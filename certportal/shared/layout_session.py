"""Pointer-driven editing of a template's field layout.

One ``LayoutSession`` exists per open editor. It owns the in-progress field
set until :meth:`LayoutSession.commit` hands the finished payload back for
persistence. Pointer positions arrive in on-screen pixels of the scaled
preview and are converted to full-page units before any geometry runs.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable

from ..constants import PREVIEW_SCALE
from .geometry import Box, Handle, Page, parse_handle, resize, translate
from .template_fields import (
    TemplateField,
    TemplateFieldSet,
    stale_course_fields,
)

logger = logging.getLogger("certportal.layout")


class LayoutState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"


class LayoutSession:
    def __init__(
        self,
        fields: TemplateFieldSet | Iterable[Any] = (),
        page: Page | None = None,
        preview_scale: float = PREVIEW_SCALE,
        course_type: Any = None,
        *,
        template_id: int | None = None,
        name: str = "",
        background_image_ref: str = "",
    ):
        if preview_scale <= 0:
            raise ValueError("preview_scale must be positive")
        if isinstance(fields, TemplateFieldSet):
            self.page = page or fields.page
            if self.page == fields.page:
                self.fields = fields
            else:
                # refit a copy so the caller's set keeps its own page
                self.fields = TemplateFieldSet(fields, self.page)
        else:
            self.page = page or Page()
            items = list(fields)
            if items and all(isinstance(f, TemplateField) for f in items):
                self.fields = TemplateFieldSet(items, self.page)
            else:
                self.fields = TemplateFieldSet.from_config(items, self.page)
        self.preview_scale = preview_scale
        self.course_type = course_type
        self.template_id = template_id
        self.name = name
        self.background_image_ref = background_image_ref

        self.state = LayoutState.IDLE
        self.selected_id: str | None = None
        self._active_id: str | None = None
        self._last_point: tuple[float, float] | None = None
        self._anchor_point: tuple[float, float] | None = None
        self._anchor_box: Box | None = None
        self._anchor_font: int | None = None
        self._handle: Handle | None = None

    @property
    def active_field_id(self) -> str | None:
        return self._active_id

    @property
    def selected(self) -> TemplateField | None:
        if self.selected_id is None:
            return None
        return self.fields.get(self.selected_id)

    def to_page(self, screen_x: float, screen_y: float) -> tuple[float, float]:
        return screen_x / self.preview_scale, screen_y / self.preview_scale

    def _ignore(self, event: str, reason: str) -> None:
        logger.debug(
            "[LAYOUT] ignored %s state=%s reason=%s", event, self.state.value, reason
        )

    def _reset_gesture(self) -> None:
        self.state = LayoutState.IDLE
        self._active_id = None
        self._last_point = None
        self._anchor_point = None
        self._anchor_box = None
        self._anchor_font = None
        self._handle = None

    # pointer events

    def pointer_down_on_field(self, field_id: str, screen_x: float, screen_y: float) -> bool:
        if self.state is not LayoutState.IDLE:
            self._ignore("pointer_down_on_field", "gesture in progress")
            return False
        if field_id not in self.fields:
            self._ignore("pointer_down_on_field", f"unknown field {field_id!r}")
            return False
        self.selected_id = field_id
        self._active_id = field_id
        self._last_point = self.to_page(screen_x, screen_y)
        self.state = LayoutState.DRAGGING
        return True

    def pointer_down_on_handle(
        self, field_id: str, handle: Handle | str, screen_x: float, screen_y: float
    ) -> bool:
        if self.state is not LayoutState.IDLE:
            self._ignore("pointer_down_on_handle", "gesture in progress")
            return False
        field = self.fields.get(field_id)
        if field is None:
            self._ignore("pointer_down_on_handle", f"unknown field {field_id!r}")
            return False
        try:
            parsed = parse_handle(handle)
        except ValueError:
            self._ignore("pointer_down_on_handle", f"unknown handle {handle!r}")
            return False
        self.selected_id = field_id
        self._active_id = field_id
        self._handle = parsed
        self._anchor_box = field.box
        self._anchor_font = field.font_size
        self._anchor_point = self.to_page(screen_x, screen_y)
        self.state = LayoutState.RESIZING
        return True

    def pointer_move(self, screen_x: float, screen_y: float) -> TemplateField | None:
        if self.state is LayoutState.IDLE:
            self._ignore("pointer_move", "no gesture")
            return None
        field = self.fields.get(self._active_id) if self._active_id else None
        if field is None:
            self._ignore("pointer_move", "active field removed")
            self._reset_gesture()
            return None
        px, py = self.to_page(screen_x, screen_y)

        if self.state is LayoutState.DRAGGING:
            last_x, last_y = self._last_point
            box = translate(field.box, px - last_x, py - last_y, self.page)
            self._last_point = (px, py)
            return self.fields.replace_field(field.with_box(box))

        anchor_x, anchor_y = self._anchor_point
        result = resize(
            self._anchor_box,
            self._handle,
            px - anchor_x,
            py - anchor_y,
            self.page,
            font_size=self._anchor_font,
        )
        return self.fields.replace_field(field.with_box(result.box, result.font_size))

    def pointer_up(self) -> TemplateField | None:
        if self.state is LayoutState.IDLE:
            self._ignore("pointer_up", "no gesture")
            return None
        field = self.fields.get(self._active_id) if self._active_id else None
        self._reset_gesture()
        return field

    def pointer_down_on_canvas(self) -> None:
        if self.state is not LayoutState.IDLE:
            self._ignore("pointer_down_on_canvas", "gesture in progress")
            return
        self.selected_id = None

    # property panel and toolbar actions

    def select(self, field_id: str | None) -> bool:
        if field_id is not None and field_id not in self.fields:
            return False
        self.selected_id = field_id
        return True

    def update_field(self, field_id: str, **changes: Any) -> TemplateField:
        return self.fields.update_field(field_id, **changes)

    def add_system_field(self, name: str) -> TemplateField:
        field = self.fields.add_system_field(name)
        self.selected_id = field.id
        return field

    def add_course_field(self, definition: dict) -> TemplateField:
        field = self.fields.add_course_field(definition)
        self.selected_id = field.id
        return field

    def add_all_course_fields(self) -> list[TemplateField]:
        return self.fields.add_all_course_fields(self.course_type)

    def add_custom_field(self, label: str = "Custom Field") -> TemplateField:
        field = self.fields.add_custom_field(label)
        self.selected_id = field.id
        return field

    def remove_field(self, field_id: str) -> TemplateField | None:
        if self.state is not LayoutState.IDLE and self._active_id == field_id:
            self._reset_gesture()
        removed = self.fields.remove_field(field_id)
        if self.selected_id == field_id:
            self.selected_id = None
        return removed

    def change_course_type(self, course_type: Any) -> list[str]:
        """Switch course type, returning course fields the new type no longer declares.

        The returned fields stay on the template for the operator to review.
        """
        stale = stale_course_fields(self.fields, self.course_type, course_type)
        self.course_type = course_type
        return stale

    def commit(self) -> dict:
        if self.state is not LayoutState.IDLE:
            self._reset_gesture()
        return {
            "id": self.template_id,
            "name": self.name,
            "course_type_id": getattr(self.course_type, "id", None),
            "background_image_ref": self.background_image_ref,
            "page_width": self.page.width,
            "page_height": self.page.height,
            "fields_config": self.fields.to_config(),
        }
