"""Page-space geometry for template fields.

All coordinates are full-page units with a top-left origin. Boxes are
anchored at their top-left corner. Nothing here knows about screens or
preview scaling; callers convert pointer deltas before calling in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import NamedTuple

from ..constants import (
    MAX_FONT_SIZE,
    MIN_FIELD_HEIGHT,
    MIN_FIELD_WIDTH,
    MIN_FONT_SIZE,
    PAGE_HEIGHT,
    PAGE_WIDTH,
)


@dataclass(frozen=True)
class Page:
    width: float = PAGE_WIDTH
    height: float = PAGE_HEIGHT


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def fits(self, page: Page) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.right <= page.width
            and self.bottom <= page.height
        )


class Handle(str, Enum):
    NW = "nw"
    N = "n"
    NE = "ne"
    E = "e"
    SE = "se"
    S = "s"
    SW = "sw"
    W = "w"

    @property
    def moves_left(self) -> bool:
        return "w" in self.value

    @property
    def moves_right(self) -> bool:
        return "e" in self.value

    @property
    def moves_top(self) -> bool:
        return "n" in self.value

    @property
    def moves_bottom(self) -> bool:
        return "s" in self.value


class ResizeResult(NamedTuple):
    box: Box
    font_size: int | None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_handle(handle: Handle | str) -> Handle:
    if isinstance(handle, Handle):
        return handle
    try:
        return Handle(str(handle).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown resize handle: {handle!r}") from None


def translate(box: Box, dx: float, dy: float, page: Page) -> Box:
    """Move ``box`` by ``(dx, dy)`` keeping it fully on the page."""
    x = _clamp(box.x + dx, 0, page.width - box.width)
    y = _clamp(box.y + dy, 0, page.height - box.height)
    return replace(box, x=x, y=y)


def scale_font_size(initial_font_size: float, initial_height: float, new_height: float) -> int:
    """Scale a font with the box height, clamped to the legible range."""
    if initial_height <= 0:
        return round_half_up(_clamp(initial_font_size, MIN_FONT_SIZE, MAX_FONT_SIZE))
    scaled = initial_font_size * (new_height / initial_height)
    return round_half_up(_clamp(scaled, MIN_FONT_SIZE, MAX_FONT_SIZE))


def resize(
    initial: Box,
    handle: Handle | str,
    dx: float,
    dy: float,
    page: Page,
    *,
    font_size: float | None = None,
    min_width: float = MIN_FIELD_WIDTH,
    min_height: float = MIN_FIELD_HEIGHT,
) -> ResizeResult:
    """Resize ``initial`` by dragging ``handle`` a total of ``(dx, dy)``.

    The displacement is always the total since the gesture began and
    ``initial`` is the box at that moment, so the result depends only on
    ``(initial, handle, dx, dy)`` and never accumulates rounding drift.

    Edges opposite the dragged handle stay put. Dimensions below the
    minimum are clamped and the moving edge is recomputed from the fixed
    one; the final position is then clamped so the box stays on the page.
    Undersized input is corrected silently rather than rejected.
    """
    handle = parse_handle(handle)

    width = initial.width
    height = initial.height
    if handle.moves_right:
        width = initial.width + dx
    elif handle.moves_left:
        width = initial.width - dx
    if handle.moves_bottom:
        height = initial.height + dy
    elif handle.moves_top:
        height = initial.height - dy

    width = min(max(min_width, width), page.width)
    height = min(max(min_height, height), page.height)

    x = initial.x
    y = initial.y
    if handle.moves_left:
        x = initial.right - width
    if handle.moves_top:
        y = initial.bottom - height

    x = _clamp(x, 0, page.width - width)
    y = _clamp(y, 0, page.height - height)

    box = Box(x=x, y=y, width=width, height=height)
    new_font = None
    if font_size is not None:
        new_font = scale_font_size(font_size, initial.height, height)
    return ResizeResult(box=box, font_size=new_font)
