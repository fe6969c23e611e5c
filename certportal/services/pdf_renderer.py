import os
from io import BytesIO
from typing import Any, Mapping

from flask import current_app
from PIL import Image
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from ..constants import (
    PAGE_HEIGHT,
    PAGE_WIDTH,
    PDF_FONT_FAMILIES,
    PDF_PAGE_HEIGHT_PT,
    PDF_PAGE_WIDTH_PT,
    SAFE_FALLBACK_FAMILY,
)
from ..shared.geometry import Page
from ..shared.storage import resolve_site_path, site_root, write_atomic
from ..shared.template_fields import sanitize_fields

_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")


class PdfGenerationError(RuntimeError):
    """Raised when a certificate PDF cannot be produced."""


def pdf_font_name(family: str | None, bold: bool = False, italic: bool = False) -> str:
    variants = PDF_FONT_FAMILIES.get(family or "") or PDF_FONT_FAMILIES[SAFE_FALLBACK_FAMILY]
    return variants[(1 if bold else 0) + (2 if italic else 0)]


def _draw_background(c: canvas.Canvas, path: str, width: float, height: float) -> None:
    resampling = getattr(Image, "Resampling", None)
    with Image.open(path) as img:
        background = img.convert("RGB")
        if background.width > 4 * width:
            target = (int(4 * width), int(4 * height))
            background = background.resize(
                target, resampling.LANCZOS if resampling is not None else Image.LANCZOS
            )
        c.drawImage(ImageReader(background), 0, 0, width=width, height=height)


def _background_source(template: Any) -> tuple[str | None, str | None]:
    """Return ``(kind, path)`` for the template background, if usable."""
    ref = (getattr(template, "background_image_ref", "") or "").strip()
    if not ref:
        return None, None
    path = resolve_site_path(ref)
    if not path or not os.path.isfile(path):
        current_app.logger.warning(
            "[CERT-PDF] background missing ref=%s template=%s",
            ref,
            getattr(template, "id", None),
        )
        return None, None
    lowered = path.lower()
    if lowered.endswith(".pdf"):
        return "pdf", path
    if lowered.endswith(_IMAGE_EXTENSIONS):
        return "image", path
    current_app.logger.warning("[CERT-PDF] unsupported background ref=%s", ref)
    return None, None


def draw_fields(
    c: canvas.Canvas,
    template: Any,
    values: Mapping[str, Any],
    page_width: float = PDF_PAGE_WIDTH_PT,
    page_height: float = PDF_PAGE_HEIGHT_PT,
) -> int:
    """Draw every field with a non-empty value; returns the number drawn."""
    layout_page = Page(
        float(getattr(template, "page_width", None) or PAGE_WIDTH),
        float(getattr(template, "page_height", None) or PAGE_HEIGHT),
    )
    scale_x = page_width / layout_page.width
    scale_y = page_height / layout_page.height
    drawn = 0
    for field in sanitize_fields(getattr(template, "fields_config", None), layout_page):
        raw = values.get(field.name)
        if raw is None:
            continue
        text = str(raw)
        if not text:
            continue
        font_name = pdf_font_name(field.font_family, field.bold, field.italic)
        font_size = field.font_size * scale_y
        text_width = stringWidth(text, font_name, font_size)
        left = field.x * scale_x
        box_width = field.width * scale_x
        if field.align == "center":
            x = left + box_width / 2 - text_width / 2
        elif field.align == "right":
            x = left + box_width - text_width
        else:
            x = left
        # top-left template origin, bottom-left PDF origin
        y = page_height - field.y * scale_y - font_size
        c.setFont(font_name, font_size)
        c.setFillColor(HexColor(field.color))
        c.drawString(x, y, text)
        drawn += 1
    return drawn


def render_bytes(template: Any, values: Mapping[str, Any]) -> bytes:
    kind, background_path = _background_source(template)
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=(PDF_PAGE_WIDTH_PT, PDF_PAGE_HEIGHT_PT))
    if kind == "image":
        _draw_background(c, background_path, PDF_PAGE_WIDTH_PT, PDF_PAGE_HEIGHT_PT)
    draw_fields(c, template, values)
    c.showPage()
    c.save()
    buffer.seek(0)
    if kind != "pdf":
        return buffer.getvalue()

    base_page = PdfReader(background_path).pages[0]
    overlay_page = PdfReader(buffer).pages[0]
    base_page.merge_page(overlay_page)
    writer = PdfWriter()
    writer.add_page(base_page)
    out_buf = BytesIO()
    writer.write(out_buf)
    return out_buf.getvalue()


def render(template: Any, values: Mapping[str, Any], filename: str) -> str:
    """Render ``values`` onto ``template`` and store it under ``certificates/``.

    Returns the path relative to ``SITE_ROOT``.
    """
    if template is None:
        raise PdfGenerationError("Certificate template not found")
    rel_path = os.path.join("certificates", filename)
    full_path = os.path.join(site_root(), rel_path)
    try:
        data = render_bytes(template, values)
        write_atomic(full_path, data)
        os.chmod(full_path, 0o644)
    except PdfGenerationError:
        raise
    except Exception as exc:
        raise PdfGenerationError(f"Failed to render {filename}: {exc}") from exc
    current_app.logger.info(
        "[CERT-PDF] template=%s path=%s", getattr(template, "id", None), rel_path
    )
    return rel_path
