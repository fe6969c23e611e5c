from __future__ import annotations

# Template page in full-page units (A4 at 300 DPI).
PAGE_WIDTH = 2480
PAGE_HEIGHT = 3508

# PDF output page in points (A4).
PDF_PAGE_WIDTH_PT = 595.28
PDF_PAGE_HEIGHT_PT = 841.89

PREVIEW_SCALE = 0.25

MIN_FIELD_WIDTH = 50
MIN_FIELD_HEIGHT = 20

MIN_FONT_SIZE = 8
MAX_FONT_SIZE = 200

FIELD_ALIGNMENTS = ("left", "center", "right")
FIELD_TYPES = ("text", "date", "number")

FONT_FAMILY_CHOICES: list[tuple[str, str]] = [
    ("Arial", "Arial"),
    ("Helvetica", "Helvetica"),
    ("Times New Roman", "Times New Roman"),
    ("Georgia", "Georgia"),
    ("Courier New", "Courier New"),
]

# editor font family -> (regular, bold, italic, bold italic) PDF base fonts
PDF_FONT_FAMILIES: dict[str, tuple[str, str, str, str]] = {
    "Arial": ("Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Helvetica-BoldOblique"),
    "Helvetica": ("Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Helvetica-BoldOblique"),
    "Times New Roman": ("Times-Roman", "Times-Bold", "Times-Italic", "Times-BoldItalic"),
    "Georgia": ("Times-Roman", "Times-Bold", "Times-Italic", "Times-BoldItalic"),
    "Courier New": ("Courier", "Courier-Bold", "Courier-Oblique", "Courier-BoldOblique"),
}

SAFE_FALLBACK_FAMILY = "Arial"

SYSTEM_FIELDS: list[tuple[str, str]] = [
    ("candidate_name", "Candidate Name"),
    ("certificate_number", "Certificate Number"),
    ("course_name", "Course Name"),
    ("course_date", "Course Date"),
    ("course_duration", "Course Duration"),
    ("trainer_name", "Trainer Name"),
]

SYSTEM_FIELD_NAMES: set[str] = {name for name, _ in SYSTEM_FIELDS}

# fields placed on a brand new template, in order
NEW_TEMPLATE_SYSTEM_FIELDS: tuple[str, ...] = (
    "candidate_name",
    "certificate_number",
    "course_date",
    "trainer_name",
    "course_duration",
)

SYSTEM_FIELD_DEFAULTS: dict[str, dict] = {
    "candidate_name": {"x": 840, "y": 1400, "width": 800, "height": 80, "fontSize": 64, "bold": True},
    "certificate_number": {"x": 100, "y": 100, "width": 600, "height": 50, "fontSize": 24},
    "course_name": {"x": 840, "y": 1200, "width": 800, "height": 60, "fontSize": 48, "bold": True},
    "course_date": {"x": 840, "y": 2000, "width": 800, "height": 60, "fontSize": 36},
    "course_duration": {"x": 840, "y": 2400, "width": 800, "height": 60, "fontSize": 32},
    "trainer_name": {"x": 840, "y": 2800, "width": 800, "height": 50, "fontSize": 32},
}

COURSE_FIELD_BASE_Y = 2200
COURSE_FIELD_SPACING = 120

CERTIFICATE_NUMBER_DIGITS = 5
EXPIRING_SOON_MONTHS = 3

CERT_STATUS_ISSUED = "issued"
CERT_STATUS_REVOKED = "revoked"
