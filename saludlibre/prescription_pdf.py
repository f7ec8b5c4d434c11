# saludlibre/prescription_pdf.py
"""
Prescription PDF layout.

Turns a ``PrescriptionRecord`` into an A4 PDF in a single pass:
header, professional info, patient info, diagnosis, medications, notes and
a footer with signature/stamp, number and legal text.

Positions are kept in millimetres measured from the top of the page and only
converted to reportlab's bottom-left origin when drawing. Every block is
measured before it is drawn; a block that does not fit above the content
bottom starts a new page, so blocks that fit on a page are never split.
Only a block taller than a whole page carries its remaining lines over to
continuation pages, under a "(continuación)" title.
"""
import functools
import logging
import os
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Callable, List, Optional, Tuple

import requests
from PIL import Image
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas

from . import config
from .formatting import PLACEHOLDER, format_date_es
from .schemas import Medication, PrescriptionRecord

logger = logging.getLogger(__name__)

PAGE_WIDTH_MM = 210
PAGE_HEIGHT_MM = 297
MARGIN = 20
FIRST_PAGE_TOP = 25
CONTINUATION_TOP = 30
FOOTER_HEIGHT = 60
CONTENT_BOTTOM = PAGE_HEIGHT_MM - FOOTER_HEIGHT
USABLE_HEIGHT = CONTENT_BOTTOM - CONTINUATION_TOP
RIGHT_COLUMN = PAGE_WIDTH_MM / 2 + 10
TEXT_WIDTH = PAGE_WIDTH_MM - 2 * MARGIN
MEDICATION_HEADING = 16

SIGNATURE_SIZE = (60, 20)
STAMP_SIZE = (50, 20)

BLACK = HexColor("#000000")
YELLOW = HexColor("#FFC107")
ORANGE = HexColor("#FF9800")
GRAY = HexColor("#666666")
DARK_GRAY = HexColor("#444444")

LEGAL_TEXT = (
    "Esta receta fue creada por un emisor inscripto y validado",
    "en el Registro de Recetarios Electrónicos del Ministerio de Salud de la Nación",
)
DISCLAIMER = "Receta Digital - Salud Libre"
CONTINUED = "(continuación)"

IMAGE_HEADERS = {
    "Accept": "image/*",
    "User-Agent": "Mozilla/5.0 (compatible; PDF Generator)",
}

# letters with no decomposition that still have an obvious cp1252 stand-in
_FOLD = {"Ł": "L", "ł": "l", "Đ": "D", "đ": "d", "ı": "i", "Ŧ": "T", "ŧ": "t"}


@dataclass(frozen=True)
class PdfFonts:
    regular: str = "Helvetica"
    bold: str = "Helvetica-Bold"
    italic: str = "Helvetica-Oblique"
    # embedded TrueType fonts can draw any character they have glyphs for
    embedded: bool = False


BUILTIN_FONTS = PdfFonts()


@functools.lru_cache(maxsize=None)
def load_fonts(regular_path: str = "", bold_path: str = "") -> PdfFonts:
    """
    Register TrueType fonts for the layout.

    Without a path, or when a font file cannot be read, the built-in
    Helvetica family is used and text is folded to cp1252.
    """
    if not regular_path:
        return BUILTIN_FONTS
    bold_path = bold_path or regular_path
    regular = "SL-" + os.path.splitext(os.path.basename(regular_path))[0]
    bold = "SL-" + os.path.splitext(os.path.basename(bold_path))[0]
    try:
        pdfmetrics.registerFont(TTFont(regular, regular_path))
        pdfmetrics.registerFont(TTFont(bold, bold_path))
    except (OSError, TTFError) as exc:
        logger.warning("Could not load PDF font %s: %s", regular_path, exc)
        return BUILTIN_FONTS
    logger.info("Using PDF fonts %s / %s", regular, bold)
    return PdfFonts(regular=regular, bold=bold, italic=regular, embedded=True)


def fold_to_cp1252(value: str) -> str:
    """Make text drawable with the built-in fonts: strip accents where that helps, else ``?``."""
    out = []
    for ch in value:
        if ch.encode("cp1252", "ignore"):
            out.append(ch)
            continue
        base = unicodedata.normalize("NFKD", _FOLD.get(ch, ch)).encode("cp1252", "ignore").decode("cp1252")
        out.append(base or "?")
    return "".join(out)


def _printable(value: str, fonts: PdfFonts) -> str:
    return value if fonts.embedded else fold_to_cp1252(value)


@dataclass
class RenderedPrescription:
    content: bytes
    page_count: int
    number: str
    # (page, top_mm, bottom_mm) for each medication, in order; a medication
    # continued over several pages has one entry per page
    placements: List[Tuple[int, float, float]] = field(default_factory=list)


def load_remote_image(url: Optional[str]) -> Optional[ImageReader]:
    """
    Download and decode an image for embedding.

    Any network, HTTP or decoding failure is logged and reported as ``None``
    so the caller can draw its text label instead.
    """
    if not url:
        return None
    try:
        response = requests.get(url, headers=IMAGE_HEADERS, timeout=config.IMAGE_FETCH_TIMEOUT)
        response.raise_for_status()
        image = Image.open(BytesIO(response.content))
        image.load()
    except (requests.RequestException, OSError) as exc:
        logger.warning("Could not load image %s: %s", url, exc)
        return None
    logger.info("Loaded image %s (%d bytes)", url, len(response.content))
    return ImageReader(image)


def generate_prescription_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    digits = int(now.timestamp() * 1000) % 10 ** 8
    return f"IF-{now.year}-{digits:08d}-APN-MS"


def barcode_bars(text: str) -> List[Tuple[float, float]]:
    """Cosmetic barcode: (x offset, width) in mm for each character code."""
    bars = []
    x = 0.0
    for ch in text:
        code = ord(ch)
        width = 0.3 + (code % 4) * 0.25
        bars.append((round(x, 2), width))
        x += width + 0.4 + ((code // 4) % 3) * 0.2
    return bars


def medication_lines(med: Medication, fonts: PdfFonts = BUILTIN_FONTS) -> List[str]:
    if not med.instructions:
        return []
    text = _printable(f"Instrucciones: {med.instructions}", fonts)
    return simpleSplit(text, fonts.regular, 9, (TEXT_WIDTH - 10) * mm)


def medication_block_height(med: Medication, fonts: PdfFonts = BUILTIN_FONTS) -> float:
    # name, dosage/frequency, optional duration, instructions, spacing
    height = 6 + 5
    if med.duration:
        height += 5
    height += 4 * len(medication_lines(med, fonts))
    return height + 8


def medication_head_height(med: Medication, fonts: PdfFonts = BUILTIN_FONTS) -> float:
    """Name, dosage, duration and the first instruction line."""
    height = 6 + 5 + (5 if med.duration else 0)
    return height + (4 if medication_lines(med, fonts) else 0)


def _wrap(text: str, size: float, width: float = TEXT_WIDTH - 10, font: str = "Helvetica") -> List[str]:
    return simpleSplit(text, font, size, width * mm) or [""]


class _Layout:
    def __init__(self, record: PrescriptionRecord, number: str, image_loader, fonts: PdfFonts):
        self.record = record
        self.number = number
        self.image_loader = image_loader
        self.fonts = fonts
        self.buf = BytesIO()
        self.c = canvas.Canvas(self.buf, pagesize=A4, pageCompression=0, invariant=1)
        self.c.setTitle(f"Receta {number}")
        self.c.setAuthor("Salud Libre")
        self.page = 1
        self.y = FIRST_PAGE_TOP
        self.fresh_page = False
        self.placements = []
        self.issued_at = record.created_at or datetime.now()

    # ---- drawing primitives (top-down mm)

    def clean(self, value: str) -> str:
        return _printable(value, self.fonts)

    def text(self, x, top, value, font=None, size=10, color=BLACK, align="left"):
        self.c.setFont(font or self.fonts.regular, size)
        self.c.setFillColor(color)
        px, py = x * mm, (PAGE_HEIGHT_MM - top) * mm
        value = self.clean(value)
        if align == "center":
            self.c.drawCentredString(px, py, value)
        else:
            self.c.drawString(px, py, value)

    def rule(self, top, color=YELLOW, width=1, x0=MARGIN, x1=PAGE_WIDTH_MM - MARGIN):
        self.c.setStrokeColor(color)
        self.c.setLineWidth(width)
        y = (PAGE_HEIGHT_MM - top) * mm
        self.c.line(x0 * mm, y, x1 * mm, y)

    def new_page(self) -> None:
        self.disclaimer()
        self.c.showPage()
        self.page += 1
        self.y = CONTINUATION_TOP
        self.fresh_page = True
        self.text(MARGIN, 18, f"SALUD LIBRE - Receta {self.number} {CONTINUED}", size=8, color=GRAY)

    def ensure(self, height: float) -> None:
        """Start a new page unless ``height`` fits above the content bottom.

        Nothing has been drawn on a fresh page yet, so whatever comes next
        stays there even when it is taller than the page.
        """
        if self.y + height > CONTENT_BOTTOM and not self.fresh_page:
            self.new_page()
        self.fresh_page = False

    def flow(self, lines, top, y, x, step, resume_title, size=10, color=BLACK):
        """
        Draw wrapped ``lines`` one baseline ``step`` apart starting at ``y``.

        A line that would pass the content bottom continues on a new page
        under ``resume_title``. Returns the (page, top, bottom) segments drawn.
        """
        segments = []
        for line in lines:
            if y + step > CONTENT_BOTTOM:
                segments.append((self.page, top, y))
                self.new_page()
                top = self.y
                self.text(MARGIN, top, resume_title, font=self.fonts.bold, size=11, color=DARK_GRAY)
                self.fresh_page = False
                y = top + 6
            self.text(x, y, line, size=size, color=color)
            y += step
        segments.append((self.page, top, y))
        return segments

    def disclaimer(self):
        self.text(PAGE_WIDTH_MM / 2, PAGE_HEIGHT_MM - 5, DISCLAIMER, font=self.fonts.bold, size=8,
                  color=ORANGE, align="center")

    # ---- sections

    def header(self):
        center = PAGE_WIDTH_MM / 2
        self.text(center, self.y, "SALUD LIBRE", font=self.fonts.bold, size=14, align="center")
        self.text(center, self.y + 8, "RECETA MEDICA", font=self.fonts.bold, size=18, color=YELLOW, align="center")
        self.text(center, self.y + 14, "Plataforma de Salud Digital", size=9, color=GRAY, align="center")
        self.rule(self.y + 24)
        self.y += 39

    def doctor(self):
        info = self.record.doctor_info
        address = _wrap(self.clean(f"Domicilio: {info.address}"), 10, font=self.fonts.regular)
        height = 31 + 5 * len(address)
        self.ensure(height if height <= USABLE_HEIGHT else 36)
        y = self.y
        self.text(MARGIN, y, "INFORMACION DEL MEDICO", font=self.fonts.bold, size=12)
        self.text(MARGIN, y + 8, info.name, font=self.fonts.bold, size=11)
        self.text(MARGIN, y + 14, f"Profesión: {info.profession}", color=GRAY)
        self.text(RIGHT_COLUMN, y + 14, f"Especialidad: {info.specialty}", color=GRAY)
        self.text(MARGIN, y + 20, f"Matrícula: {info.license_number}", color=GRAY)
        self.text(RIGHT_COLUMN, y + 20, f"Teléfono: {info.phone}", color=GRAY)
        segments = self.flow(address, y, y + 26, MARGIN, 5, f"INFORMACION DEL MEDICO {CONTINUED}", color=GRAY)
        self.y = min(segments[-1][2] + 5, CONTENT_BOTTOM)

    def patient(self):
        info = self.record.patient_info
        self.ensure(36)
        y = self.y
        self.text(MARGIN, y, "DATOS DEL PACIENTE", font=self.fonts.bold, size=12)
        self.text(MARGIN, y + 8, info.name, font=self.fonts.bold, size=11)
        self.text(MARGIN, y + 14, f"Edad: {info.age} años", color=GRAY)
        self.text(RIGHT_COLUMN, y + 14, f"Fecha: {format_date_es(self.issued_at)}", color=GRAY)
        self.text(MARGIN, y + 20, f"DNI: {info.dni}", color=GRAY)
        self.text(RIGHT_COLUMN, y + 20, f"Sexo: {info.gender}", color=GRAY)
        self.text(MARGIN, y + 26, f"Fecha de Nacimiento: {format_date_es(info.date_of_birth)}", color=GRAY)
        self.text(RIGHT_COLUMN, y + 26, f"Obra Social: {info.insurance}", color=GRAY)
        self.y = y + 36

    def paragraph(self, title: str, body: str, first_offset: float):
        lines = _wrap(self.clean(body or PLACEHOLDER), 10, font=self.fonts.regular)
        height = first_offset + 5 * len(lines) + 3
        self.ensure(height if height <= USABLE_HEIGHT else first_offset + 5)
        y = self.y
        self.text(MARGIN, y, title, font=self.fonts.bold, size=12)
        segments = self.flow(lines, y, y + first_offset, MARGIN + 5, 5, f"{title} {CONTINUED}")
        self.y = min(segments[-1][2] + 3, CONTENT_BOTTOM)

    def kept_height(self, med: Medication) -> float:
        """What must fit for ``med`` to start on the current page."""
        height = medication_block_height(med, self.fonts)
        return height if height <= USABLE_HEIGHT else medication_head_height(med, self.fonts)

    def medications(self):
        meds = self.record.medications
        # the heading always shares a page with the first block
        self.ensure(MEDICATION_HEADING + (self.kept_height(meds[0]) if meds else 8))
        self.text(MARGIN, self.y, "MEDICACION PRESCRITA", font=self.fonts.bold, size=12)
        self.text(MARGIN, self.y + 8, "RP:", font=self.fonts.bold, size=12, color=DARK_GRAY)
        self.y += MEDICATION_HEADING
        if not meds:
            self.text(MARGIN + 5, self.y, PLACEHOLDER, color=GRAY)
            self.y += 8
            return
        for index, med in enumerate(meds, start=1):
            self.medication(index, med, after_heading=index == 1)

    def medication(self, index: int, med: Medication, after_heading: bool = False):
        if not after_heading:
            self.ensure(self.kept_height(med))
        top = self.y
        y = top
        self.text(MARGIN, y, f"{index}. {med.name}", font=self.fonts.bold, size=11)
        y += 6
        self.text(MARGIN + 5, y, f"Dosis: {med.dosage}", size=9, color=GRAY)
        self.text(RIGHT_COLUMN, y, f"Frecuencia: {med.frequency}", size=9, color=GRAY)
        y += 5
        if med.duration:
            self.text(MARGIN + 5, y, f"Duración: {med.duration}", size=9, color=GRAY)
            y += 5
        segments = self.flow(medication_lines(med, self.fonts), top, y, MARGIN + 5, 4,
                             f"{index}. {med.name} {CONTINUED}", size=9, color=GRAY)
        page, segment_top, end = segments[-1]
        self.y = min(end + 8, CONTENT_BOTTOM)
        segments[-1] = (page, segment_top, self.y)
        self.placements.extend(segments)

    def footer(self):
        top = PAGE_HEIGHT_MM - 50
        self.rule(top)
        self.text(MARGIN, top + 10, f"Fecha de emision: {format_date_es(self.issued_at)}", size=9, color=GRAY)

        info = self.record.doctor_info
        x = PAGE_WIDTH_MM - MARGIN - 120
        self.signature_image(info.signature_url, x, top + 2, SIGNATURE_SIZE, "Firma Digital")
        self.signature_image(info.stamp_url, x + SIGNATURE_SIZE[0] + 5, top + 2, STAMP_SIZE, "Sello Digital")
        self.rule(top + 23, width=0.5, x0=x, x1=PAGE_WIDTH_MM - MARGIN)
        self.text((x + PAGE_WIDTH_MM - MARGIN) / 2, top + 27, "Firma y Sello Profesional", size=7,
                  color=GRAY, align="center")

        bar_top = top + 15
        for offset, width in barcode_bars(self.number):
            self.c.setFillColor(BLACK)
            self.c.rect((MARGIN + offset) * mm, (PAGE_HEIGHT_MM - bar_top - 10) * mm,
                        width * mm, 10 * mm, stroke=0, fill=1)
        self.text(MARGIN, top + 29, f"Número: {self.number}", font=self.fonts.bold, size=9, color=DARK_GRAY)

        for i, line in enumerate(LEGAL_TEXT):
            self.text(PAGE_WIDTH_MM / 2, top + 34 + 4 * i, line, font=self.fonts.italic, size=7,
                      color=GRAY, align="center")

    def signature_image(self, url, x, top, size, label):
        image = self.image_loader(url) if url else None
        width, height = size
        if image is None:
            self.text(x, top + height / 2, label, size=9, color=GRAY)
            return
        self.c.drawImage(image, x * mm, (PAGE_HEIGHT_MM - top - height) * mm, width=width * mm,
                         height=height * mm, preserveAspectRatio=True, mask="auto")

    # ----

    def render(self) -> RenderedPrescription:
        self.header()
        self.doctor()
        self.patient()
        self.paragraph("DIAGNOSTICO", self.record.diagnosis, 7)
        self.medications()
        self.paragraph("OBSERVACIONES", self.record.notes, 8)
        self.footer()
        self.disclaimer()
        self.c.showPage()
        self.c.save()
        return RenderedPrescription(
            content=self.buf.getvalue(),
            page_count=self.page,
            number=self.number,
            placements=self.placements,
        )


def render_prescription(
    record: PrescriptionRecord,
    image_loader: Callable[[Optional[str]], Optional[ImageReader]] = load_remote_image,
    fonts: Optional[PdfFonts] = None,
) -> RenderedPrescription:
    fonts = fonts or load_fonts(config.PDF_FONT_PATH, config.PDF_FONT_BOLD_PATH)
    number = record.number or generate_prescription_number(record.created_at)
    result = _Layout(record, number, image_loader, fonts).render()
    logger.info("Rendered prescription %s: %d page(s), %d medication(s)",
                number, result.page_count, len(record.medications))
    return result
