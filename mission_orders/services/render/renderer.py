"""Single-page mission order drawing.

Coordinates below are authored from the top-left corner of the page and
converted to reportlab's bottom-left origin in ``_Page``. Everything drawn
comes from the arguments: ``fields`` is the stored snapshot (including the
order number and issue date), so re-rendering a snapshot reproduces the
same bytes.
"""

from io import BytesIO
from typing import Dict, Mapping, Optional

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.colors import Color, black
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from mission_orders.core.errors import RenderError
from mission_orders.services.render.fonts import FontSet, measure
from mission_orders.services.render.layout import (
    align_x,
    has_arabic,
    layout_runs,
    order_number_runs,
    prepare_text,
    wrap_text,
)
from mission_orders.utils.time import format_day_month_year

PAGE_W = 595
PAGE_H = 842
MARGIN = 60
QR_SIZE = 64
FIELD_TOP = 270
FIELD_STEP = 28
VALUE_OFFSET = 150
BOX_TOP = 490
BOX_HEIGHT = 60
SIGNATURE_TOP = 690

GREEN = Color(0.0, 0.62, 0.38)
RED = Color(0.8, 0.08, 0.24)
DARK = Color(0.1, 0.1, 0.1)

LABELS: Dict[str, Dict[str, str]] = {
    "rtl": {
        "org_name_ar": "رابطة ما بين الجهات لكرة القدم",
        "org_name_en": "Interregional Football League",
        "order_title": "أمر بمهمة",
        "order_number": "رقم",
        "order_suffix": " /ا.ع/ر.م.ج.ك.ق/",
        "name": "السيد(ة)",
        "position": "الصفة",
        "administrative_headquarters": "المقر الإداري",
        "mission_location": "مكان المهمة",
        "departure_date": "تاريخ الذهاب",
        "return_date": "تاريخ العودة",
        "mission_timing": "توقيت المهمة",
        "mission_type": "نوع المهمة",
        "date": "الجزائر في",
        "signature": "التوقيع",
        "footer_text_1": "على كافة السلطات المدنية والعسكرية تسهيل المهمة، لحامل هذه الوثيقة، وتمكينه من أداء مهامه دون عوائق",
        "footer_text_2": "وقد سلم هذا الامر لصاحبه للعمل بموجبه عند الحاجة.",
        "address": 'حي الجوهرة 554 مسكن برج " ب " الحامة بلوزداد الجزائر',
        "email": "sg.interregionsfootball@gmail.com",
        "phone": "023.51.11.03",
        "bank_info": "البنك الخارجي الجزائري وكالة قصر المعارض 1650087-05 بيانات الحساب البنكي 00200016160165008705",
    },
    "ltr": {
        "org_name_ar": "رابطة ما بين الجهات لكرة القدم",
        "org_name_en": "Interregional Football League",
        "order_title": "ORDRE DE MISSION",
        "order_number": "N°",
        "order_suffix": "/A.G/L.I.R.F/",
        "name": "Monsieur/Madame",
        "position": "Fonction",
        "administrative_headquarters": "Siège Administratif",
        "mission_location": "Lieu de Mission",
        "departure_date": "Date de départ",
        "return_date": "Date de retour",
        "mission_timing": "Durée de la Mission",
        "mission_type": "Type de Mission",
        "date": "Alger le",
        "signature": "Signature",
        "footer_text_1": "Toutes les autorités civiles et militaires sont priées de faciliter la mission au porteur de ce document et de lui permettre d'accomplir ses tâches sans entraves.",
        "footer_text_2": "Cet ordre a été remis à son titulaire pour être utilisé en cas de besoin.",
        "address": 'حي الجوهرة 554 مسكن برج " ب " الحامة بلوزداد الجزائر',
        "email": "sg.interregionsfootball@gmail.com",
        "phone": "023.51.11.03",
        "bank_info": "البنك الخارجي الجزائري وكالة قصر المعارض 1650087-05 بيانات الحساب البنكي 00200016160165008705",
    },
}

FIELD_ORDER = (
    "name",
    "position",
    "administrative_headquarters",
    "mission_location",
    "departure_date",
    "return_date",
    "mission_timing",
    "mission_type",
)
DATE_FIELDS = {"departure_date", "return_date"}


def direction_for(language: str) -> str:
    return "rtl" if language == "ar" else "ltr"


class _Page:
    def __init__(self, canv: canvas.Canvas, fonts: FontSet, direction: str) -> None:
        self.canv = canv
        self.fonts = fonts
        self.direction = direction

    @property
    def rtl(self) -> bool:
        return self.direction == "rtl"

    def font_for(self, text: str, bold: bool) -> str:
        return self.fonts.pick(bold, script=self.rtl or has_arabic(text))

    def text(
        self,
        text: str,
        x: float,
        y: float,
        size: float = 12,
        bold: bool = False,
        align: str = "left",
        font: Optional[str] = None,
        color: Color = black,
    ) -> float:
        font = font or self.font_for(text, bold)
        drawn = prepare_text(text, self.direction)
        width = measure(drawn, font, size)
        self.canv.setFillColor(color)
        self.canv.setFont(font, size)
        self.canv.drawString(align_x(x, width, align), PAGE_H - y, drawn)
        return width

    def image(self, data: bytes, x: float, y: float, width: float) -> float:
        """Draw scaled to ``width``; returns the drawn height."""
        try:
            reader = ImageReader(BytesIO(data))
            img_w, img_h = reader.getSize()
        except (OSError, ValueError) as exc:
            raise RenderError(f"unreadable image: {exc}") from exc
        height = width * img_h / img_w
        self.canv.drawImage(
            reader, x, PAGE_H - y - height, width, height, mask="auto"
        )
        return height


def _flag_bands(canv: canvas.Canvas) -> None:
    thickness, gap, length = 28, 10, 250
    for i, color in enumerate((GREEN, RED)):
        offset = i * (thickness + gap)
        canv.saveState()
        canv.translate(0, PAGE_H - 30 - offset - thickness)
        canv.rotate(45)
        canv.setFillColor(color)
        canv.rect(0, 0, length, thickness, stroke=0, fill=1)
        canv.restoreState()


def _qr_code(canv: canvas.Canvas, url: str, x: float, y: float, size: float) -> None:
    widget = QrCodeWidget(url)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(
        size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0]
    )
    drawing.add(widget)
    renderPDF.draw(drawing, canv, x, PAGE_H - y - size)


def render(
    fields: Mapping[str, str],
    direction: str,
    images: Mapping[str, Optional[bytes]],
    verification_url: str,
    fonts: FontSet = FontSet(),
) -> bytes:
    labels = LABELS[direction]
    buffer = BytesIO()
    canv = canvas.Canvas(buffer, pagesize=(PAGE_W, PAGE_H), invariant=1)
    canv.setTitle(f"{labels['order_title']} {fields.get('order_number', '')}")
    page = _Page(canv, fonts, direction)
    center = PAGE_W / 2

    _flag_bands(canv)

    y = 35
    logo_h = 70.0
    if images.get("logo"):
        logo_h = page.image(images["logo"], (PAGE_W - 70) / 2, y, 70)
    _qr_code(canv, verification_url, PAGE_W - MARGIN - QR_SIZE, y, QR_SIZE)

    y += logo_h + 15
    page.text(
        labels["org_name_ar"], center, y, size=14, bold=True, align="center",
        font=fonts.script_bold,
    )
    y += 20
    page.text(labels["org_name_en"], center, y, size=12, align="center")
    y += 50
    page.text(labels["order_title"], center, y, size=46, bold=True, align="center")
    y += 40

    issued_on = fields.get("issued_on") or ""
    runs = order_number_runs(
        labels["order_number"],
        str(fields.get("order_number", "")),
        labels["order_suffix"],
        issued_on[:4],
        fonts.script_bold if page.rtl else fonts.latin_bold,
        fonts.latin_bold,
        11,
        direction,
    )
    for run in layout_runs(runs, center, measure):
        canv.setFillColor(black)
        canv.setFont(run.font, run.size)
        canv.drawString(run.x, PAGE_H - y, run.text)

    if images.get("background"):
        try:
            reader = ImageReader(BytesIO(images["background"]))
            bg_w, bg_h = reader.getSize()
        except (OSError, ValueError) as exc:
            raise RenderError(f"unreadable image: {exc}") from exc
        height = 300 * bg_h / bg_w
        canv.drawImage(
            reader, (PAGE_W - 300) / 2, (PAGE_H - height) / 2 - 50, 300, height,
            mask="auto",
        )

    y = FIELD_TOP
    if page.rtl:
        label_x, value_x, align = PAGE_W - MARGIN, PAGE_W - MARGIN - VALUE_OFFSET, "right"
    else:
        label_x, value_x, align = MARGIN, MARGIN + VALUE_OFFSET, "left"
    for key in FIELD_ORDER:
        value = str(fields.get(key) or "")
        if key in DATE_FIELDS:
            value = format_day_month_year(value)
        page.text(f"{labels[key]}:", label_x, y, size=12, bold=True, align=align)
        page.text(value, value_x, y, size=11, align=align, color=DARK)
        y += FIELD_STEP

    box_width = PAGE_W - MARGIN
    canv.setStrokeColor(black)
    canv.setLineWidth(2)
    canv.rect(MARGIN / 2, PAGE_H - BOX_TOP - BOX_HEIGHT, box_width, BOX_HEIGHT)

    footer_font = fonts.pick(True, script=page.rtl)
    y = BOX_TOP + 14
    for line in wrap_text(labels["footer_text_1"], box_width - 28, footer_font, 12, measure):
        page.text(line, center, y, size=12, bold=True, align="center")
        y += 14
    y = BOX_TOP + BOX_HEIGHT + 15
    for line in wrap_text(labels["footer_text_2"], box_width, footer_font, 12, measure):
        page.text(line, center, y, size=12, bold=True, align="center")
        y += 14

    y = SIGNATURE_TOP
    issued = format_day_month_year(issued_on)
    if page.rtl:
        label_w = page.text(labels["date"], PAGE_W - MARGIN, y, size=10, align="right")
        page.text(
            issued, PAGE_W - MARGIN - label_w - 5, y, size=10, align="right",
            font=fonts.latin,
        )
        page.text(labels["signature"], MARGIN, y, size=10, bold=True)
    else:
        label_w = page.text(labels["date"], MARGIN, y, size=10)
        page.text(issued, MARGIN + label_w + 5, y, size=10, font=fonts.latin)
        page.text(
            labels["signature"], PAGE_W - MARGIN, y, size=10, bold=True, align="right"
        )

    if images.get("stamp"):
        stamp_x = MARGIN - 20 if page.rtl else PAGE_W - MARGIN - 140
        page.image(images["stamp"], stamp_x, 640, 160)

    canv.setLineWidth(0.5)
    canv.line(MARGIN, 75, PAGE_W - MARGIN, 75)
    page.text(
        labels["address"], center, PAGE_H - 45, size=9, align="center",
        font=fonts.script,
    )
    page.text(
        f"{labels['email']}  |  {labels['phone']}", center, PAGE_H - 33, size=8,
        align="center", font=fonts.latin,
    )
    page.text(
        labels["bank_info"], center, PAGE_H - 21, size=8, align="center",
        font=fonts.script,
    )

    canv.showPage()
    canv.save()
    return buffer.getvalue()
