"""
Permit PDF Generator

Renders a one-page A4 commute permit with the verification URL printed as
text and encoded in a QR code. Japanese text is drawn with a built-in CID
font so no font files need to ship with the service.
"""

import io
from dataclasses import dataclass
from datetime import datetime
from xml.sax.saxutils import escape

from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .permit_utils import format_date

FONT_NAME = "HeiseiKakuGo-W5"
pdfmetrics.registerFont(UnicodeCIDFont(FONT_NAME))

QR_SIZE = 40 * mm


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class PermitPdfData:
    """Everything printed on a permit."""

    permit_id: str
    employee_name: str
    vehicle_number: str
    vehicle_model: str
    issue_date: datetime
    expiration_date: datetime
    verification_url: str
    company_name: str = ""
    company_postal_code: str = ""
    company_address: str = ""
    issuing_department: str = ""
    timezone: str | None = None


# =============================================================================
# GENERATOR
# =============================================================================


class PermitPDFGenerator:
    """Builds the permit document."""

    def __init__(self, data: PermitPdfData):
        self.data = data
        self.styles = self._create_styles()
        self.buffer = io.BytesIO()

    def _create_styles(self) -> dict[str, ParagraphStyle]:
        base_styles = getSampleStyleSheet()

        return {
            "title": ParagraphStyle(
                "PermitTitle",
                parent=base_styles["Title"],
                fontName=FONT_NAME,
                fontSize=24,
                spaceAfter=18,
                textColor=colors.HexColor("#1e293b"),
                alignment=TA_CENTER,
            ),
            "body": ParagraphStyle(
                "PermitBody",
                parent=base_styles["Normal"],
                fontName=FONT_NAME,
                fontSize=11,
                leading=16,
                textColor=colors.HexColor("#334155"),
                alignment=TA_LEFT,
            ),
            "small": ParagraphStyle(
                "PermitSmall",
                parent=base_styles["Normal"],
                fontName=FONT_NAME,
                fontSize=8,
                leading=11,
                textColor=colors.HexColor("#64748b"),
                alignment=TA_CENTER,
            ),
            "issuer": ParagraphStyle(
                "PermitIssuer",
                parent=base_styles["Normal"],
                fontName=FONT_NAME,
                fontSize=10,
                leading=14,
                textColor=colors.HexColor("#1e293b"),
                alignment=TA_LEFT,
            ),
        }

    def generate(self) -> bytes:
        doc = SimpleDocTemplate(
            self.buffer,
            pagesize=A4,
            rightMargin=20 * mm,
            leftMargin=20 * mm,
            topMargin=25 * mm,
            bottomMargin=20 * mm,
            title="Commute Permit",
        )

        story = []
        story.append(Paragraph("通勤車両許可証", self.styles["title"]))
        story.append(Spacer(1, 6 * mm))
        story.append(self._build_details_table())
        story.append(Spacer(1, 10 * mm))
        story.extend(self._build_verification_section())
        story.append(Spacer(1, 10 * mm))
        story.extend(self._build_issuer_section())

        doc.build(story)

        pdf_bytes = self.buffer.getvalue()
        self.buffer.close()
        return pdf_bytes

    def _build_details_table(self) -> Table:
        tz = self.data.timezone
        rows = [
            ["氏名", self.data.employee_name],
            ["車両番号", self.data.vehicle_number],
            ["車種", self.data.vehicle_model],
            ["発行日", format_date(self.data.issue_date, tz)],
            ["有効期限", format_date(self.data.expiration_date, tz)],
            ["許可証番号", self.data.permit_id],
        ]
        table = Table(
            [[Paragraph(escape(k), self.styles["body"]), Paragraph(escape(v or "-"), self.styles["body"])] for k, v in rows],
            colWidths=[40 * mm, 120 * mm],
        )
        table.setStyle(
            TableStyle([
                ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#f1f5f9")),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cbd5e1")),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("TOPPADDING", (0, 0), (-1, -1), 6),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ])
        )
        return table

    def _build_qr_code(self) -> Drawing:
        widget = QrCodeWidget(self.data.verification_url)
        x1, y1, x2, y2 = widget.getBounds()
        width, height = x2 - x1, y2 - y1
        drawing = Drawing(QR_SIZE, QR_SIZE, transform=[QR_SIZE / width, 0, 0, QR_SIZE / height, 0, 0])
        drawing.add(widget)
        return drawing

    def _build_verification_section(self) -> list:
        qr_table = Table([[self._build_qr_code()]], colWidths=[QR_SIZE + 4 * mm])
        qr_table.setStyle(TableStyle([("ALIGN", (0, 0), (-1, -1), "CENTER")]))
        return [
            qr_table,
            Spacer(1, 2 * mm),
            Paragraph("Scan to verify this permit", self.styles["small"]),
            Paragraph(escape(self.data.verification_url), self.styles["small"]),
        ]

    def _build_issuer_section(self) -> list:
        lines = [
            self.data.company_name,
            f"〒{self.data.company_postal_code}" if self.data.company_postal_code else "",
            self.data.company_address,
            self.data.issuing_department,
        ]
        return [Paragraph(escape(line), self.styles["issuer"]) for line in lines if line]


def render_permit_pdf(data: PermitPdfData) -> bytes:
    """Render permit data to PDF bytes."""
    return PermitPDFGenerator(data).generate()
