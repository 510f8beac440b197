"""
Quote PDF generation.

Public API:
  QuoteDocumentGenerator(business_name, logo_path).generate(snapshot) -> GeneratedDocument

Layout, top to bottom: branding header (logo or business name), customer and
event block, itemized table, totals, validity footer. Every amount is
formatted from minor units with quote_delivery.currency.

The generator reads only the snapshot and the static logo path. A missing or
unreadable logo falls back to a text header; only a failure of the layout
engine itself raises DocumentGenerationError.
"""
from __future__ import annotations

import io
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.platypus import (
    Image,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from quote_delivery.currency import format_minor_units
from quote_delivery.exceptions import DocumentGenerationError
from quote_delivery.models import QuoteSnapshot

logger = logging.getLogger(__name__)

_DATE_FORMAT = "%B %d, %Y"
_LOGO_MAX_WIDTH = 2.0 * inch
_LOGO_MAX_HEIGHT = 1.0 * inch
_BRAND_COLOR = colors.HexColor("#e63946")
_MUTED_COLOR = colors.HexColor("#6b7280")


@dataclass(frozen=True)
class GeneratedDocument:
    content: bytes
    filename: str
    mime_type: str = "application/pdf"


def document_filename(quote_number: str) -> str:
    """Filesystem-safe attachment name, e.g. "quote-Q-1001.pdf"."""
    safe = re.sub(r"[^A-Za-z0-9._-]+", "-", quote_number).strip("-") or "quote"
    return f"quote-{safe}.pdf"


class QuoteDocumentGenerator:
    """Renders a QuoteSnapshot to PDF bytes with reportlab."""

    def __init__(
        self,
        business_name: str,
        logo_path: Optional[str] = None,
    ):
        self.business_name = business_name
        self.logo_path = logo_path

    def _load_logo(self) -> Optional[Image]:
        """Return a sized logo flowable, or None to fall back to a text header."""
        if not self.logo_path:
            return None
        if not os.path.isfile(self.logo_path) or not os.access(self.logo_path, os.R_OK):
            logger.warning(f"Branding logo not readable, using text header: {self.logo_path}")
            return None

        try:
            reader = ImageReader(self.logo_path)
            width, height = reader.getSize()
        except Exception as e:
            logger.warning(f"Branding logo could not be decoded, using text header: {e}")
            return None

        scale = min(_LOGO_MAX_WIDTH / width, _LOGO_MAX_HEIGHT / height, 1.0)
        logo = Image(self.logo_path, width=width * scale, height=height * scale)
        logo.hAlign = "LEFT"
        return logo

    def _header(self, snapshot: QuoteSnapshot, styles: Any) -> List[Any]:
        title_style = ParagraphStyle(
            "QuoteTitle",
            parent=styles["Heading1"],
            fontSize=22,
            textColor=_BRAND_COLOR,
            spaceAfter=6,
        )
        flowables: List[Any] = []
        logo = self._load_logo()
        if logo is not None:
            flowables.append(logo)
            flowables.append(Spacer(1, 8))
        else:
            flowables.append(Paragraph(escape(self.business_name), title_style))
        flowables.append(Paragraph(f"Quote {escape(snapshot.number)}", styles["Heading2"]))
        return flowables

    def _customer_block(self, snapshot: QuoteSnapshot, styles: Any) -> List[Any]:
        lines = [
            f"<b>Prepared for:</b> {escape(snapshot.customer.name)}",
            escape(snapshot.customer.email),
        ]
        event = snapshot.event
        if event is not None:
            if event.service_type:
                lines.append(f"<b>Service:</b> {escape(event.service_type)}")
            if event.event_date:
                lines.append(f"<b>Event date:</b> {event.event_date.strftime(_DATE_FORMAT)}")
            if event.location:
                lines.append(f"<b>Location:</b> {escape(event.location)}")
        return [Paragraph("<br/>".join(lines), styles["Normal"]), Spacer(1, 16)]

    def _items_table(self, snapshot: QuoteSnapshot) -> Table:
        currency = snapshot.currency
        rows: List[List[str]] = [["Description", "Qty", "Unit price", "Total"]]
        for item in snapshot.line_items:
            rows.append(
                [
                    item.description,
                    str(item.quantity),
                    format_minor_units(item.unit_price, currency),
                    format_minor_units(item.line_total, currency),
                ]
            )
        rows.append(["", "", "Total", format_minor_units(snapshot.total, currency)])

        table = Table(rows, colWidths=[3.4 * inch, 0.7 * inch, 1.2 * inch, 1.2 * inch])
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f9fafb")),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
            ("BOTTOMPADDING", (0, 0), (-1, 0), 10),
            ("LINEBELOW", (0, 0), (-1, -2), 0.5, colors.HexColor("#e5e7eb")),
            ("LINEABOVE", (0, -1), (-1, -1), 1, colors.HexColor("#1f2937")),
        ]))
        return table

    def _footer(self, snapshot: QuoteSnapshot, styles: Any) -> List[Any]:
        footer_style = ParagraphStyle(
            "QuoteFooter",
            parent=styles["Normal"],
            fontSize=9,
            textColor=_MUTED_COLOR,
        )
        flowables: List[Any] = [Spacer(1, 24)]
        if snapshot.terms:
            flowables.append(Paragraph(f"<b>Terms:</b> {escape(snapshot.terms)}", footer_style))
        if snapshot.valid_until:
            valid = snapshot.valid_until.strftime(_DATE_FORMAT)
            flowables.append(Paragraph(f"This quote is valid until {valid}.", footer_style))
        else:
            flowables.append(Paragraph("This quote is valid for 30 days.", footer_style))
        return flowables

    def generate(self, snapshot: QuoteSnapshot) -> GeneratedDocument:
        """
        Render the quote to PDF.

        Raises:
            DocumentGenerationError: If the layout engine fails
        """
        buffer = io.BytesIO()
        try:
            doc = SimpleDocTemplate(
                buffer,
                pagesize=letter,
                rightMargin=54,
                leftMargin=54,
                topMargin=54,
                bottomMargin=54,
                title=f"Quote {snapshot.number}",
                author=self.business_name,
            )
            styles = getSampleStyleSheet()

            story: List[Any] = []
            story.extend(self._header(snapshot, styles))
            story.extend(self._customer_block(snapshot, styles))
            story.append(self._items_table(snapshot))
            story.extend(self._footer(snapshot, styles))

            doc.build(story)
        except Exception as e:
            raise DocumentGenerationError(
                f"Failed to render quote {snapshot.number}: {e}",
                details={"quote_id": snapshot.id},
            ) from e

        content = buffer.getvalue()
        logger.info(
            f"Generated quote document quote={snapshot.number} size_bytes={len(content)}"
        )
        return GeneratedDocument(content=content, filename=document_filename(snapshot.number))
