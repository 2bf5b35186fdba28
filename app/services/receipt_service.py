"""Receipt PDF rendering.

Renders a booking receipt entirely in memory. Output is deterministic for
identical input (reportlab invariant mode). Text is set in embedded
TrueType subsets carrying ToUnicode maps, so it extracts verbatim.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from io import BytesIO
from pathlib import Path

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas

from app.config import settings
from app.core.exceptions import RenderFailure
from app.models.booking import Booking
from app.models.institution import Institution

logger = logging.getLogger(__name__)

RECEIPT_CONTENT_TYPE = "application/pdf"

DEFAULT_REGULAR_FONT = "Vera.ttf"
DEFAULT_BOLD_FONT = "VeraBd.ttf"
NOTDEF_GLYPH = 0

_native_glyphs: dict[str, frozenset[int]] = {}


@lru_cache
def load_font(path: str) -> str:
    """Register a TrueType file with reportlab and return its font name.

    Bare file names are looked up on reportlab's font search path.

    Raises:
        RenderFailure: the file is missing or not a usable TrueType font
    """
    name = f"Receipt-{Path(path).stem}"
    try:
        font = TTFont(name, path)
    except (TTFError, OSError) as e:
        raise RenderFailure(f"receipt font {path} could not be loaded: {e}")
    _native_glyphs[name] = frozenset(font.face.charToGlyph)
    pdfmetrics.registerFont(font)
    logger.info(f"Registered receipt font {name} from {path}")
    return name


def cover_text(font_name: str, text: str) -> set[str]:
    """Make every character of ``text`` encodable in ``font_name``.

    Characters without a glyph are drawn with the font's .notdef glyph but
    keep their Unicode mapping, so extracted text stays verbatim. Returns
    the characters the font has no glyph for.
    """
    char_to_glyph = pdfmetrics.getFont(font_name).face.charToGlyph
    native = _native_glyphs[font_name]
    missing = {char for char in text if ord(char) not in native}
    for char in missing:
        # ToUnicode entries are written as four hex digits
        if ord(char) <= 0xFFFF:
            char_to_glyph.setdefault(ord(char), NOTDEF_GLYPH)
    return missing


@dataclass(frozen=True)
class ReceiptData:
    """Immutable snapshot of everything printed on a receipt."""

    booking_id: str
    visit_date: date
    visit_time: str
    amount: Decimal
    currency: str
    visitor_name: str
    institution_name: str
    visitor_email: str | None = None
    visitor_phone: str | None = None
    payment_id: str | None = None
    order_id: str | None = None
    notes: str | None = None
    booked_on: datetime | None = None
    institution_address: str | None = None
    institution_city: str | None = None
    institution_state: str | None = None
    institution_phone: str | None = None
    institution_email: str | None = None
    visiting_hours: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def from_booking(
        cls,
        booking: Booking,
        institution: Institution,
        payment_id: str | None = None,
        order_id: str | None = None,
    ) -> "ReceiptData":
        contact = institution.contact or {}
        hours = tuple(
            (str(entry.get("day", "")), str(entry.get("hours", "")))
            for entry in (institution.visiting_hours or [])
            if isinstance(entry, dict)
        )
        return cls(
            booking_id=booking.booking_id,
            visit_date=booking.visit_date,
            visit_time=booking.visit_time,
            amount=Decimal(booking.amount),
            currency=booking.currency,
            visitor_name=booking.visitor_name,
            visitor_email=booking.visitor_email,
            visitor_phone=booking.visitor_phone,
            payment_id=payment_id or booking.payment_id,
            order_id=order_id or booking.order_id,
            notes=booking.notes,
            booked_on=booking.created_at,
            institution_name=institution.name,
            institution_address=institution.address,
            institution_city=institution.city,
            institution_state=institution.state,
            institution_phone=contact.get("phone"),
            institution_email=contact.get("email"),
            visiting_hours=hours,
        )

    @property
    def amount_display(self) -> str:
        return f"{self.currency} {self.amount:.2f}"


class _ReceiptCanvas:
    """Cursor-based drawing over a reportlab canvas with automatic page breaks."""

    def __init__(self, buffer: BytesIO, title: str, booking_id: str, regular: str, bold: str) -> None:
        self.width, self.height = A4
        self.margin = 20 * mm
        self.booking_id = booking_id
        self.regular = regular
        self.bold = bold
        self.page = 1
        self.missing: set[str] = set()
        self.c = canvas.Canvas(buffer, pagesize=A4, invariant=1, pageCompression=0)
        self.c.setTitle(title)
        self.c.setAuthor(settings.app_name)
        self.c.setSubject(f"Booking {booking_id}")
        self.y = self.height - self.margin

    @property
    def content_width(self) -> float:
        return self.width - 2 * self.margin

    def text(self, x: float, text: str, font: str, size: float) -> None:
        self.missing |= cover_text(font, text)
        self.c.setFont(font, size)
        self.c.drawString(x, self.y, text)

    def ensure_space(self, needed: float) -> None:
        if self.y - needed >= self.margin + 15 * mm:
            return
        self.c.showPage()
        self.page += 1
        self.y = self.height - self.margin
        self.text(self.margin, f"Booking {self.booking_id} (continued, page {self.page})", self.regular, 9)
        self.y -= 10 * mm

    def title(self, text: str, subtitle: str) -> None:
        self.text(self.margin, text, self.bold, 18)
        self.y -= 7 * mm
        self.text(self.margin, subtitle, self.regular, 10)
        self.y -= 4 * mm
        self.c.line(self.margin, self.y, self.width - self.margin, self.y)
        self.y -= 8 * mm

    def section(self, heading: str) -> None:
        self.ensure_space(14 * mm)
        self.text(self.margin, heading, self.bold, 12)
        self.y -= 6 * mm

    def lines(self, text: str, bold: bool = False, size: int = 10, indent: float = 0) -> None:
        font = self.bold if bold else self.regular
        leading = size * 1.4
        for line in simpleSplit(text, font, size, self.content_width - indent):
            self.ensure_space(leading)
            self.text(self.margin + indent, line, font, size)
            self.y -= leading

    def field(self, label: str, value: str | None) -> None:
        if not value:
            return
        label_width = 40 * mm
        size = 10
        leading = size * 1.4
        wrapped = simpleSplit(value, self.regular, size, self.content_width - label_width)
        self.ensure_space(leading * max(1, len(wrapped)))
        self.text(self.margin, f"{label}:", self.bold, size)
        for line in wrapped:
            self.text(self.margin + label_width, line, self.regular, size)
            self.y -= leading

    def gap(self, amount: float = 4 * mm) -> None:
        self.y -= amount

    def footer(self, text: str) -> None:
        self.ensure_space(30 * mm)
        self.y -= 6 * mm
        self.c.line(self.margin, self.y, self.width - self.margin, self.y)
        self.y -= 6 * mm
        self.lines(text, size=9)
        self.lines("This is a computer-generated receipt and does not require a signature.", size=9)

    def finish(self) -> None:
        self.c.showPage()
        self.c.save()


class ReceiptRenderer:
    """Builds the booking receipt PDF."""

    def __init__(
        self,
        footer_text: str | None = None,
        render_timeout: float | None = None,
        font_path: str | None = None,
        bold_font_path: str | None = None,
    ) -> None:
        self.footer_text = footer_text or settings.receipt_footer_text
        self.render_timeout = render_timeout or settings.receipt_render_timeout_seconds
        custom_regular = font_path or settings.receipt_font_path
        self.font_path = custom_regular or DEFAULT_REGULAR_FONT
        self.bold_font_path = bold_font_path or settings.receipt_bold_font_path or custom_regular or DEFAULT_BOLD_FONT

    def render(self, data: ReceiptData) -> bytes:
        """Render ``data`` to PDF bytes.

        Raises:
            RenderFailure: a receipt font cannot be loaded
        """
        buffer = BytesIO()
        doc = _ReceiptCanvas(
            buffer,
            title=f"Receipt {data.booking_id}",
            booking_id=data.booking_id,
            regular=load_font(self.font_path),
            bold=load_font(self.bold_font_path),
        )

        doc.title("Visit Booking Receipt", f"{settings.app_name} - Booking {data.booking_id}")

        # Institution
        doc.section("Institution")
        doc.lines(data.institution_name, bold=True, size=11)
        if data.institution_address:
            doc.lines(data.institution_address)
        locality = ", ".join(part for part in (data.institution_city, data.institution_state) if part)
        if locality:
            doc.lines(locality)
        doc.field("Phone", data.institution_phone)
        doc.field("Email", data.institution_email)
        doc.gap()

        # Booking
        doc.section("Booking Details")
        doc.field("Booking ID", data.booking_id)
        doc.field("Visit Date", data.visit_date.strftime("%d %B %Y"))
        doc.field("Visit Time", data.visit_time)
        if data.booked_on:
            doc.field("Booked On", data.booked_on.strftime("%d %B %Y"))
        doc.gap()

        # Payment
        doc.section("Payment")
        doc.field("Amount Paid", data.amount_display)
        doc.field("Order Reference", data.order_id)
        doc.field("Payment Reference", data.payment_id)
        doc.field("Status", "PAID")
        doc.gap()

        # Visitor
        doc.section("Visitor")
        doc.field("Name", data.visitor_name)
        doc.field("Email", data.visitor_email)
        doc.field("Phone", data.visitor_phone)
        doc.gap()

        if data.notes:
            doc.section("Notes")
            doc.lines(data.notes)
            doc.gap()

        if data.visiting_hours:
            doc.section("Visiting Hours")
            for day, hours in data.visiting_hours:
                doc.field(day or "-", hours or "-")
            doc.gap()

        doc.footer(self.footer_text)
        doc.finish()
        if doc.missing:
            logger.warning(
                f"Receipt {data.booking_id}: {len(doc.missing)} character(s) have no glyph in the receipt fonts "
                f"and print as placeholders; set RECEIPT_FONT_PATH to a font that covers them"
            )
        return buffer.getvalue()

    async def render_async(self, data: ReceiptData) -> bytes:
        """Render in a worker thread, bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.render, data), timeout=self.render_timeout
            )
        except asyncio.TimeoutError:
            raise RenderFailure(f"rendering exceeded {self.render_timeout}s")
        except RenderFailure:
            raise
        except Exception as e:
            logger.exception(f"Receipt rendering failed for booking {data.booking_id}")
            raise RenderFailure(str(e) or e.__class__.__name__)
